"""
Unit tests for core.yaml module.

Tests:
- load_yaml() on valid, empty, missing, malformed and non-mapping files
- The shipped sample configuration validates as a DhtConfig
"""

from pathlib import Path

import pytest

from nostrdht.core.dht import DhtConfig
from nostrdht.core.yaml import load_yaml
from nostrdht.exceptions import ConfigurationError


SAMPLE_CONFIG = Path(__file__).parents[3] / "config" / "nostrdht.yaml"


class TestLoadYaml:
    """load_yaml()."""

    def test_mapping(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("kind: 1\npool:\n  target_connections: 2\n")
        assert load_yaml(path) == {"kind": 1, "pool": {"target_connections": 2}}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("")
        assert load_yaml(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("pool: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml(str(path))

    def test_safe_load_only(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("x: !!python/object/apply:os.system ['true']\n")
        with pytest.raises(ConfigurationError):
            load_yaml(path)


class TestSampleConfig:
    """config/nostrdht.yaml."""

    def test_sample_validates(self):
        config = DhtConfig(**load_yaml(SAMPLE_CONFIG))
        assert config.pool.target_connections == 5
        assert len(config.pool.relays) == 8
        assert config.metrics.enabled is False
