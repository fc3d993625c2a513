"""YAML configuration loading.

Used by [NostrDht.from_yaml()][nostrdht.core.dht.NostrDht.from_yaml] and
[ConnectionPool.from_yaml()][nostrdht.core.pool.ConnectionPool.from_yaml].
Only ``yaml.safe_load`` is used, so a config file can never instantiate
arbitrary Python objects. Schema validation is left to the Pydantic models
the result is fed into.

Examples:
    ```python
    from nostrdht.core.yaml import load_yaml

    data = load_yaml("config/nostrdht.yaml")
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from nostrdht.exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load a YAML mapping from *config_path*.

    Returns:
        The parsed mapping, or an empty dict for an empty file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top level
            is not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Top level of {config_path} must be a mapping, got {type(data).__name__}"
        )
    return data
