"""
Unit tests for the top-level lazy import surface.

Tests:
- Every name in nostrdht.__all__ resolves to its defining object
- Unknown attributes raise AttributeError
- __version__ is exposed
"""

import pytest

import nostrdht
from nostrdht.core import NostrDht
from nostrdht.models import Event


class TestLazyImports:
    """nostrdht.__getattr__."""

    @pytest.mark.parametrize("name", nostrdht.__all__)
    def test_resolves(self, name):
        assert getattr(nostrdht, name) is not None

    def test_same_object(self):
        assert nostrdht.NostrDht is NostrDht
        assert nostrdht.Event is Event

    def test_unknown(self):
        with pytest.raises(AttributeError, match="no attribute"):
            nostrdht.DoesNotExist  # noqa: B018

    def test_dir(self):
        assert "NostrDht" in dir(nostrdht)

    def test_version(self):
        assert isinstance(nostrdht.__version__, str)
