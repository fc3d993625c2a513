"""
Pytest configuration and shared fixtures for nostrdht tests.

Provides:
- Identity fixtures (a fresh keypair per test)
- Signed event factories
- An in-memory transport and fast pool configuration
"""

import logging
from collections.abc import Callable

import pytest

from nostrdht.core.pool import PoolConfig
from nostrdht.models import Event, UnsignedEvent
from nostrdht.utils.keys import Keypair, generate_keypair, sign_event
from tests.fixtures.relay import FakeTransport


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Identity and Events
# ============================================================================


@pytest.fixture
def keypair() -> Keypair:
    """A fresh random identity."""
    return generate_keypair()


@pytest.fixture
def make_event(keypair: Keypair) -> Callable[..., Event]:
    """Factory for events signed by ``keypair``."""

    def _make(
        content: str = "hello",
        tags: tuple[tuple[str, ...], ...] = (("t", "demo"),),
        kind: int = 29333,
        created_at: int = 1_700_000_000,
    ) -> Event:
        unsigned = UnsignedEvent(
            pubkey=keypair.public_key,
            created_at=created_at,
            kind=kind,
            tags=tags,
            content=content,
        )
        return sign_event(unsigned, keypair)

    return _make


# ============================================================================
# Transport and Pool
# ============================================================================


RELAY_URLS = [f"wss://relay{i}.example.com" for i in range(1, 6)]


@pytest.fixture
def relay_urls() -> list[str]:
    return list(RELAY_URLS)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Transport backed by in-memory relays."""
    return FakeTransport()


@pytest.fixture
def fast_pool_config(relay_urls: list[str]) -> PoolConfig:
    """Pool settings with a short maintenance interval for tests."""
    return PoolConfig(
        relays=relay_urls,
        target_connections=3,
        maintenance_interval=0.01,
        poll_interval=0.05,
        connect_timeout=1.0,
    )
