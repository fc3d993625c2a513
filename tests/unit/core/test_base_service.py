"""
Unit tests for core.base_service module.

Tests:
- BaseServiceConfig defaults and validation
- run_forever() - cycling, shutdown, consecutive failure limit, counter reset
- wait() and the async context manager
"""

import asyncio
from typing import ClassVar

import pytest
from pydantic import ValidationError

from nostrdht.core.base_service import BaseService, BaseServiceConfig


class _Service(BaseService[BaseServiceConfig]):
    SERVICE_NAME: ClassVar[str] = "test_service"
    CONFIG_CLASS: ClassVar[type[BaseServiceConfig]] = BaseServiceConfig

    def __init__(self, config=None, outcomes=()):
        super().__init__(config)
        self.outcomes = list(outcomes)
        self.calls = 0

    async def run(self) -> None:
        self.calls += 1
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
        if not self.outcomes and self.calls >= 10:
            self.request_shutdown()


# =============================================================================
# Configuration
# =============================================================================


class TestBaseServiceConfig:
    """BaseServiceConfig validation."""

    def test_defaults(self):
        config = BaseServiceConfig()
        assert config.interval == 300.0
        assert config.max_consecutive_failures == 5

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            BaseServiceConfig(interval=0)

    def test_default_config_used(self):
        assert _Service().config == BaseServiceConfig()


# =============================================================================
# run_forever
# =============================================================================


class TestRunForever:
    """run_forever() cycling."""

    @pytest.mark.asyncio
    async def test_stops_on_shutdown_request(self):
        service = _Service(BaseServiceConfig(interval=0.01))
        await asyncio.wait_for(service.run_forever(), timeout=2.0)
        assert service.calls == 10
        assert not service.is_running

    @pytest.mark.asyncio
    async def test_stops_after_max_failures(self):
        config = BaseServiceConfig(interval=0.01, max_consecutive_failures=3)
        service = _Service(config, outcomes=[RuntimeError("x")] * 5)
        await asyncio.wait_for(service.run_forever(), timeout=2.0)
        assert service.calls == 3

    @pytest.mark.asyncio
    async def test_success_resets_failures(self):
        config = BaseServiceConfig(interval=0.01, max_consecutive_failures=2)
        outcomes = [RuntimeError("a"), None, RuntimeError("b"), None, RuntimeError("c"), RuntimeError("d")]
        service = _Service(config, outcomes=outcomes)
        await asyncio.wait_for(service.run_forever(), timeout=2.0)
        assert service.calls == 6

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        service = _Service(BaseServiceConfig(interval=10.0))
        task = asyncio.create_task(service.run_forever())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_wait(self):
        service = _Service(BaseServiceConfig(interval=60.0))
        task = asyncio.create_task(service.run_forever())
        await asyncio.sleep(0.01)
        service.request_shutdown()
        await asyncio.wait_for(task, timeout=1.0)
        assert service.calls == 1


class TestWaitAndContext:
    """wait() and async context manager."""

    @pytest.mark.asyncio
    async def test_wait_timeout(self):
        assert await _Service().wait(0.01) is False

    @pytest.mark.asyncio
    async def test_wait_shutdown(self):
        service = _Service()
        service.request_shutdown()
        assert await service.wait(1.0) is True

    @pytest.mark.asyncio
    async def test_context_manager(self):
        service = _Service()
        service.request_shutdown()
        async with service as running:
            assert running is service
            assert service.is_running
        assert not service.is_running
