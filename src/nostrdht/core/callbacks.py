"""
Error-isolated invocation of user callbacks.

Subscription handlers, dispatcher observers and pool open-listeners may be
plain functions or coroutine functions. [CallbackRunner][nostrdht.core.callbacks.CallbackRunner]
calls them from inside the ingestion loop, schedules any returned awaitable
as a task it keeps a reference to, and logs (never propagates) whatever they
raise.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from .logger import Logger


class CallbackRunner:
    """Run sync or async callbacks without letting their errors escape.

    Args:
        logger: Logger used for ``callback_error`` events.
    """

    def __init__(self, logger: Logger) -> None:
        self._logger = logger
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        """Number of asynchronous callbacks still running."""
        return len(self._tasks)

    def invoke(self, callback: Callable[..., Any], *args: Any, **context: Any) -> bool:
        """Call ``callback(*args)``.

        ``context`` is attached to the error log line only.

        Returns:
            False if the callback raised synchronously, True otherwise.
        """
        try:
            result = callback(*args)
        except Exception as e:  # Intentionally broad: user code must not break ingestion
            self._logger.error("callback_error", error=str(e), error_type=type(e).__name__, **context)
            return False

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda t: self._on_done(t, context))
        return True

    def _on_done(self, task: asyncio.Task[Any], context: dict[str, Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "callback_error", error=str(exc), error_type=type(exc).__name__, **context
            )

    async def drain(self) -> None:
        """Wait for every scheduled callback task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel outstanding callback tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
