# taskhook/core/invocation.py
"""
Handler invocation shared by the cron and webhook paths.

Every call gets a fresh scoped logger. Synchronous results are ignored and
synchronous exceptions propagate to the caller. Awaitable results are
scheduled on the running loop and observed in the background: a failure is
reported once through the scoped logger's ``error`` channel and never
reaches the code that dispatched the handler.
"""
from __future__ import annotations

import asyncio
import inspect
from datetime import datetime
from typing import Any, Callable

from taskhook.core.handlers import NamedHandler
from taskhook.core.scoped_logger import BaseLogger, ScopedLogger, scope, utcnow
from taskhook.infra.logging_config import get_logger, LogContext
from taskhook.infra.metrics import TaskMetrics

logger = get_logger(__name__)


def failure_reason(exc: BaseException) -> str:
    """Message logged for a failed handler: the exception text, else its type."""
    return str(exc) or exc.__class__.__name__


class Dispatcher:
    """Invokes task handlers and watches their asynchronous results."""

    def __init__(
        self,
        base_logger: BaseLogger,
        *,
        clock: Callable[[], datetime] = utcnow,
        metrics: TaskMetrics | None = None,
    ):
        self.base_logger = base_logger
        self._clock = clock
        self._metrics = metrics or TaskMetrics()
        self._pending: set[asyncio.Future] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def scoped_logger(self, handler: NamedHandler) -> ScopedLogger:
        return scope(self.base_logger, handler.name, self._clock)

    def invoke(self, handler: NamedHandler, arguments: Any, *payload: Any) -> None:
        """
        Call ``handler(scoped_logger, arguments, *payload)``.

        ``payload`` is empty for cron ticks and holds the event payload for
        webhook deliveries.

        On the runtime's event loop an awaitable result is scheduled and
        this returns at once. Called with no running loop (plain scripts,
        synchronous tests) the awaitable is run to completion before
        returning, since there is no loop to hand it to.
        """
        scoped = self.scoped_logger(handler)
        result = handler(scoped, arguments, *payload)
        if inspect.isawaitable(result):
            self._observe(handler, scoped, result)

    def _observe(self, handler: NamedHandler, scoped: ScopedLogger, awaitable) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Called outside the runtime's loop (plain scripts, sync tests)
            asyncio.run(self._await_detached(handler, scoped, awaitable))
            return

        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)
        future.add_done_callback(
            lambda fut: self._on_done(handler, scoped, fut)
        )

    async def _await_detached(self, handler: NamedHandler, scoped: ScopedLogger, awaitable) -> None:
        try:
            await awaitable
        except Exception as exc:
            self._report_failure(handler, scoped, exc)

    def _on_done(self, handler: NamedHandler, scoped: ScopedLogger, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._report_failure(handler, scoped, exc)

    def _report_failure(self, handler: NamedHandler, scoped: ScopedLogger, exc: BaseException) -> None:
        self._metrics.handler_failed(handler.name)
        LogContext(logger, task=handler.name).debug(
            f"Handler failed asynchronously: {exc.__class__.__name__}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        scoped.error(failure_reason(exc))

    async def drain(self) -> None:
        """Wait until every handler task started so far has settled."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
