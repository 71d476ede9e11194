# taskhook/runtime.py
"""
Task runtime: the registration API plus the HTTP app that serves it.

Usage::

    runtime = TaskRuntime(logger, webhook_secret="s3cret")
    runtime.add_cron(time="0 */5 * * * *", handler=refresh_cache)
    runtime.add_hook(events=["push"], repository="acme/api", handler=deploy)
    runtime.start(8080)
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Iterable

from fastapi import FastAPI

from taskhook.config import Settings, settings as default_settings, warn_on_risky_config
from taskhook.core.cron import CronScheduler, ScheduledJob, Sleep
from taskhook.core.hooks import HookEntry, HookRegistry, WebhookRouter
from taskhook.core.invocation import Dispatcher
from taskhook.core.scoped_logger import BaseLogger, ensure_logger, utcnow
from taskhook.infra.logging_config import get_logger, TaskLoggerAdapter
from taskhook.infra.metrics import TaskMetrics

logger = get_logger(__name__)


class TaskRuntime:
    def __init__(
        self,
        logger: BaseLogger | None = None,
        webhook_secret: str | None = None,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Sleep | None = None,
    ):
        """
        Args:
            logger: Object with ``log(message)`` and ``error(message)``.
                    Defaults to the ``taskhook.tasks`` stdlib logger.
            webhook_secret: Shared GitHub webhook secret. Defaults to
                    ``settings.webhook_secret``; empty is fine for cron-only use.
            settings: Overrides the module-level settings.
            clock / sleep: Time sources for the cron scheduler (tests).

        Raises:
            InvalidLoggerError: logger lacks ``log`` or ``error``.
        """
        self.settings = settings or default_settings
        if logger is None:
            logger = TaskLoggerAdapter(get_logger("taskhook.tasks"))
        self.logger = ensure_logger(logger)
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else self.settings.webhook_secret
        )

        clock = clock or utcnow
        self.task_metrics = TaskMetrics()
        self.dispatcher = Dispatcher(self.logger, clock=clock, metrics=self.task_metrics)
        self.scheduler = CronScheduler(
            self.dispatcher,
            metrics=self.task_metrics,
            clock=clock,
            sleep=sleep or asyncio.sleep,
            default_timezone=self.settings.default_timezone,
        )
        self.hooks = HookRegistry()
        self.router = WebhookRouter(self.hooks, self.dispatcher, metrics=self.task_metrics)
        self._app: FastAPI | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_cron(
        self,
        time: str | datetime | None = None,
        handler: Any = None,
        time_zone: str | None = None,
        arguments: Any = None,
    ) -> ScheduledJob:
        """
        Schedule ``handler(scoped_logger, arguments)``.

        Raises:
            InvalidHandlerError, CronExpressionError, InvalidTimezoneError
        """
        return self.scheduler.add(time, handler, time_zone=time_zone, arguments=arguments)

    def add_hook(
        self,
        events: str | Iterable[str] | None = None,
        handler: Any = None,
        repository: str | None = None,
        arguments: Any = None,
    ) -> list[HookEntry]:
        """
        Run ``handler(scoped_logger, arguments, payload)`` on webhook events.

        Raises:
            InvalidHandlerError, MissingEventsError
        """
        return self.hooks.add(events, handler, repository=repository, arguments=arguments)

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    @property
    def app(self) -> FastAPI:
        if self._app is None:
            from taskhook.transport.http_app import create_app
            self._app = create_app(self)
        return self._app

    def metrics(self) -> dict:
        return self.task_metrics.snapshot()

    def _uvicorn_config(self, port: int | None):
        import uvicorn

        return uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=port if port is not None else self.settings.port,
            log_level=self.settings.log_level.lower(),
            access_log=False,  # RequestLoggingMiddleware covers it
            server_header=False,
            date_header=False,
        )

    async def serve(self, port: int | None = None) -> None:
        """Serve HTTP and run cron jobs until cancelled."""
        import uvicorn

        for msg in warn_on_risky_config(self.settings):
            logger.warning(f"[config] {msg}")
        await uvicorn.Server(self._uvicorn_config(port)).serve()

    def start(self, port: int | None = None) -> None:
        """Blocking: bind the HTTP server on ``port`` and start all cron jobs."""
        asyncio.run(self.serve(port))
