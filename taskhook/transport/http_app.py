# taskhook/transport/http_app.py
"""
HTTP surface of a task runtime.

Routes:
1. Health: GET /_health -> 200 "OK"
2. Webhook: POST / -> GitHub webhook deliveries (signature validated)
3. Everything else -> 404 "No such endpoint"
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from taskhook.infra.logging_config import get_logger
from taskhook.transport.github_webhook import github_webhook_handler
from taskhook.transport.middleware import RequestIDMiddleware, RequestLoggingMiddleware

if TYPE_CHECKING:
    from taskhook.runtime import TaskRuntime

logger = get_logger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
NO_SUCH_ENDPOINT = "No such endpoint"


def create_app(runtime: "TaskRuntime") -> FastAPI:
    """Build the FastAPI application for ``runtime``."""
    settings = runtime.settings

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        # STARTUP
        logger.info(f"Starting task runtime: env={settings.app_env}")
        runtime.scheduler.start()
        logger.info(
            f"Hooks registered for events: {runtime.hooks.events() or 'none'}"
        )

        yield

        # SHUTDOWN
        logger.info("Shutting down task runtime")
        await runtime.scheduler.stop()
        await runtime.dispatcher.drain()
        logger.info("Task runtime shutdown complete")

    app = FastAPI(
        title="taskhook",
        description="Cron and GitHub webhook task dispatcher",
        version="1.0.0",
        lifespan=lifespan,
        # Only the health and webhook paths are served
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
    app.add_middleware(RequestIDMiddleware)

    @app.api_route(settings.health_path, methods=ALL_METHODS, include_in_schema=False)
    async def health():
        return PlainTextResponse("OK", status_code=200)

    @app.post(settings.webhook_path, include_in_schema=False)
    async def github_webhook(request: Request):
        return await github_webhook_handler(
            request,
            secret=runtime.webhook_secret,
            router=runtime.router,
            metrics=runtime.task_metrics,
        )

    @app.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def catch_all(path: str):
        logger.debug(f"404 - Unknown route accessed: /{path}")
        return PlainTextResponse(NO_SUCH_ENDPOINT, status_code=404)

    return app
