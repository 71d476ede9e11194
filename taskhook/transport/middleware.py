# taskhook/transport/middleware.py
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from taskhook.infra.logging_config import get_logger, LogContext
from taskhook.transport.github_webhook import DELIVERY_HEADER, EVENT_HEADER

logger = get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID; GitHub deliveries reuse their delivery GUID"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get(DELIVERY_HEADER)
            or str(uuid.uuid4())
        )
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with the GitHub event and delivery when present"""

    def __init__(self, app: ASGIApp, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled:
            return await call_next(request)

        log_ctx = LogContext(
            logger,
            request_id=getattr(request.state, "request_id", None),
            event=request.headers.get(EVENT_HEADER),
            delivery_id=request.headers.get(DELIVERY_HEADER),
        )
        route = f"{request.method} {request.url.path}"
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            log_ctx.error(
                f"Request failed: {route} error={exc.__class__.__name__} "
                f"duration={_elapsed_ms(start):.2f}ms",
                exc_info=True,
            )
            raise

        rejected = request.method == "POST" and 400 <= response.status_code < 500
        log = log_ctx.warning if rejected else log_ctx.info
        log(
            f"Request completed: {route} status={response.status_code} "
            f"duration={_elapsed_ms(start):.2f}ms",
            extra={"status_code": response.status_code},
        )
        return response


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
