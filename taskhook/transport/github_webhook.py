# taskhook/transport/github_webhook.py
"""
GitHub webhook endpoint.

Handles:
- POST <webhook_path>: signed event deliveries

Security features:
- X-Hub-Signature (HMAC-SHA1 over the raw body) verification
- Constant-time signature comparison
- Fast 200 response; hooks run after the response has been sent
"""
from __future__ import annotations

import hashlib
import hmac
import json
from typing import TYPE_CHECKING

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask

from taskhook.core.errors import WebhookRejected
from taskhook.infra.logging_config import get_logger, LogContext

if TYPE_CHECKING:
    from taskhook.core.hooks import WebhookRouter
    from taskhook.infra.metrics import TaskMetrics

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature"
EVENT_HEADER = "X-Github-Event"
DELIVERY_HEADER = "X-Github-Delivery"
SIGNATURE_PREFIX = "sha1="

SIGNATURE_MISMATCH = "X-Hub-Signature does not match blob signature"


def sign_payload(secret: str, body: bytes) -> str:
    """Compute the ``sha1=<hex>`` signature GitHub sends for ``body``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature_header: str) -> bool:
    """Recompute the HMAC over the raw body and compare in constant time."""
    expected = sign_payload(secret, body)
    return hmac.compare_digest(expected.encode("utf-8"), signature_header.encode("utf-8"))


def _require_header(request: Request, name: str) -> str:
    value = request.headers.get(name)
    if not value:
        raise WebhookRejected(f"No {name} found on request", reason="missing_header")
    return value


async def github_webhook_handler(
    request: Request,
    *,
    secret: str,
    router: "WebhookRouter",
    metrics: "TaskMetrics | None" = None,
) -> JSONResponse:
    """
    Verify a webhook delivery and schedule hook dispatch.

    Returns 400 with ``{"error": ...}`` when a header is missing, the
    signature does not match or the body is not JSON. Once verified the
    response is always 200, however many hooks match and whatever they do.
    """
    try:
        signature = _require_header(request, SIGNATURE_HEADER)
        event = _require_header(request, EVENT_HEADER)
        delivery_id = _require_header(request, DELIVERY_HEADER)

        body = await request.body()
        if not verify_signature(secret, body, signature):
            raise WebhookRejected(SIGNATURE_MISMATCH, reason="signature")

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise WebhookRejected(str(exc), reason="invalid_json") from None

    except WebhookRejected as exc:
        logger.warning(f"GitHub webhook rejected: {exc.detail}")
        if metrics is not None:
            metrics.webhook_rejected(exc.reason)
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    LogContext(logger, event=event, delivery_id=delivery_id).debug("GitHub webhook verified")

    return JSONResponse(
        {"ok": True},
        status_code=200,
        background=BackgroundTask(_dispatch, router, event, payload, delivery_id),
    )


async def _dispatch(router: "WebhookRouter", event: str, payload, delivery_id: str) -> None:
    # Async so handlers run on the event loop and their awaitables can be scheduled
    router.dispatch(event, payload, delivery_id=delivery_id)
