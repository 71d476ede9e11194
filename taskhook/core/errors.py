# taskhook/core/errors.py
"""
Typed errors for task registration and webhook handling.

Configuration errors are raised synchronously from the registration call
that caused them. ``WebhookRejected`` carries the status code and message
the transport layer returns to the webhook sender.
"""
from __future__ import annotations


class TaskhookError(Exception):
    """Base class for all taskhook errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class ConfigurationError(TaskhookError):
    """Invalid runtime or task configuration."""


class InvalidLoggerError(ConfigurationError, TypeError):
    """Base logger does not expose ``log`` and ``error``."""

    def __init__(self, detail: str = 'Logger must have "log" and "error" methods'):
        super().__init__(detail)


class InvalidHandlerError(ConfigurationError, TypeError):
    """Handler is missing, not callable, or has no name."""

    def __init__(self, detail: str = '"handler" should be a function'):
        super().__init__(detail)


class MissingEventsError(ConfigurationError, ValueError):
    """Hook registered without any event name."""

    def __init__(self, detail: str = '"events" property is required'):
        super().__init__(detail)


class CronExpressionError(ConfigurationError, ValueError):
    """Schedule expression could not be parsed."""


class InvalidTimezoneError(ConfigurationError, ValueError):
    """Unknown IANA time zone identifier."""

    def __init__(self, detail: str = "Invalid timezone."):
        super().__init__(detail)


class WebhookRejected(TaskhookError):
    """Inbound webhook request failed header or signature checks (400)."""

    status_code = 400

    def __init__(self, detail: str, reason: str = "rejected"):
        self.reason = reason
        super().__init__(detail)
