"""
taskhook - run named tasks on cron schedules and GitHub webhook events.
"""
from taskhook.core.errors import (
    ConfigurationError,
    CronExpressionError,
    InvalidHandlerError,
    InvalidLoggerError,
    InvalidTimezoneError,
    MissingEventsError,
    TaskhookError,
    WebhookRejected,
)
from taskhook.core.handlers import NamedHandler
from taskhook.core.scoped_logger import ScopedLogger, scope
from taskhook.runtime import TaskRuntime

__all__ = [
    "ConfigurationError",
    "CronExpressionError",
    "InvalidHandlerError",
    "InvalidLoggerError",
    "InvalidTimezoneError",
    "MissingEventsError",
    "NamedHandler",
    "ScopedLogger",
    "TaskRuntime",
    "TaskhookError",
    "WebhookRejected",
    "scope",
]
