# taskhook/core/scoped_logger.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from taskhook.core.errors import InvalidLoggerError


class BaseLogger(Protocol):
    """Logger injected into a runtime. Receives fully formatted lines."""

    def log(self, message: Any) -> None:
        ...

    def error(self, message: Any) -> None:
        ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision: 2000-01-01T12:00:01.500Z"""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def ensure_logger(logger: Any) -> BaseLogger:
    if not (
        logger is not None
        and callable(getattr(logger, "log", None))
        and callable(getattr(logger, "error", None))
    ):
        raise InvalidLoggerError()
    return logger


class ScopedLogger:
    """Prefixes every message with the current time and the task name."""

    def __init__(
        self,
        base: BaseLogger,
        task_name: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.base = base
        self.task_name = task_name
        self._clock = clock

    def _prefix(self, message: Any) -> str:
        return f"{format_timestamp(self._clock())} [{self.task_name}] {message}"

    def log(self, message: Any) -> None:
        self.base.log(self._prefix(message))

    def error(self, message: Any) -> None:
        self.base.error(self._prefix(message))


def scope(
    base: BaseLogger,
    task_name: str,
    clock: Callable[[], datetime] = utcnow,
) -> ScopedLogger:
    return ScopedLogger(base, task_name, clock)
