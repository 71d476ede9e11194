# taskhook/core/handlers.py
"""
Task handler value type.

A handler is a callable plus the display name used in log prefixes and
metrics. Plain functions are accepted directly and named after
``__name__``; anything without a usable name (``functools.partial``,
callable instances, mocks) has to be wrapped in ``NamedHandler``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from taskhook.core.errors import InvalidHandlerError


@dataclass(frozen=True)
class NamedHandler:
    """A task function together with its display name."""

    name: str
    func: Callable[..., Any]

    def __call__(self, *args: Any) -> Any:
        return self.func(*args)


def ensure_handler(handler: Any) -> NamedHandler:
    """
    Validate a task handler and normalize it to ``NamedHandler``.

    Raises:
        InvalidHandlerError: handler is missing, not callable or unnamed.
    """
    if isinstance(handler, NamedHandler):
        if not handler.name or not callable(handler.func):
            raise InvalidHandlerError()
        return handler

    if handler is None or not callable(handler):
        raise InvalidHandlerError()

    name = getattr(handler, "__name__", None)
    if not isinstance(name, str) or not name:
        raise InvalidHandlerError()

    return NamedHandler(name=name, func=handler)
