# taskhook/core/hooks.py
"""
Webhook hook registry and event router.

Hooks are indexed as ``event -> repository -> [HookEntry, ...]``. A hook
registered without a repository goes under the ``*`` wildcard and matches
every repository for its event.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from taskhook.core.errors import MissingEventsError
from taskhook.core.handlers import NamedHandler, ensure_handler
from taskhook.core.invocation import Dispatcher
from taskhook.infra.logging_config import get_logger, LogContext
from taskhook.infra.metrics import TaskMetrics

logger = get_logger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class HookEntry:
    handler: NamedHandler
    arguments: Any = None
    repository: str = WILDCARD


def _normalize_events(events: Any) -> list[str]:
    if isinstance(events, str):
        events = [events]
    elif isinstance(events, Iterable):
        events = list(events)
    else:
        events = []

    if not events or not all(isinstance(e, str) and e for e in events):
        raise MissingEventsError()
    return events


def repository_of(payload: Any) -> str | None:
    """``payload["repository"]["full_name"]``, or None when absent."""
    if not isinstance(payload, dict):
        return None
    repository = payload.get("repository")
    if not isinstance(repository, dict):
        return None
    full_name = repository.get("full_name")
    return full_name if isinstance(full_name, str) else None


class HookRegistry:
    def __init__(self):
        self._hooks: dict[str, dict[str, list[HookEntry]]] = {}

    def add(
        self,
        events: str | Iterable[str],
        handler: Any,
        repository: str | None = None,
        arguments: Any = None,
    ) -> list[HookEntry]:
        """
        Register a handler for one or more events.

        Raises:
            InvalidHandlerError: handler missing or not callable
            MissingEventsError: no event names given
        """
        named = ensure_handler(handler)
        event_names = _normalize_events(events)
        repository = repository or WILDCARD

        added = []
        for event in event_names:
            entry = HookEntry(handler=named, arguments=arguments, repository=repository)
            self._hooks.setdefault(event, {}).setdefault(repository, []).append(entry)
            added.append(entry)

        logger.info(
            f"Hook registered: {named.name} for events={event_names} repository={repository}",
            extra={"task": named.name, "repository": repository},
        )
        return added

    def events(self) -> list[str]:
        return list(self._hooks)

    def match(self, event: str, repository: str | None) -> list[HookEntry]:
        """Hooks for the exact repository, then wildcard hooks."""
        by_repository = self._hooks.get(event)
        if not by_repository:
            return []

        matched: list[HookEntry] = []
        if repository is not None and repository != WILDCARD:
            matched.extend(by_repository.get(repository, []))
        matched.extend(by_repository.get(WILDCARD, []))
        return matched


class WebhookRouter:
    """Fans a verified webhook event out to every matching hook."""

    def __init__(
        self,
        registry: HookRegistry,
        dispatcher: Dispatcher,
        *,
        metrics: TaskMetrics | None = None,
    ):
        self.registry = registry
        self._dispatcher = dispatcher
        self._metrics = metrics or TaskMetrics()

    def dispatch(self, event: str, payload: Any, delivery_id: str | None = None) -> int:
        """
        Invoke ``handler(scoped_logger, arguments, payload)`` for each hook
        matching the event and the payload's repository.

        Returns:
            Number of handlers invoked.
        """
        repository = repository_of(payload)
        entries = self.registry.match(event, repository)

        log_ctx = LogContext(
            logger,
            event=event,
            delivery_id=delivery_id,
            repository=repository,
        )
        log_ctx.info(f"Webhook event received: {event}, matched {len(entries)} hook(s)")

        for entry in entries:
            self._metrics.hook_dispatched(event, entry.handler.name)
            self._dispatcher.invoke(entry.handler, entry.arguments, payload)

        return len(entries)
