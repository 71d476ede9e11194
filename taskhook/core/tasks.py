# taskhook/core/tasks.py
"""
Runtime-controlled task registration.

Task modules are listed in ``TASK_MODULES`` and imported at startup. Each
module exposes ``register(runtime)`` and adds its cron tasks and hooks
there, so deployments choose their tasks without code changes.

Usage at startup::

    from taskhook.core.tasks import register_task_modules, parse_task_modules
    register_task_modules(runtime, parse_task_modules())
"""
from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Sequence

from taskhook.infra.logging_config import get_logger

if TYPE_CHECKING:
    from taskhook.runtime import TaskRuntime

logger = get_logger(__name__)


def parse_task_modules(raw: str | None = None) -> list[str]:
    """Parse ``TASK_MODULES`` (or ``raw``) into a list of dotted module paths."""
    if raw is None:
        from taskhook.config import settings
        raw = settings.task_modules
    raw = raw.strip()
    if not raw:
        return []
    return [m.strip() for m in raw.split(",") if m.strip()]


def register_task_modules(runtime: "TaskRuntime", modules: Sequence[str]) -> list[str]:
    """
    Import each module and call its ``register(runtime)``.

    Returns:
        Module paths that registered successfully.
    """
    registered: list[str] = []

    for module_path in modules:
        try:
            mod = importlib.import_module(module_path)
        except ImportError:
            logger.error(f"Failed to import task module '{module_path}'", exc_info=True)
            continue

        register = getattr(mod, "register", None)
        if not callable(register):
            logger.error(f"Task module '{module_path}' has no register(runtime) function, skipping")
            continue

        # Configuration errors inside register() are real bugs; let them surface
        register(runtime)
        registered.append(module_path)
        logger.info(f"Registered task module: {module_path}")

    if not registered:
        logger.warning("No task modules registered! Check TASK_MODULES setting.")

    return registered
