# taskhook/core/cron.py
"""
Cron scheduling engine.

Schedules are six-field expressions with seconds granularity::

    second minute hour day-of-month month day-of-week
    00     10     12,13 *          *     *

Five-field expressions are accepted and fire at second 0. Month and weekday
names (``jan``, ``mon``...) are substituted before parsing; next-fire times
are computed by croniter on the wall clock of the job's time zone, so a
schedule only fires when the local time in that zone matches.

A ``datetime`` in place of an expression gives a one-shot job.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from taskhook.core.errors import CronExpressionError, InvalidTimezoneError
from taskhook.core.handlers import NamedHandler, ensure_handler
from taskhook.core.invocation import Dispatcher
from taskhook.core.scoped_logger import utcnow
from taskhook.infra.logging_config import get_logger, LogContext
from taskhook.infra.metrics import TaskMetrics

logger = get_logger(__name__)

DEFAULT_TIMEZONE = "UTC"

_ALIASES = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    "sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6,
}
_ALIAS_RE = re.compile(r"[a-z]+", re.IGNORECASE)
_FIELD_RE = re.compile(
    r"^(\*|\d+(-\d+)?)(/\d+)?(,(\*|\d+(-\d+)?)(/\d+)?)*$"
)
_FIELD_NAMES = ("second", "minute", "hour", "day of month", "month", "day of week")

Sleep = Callable[[float], Awaitable[Any]]


def resolve_timezone(time_zone: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(time_zone or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        raise InvalidTimezoneError() from None


def _substitute_aliases(expression: str) -> str:
    def replace(match: re.Match) -> str:
        alias = match.group(0).lower()
        if alias not in _ALIASES:
            raise CronExpressionError(f"Unknown alias: {alias}")
        return str(_ALIASES[alias])

    return _ALIAS_RE.sub(replace, expression)


def _to_croniter_fields(expression: str) -> str:
    """
    Validate a cron expression and reorder it for croniter.

    croniter expects the seconds field last, the expressions here carry it
    first.
    """
    fields = _substitute_aliases(expression).split()
    if len(fields) == 5:
        fields.insert(0, "0")
    if len(fields) != 6:
        raise CronExpressionError(
            f"Expected 5 or 6 fields in cron expression, got {len(fields)}: {expression!r}"
        )

    for name, value in zip(_FIELD_NAMES, fields):
        if not _FIELD_RE.match(value):
            raise CronExpressionError(f"Invalid {name} field {value!r} in {expression!r}")

    converted = " ".join(fields[1:] + fields[:1])
    try:
        croniter(converted, datetime(2000, 1, 1))
    except (ValueError, KeyError) as exc:
        raise CronExpressionError(f"Invalid cron expression {expression!r}: {exc}") from None
    return converted


@dataclass(frozen=True)
class CronSchedule:
    """Parsed schedule bound to a time zone."""

    source: str | datetime
    time_zone: str
    tz: ZoneInfo = field(repr=False, compare=False)
    expression: str | None = None
    run_at: datetime | None = None

    @classmethod
    def parse(cls, time: str | datetime, time_zone: str | None = None) -> "CronSchedule":
        zone_name = time_zone or DEFAULT_TIMEZONE
        tz = resolve_timezone(zone_name)

        if isinstance(time, datetime):
            run_at = time if time.tzinfo is not None else time.replace(tzinfo=tz)
            return cls(source=time, time_zone=zone_name, tz=tz, run_at=run_at)

        if not isinstance(time, str) or not time.strip():
            raise CronExpressionError("Cron time must be a non-empty string or a datetime")

        return cls(
            source=time,
            time_zone=zone_name,
            tz=tz,
            expression=_to_croniter_fields(time.strip()),
        )

    @property
    def one_shot(self) -> bool:
        return self.run_at is not None

    def next_after(self, moment: datetime) -> datetime | None:
        """
        First fire instant strictly after ``moment``.

        Returns None when a one-shot schedule has nothing left to fire.
        """
        if self.run_at is not None:
            return self.run_at if self.run_at > moment else None

        local = moment.astimezone(self.tz).replace(microsecond=0)
        return croniter(self.expression, local).get_next(datetime)


@dataclass(frozen=True)
class CronTaskEntry:
    schedule: CronSchedule
    handler: NamedHandler
    arguments: Any = None

    @property
    def name(self) -> str:
        return self.handler.name


class ScheduledJob:
    """
    A cron task and its live timer.

    The job sleeps until the next instant, fires, and computes the following
    instant from whichever is later of the instant just fired and the
    current time, so a stalled loop does not replay missed ticks. A handler
    that raises is logged and the job keeps its schedule.
    """

    def __init__(
        self,
        entry: CronTaskEntry,
        dispatcher: Dispatcher,
        *,
        metrics: TaskMetrics,
        clock: Callable[[], datetime] = utcnow,
        sleep: Sleep = asyncio.sleep,
    ):
        self.entry = entry
        self._dispatcher = dispatcher
        self._metrics = metrics
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self.fire_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"cron:{self.entry.name}")
        self._task.add_done_callback(self._on_task_done)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def fire(self) -> None:
        self.fire_count += 1
        self._metrics.cron_tick(self.entry.name)
        self._dispatcher.invoke(self.entry.handler, self.entry.arguments)

    async def _run(self) -> None:
        schedule = self.entry.schedule
        next_fire = schedule.next_after(self._clock())
        while next_fire is not None:
            delay = (next_fire - self._clock()).total_seconds()
            if delay > 0:
                await self._sleep(delay)
                continue

            # Next instant is fixed before the handler runs
            fired_at = next_fire
            next_fire = schedule.next_after(max(fired_at, self._clock()))
            try:
                self.fire()
            except Exception as exc:
                self._metrics.handler_failed(self.entry.name)
                LogContext(logger, task=self.entry.name).error(
                    f"Cron handler raised on tick {fired_at.isoformat()}: {exc}",
                    exc_info=True,
                )

        LogContext(logger, task=self.entry.name).info("Cron job has no further fire times")

    def _on_task_done(self, task: asyncio.Task) -> None:
        """Log a job loop that died outside of its handler."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            LogContext(logger, task=self.entry.name).error(
                f"Cron job stopped unexpectedly: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )


class CronScheduler:
    """Registry of cron jobs. Jobs start firing only after ``start()``."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        metrics: TaskMetrics | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Sleep = asyncio.sleep,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        self._dispatcher = dispatcher
        self._metrics = metrics or TaskMetrics()
        self._clock = clock
        self._sleep = sleep
        self._default_timezone = default_timezone
        self._jobs: list[ScheduledJob] = []
        self._started = False

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs)

    @property
    def started(self) -> bool:
        return self._started

    def add(
        self,
        time: str | datetime,
        handler: Any,
        time_zone: str | None = None,
        arguments: Any = None,
    ) -> ScheduledJob:
        """
        Register a cron task.

        Raises:
            InvalidHandlerError: handler missing or not callable
            CronExpressionError: unparseable expression or unknown alias
            InvalidTimezoneError: unknown time zone
        """
        named = ensure_handler(handler)
        schedule = CronSchedule.parse(time, time_zone or self._default_timezone)
        job = ScheduledJob(
            CronTaskEntry(schedule=schedule, handler=named, arguments=arguments),
            self._dispatcher,
            metrics=self._metrics,
            clock=self._clock,
            sleep=self._sleep,
        )
        self._jobs.append(job)
        logger.info(
            f"Cron task registered: {named.name} at {schedule.source!s} ({schedule.time_zone})",
            extra={"task": named.name},
        )

        if self._started:
            job.start()
        return job

    def start(self) -> None:
        """Start every registered job. Must be called from a running loop."""
        self._started = True
        for job in self._jobs:
            job.start()
        logger.info(f"Cron scheduler started: {len(self._jobs)} job(s)")

    async def stop(self) -> None:
        self._started = False
        for job in self._jobs:
            await job.stop()
        logger.info("Cron scheduler stopped")
