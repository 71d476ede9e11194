# taskhook/infra/metrics.py
from __future__ import annotations
from collections import defaultdict
from threading import Lock
from typing import Dict
from dataclasses import dataclass
from taskhook.infra.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Counter:
    """Simple counter metric"""
    value: int = 0

    def inc(self, amount: int = 1) -> None:
        self.value += amount


class MetricsCollector:
    """
    Lightweight in-process metrics collection.
    One collector per runtime; nothing is exported over HTTP.
    """

    def __init__(self):
        self._counters: Dict[str, Counter] = defaultdict(Counter)
        self._lock = Lock()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        """Increment a counter metric"""
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key].inc(amount)

    def get_counter(self, name: str, **labels) -> int:
        key = self._make_key(name, labels or None)
        with self._lock:
            counter = self._counters.get(key)
            return counter.value if counter else 0

    def get_metrics(self) -> dict:
        """Get all current metrics"""
        with self._lock:
            counters = {k: v.value for k, v in self._counters.items()}

        return {"counters": counters}

    def reset(self) -> None:
        """Reset all metrics"""
        with self._lock:
            self._counters.clear()
        logger.info("Metrics reset")

    @staticmethod
    def _make_key(name: str, labels: dict | None) -> str:
        """Create a metric key from name and labels"""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


class TaskMetrics:
    """Dispatch-level metrics tracking"""

    def __init__(self, collector: MetricsCollector | None = None):
        self.collector = collector or MetricsCollector()

    def cron_tick(self, task: str) -> None:
        self.collector.inc_counter("cron_ticks_total", labels={"task": task})

    def hook_dispatched(self, event: str, task: str) -> None:
        self.collector.inc_counter("hook_dispatches_total", labels={"event": event, "task": task})

    def handler_failed(self, task: str) -> None:
        self.collector.inc_counter("handler_failures_total", labels={"task": task})

    def webhook_rejected(self, reason: str) -> None:
        self.collector.inc_counter("webhook_rejections_total", labels={"reason": reason})

    def snapshot(self) -> dict:
        return self.collector.get_metrics()
