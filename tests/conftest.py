# tests/conftest.py
"""Pytest configuration and fixtures"""
import asyncio
import hashlib
import hmac
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from taskhook.config import Settings  # noqa: E402
from taskhook.core.handlers import NamedHandler  # noqa: E402

NOON_UTC = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

# 2000-01-01T12:00:01.000Z [dummyHandler] OK
PREFIX_RE = r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z \[%s\] %s$"


class FakeClock:
    """
    Virtual time for the cron scheduler.

    ``sleep`` parks the caller until ``advance`` moves the clock past its
    wake-up time; sleepers wake in time order, so jobs sharing the clock see
    a consistent timeline.
    """

    def __init__(self, start: datetime = NOON_UTC):
        self.current = start
        self._sleepers: list[tuple[datetime, asyncio.Future]] = []

    def now(self) -> datetime:
        return self.current

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.current + timedelta(seconds=seconds), future))
        await future

    async def advance(self, seconds: float) -> None:
        end = self.current + timedelta(seconds=seconds)
        await self._settle()
        while True:
            due = [s for s in self._sleepers if s[0] <= end]
            if not due:
                break
            wake_at = min(at for at, _ in due)
            self.current = wake_at
            for sleeper in [s for s in self._sleepers if s[0] <= wake_at]:
                self._sleepers.remove(sleeper)
                if not sleeper[1].done():
                    sleeper[1].set_result(None)
            await self._settle()
        self.current = end

    @staticmethod
    async def _settle() -> None:
        for _ in range(20):
            await asyncio.sleep(0)


def sign(secret: str, body: bytes) -> str:
    return "sha1=" + hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()


def github_headers(secret: str, body: bytes, event: str) -> dict:
    return {
        "X-Hub-Signature": sign(secret, body),
        "X-Github-Event": event,
        "X-Github-Delivery": hashlib.md5(body).hexdigest(),
    }


def repository_payload(full_name: str) -> dict:
    return {"repository": {"full_name": full_name}}


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode()


def spy_handler(name: str = "taskSpy", return_value=None) -> NamedHandler:
    """A named handler backed by a MagicMock (``handler.func``)."""
    return NamedHandler(name, MagicMock(return_value=return_value))


@pytest.fixture
def base_logger():
    """Logger stub exposing log/error as MagicMocks"""
    logger = MagicMock()
    logger.log = MagicMock()
    logger.error = MagicMock()
    return logger


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        webhook_secret="foobar",
        enable_request_logging=False,
    )
