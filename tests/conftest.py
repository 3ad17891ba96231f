"""Shared fixtures: scripted status clients, manual timers and temporary stores."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

import pytest

from mediatracker.domain import PlayerState, Sample
from mediatracker.errors import PollError, StoreWriteFailure
from mediatracker.interfaces import IPlayerLauncher, IStatusClient, LaunchResult
from mediatracker.monitor import MonitorController
from mediatracker.repository import SqliteRepository

FIXED_NOW = datetime(2026, 10, 19, 20, 30)


class ManualTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval: float, fn: Callable[[], None]):
        self.interval = interval
        self.fn = fn
        self.started = False
        self.cancelled = 0

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled += 1

    def fire(self) -> None:
        self.fn()


class ManualTimerFactory:
    def __init__(self):
        self.timers: List[ManualTimer] = []

    def __call__(self, interval: float, fn: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(interval, fn)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> ManualTimer:
        return self.timers[-1]

    def tick(self, times: int = 1) -> None:
        """Fires the most recently armed timer, `times` times in a row."""
        for _ in range(times):
            self.last.fire()


class ScriptedStatusClient(IStatusClient):
    """Returns queued samples or raises queued errors; repeats the last item forever."""

    def __init__(self, *items):
        self.items = list(items)
        self.calls = 0
        self.before_return: Optional[Callable[[], None]] = None

    def push(self, *items) -> None:
        self.items.extend(items)

    def poll(self) -> Sample:
        self.calls += 1
        item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if self.before_return is not None:
            hook, self.before_return = self.before_return, None
            hook()
        if isinstance(item, PollError):
            raise item
        return item


class FakeLauncher(IPlayerLauncher):
    def __init__(self, success: bool = True, message: str = ""):
        self.success = success
        self.message = message
        self.launched: List[str] = []

    def launch(self, path: str) -> LaunchResult:
        self.launched.append(path)
        return LaunchResult(success=self.success, message=self.message)


class FailingStore:
    """Wraps a repository and fails every upsert."""

    def __init__(self, inner):
        self.inner = inner
        self.attempts = 0

    def get(self, file_path):
        return self.inner.get(file_path)

    def list_all(self):
        return self.inner.list_all()

    def upsert(self, record):
        self.attempts += 1
        raise StoreWriteFailure("disk full")


def playing(position: float, time: float, length: float) -> Sample:
    return Sample(state=PlayerState.PLAYING, position=position, time=time, length=length)


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def repo(tmp_path):
    repository = SqliteRepository(tmp_path / "app.db")
    yield repository
    repository.close()


@pytest.fixture
def status_client() -> ScriptedStatusClient:
    return ScriptedStatusClient(Sample())


@pytest.fixture
def controller(status_client, repo, timers) -> MonitorController:
    return MonitorController(
        status_client,
        repo,
        poll_interval=2.0,
        max_consecutive_failures=3,
        timer_factory=timers,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def events(controller) -> list:
    received: list = []
    controller.add_listener(received.append)
    return received
