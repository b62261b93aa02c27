"""Test fixtures for the restic backup indicator."""

import asyncio
import sys
import textwrap
from pathlib import Path

import pytest

from packages.core.monitor.presenter import BackupStateMachine
from packages.core.monitor.types import WatchTarget


class ManualTimer:
    def __init__(self, due: float, callback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Stands in for loop.call_later; time only moves on advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers = []

    def __call__(self, delay, callback):
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for timer in sorted(self.pending, key=lambda t: t.due):
            if timer.due <= self.now and not timer.cancelled:
                timer.fired = True
                timer.callback()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def events():
    return []


@pytest.fixture
def target():
    return WatchTarget(name="nas", unit_id="restic-backups-nas.service")


@pytest.fixture
def machine(scheduler, events, target):
    m = BackupStateMachine(hide_delay_ms=2000, scheduler=scheduler)
    m.on_event(events.append)
    m.set_target(target)
    return m


def event_types(events, include_indicator=False):
    return [
        e["type"] for e in events
        if include_indicator or e["type"] != "INDICATOR_CHANGED"
    ]


@pytest.fixture
def follower_script(tmp_path):
    """Write a fake log follower; returns a command template that runs it."""

    def make(body: str, name: str = "follower.py"):
        script = tmp_path / name
        script.write_text("import sys, time\n" + textwrap.dedent(body))
        return [sys.executable, str(script), "{unit}"]

    return make


async def wait_until(predicate, timeout: float = 5.0) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.02)
    return True
