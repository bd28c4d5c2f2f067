"""
Shared fakes for the leanplay tests: a hand-driven clock, timers that only
fire when told to, and an event recorder. No hardware required.
"""

import pytest

from leanplay.coordinator.clock import CentralClock
from leanplay.events import EventBus


class FakeTime:
    """Time source advanced by hand."""

    def __init__(self, start: float = 100.0):
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float):
        self.t += seconds


class ManualTimer:
    def __init__(self, interval, callback, name):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        """Deliver one tick, even after cancel(), like a tick already in flight."""
        self.callback()


class ManualTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, callback, name):
        timer = ManualTimer(interval, callback, name)
        self.timers.append(timer)
        return timer

    def named(self, fragment):
        return [t for t in self.timers if fragment in t.name]

    def latest(self, fragment=''):
        matching = self.named(fragment)
        return matching[-1] if matching else None


class EventRecorder:
    def __init__(self, bus: EventBus):
        self.events = []
        bus.subscribe(self.events.append)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self):
        self.events.clear()


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def clock(fake_time):
    return CentralClock(time_source=fake_time)


@pytest.fixture
def timers():
    return ManualTimerFactory()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    return EventRecorder(bus)


@pytest.fixture
def recorder_for():
    """Attach an EventRecorder to another object's bus, e.g. a pipeline."""
    def attach(owner):
        return EventRecorder(owner.events)
    return attach
