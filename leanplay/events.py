"""
Control Events
Typed state-change notifications published by the chains, gaze smoother and
playback controllers, plus the bus that delivers them to observers (UI, logs).
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Type

from .types import CalibrationPhase, Direction, PlaybackMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControlEvent:
    """Base class for everything published on the EventBus."""


@dataclass(frozen=True)
class ConnectionChanged(ControlEvent):
    chain: str
    connected: bool


@dataclass(frozen=True)
class PhaseChanged(ControlEvent):
    chain: str
    phase: CalibrationPhase
    previous: CalibrationPhase
    is_running: bool = False


@dataclass(frozen=True)
class PhaseRunningChanged(ControlEvent):
    chain: str
    phase: CalibrationPhase
    is_running: bool


@dataclass(frozen=True)
class CountdownChanged(ControlEvent):
    chain: str
    phase: CalibrationPhase
    countdown: int


@dataclass(frozen=True)
class BaselineReady(ControlEvent):
    chain: str
    phase: CalibrationPhase
    averages: Tuple[float, ...]
    sample_count: int


@dataclass(frozen=True)
class AwaitingData(ControlEvent):
    """Phase timer expired but the phase has no samples to average yet."""

    chain: str
    phase: CalibrationPhase


@dataclass(frozen=True)
class RatiosUpdated(ControlEvent):
    chain: str
    forward_ratio: float
    backward_ratio: float
    forward_opacity: float
    backward_opacity: float
    forward_percent: int
    backward_percent: int


@dataclass(frozen=True)
class DirectionChanged(ControlEvent):
    chain: str
    direction: Direction
    previous: Direction


@dataclass(frozen=True)
class StatusChanged(ControlEvent):
    source: str
    text: str


@dataclass(frozen=True)
class GazeChanged(ControlEvent):
    looking: bool
    ratio: float


@dataclass(frozen=True)
class PlaybackModeChanged(ControlEvent):
    mode: PlaybackMode
    previous: PlaybackMode


@dataclass(frozen=True)
class VolumeChanged(ControlEvent):
    volume: float
    hud_text: str = ''


Listener = Callable[[ControlEvent], None]


@dataclass
class _Subscription:
    listener: Listener
    event_type: Optional[Type[ControlEvent]] = None


class EventBus:
    """
    Synchronous publish/subscribe for control events

    Listeners run on the publishing context, which is always the control
    thread for events emitted by the core. A failing listener is logged and
    skipped so one bad observer cannot stall the control loop.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[_Subscription] = []
        self._published: Dict[str, int] = {}

    def subscribe(self, listener: Listener, event_type: Optional[Type[ControlEvent]] = None) -> Listener:
        """
        Register a listener.

        Args:
            listener:   Callable receiving each matching event
            event_type: Only deliver events of this type (and subclasses).
                        None delivers everything.

        Returns:
            The listener, so it can be handed back to unsubscribe().
        """
        with self._lock:
            self._subscriptions.append(_Subscription(listener, event_type))
        return listener

    def unsubscribe(self, listener: Listener):
        with self._lock:
            self._subscriptions = [s for s in self._subscriptions if s.listener != listener]

    def publish(self, event: ControlEvent):
        """Deliver an event to every matching listener."""
        with self._lock:
            subscriptions = list(self._subscriptions)
            name = type(event).__name__
            self._published[name] = self._published.get(name, 0) + 1

        for sub in subscriptions:
            if sub.event_type is not None and not isinstance(event, sub.event_type):
                continue
            try:
                sub.listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {name}: {e}", exc_info=True)

    def get_stats(self) -> dict:
        with self._lock:
            return {
                'listeners': len(self._subscriptions),
                'published': dict(self._published),
            }

    def __repr__(self):
        return f"<EventBus(listeners={len(self._subscriptions)})>"
