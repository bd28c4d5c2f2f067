"""
Media Transport
Sink interface for the playback controllers and an in-memory player
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

logger = logging.getLogger(__name__)


class MediaTransport(ABC):
    """
    What the controllers need from a media player

    Implementations own the actual playback state; the controllers read it
    back through the properties to avoid issuing redundant commands.
    """

    supports_reverse: bool = False

    @property
    @abstractmethod
    def rate(self) -> float: ...

    @property
    @abstractmethod
    def muted(self) -> bool: ...

    @property
    @abstractmethod
    def volume(self) -> float: ...

    @property
    @abstractmethod
    def position(self) -> float: ...

    @property
    @abstractmethod
    def duration(self) -> float: ...

    @property
    @abstractmethod
    def pitch_correction(self) -> bool: ...

    @abstractmethod
    def set_rate(self, rate: float): ...

    @abstractmethod
    def set_muted(self, muted: bool): ...

    @abstractmethod
    def seek(self, position: float): ...

    @abstractmethod
    def set_volume(self, volume: float): ...

    @abstractmethod
    def set_pitch_correction(self, enabled: bool): ...


class SimulatedTransport(MediaTransport):
    """
    In-memory player

    Position advances with `advance(dt)` at the current rate and is clamped
    to [0, duration]. Every command is recorded in `calls` as (name, value).
    """

    def __init__(self, duration: float = 600.0, supports_reverse: bool = False,
                 position: float = 0.0, volume: float = 1.0):
        self.supports_reverse = supports_reverse
        self._duration = float(duration)
        self._position = min(max(float(position), 0.0), self._duration)
        self._volume = min(max(float(volume), 0.0), 1.0)
        self._rate = 1.0
        self._muted = False
        self._pitch_correction = False
        self.calls: List[Tuple[str, object]] = []

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def position(self) -> float:
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def pitch_correction(self) -> bool:
        return self._pitch_correction

    def set_rate(self, rate: float):
        if rate < 0 and not self.supports_reverse:
            raise ValueError("Reverse playback not supported by this transport")
        self.calls.append(('set_rate', rate))
        self._rate = float(rate)

    def set_muted(self, muted: bool):
        self.calls.append(('set_muted', muted))
        self._muted = bool(muted)

    def seek(self, position: float):
        self.calls.append(('seek', position))
        self._position = min(max(float(position), 0.0), self._duration)

    def set_volume(self, volume: float):
        self.calls.append(('set_volume', volume))
        self._volume = min(max(float(volume), 0.0), 1.0)

    def set_pitch_correction(self, enabled: bool):
        self.calls.append(('set_pitch_correction', enabled))
        self._pitch_correction = bool(enabled)

    def advance(self, dt: float):
        """Move the playhead by rate * dt."""
        self._position = min(max(self._position + self._rate * dt, 0.0), self._duration)

    def calls_named(self, name: str) -> list:
        return [value for call, value in self.calls if call == name]

    def get_status(self) -> dict:
        return {
            'position': round(self._position, 3),
            'duration': self._duration,
            'rate': self._rate,
            'muted': self._muted,
            'volume': round(self._volume, 3),
            'pitch_correction': self._pitch_correction,
            'supports_reverse': self.supports_reverse,
        }

    def __repr__(self):
        return (
            f"<SimulatedTransport(position={self._position:.2f}/{self._duration:.0f}, "
            f"rate={self._rate}, muted={self._muted})>"
        )
