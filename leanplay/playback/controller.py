"""
Playback Controllers
Turn lean directions and gaze into transport commands

- PlaybackModeController: steering direction (+ gaze gate) -> Normal / FastForward / Rewind,
  applied on a fixed tick so bursty sensor input cannot thrash the transport
- VolumeController: volume-chain direction edges -> volume steps with a HUD message

Both run on the control context only.
"""

import logging
from typing import Optional

from leanplay.coordinator.clock import CentralClock
from leanplay.events import EventBus, PlaybackModeChanged, VolumeChanged
from leanplay.sensors.pressure.classifier import ratio_to_percent
from leanplay.types import Direction, PlaybackMode

from .config import PlaybackConfig
from .transport import MediaTransport

logger = logging.getLogger(__name__)


_DIRECTION_MODES = {
    Direction.NEUTRAL: PlaybackMode.NORMAL,
    Direction.FORWARD: PlaybackMode.FAST_FORWARD,
    Direction.BACKWARD: PlaybackMode.REWIND,
}


class PlaybackModeController:
    """
    Derives the playback mode from the latest steering direction and gaze
    state, and applies it to the transport once per tick.

    Only differences from the transport's current state are sent, so a
    steady mode issues no commands at all (except the rewind seek fallback,
    which moves the playhead every tick).
    """

    def __init__(self, transport: MediaTransport, config: Optional[PlaybackConfig] = None,
                 events: Optional[EventBus] = None):
        self.transport = transport
        self.config = config or PlaybackConfig()
        self.events = events or EventBus()

        self.direction = Direction.NEUTRAL
        self.is_looking = False
        self.gaze_gating = self.config.gaze_gating
        self.mode = PlaybackMode.NORMAL

        self.tick_count = 0
        self.rewind_seeks = 0

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def set_direction(self, direction: Direction):
        self.direction = direction

    def set_looking(self, looking: bool):
        self.is_looking = looking

    def set_gaze_gating(self, enabled: bool):
        if enabled != self.gaze_gating:
            logger.info(f"Gaze requirement {'enabled' if enabled else 'disabled'}")
        self.gaze_gating = enabled

    def toggle_gaze_gating(self) -> bool:
        self.set_gaze_gating(not self.gaze_gating)
        return self.gaze_gating

    def force_normal(self):
        """Drop back to Normal immediately (used on re-calibration)."""
        self.direction = Direction.NEUTRAL
        self.tick()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def derive_mode(self) -> PlaybackMode:
        if self.gaze_gating and not self.is_looking:
            return PlaybackMode.NORMAL
        return _DIRECTION_MODES[self.direction]

    def tick(self) -> PlaybackMode:
        """Recompute the mode and bring the transport in line with it."""
        self.tick_count += 1
        mode = self.derive_mode()

        if mode != self.mode:
            previous = self.mode
            self.mode = mode
            logger.info(f"Playback mode: {previous.value} → {mode.value}")
            self.events.publish(PlaybackModeChanged(mode, previous))

        self._apply(mode)
        return mode

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _apply(self, mode: PlaybackMode):
        if mode == PlaybackMode.NORMAL:
            self._set_muted(False)
            self._set_rate(self.config.normal_rate)

        elif mode == PlaybackMode.FAST_FORWARD:
            self._set_muted(False)
            if not self.transport.pitch_correction:
                self.transport.set_pitch_correction(True)
            self._set_rate(self.config.fast_forward_rate)

        elif mode == PlaybackMode.REWIND:
            # Reverse audio is not rendered
            self._set_muted(True)
            if self.transport.supports_reverse:
                self._set_rate(self.config.reverse_rate)
            else:
                self._set_rate(0.0)
                self._seek_back()

    def _seek_back(self):
        position = self.transport.position
        target = max(position - self.config.rewind_step, 0.0)
        if target == position:
            return
        self.transport.seek(target)
        self.rewind_seeks += 1
        logger.debug(f"Rewind seek {position:.2f} → {target:.2f}")

    def _set_rate(self, rate: float):
        if self.transport.rate != rate:
            self.transport.set_rate(rate)

    def _set_muted(self, muted: bool):
        if self.transport.muted != muted:
            self.transport.set_muted(muted)

    def get_status(self) -> dict:
        return {
            'mode': self.mode.value,
            'direction': self.direction.value,
            'is_looking': self.is_looking,
            'gaze_gating': self.gaze_gating,
            'ticks': self.tick_count,
            'rewind_seeks': self.rewind_seeks,
        }

    def __repr__(self):
        return f"<PlaybackModeController(mode={self.mode.value}, gating={self.gaze_gating})>"


class VolumeController:
    """
    Steps the transport volume on volume-chain direction edges: forward
    raises it, backward lowers it, clamped to [0, 1].
    """

    def __init__(self, transport: MediaTransport, config: Optional[PlaybackConfig] = None,
                 events: Optional[EventBus] = None, clock: Optional[CentralClock] = None):
        self.transport = transport
        self.config = config or PlaybackConfig()
        self.events = events or EventBus()
        self.clock = clock or CentralClock()

        self.hud_text: Optional[str] = None
        self._hud_until = 0.0

        if self.transport.volume != self.config.initial_volume:
            self.transport.set_volume(self.config.initial_volume)

    @property
    def volume(self) -> float:
        return self.transport.volume

    @property
    def percent(self) -> int:
        return ratio_to_percent(self.transport.volume)

    def on_direction(self, direction: Direction) -> Optional[float]:
        """
        Apply one direction edge.

        Returns:
            The new volume, or None for NEUTRAL.
        """
        if direction == Direction.FORWARD:
            return self.bump(self.config.volume_step)
        if direction == Direction.BACKWARD:
            return self.bump(-self.config.volume_step)
        return None

    def bump(self, delta: float) -> float:
        volume = min(max(self.transport.volume + delta, 0.0), 1.0)
        self.transport.set_volume(volume)

        label = "Volume Up" if delta > 0 else "Volume Down"
        text = f"{label} {self.percent}%"
        self.hud_text = text
        self._hud_until = self.clock.now() + self.config.hud_duration

        logger.info(text)
        self.events.publish(VolumeChanged(self.transport.volume, text))
        return self.transport.volume

    def current_hud(self) -> Optional[str]:
        """HUD text while it is still due to be shown, else None."""
        if self.hud_text is not None and self.clock.now() >= self._hud_until:
            self.hud_text = None
        return self.hud_text

    def get_status(self) -> dict:
        return {
            'volume': round(self.transport.volume, 3),
            'percent': self.percent,
            'hud': self.current_hud(),
        }

    def __repr__(self):
        return f"<VolumeController(volume={self.percent}%)>"
