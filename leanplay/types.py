"""
Shared value types for the leanplay control core
Calibration phases, lean directions and playback modes
"""

from enum import Enum


class CalibrationPhase(str, Enum):
    """Calibration phases of one pressure chain, in the only order they are visited."""

    NOT_STARTED = 'not_started'
    NEUTRAL = 'neutral'
    FORWARD = 'forward'
    BACKWARD = 'backward'
    DONE = 'done'

    @property
    def is_accumulating(self) -> bool:
        """True for the three phases that collect samples into a baseline."""
        return self in ACCUMULATING_PHASES

    def next_phase(self) -> 'CalibrationPhase':
        """
        Phase that follows this one.

        Returns:
            The next phase in sequence. DONE and NOT_STARTED have no successor
            and return themselves.
        """
        return _NEXT_PHASE.get(self, self)


ACCUMULATING_PHASES = (
    CalibrationPhase.NEUTRAL,
    CalibrationPhase.FORWARD,
    CalibrationPhase.BACKWARD,
)

_NEXT_PHASE = {
    CalibrationPhase.NEUTRAL: CalibrationPhase.FORWARD,
    CalibrationPhase.FORWARD: CalibrationPhase.BACKWARD,
    CalibrationPhase.BACKWARD: CalibrationPhase.DONE,
}


class Direction(str, Enum):
    """Discrete lean direction reported by a calibrated chain."""

    NEUTRAL = 'neutral'
    FORWARD = 'forward'
    BACKWARD = 'backward'


class PlaybackMode(str, Enum):
    """Transport behaviour derived from the steering direction and gaze."""

    NORMAL = 'normal'
    FAST_FORWARD = 'fast_forward'
    REWIND = 'rewind'
