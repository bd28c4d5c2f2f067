"""
leanplay
Hands-free media control from foot pressure insoles and gaze

Lean forward to fast-forward, lean back to rewind, lean with the other foot
to change the volume; playback only reacts while you are looking at the screen.
"""

from .types import CalibrationPhase, Direction, PlaybackMode
from .pipeline import ControlPipeline, PipelineConfig

__all__ = [
    'CalibrationPhase',
    'Direction',
    'PlaybackMode',
    'ControlPipeline',
    'PipelineConfig',
]

__version__ = '1.0.0'
