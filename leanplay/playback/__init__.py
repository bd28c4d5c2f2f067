"""
Playback Control Module for leanplay
Maps lean directions and gaze onto a media transport

- PlaybackModeController: Normal / FastForward / Rewind on a 0.25 s tick
- VolumeController:       volume steps from the volume chain
- MediaTransport:         transport interface; SimulatedTransport for runs without a player
"""

from .config import PlaybackConfig
from .controller import PlaybackModeController, VolumeController
from .transport import MediaTransport, SimulatedTransport

__all__ = [
    'PlaybackConfig',
    'PlaybackModeController',
    'VolumeController',
    'MediaTransport',
    'SimulatedTransport',
]
