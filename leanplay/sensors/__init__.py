"""
leanplay Sensors
Foot pressure and gaze inputs for hands-free playback control

Available Sensors:
- Pressure: 4-channel insole arrays over USB serial (steering + volume chains, ~20 Hz)
- Gaze: Webcam with MediaPipe FaceLandmarker (~30 Hz)

Both sensors:
- Run their I/O on their own thread
- Hand raw input to the control thread through ControlCoordinator.post()
- Report status through get_status()
"""

from .pressure import (
    CalibrationEngine,
    PressureChainConfig,
    SerialPressureCollector,
    SyntheticPressureCollector,
)
from .gaze import FaceGazeTracker, GazeConfig, GazeSmoother

__all__ = [
    # Pressure (4 channels per foot)
    'CalibrationEngine',
    'PressureChainConfig',
    'SerialPressureCollector',
    'SyntheticPressureCollector',

    # Gaze
    'FaceGazeTracker',
    'GazeConfig',
    'GazeSmoother',
]

__version__ = '1.0.0'
