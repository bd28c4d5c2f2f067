"""
Gaze Sensor Module for leanplay
Webcam face tracking reduced to a smoothed "looking at screen" state

Architecture:
- FaceGazeTracker: OpenCV capture + MediaPipe FaceLandmarker, one raw flag per frame
- utils:           Head angle / blink decision from blendshapes and the face transform
- GazeSmoother:    Windowed dual-threshold hysteresis over the raw flags
- GazeConfig:      Configuration parameters

Usage:
    smoother = GazeSmoother(GazeConfig())
    tracker = FaceGazeTracker(config, on_sample=lambda f: coordinator.post(smoother.update, f))
    tracker.start()
    smoother.is_looking
    tracker.stop()
"""

from .config import GazeConfig
from .smoother import GazeSmoother
from .tracker import FaceGazeTracker
from .utils import angle_between, blink_score, head_angle_deg, is_looking, normalize

__all__ = [
    'GazeConfig',
    'GazeSmoother',
    'FaceGazeTracker',
    'angle_between',
    'blink_score',
    'head_angle_deg',
    'is_looking',
    'normalize',
]

__version__ = '1.0.0'
