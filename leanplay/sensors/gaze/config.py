"""
Gaze Sensor Configuration
Hysteresis smoothing, per-frame "looking" thresholds and camera / FaceLandmarker settings
"""

from dataclasses import dataclass


FACE_LANDMARKER_TASK_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/face_landmarker/float16/latest/face_landmarker.task"
)


@dataclass
class GazeConfig:
    """Gaze tracking configuration"""

    # Hysteresis smoothing
    smoothing_window: int = 8    # recent frames considered
    on_threshold: float = 0.65   # fraction of "looking" frames needed to switch on
    off_threshold: float = 0.45  # below this fraction an "on" state switches off

    # Per-frame decision
    blink_threshold: float = 0.6   # mean eyeBlink score at or above which eyes count as closed
    max_gaze_angle: float = 22.5   # degrees between face axis and camera axis

    # Camera
    camera_index: int = 0
    frame_width: int = 640
    frame_height: int = 480
    max_fps: float = 30.0

    # MediaPipe FaceLandmarker
    model_path: str = 'models/face_landmarker.task'
    model_url: str = FACE_LANDMARKER_TASK_URL
    min_detection_confidence: float = 0.5
    min_presence_confidence: float = 0.5
    min_tracking_confidence: float = 0.5

    def __post_init__(self):
        if self.smoothing_window < 1:
            raise ValueError(f"smoothing_window must be >= 1, got {self.smoothing_window}")
        if not 0.0 <= self.off_threshold <= 1.0 or not 0.0 <= self.on_threshold <= 1.0:
            raise ValueError("Gaze thresholds must be within [0, 1]")
        if self.off_threshold > self.on_threshold:
            raise ValueError(
                f"off_threshold ({self.off_threshold}) must not exceed on_threshold ({self.on_threshold})"
            )
        if self.max_fps <= 0:
            raise ValueError("max_fps must be positive")

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.max_fps

    @classmethod
    def for_camera(cls, camera_index: int = 0) -> 'GazeConfig':
        """Default configuration for a given webcam."""
        return cls(camera_index=camera_index)
