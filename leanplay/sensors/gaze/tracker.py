"""
Face Gaze Tracker
Webcam capture + MediaPipe FaceLandmarker producing one raw "looking" flag per frame

The tracker only produces raw flags; smoothing happens on the control
context (GazeSmoother), so `on_sample` is expected to post onto it.
"""

import logging
import threading
import time
from typing import Callable, Optional

import cv2
import numpy as np

from .config import GazeConfig
from .model_assets import ensure_face_landmarker_task
from .utils import blendshape_scores, head_angle_deg, is_looking

logger = logging.getLogger(__name__)


class FaceGazeTracker:
    """
    Camera-driven gaze source

    Each processed frame yields is_looking(tracked, blendshapes, matrix),
    delivered through `on_sample(looking)`. A frame without a face counts
    as not looking.
    """

    sensor_type = 'gaze'

    def __init__(self, config: Optional[GazeConfig] = None,
                 on_sample: Optional[Callable[[bool], None]] = None):
        self.config = config or GazeConfig()
        self.on_sample = on_sample

        self.capture = None
        self.landmarker = None
        self._mp = None

        # State management
        self.is_running = False
        self.is_supported = True
        self.collection_thread = None
        self.stop_event = threading.Event()

        # Statistics
        self.frame_count = 0
        self.looking_count = 0
        self.read_failures = 0
        self.last_angle: Optional[float] = None
        self._timestamp_ms = 0

    def start(self):
        """Open the camera and the FaceLandmarker, then start the capture thread."""
        if self.is_running:
            logger.warning("Gaze tracker already running")
            return

        try:
            self._open_camera()
            self._open_landmarker()
        except Exception as e:
            self.is_supported = False
            logger.error(f"✗ Failed to start gaze tracker: {e}", exc_info=True)
            self._close()
            raise

        self.is_running = True
        self.stop_event.clear()
        self.collection_thread = threading.Thread(
            target=self._collection_loop,
            name="Gaze-Collection-Thread",
            daemon=True
        )
        self.collection_thread.start()
        logger.info(f"✓ Gaze tracking started (camera {self.config.camera_index})")

    def stop(self):
        if not self.is_running:
            logger.warning("Gaze tracker not running")
            return

        logger.info("Stopping gaze tracking...")
        self.stop_event.set()

        if self.collection_thread and self.collection_thread.is_alive():
            self.collection_thread.join(timeout=5)
            if self.collection_thread.is_alive():
                logger.warning("Gaze thread did not stop gracefully")

        self._close()
        self.is_running = False
        logger.info(f"✓ Gaze tracking stopped ({self.frame_count} frames, {self.looking_count} looking)")

    # ------------------------------------------------------------------
    # Camera / model
    # ------------------------------------------------------------------

    def _open_camera(self):
        self.capture = cv2.VideoCapture(self.config.camera_index)
        if not self.capture.isOpened():
            raise RuntimeError(f"Could not open camera {self.config.camera_index}")
        self.capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.frame_width)
        self.capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.frame_height)

    def _open_landmarker(self):
        import mediapipe as mp
        from mediapipe.tasks.python import BaseOptions
        from mediapipe.tasks.python.vision import FaceLandmarker, FaceLandmarkerOptions, RunningMode

        model_path = ensure_face_landmarker_task(self.config.model_path, url=self.config.model_url)
        options = FaceLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=model_path),
            running_mode=RunningMode.VIDEO,
            num_faces=1,
            min_face_detection_confidence=self.config.min_detection_confidence,
            min_face_presence_confidence=self.config.min_presence_confidence,
            min_tracking_confidence=self.config.min_tracking_confidence,
            output_face_blendshapes=True,
            output_facial_transformation_matrixes=True,
        )
        self.landmarker = FaceLandmarker.create_from_options(options)
        self._mp = mp

    def _close(self):
        if self.landmarker is not None:
            self.landmarker.close()
            self.landmarker = None
        if self.capture is not None:
            self.capture.release()
            self.capture = None

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def evaluate(self, result) -> bool:
        """
        Decide whether one FaceLandmarker result counts as looking.

        Args:
            result: FaceLandmarkerResult (or any object with the same
                    face_blendshapes / facial_transformation_matrixes lists)
        """
        matrices = getattr(result, 'facial_transformation_matrixes', None) or []
        blendshapes = getattr(result, 'face_blendshapes', None) or []

        tracked = len(matrices) > 0
        if not tracked:
            self.last_angle = None
            return False

        transform = np.asarray(matrices[0])
        scores = blendshape_scores(blendshapes[0]) if blendshapes else {}
        self.last_angle = head_angle_deg(transform)

        return is_looking(
            tracked, scores, transform,
            blink_threshold=self.config.blink_threshold,
            max_angle=self.config.max_gaze_angle,
        )

    def _next_timestamp_ms(self) -> int:
        # VIDEO mode requires strictly increasing timestamps
        now_ms = int(time.monotonic() * 1000)
        self._timestamp_ms = max(now_ms, self._timestamp_ms + 1)
        return self._timestamp_ms

    def _collection_loop(self):
        logger.info("Gaze loop started")
        interval = self.config.frame_interval

        while not self.stop_event.is_set():
            started = time.monotonic()

            ok, frame_bgr = self.capture.read()
            if not ok:
                self.read_failures += 1
                logger.debug("Camera read failed")
                self.stop_event.wait(interval)
                continue

            frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
            image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=frame_rgb)
            result = self.landmarker.detect_for_video(image, self._next_timestamp_ms())

            looking = self.evaluate(result)
            self.frame_count += 1
            if looking:
                self.looking_count += 1

            if self.on_sample:
                self.on_sample(looking)

            if self.frame_count % 300 == 0:
                logger.debug(f"Gaze frames: {self.frame_count}, looking: {self.looking_count}")

            remaining = interval - (time.monotonic() - started)
            if remaining > 0:
                self.stop_event.wait(remaining)

        logger.info("Gaze loop stopped")

    def get_status(self) -> dict:
        return {
            'sensor_type': self.sensor_type,
            'is_running': self.is_running,
            'is_supported': self.is_supported,
            'camera_index': self.config.camera_index,
            'frames_processed': self.frame_count,
            'frames_looking': self.looking_count,
            'read_failures': self.read_failures,
            'head_angle': self.last_angle,
        }

    def __repr__(self):
        status = "running" if self.is_running else "stopped"
        return f"<FaceGazeTracker(camera={self.config.camera_index}, status={status})>"
