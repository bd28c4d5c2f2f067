"""
Gaze Utility Functions
Vector math and per-frame "looking" decision from FaceLandmarker outputs
"""

import math
from typing import Mapping, Optional

import numpy as np


# Face forward axis in the canonical face model; the camera looks down -Z,
# so a face squarely facing the camera points along +Z.
FACE_FORWARD = np.array([0.0, 0.0, 1.0])
CAMERA_AXIS = np.array([0.0, 0.0, 1.0])


def normalize(v: np.ndarray) -> np.ndarray:
    """
    Normalize a vector

    Args:
        v: Vector to normalize

    Returns:
        Normalized vector (or original if norm too small)
    """
    v = np.asarray(v, dtype=float)
    n = np.linalg.norm(v)
    return v / n if n > 1e-9 else v


def angle_between(a: np.ndarray, b: np.ndarray) -> float:
    """Angle between two vectors in radians."""
    a = normalize(a)
    b = normalize(b)
    return math.acos(float(np.clip(np.dot(a, b), -1.0, 1.0)))


def head_angle_deg(transform: np.ndarray) -> float:
    """
    Angle between the face's forward axis and the camera axis

    Args:
        transform: 4x4 facial transformation matrix (face model -> camera space)

    Returns:
        Angle in degrees, 0 when facing the camera head-on
    """
    m = np.asarray(transform, dtype=float).reshape(4, 4)
    forward = m[:3, :3] @ FACE_FORWARD
    return math.degrees(angle_between(forward, CAMERA_AXIS))


def blink_score(blendshapes: Mapping[str, float]) -> float:
    """Mean of the left/right eyeBlink blendshape scores (missing scores count as 0)."""
    left = float(blendshapes.get('eyeBlinkLeft', 0.0))
    right = float(blendshapes.get('eyeBlinkRight', 0.0))
    return (left + right) * 0.5


def blendshape_scores(categories) -> dict:
    """Flatten a FaceLandmarker blendshape category list into {name: score}."""
    return {c.category_name: float(c.score) for c in categories or []}


def is_looking(
        tracked: bool,
        blendshapes: Optional[Mapping[str, float]],
        transform: Optional[np.ndarray],
        blink_threshold: float = 0.6,
        max_angle: float = 22.5,
) -> bool:
    """
    Per-frame decision: face tracked, eyes open and facing the camera

    Args:
        tracked:         A face was found in the frame
        blendshapes:     {category_name: score}
        transform:       4x4 facial transformation matrix
        blink_threshold: Eyes count as open below this mean blink score
        max_angle:       Degrees

    Returns:
        True if the frame counts as "looking at screen"
    """
    if not tracked or transform is None:
        return False

    eyes_open = blink_score(blendshapes or {}) < blink_threshold
    return eyes_open and head_angle_deg(transform) < max_angle
