"""
Lean Classification
Maps a live pressure sample onto forward/backward ratios relative to the
calibrated baselines, thresholds those ratios into a direction, and projects
them onto display intensities
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from leanplay.types import Direction

from .baseline import BaselineFeatures, BaselineStore

logger = logging.getLogger(__name__)


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


@dataclass(frozen=True)
class RatioPair:
    """How far a sample sits towards each extreme, both in [0, 1], at most one nonzero."""

    forward: float = 0.0
    backward: float = 0.0


def compute_ratios(features: BaselineFeatures, current: float, epsilon: float = 1e-6) -> RatioPair:
    """
    Position of a live feature between neutral and the forward/backward extremes.

    Args:
        features: Neutral, forward and backward baseline features
        current:  Feature of the live sample
        epsilon:  Floor for the denominators (degenerate calibrations)

    Returns:
        RatioPair; the side away from the lean is always 0.
    """
    if current >= features.neutral:
        span = max(features.forward - features.neutral, epsilon)
        return RatioPair(forward=clamp01((current - features.neutral) / span), backward=0.0)

    span = max(features.neutral - features.backward, epsilon)
    return RatioPair(forward=0.0, backward=clamp01((features.neutral - current) / span))


def classify_direction(ratios: RatioPair, full_threshold: float = 0.99) -> Direction:
    """
    Near-full-deflection detector: anything short of the threshold is neutral.
    """
    if ratios.forward >= full_threshold:
        return Direction.FORWARD
    if ratios.backward >= full_threshold:
        return Direction.BACKWARD
    return Direction.NEUTRAL


def ratio_to_opacity(ratio: float, floor: float = 0.2, span: float = 0.7) -> float:
    return floor + span * clamp01(ratio)


def ratio_to_percent(ratio: float) -> int:
    """Whole percent, halves rounded up."""
    return int(math.floor(clamp01(ratio) * 100 + 0.5))


class RatioClassifier:
    """
    Ratio computation bound to one chain's baseline store.

    classify() is a no-op (returns None) until calibration has produced all
    three baselines.
    """

    def __init__(self, store: BaselineStore, epsilon: float = 1e-6):
        self.store = store
        self.epsilon = epsilon

    @property
    def is_ready(self) -> bool:
        return self.store.is_complete

    def classify(self, values: Sequence[int]) -> Optional[RatioPair]:
        if not self.is_ready:
            return None
        features = self.store.features()
        current = self.store.layout.feature(values)
        return compute_ratios(features, current, self.epsilon)


class DirectionTracker:
    """
    Edge detector over classified directions: update() only reports a
    direction when it differs from the previous one.
    """

    def __init__(self, full_threshold: float = 0.99):
        self.full_threshold = full_threshold
        self.direction = Direction.NEUTRAL

    def update(self, ratios: RatioPair) -> Optional[Direction]:
        new_direction = classify_direction(ratios, self.full_threshold)
        if new_direction == self.direction:
            return None
        self.direction = new_direction
        return new_direction

    def reset(self) -> Optional[Direction]:
        """Force NEUTRAL; returns NEUTRAL if that was a change."""
        if self.direction == Direction.NEUTRAL:
            return None
        self.direction = Direction.NEUTRAL
        return Direction.NEUTRAL


class ForceSmoother:
    """
    Normalizes a raw reading into [0, 1] and low-pass filters it.

    alpha in [0, 1]: higher is snappier, lower is smoother.
    """

    def __init__(self, alpha: float = 0.35, input_min: float = 0.0, input_max: float = 1.0):
        self.alpha = alpha
        self.input_min = input_min
        self.input_max = input_max
        self.value = 0.0

    def normalize(self, raw: float) -> float:
        if self.input_max <= self.input_min:
            return 0.0
        return clamp01((raw - self.input_min) / (self.input_max - self.input_min))

    def update(self, raw: float) -> float:
        target = self.normalize(raw)
        self.value = self.value + (target - self.value) * clamp01(self.alpha)
        return self.value

    def reset(self):
        self.value = 0.0
