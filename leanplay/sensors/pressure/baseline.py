"""
Calibration Baselines
Per-phase channel accumulators, the baseline store, and the
front-minus-heel feature used to compare live samples against baselines
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from leanplay.types import CalibrationPhase, ACCUMULATING_PHASES

from .config import STRATEGY_ASYMMETRIC, BASELINE_STRATEGIES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureLayout:
    """Which channels are averaged as the forefoot and which one is the heel."""

    front_channels: Tuple[int, ...] = (0, 1, 2)
    back_channel: int = 3

    def front(self, values: Sequence[float]) -> float:
        return float(np.mean([values[c] for c in self.front_channels]))

    def back(self, values: Sequence[float]) -> float:
        return float(values[self.back_channel])

    def feature(self, values: Sequence[float]) -> float:
        """Forefoot mean minus heel reading."""
        return self.front(values) - self.back(values)


@dataclass(frozen=True)
class BaselineFeatures:
    """Scalar features of the three completed baselines."""

    neutral: float
    forward: float
    backward: float


class PhaseAccumulator:
    """
    Running channel-wise sum and sample count for one calibration phase
    """

    def __init__(self, num_channels: int = 4):
        self.num_channels = num_channels
        self.sums = np.zeros(num_channels, dtype=np.int64)
        self.count = 0

    def add(self, values: Sequence[int]):
        self.sums += np.asarray(values, dtype=np.int64)
        self.count += 1

    def mean(self) -> Optional[np.ndarray]:
        """
        Channel-wise average of everything added so far.

        Returns:
            Float array of per-channel means, or None if nothing was added.
        """
        if self.count == 0:
            return None
        return self.sums / float(self.count)

    def reset(self):
        self.sums[:] = 0
        self.count = 0

    def __repr__(self):
        return f"<PhaseAccumulator(count={self.count}, sums={self.sums.tolist()})>"


class BaselineStore:
    """
    Holds the neutral, forward and backward baselines of one chain.

    A baseline is written once per calibration and stays immutable until
    clear(). With the asymmetric strategy the backward profile is assembled
    from the neutral forefoot channels plus the measured backward heel.
    """

    def __init__(self, strategy: str = STRATEGY_ASYMMETRIC, layout: Optional[FeatureLayout] = None):
        if strategy not in BASELINE_STRATEGIES:
            raise ValueError(f"Unknown baseline strategy '{strategy}'")

        self.strategy = strategy
        self.layout = layout or FeatureLayout()
        self._baselines: Dict[CalibrationPhase, np.ndarray] = {}
        self._features: Optional[BaselineFeatures] = None

    def set(self, phase: CalibrationPhase, averages: Sequence[float]):
        """
        Store the averaged readings of a completed phase.

        Raises:
            ValueError: for a non-accumulating phase, or if the phase already
                        has a baseline in this calibration.
        """
        if phase not in ACCUMULATING_PHASES:
            raise ValueError(f"No baseline for phase '{phase.value}'")
        if phase in self._baselines:
            raise ValueError(f"Baseline for '{phase.value}' already recorded")

        baseline = np.array(averages, dtype=float)
        baseline.setflags(write=False)
        self._baselines[phase] = baseline
        self._features = None

    def get(self, phase: CalibrationPhase) -> Optional[np.ndarray]:
        """Raw averages measured during `phase`, or None."""
        return self._baselines.get(phase)

    def profile(self, phase: CalibrationPhase) -> Optional[np.ndarray]:
        """
        Reference profile used for classification.

        Identical to get() except for the asymmetric backward profile, which
        needs the neutral baseline to be present as well.
        """
        measured = self._baselines.get(phase)
        if measured is None:
            return None
        if phase != CalibrationPhase.BACKWARD or self.strategy != STRATEGY_ASYMMETRIC:
            return measured

        neutral = self._baselines.get(CalibrationPhase.NEUTRAL)
        if neutral is None:
            return None
        composed = neutral.copy()
        composed[self.layout.back_channel] = measured[self.layout.back_channel]
        return composed

    @property
    def is_complete(self) -> bool:
        return all(p in self._baselines for p in ACCUMULATING_PHASES)

    def features(self) -> Optional[BaselineFeatures]:
        """
        Features of the three reference profiles.

        Returns:
            BaselineFeatures, or None until all three baselines exist.
        """
        if not self.is_complete:
            return None
        if self._features is None:
            self._features = BaselineFeatures(
                neutral=self.layout.feature(self.profile(CalibrationPhase.NEUTRAL)),
                forward=self.layout.feature(self.profile(CalibrationPhase.FORWARD)),
                backward=self.layout.feature(self.profile(CalibrationPhase.BACKWARD)),
            )
            logger.debug(f"Baseline features: {self._features}")
        return self._features

    def clear(self):
        self._baselines.clear()
        self._features = None

    def as_dict(self) -> Dict[str, Optional[list]]:
        return {
            phase.value: (self._baselines[phase].tolist() if phase in self._baselines else None)
            for phase in ACCUMULATING_PHASES
        }

    def __repr__(self):
        recorded = [p.value for p in ACCUMULATING_PHASES if p in self._baselines]
        return f"<BaselineStore(strategy={self.strategy}, recorded={recorded})>"
