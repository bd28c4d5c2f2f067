"""
Gaze Hysteresis Smoother
Turns the noisy per-frame "looking at screen" flag into a stable state
"""

import logging
from collections import deque
from typing import Optional

from .config import GazeConfig

logger = logging.getLogger(__name__)


class GazeSmoother:
    """
    Dual-threshold smoother over the last `window` raw flags

    Off -> on needs ratio >= on_threshold, on stays on while
    ratio >= off_threshold. Entering a state is harder than staying in it.
    """

    def __init__(self, config: Optional[GazeConfig] = None):
        self.config = config or GazeConfig()
        self._flags = deque(maxlen=self.config.smoothing_window)
        self.is_looking = False
        self.ratio = 0.0
        self.sample_count = 0

    @property
    def window(self) -> int:
        return self._flags.maxlen

    def update(self, flag: bool) -> bool:
        """
        Add one raw sample and recompute the smoothed state.

        Returns:
            True if the smoothed state changed.
        """
        self._flags.append(bool(flag))
        self.sample_count += 1

        self.ratio = sum(self._flags) / max(len(self._flags), 1)

        if self.is_looking:
            next_looking = self.ratio >= self.config.off_threshold
        else:
            next_looking = self.ratio >= self.config.on_threshold

        if next_looking == self.is_looking:
            return False

        self.is_looking = next_looking
        logger.debug(f"Gaze {'on' if next_looking else 'off'} (ratio {self.ratio:.2f})")
        return True

    def set_window(self, window: int):
        """Resize the window, keeping the most recent flags."""
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self._flags = deque(self._flags, maxlen=window)

    def reset(self) -> bool:
        """
        Forget every flag and drop back to not looking.

        Returns:
            True if the smoothed state was "looking".
        """
        was_looking = self.is_looking
        self._flags.clear()
        self.is_looking = False
        self.ratio = 0.0
        return was_looking

    @property
    def status_text(self) -> str:
        return "Looking at screen" if self.is_looking else "Not looking at screen"

    def __repr__(self):
        return f"<GazeSmoother(window={self.window}, looking={self.is_looking}, ratio={self.ratio:.2f})>"
