"""
Central Clock System
Provides the single monotonic time reference for calibration phases,
sample timestamps and playback ticks
"""

import threading
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CentralClock:
    """
    Thread-safe central clock for the control core

    Ensures every chain, timer and controller uses the same time reference with:
    - Thread-safe access (sensor callbacks, timers and the control loop call it)
    - Strictly increasing readings (no duplicates, never goes backwards)
    - Seconds as float, taken from a monotonic source so wall-clock
      adjustments cannot stretch or shrink a calibration phase
    """

    # Smallest step used to keep readings strictly increasing
    RESOLUTION = 1e-6

    def __init__(self, time_source: Optional[Callable[[], float]] = None):
        """
        Initialize central clock

        Args:
            time_source: Callable returning seconds. Defaults to time.monotonic.
        """
        self._time_source = time_source or time.monotonic
        self._lock = threading.Lock()
        self._last_timestamp: Optional[float] = None
        self._call_count = 0

        logger.info("Central clock initialized")

    def now(self) -> float:
        """
        Get current synchronized timestamp

        Returns:
            float: Seconds from the clock's time source
        """
        with self._lock:
            current_time = float(self._time_source())

            if self._last_timestamp is not None and current_time <= self._last_timestamp:
                current_time = self._last_timestamp + self.RESOLUTION
                logger.debug("Adjusted timestamp to maintain monotonic sequence")

            self._last_timestamp = current_time
            self._call_count += 1

            return current_time

    def elapsed_since(self, start: float) -> float:
        """Seconds between `start` and now."""
        return self.now() - start

    def get_stats(self) -> dict:
        """
        Get clock statistics

        Returns:
            dict: Clock usage statistics
        """
        with self._lock:
            return {
                'total_calls': self._call_count,
                'last_timestamp': self._last_timestamp,
            }

    def __repr__(self):
        return f"<CentralClock(calls={self._call_count})>"
