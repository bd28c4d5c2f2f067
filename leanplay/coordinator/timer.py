"""
Repeating Timers
Periodic tick sources for calibration countdowns and playback control.

A timer never mutates control state itself: its callback is expected to post
a command onto the ControlCoordinator. Timers are single-use - once cancelled
they cannot be restarted, callers build a new one instead.
"""

import logging
import threading
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None], str], Timer]


class RepeatingTimer:
    """
    Daemon thread invoking `callback` every `interval` seconds until cancelled
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = 'timer'):
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")

        self.interval = interval
        self.callback = callback
        self.name = name

        self.tick_count = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self):
        """Start ticking. Calling start() twice or after cancel() is a no-op."""
        if self._thread is not None or self._stop_event.is_set():
            return

        self._thread = threading.Thread(
            target=self._run,
            name=f"{self.name}-Thread",
            daemon=True
        )
        self._thread.start()
        logger.debug(f"Timer '{self.name}' started ({self.interval}s)")

    def cancel(self):
        """
        Stop ticking. Never blocks, so it is safe from the control thread,
        from inside the callback, and more than once. A tick already in flight
        may still be delivered; receivers must tolerate it.
        """
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        logger.debug(f"Timer '{self.name}' cancelled after {self.tick_count} ticks")

    def _run(self):
        # wait() returns True as soon as cancel() is called
        while not self._stop_event.wait(self.interval):
            self.tick_count += 1
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Error in timer '{self.name}' callback: {e}", exc_info=True)

    def __repr__(self):
        status = "running" if self.is_running else "stopped"
        return f"<RepeatingTimer(name={self.name}, interval={self.interval}, status={status})>"


def repeating_timer_factory(interval: float, callback: Callable[[], None], name: str) -> RepeatingTimer:
    """Default TimerFactory: a fresh RepeatingTimer per call."""
    return RepeatingTimer(interval, callback, name)
