"""
Pressure Frame Collectors
Deliver raw insole frames and link up/down events to a pressure chain

- SerialPressureCollector:    ESP32 streaming newline-terminated frames over USB serial
- SyntheticPressureCollector: generated frames for development without hardware

Collectors run their own I/O thread and never touch chain state; every
callback is expected to forward onto the control context.
"""

import logging
import threading
import time
from typing import Callable, Optional

import numpy as np
import serial

from .config import PressureChainConfig

logger = logging.getLogger(__name__)


PayloadCallback = Callable[[bytes], None]
LinkCallback = Callable[[], None]


class _BaseCollector:
    """Shared thread lifecycle and status for pressure collectors"""

    sensor_type = 'pressure'

    def __init__(
            self,
            config: PressureChainConfig,
            on_payload: PayloadCallback,
            on_connected: Optional[LinkCallback] = None,
            on_disconnected: Optional[LinkCallback] = None,
    ):
        self.config = config
        self.on_payload = on_payload
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected

        # State management
        self.is_running = False
        self.is_connected = False
        self.collection_thread = None
        self.stop_event = threading.Event()

        # Sample tracking
        self.frame_count = 0

    def start(self):
        """Start the collection thread."""
        if self.is_running:
            logger.warning(f"{self.__class__.__name__} '{self.config.name}' already running")
            return

        self._open()

        self.is_running = True
        self.stop_event.clear()
        self.frame_count = 0

        self.collection_thread = threading.Thread(
            target=self._collection_loop,
            name=f"{self.config.name}-Collection-Thread",
            daemon=True
        )
        self.collection_thread.start()
        logger.info(f"✓ {self.config.name} collection started")

    def stop(self):
        """Signal the collection thread to stop and release the link."""
        if not self.is_running:
            logger.warning(f"{self.__class__.__name__} '{self.config.name}' not running")
            return

        logger.info(f"Stopping {self.config.name} collection...")
        self.stop_event.set()

        if self.collection_thread and self.collection_thread.is_alive():
            self.collection_thread.join(timeout=5)
            if self.collection_thread.is_alive():
                logger.warning("Collection thread did not stop gracefully")

        self._close()
        self._mark_disconnected()
        self.is_running = False
        logger.info(f"✓ {self.config.name} collection stopped ({self.frame_count} frames)")

    def _open(self):
        pass

    def _close(self):
        pass

    def _collection_loop(self):
        raise NotImplementedError

    def _emit(self, payload: bytes):
        self.frame_count += 1
        self.on_payload(payload)

    def _mark_connected(self):
        if self.is_connected:
            return
        self.is_connected = True
        if self.on_connected:
            self.on_connected()

    def _mark_disconnected(self):
        if not self.is_connected:
            return
        self.is_connected = False
        if self.on_disconnected:
            self.on_disconnected()

    def get_status(self) -> dict:
        return {
            'sensor_type': self.sensor_type,
            'chain': self.config.name,
            'is_running': self.is_running,
            'is_connected': self.is_connected,
            'frames_received': self.frame_count,
        }

    def __repr__(self):
        status = "running" if self.is_running else "stopped"
        return f"<{self.__class__.__name__}(chain={self.config.name}, status={status})>"


class SerialPressureCollector(_BaseCollector):
    """
    Reads one frame per line from the insole ESP32 over a serial port.

    Opening the port counts as "connected"; a read error counts as
    "disconnected", after which the port is reopened every
    `reconnect_interval` seconds until stop().
    """

    sensor_type = 'pressure_serial'

    def __init__(self, config: PressureChainConfig, on_payload: PayloadCallback,
                 on_connected: Optional[LinkCallback] = None,
                 on_disconnected: Optional[LinkCallback] = None):
        super().__init__(config, on_payload, on_connected, on_disconnected)
        if not config.serial_port:
            raise ValueError(f"No serial port configured for chain '{config.name}'")
        self.port: Optional[serial.Serial] = None
        self.reconnect_count = 0

    def _open_port(self) -> bool:
        try:
            self.port = serial.Serial(
                self.config.serial_port,
                self.config.baudrate,
                timeout=self.config.read_timeout,
            )
            self.port.reset_input_buffer()
            logger.info(f"✓ {self.config.name} serial open on {self.config.serial_port} @ {self.config.baudrate}")
            self._mark_connected()
            return True
        except serial.SerialException as e:
            logger.warning(f"⚠ Could not open {self.config.serial_port}: {e}")
            self.port = None
            return False

    def _close(self):
        if self.port is not None:
            try:
                self.port.close()
            except serial.SerialException as e:
                logger.error(f"Error closing {self.config.serial_port}: {e}")
            self.port = None

    def _collection_loop(self):
        logger.info(f"{self.config.name} serial loop started")

        while not self.stop_event.is_set():
            if self.port is None:
                if not self._open_port():
                    self.stop_event.wait(self.config.reconnect_interval)
                    self.reconnect_count += 1
                    continue

            try:
                line = self.port.readline()
            except serial.SerialException as e:
                logger.error(f"✗ {self.config.name} serial read failed: {e}")
                self._close()
                self._mark_disconnected()
                continue

            if line:
                self._emit(line)

        logger.info(f"{self.config.name} serial loop stopped")

    def get_status(self) -> dict:
        status = super().get_status()
        status.update({
            'serial_port': self.config.serial_port,
            'baudrate': self.config.baudrate,
            'reconnects': self.reconnect_count,
        })
        return status


# Channel levels (s1, s2, s3 forefoot, s4 heel) for each scripted stance
_STANCE_LEVELS = {
    'neutral': np.array([500.0, 500.0, 500.0, 500.0]),
    'forward': np.array([900.0, 880.0, 860.0, 150.0]),
    'backward': np.array([200.0, 220.0, 180.0, 950.0]),
}

# Default script: (stance, seconds)
DEFAULT_SCRIPT = (
    ('neutral', 5.0),
    ('forward', 5.0),
    ('backward', 5.0),
    ('neutral', 4.0),
    ('forward', 3.0),
    ('neutral', 3.0),
    ('backward', 3.0),
)


class SyntheticPressureCollector(_BaseCollector):
    """
    Generates insole frames for a scripted sequence of stances.

    Frames carry Gaussian noise around fixed per-stance levels and are
    formatted exactly like the firmware output. The script loops; stance()
    can override it at any time.
    """

    sensor_type = 'pressure_synthetic'

    def __init__(self, config: PressureChainConfig, on_payload: PayloadCallback,
                 on_connected: Optional[LinkCallback] = None,
                 on_disconnected: Optional[LinkCallback] = None,
                 script=DEFAULT_SCRIPT, noise: float = 15.0, seed: Optional[int] = None):
        super().__init__(config, on_payload, on_connected, on_disconnected)
        self.script = tuple(script)
        self.noise = noise
        self.rng = np.random.default_rng(seed)
        self._override: Optional[str] = None

    def stance(self, name: Optional[str]):
        """Hold a stance ('neutral' / 'forward' / 'backward'), or None to resume the script."""
        if name is not None and name not in _STANCE_LEVELS:
            raise ValueError(f"Unknown stance '{name}'. Available: {list(_STANCE_LEVELS)}")
        self._override = name

    def current_stance(self, elapsed: float) -> str:
        if self._override is not None:
            return self._override
        total = sum(duration for _, duration in self.script)
        t = elapsed % total if total > 0 else 0.0
        for name, duration in self.script:
            if t < duration:
                return name
            t -= duration
        return self.script[-1][0]

    def make_frame(self, stance: str) -> bytes:
        values = _STANCE_LEVELS[stance] + self.rng.normal(0.0, self.noise, size=4)
        values = np.clip(np.rint(values), 0, 4095).astype(int)
        text = ','.join(str(v) for v in values)
        if self.config.label_prefix:
            text = f"{self.config.label_prefix}{text}"
        return (text + '\n').encode('utf-8')

    def _collection_loop(self):
        logger.info(f"{self.config.name} synthetic loop started")
        interval = 1.0 / max(self.config.synthetic_rate, 1)
        start = time.monotonic()

        self._mark_connected()
        while not self.stop_event.wait(interval):
            stance = self.current_stance(time.monotonic() - start)
            self._emit(self.make_frame(stance))

        logger.info(f"{self.config.name} synthetic loop stopped")


def create_collector(config: PressureChainConfig, on_payload: PayloadCallback,
                     on_connected: Optional[LinkCallback] = None,
                     on_disconnected: Optional[LinkCallback] = None) -> _BaseCollector:
    """Pick the collector matching the chain configuration."""
    if config.synthetic:
        return SyntheticPressureCollector(config, on_payload, on_connected, on_disconnected)
    return SerialPressureCollector(config, on_payload, on_connected, on_disconnected)
