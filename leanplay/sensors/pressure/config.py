"""
Pressure Chain Configuration
Calibration timing, classification thresholds, baseline strategy and
serial link settings for one foot-pressure sensor chain
"""

from dataclasses import dataclass
from typing import Optional, Tuple


STRATEGY_ASYMMETRIC = 'asymmetric'  # backward front channels reused from neutral
STRATEGY_SYMMETRIC = 'symmetric'    # backward measured on all channels

BASELINE_STRATEGIES = (STRATEGY_ASYMMETRIC, STRATEGY_SYMMETRIC)


@dataclass
class PressureChainConfig:
    """Configuration parameters for one pressure sensor chain"""

    # Chain identity
    name: str = 'steering'
    status_label: str = ''             # prefix for operator status text
    forward_action: str = 'fast-forward'
    backward_action: str = 'rewind'

    # Frame layout
    num_channels: int = 4
    front_channels: Tuple[int, ...] = (0, 1, 2)  # forefoot sensors
    back_channel: int = 3                        # heel sensor
    label_prefix: Optional[str] = None           # e.g. 'SensorVal = '

    # Calibration timing
    phase_duration: float = 3.0  # seconds per phase
    tick_interval: float = 0.1   # countdown tick

    # Baselines
    baseline_strategy: str = STRATEGY_ASYMMETRIC
    accumulate_before_start: bool = True  # samples count before "Start" is tapped

    # Classification
    full_threshold: float = 0.99  # ratio needed to report a lean
    epsilon: float = 1e-6         # floor for ratio denominators

    # Intensity projection (opacity = floor + span * ratio)
    opacity_floor: float = 0.2
    opacity_span: float = 0.7

    # Serial link (ESP32 over USB)
    serial_port: str = ''
    baudrate: int = 115200
    read_timeout: float = 1.0
    reconnect_interval: float = 2.0

    # Synthetic source
    synthetic: bool = False
    synthetic_rate: int = 20  # frames per second

    def __post_init__(self):
        """Validate ranges that would otherwise fail deep inside the engine."""
        if self.baseline_strategy not in BASELINE_STRATEGIES:
            raise ValueError(
                f"Unknown baseline strategy '{self.baseline_strategy}'. "
                f"Available: {list(BASELINE_STRATEGIES)}"
            )
        channels = tuple(self.front_channels) + (self.back_channel,)
        if any(c < 0 or c >= self.num_channels for c in channels):
            raise ValueError(f"Feature channels {channels} out of range for {self.num_channels} channels")
        if not self.front_channels:
            raise ValueError("At least one front channel is required")
        if self.phase_duration <= 0 or self.tick_interval <= 0:
            raise ValueError("phase_duration and tick_interval must be positive")
        if not 0.0 < self.full_threshold <= 1.0:
            raise ValueError(f"full_threshold must be in (0, 1], got {self.full_threshold}")

    @property
    def initial_countdown(self) -> int:
        """Countdown shown before a phase is started."""
        return int(self.phase_duration)

    @classmethod
    def for_steering(cls, serial_port: str = '') -> 'PressureChainConfig':
        """
        Configuration for the steering chain (right foot).

        Drives fast-forward / rewind. Its backward baseline keeps the neutral
        forefoot readings and only measures the heel.

        Args:
            serial_port: Serial device of the ESP32 e.g. '/dev/ttyUSB0'.

        Returns:
            PressureChainConfig with name='steering' and the asymmetric strategy.
        """
        return cls(
            name='steering',
            baseline_strategy=STRATEGY_ASYMMETRIC,
            serial_port=serial_port,
        )

    @classmethod
    def for_volume(cls, serial_port: str = '') -> 'PressureChainConfig':
        """
        Configuration for the volume chain (left foot).

        Drives volume up / down. All four channels are measured in every phase.

        Args:
            serial_port: Serial device of the ESP32 e.g. '/dev/ttyUSB1'.

        Returns:
            PressureChainConfig with name='volume' and the symmetric strategy.
        """
        return cls(
            name='volume',
            status_label='Volume',
            forward_action='volume up',
            backward_action='volume down',
            baseline_strategy=STRATEGY_SYMMETRIC,
            serial_port=serial_port,
        )

    @classmethod
    def for_synthetic(cls, name: str = 'steering') -> 'PressureChainConfig':
        """
        Configuration backed by the synthetic frame generator.

        Used for development and demos without the insoles.
        """
        config = cls.for_volume() if name == 'volume' else cls.for_steering()
        config.synthetic = True
        return config
