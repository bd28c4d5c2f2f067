"""
Playback Control Configuration
Tick rate, per-mode transport rates, rewind fallback and volume stepping
"""

from dataclasses import dataclass


@dataclass
class PlaybackConfig:
    """Configuration parameters for the playback and volume controllers"""

    # Control tick
    tick_interval: float = 0.25  # seconds; mode is re-applied every tick

    # Transport rates per mode
    normal_rate: float = 1.0
    fast_forward_rate: float = 2.0
    reverse_rate: float = -1.0

    # Rewind fallback for transports without reverse playback
    rewind_seek_interval: float = 0.5  # seconds of media per unit of rewind speed
    rewind_speed: float = 2.0

    # Volume
    volume_step: float = 0.2
    initial_volume: float = 1.0
    hud_duration: float = 0.8  # seconds the volume HUD text stays visible

    # Gaze requirement
    gaze_gating: bool = True

    def __post_init__(self):
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")
        if not 0.0 <= self.initial_volume <= 1.0:
            raise ValueError(f"initial_volume must be in [0, 1], got {self.initial_volume}")
        if self.rewind_seek_interval <= 0 or self.rewind_speed <= 0:
            raise ValueError("rewind_seek_interval and rewind_speed must be positive")

    @property
    def rewind_step(self) -> float:
        """Seconds sought back per tick when reverse playback is unavailable."""
        return self.rewind_seek_interval * self.rewind_speed

    @classmethod
    def without_gating(cls) -> 'PlaybackConfig':
        """Lean controls apply whether or not the viewer is looking."""
        return cls(gaze_gating=False)
