"""
leanplay - Control Pipeline
===========================
Central module that owns the full lifecycle of the sensors and the control core.

Usage in run.py:
    pipeline = ControlPipeline(PipelineConfig.for_synthetic(), SimulatedTransport())
    pipeline.start()
    pipeline.start_current_phase()   # operator taps "Start"
    # ... calibration, then lean to steer ...
    pipeline.stop()

Sensors managed:
    - steering : right-foot pressure chain (Strategy A baselines) -> playback mode
    - volume   : left-foot pressure chain (Strategy B baselines)  -> volume steps
    - gaze     : webcam FaceLandmarker -> smoothed "looking" gate

Threading:
    Sensor I/O threads and timers never touch control state. Every public
    method here posts onto the ControlCoordinator, whose single control
    thread applies commands in arrival order.

Failure policy:
    If a sensor fails to initialise, it is skipped and recorded as failed.
    The pipeline continues with whichever sensors are available.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from leanplay.coordinator.clock import CentralClock
from leanplay.coordinator.coordinator import ControlCoordinator
from leanplay.coordinator.timer import TimerFactory, repeating_timer_factory
from leanplay.events import (
    DirectionChanged,
    EventBus,
    GazeChanged,
    RatiosUpdated,
    StatusChanged,
)
from leanplay.playback.config import PlaybackConfig
from leanplay.playback.controller import PlaybackModeController, VolumeController
from leanplay.playback.transport import MediaTransport
from leanplay.sensors.gaze.config import GazeConfig
from leanplay.sensors.gaze.smoother import GazeSmoother
from leanplay.sensors.pressure.calibration import CalibrationEngine
from leanplay.sensors.pressure.classifier import ForceSmoother, ratio_to_percent
from leanplay.sensors.pressure.config import PressureChainConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sensor labels
# ---------------------------------------------------------------------------
SENSOR_STEERING = 'steering'
SENSOR_VOLUME = 'volume'
SENSOR_GAZE = 'gaze'


@dataclass
class PipelineConfig:
    """Configuration for the whole control pipeline"""

    steering: PressureChainConfig = field(default_factory=PressureChainConfig.for_steering)
    volume: Optional[PressureChainConfig] = field(default_factory=PressureChainConfig.for_volume)
    gaze: Optional[GazeConfig] = field(default_factory=GazeConfig)  # None disables gaze tracking
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)

    # Intensity readout smoothing
    readout_alpha: float = 0.35

    @classmethod
    def for_serial(cls, steering_port: str, volume_port: Optional[str] = None,
                   camera_index: Optional[int] = 0) -> 'PipelineConfig':
        """
        Configuration for the insoles on USB serial.

        Args:
            steering_port: Serial device of the steering (right foot) ESP32
            volume_port:   Serial device of the volume (left foot) ESP32, or
                           None to run without the volume chain
            camera_index:  Webcam index, or None to run without gaze
        """
        return cls(
            steering=PressureChainConfig.for_steering(steering_port),
            volume=PressureChainConfig.for_volume(volume_port) if volume_port else None,
            gaze=GazeConfig.for_camera(camera_index) if camera_index is not None else None,
        )

    @classmethod
    def for_synthetic(cls, camera_index: Optional[int] = None) -> 'PipelineConfig':
        """Both chains backed by the synthetic generator; gaze off unless a camera is given."""
        return cls(
            steering=PressureChainConfig.for_synthetic(SENSOR_STEERING),
            volume=PressureChainConfig.for_synthetic(SENSOR_VOLUME),
            gaze=GazeConfig.for_camera(camera_index) if camera_index is not None else None,
        )

    @property
    def chain_configs(self) -> Dict[str, PressureChainConfig]:
        chains = {self.steering.name: self.steering}
        if self.volume is not None:
            chains[self.volume.name] = self.volume
        return chains


class ControlPipeline:
    """
    Owns the control core and the lifecycle of its sensors.

    Responsibilities:
      - Build one CalibrationEngine per pressure chain, the gaze smoother and
        the playback / volume controllers, all wired through one EventBus
      - Register sensors with the ControlCoordinator and start them with a
        per-sensor failure policy
      - Run the 0.25 s playback tick
      - Expose thread-safe operator commands (start phase, re-calibrate,
        gaze gating) for run.py
      - Report the state of everything via get_status()
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        transport: Optional[MediaTransport] = None,
        clock: Optional[CentralClock] = None,
        timer_factory: Optional[TimerFactory] = None,
        collector_factory: Optional[Callable] = None,
        gaze_factory: Optional[Callable] = None,
    ):
        """
        Args:
            config:            Pipeline configuration
            transport:         Media transport to drive. Defaults to a SimulatedTransport.
            clock:             Shared CentralClock
            timer_factory:     Builds phase and playback timers
            collector_factory: collector_factory(config, on_payload, on_connected, on_disconnected)
                               for pressure chains
            gaze_factory:      gaze_factory(config, on_sample) for the gaze tracker
        """
        self.config = config or PipelineConfig()
        if transport is None:
            from leanplay.playback.transport import SimulatedTransport
            transport = SimulatedTransport()
        self.transport = transport

        self.clock = clock or CentralClock()
        self.coordinator = ControlCoordinator(self.clock)
        self.events = EventBus()
        self._timer_factory = timer_factory or repeating_timer_factory
        self._collector_factory = collector_factory
        self._gaze_factory = gaze_factory

        # Pressure chains
        self.chains: Dict[str, CalibrationEngine] = {}
        self._readouts: Dict[str, Dict[str, ForceSmoother]] = {}
        for name, chain_config in self.config.chain_configs.items():
            self.chains[name] = CalibrationEngine(
                chain_config,
                clock=self.clock,
                events=self.events,
                timer_factory=self._timer_factory,
                dispatch=self.coordinator.post,
            )
            self._readouts[name] = {
                'forward': ForceSmoother(self.config.readout_alpha),
                'backward': ForceSmoother(self.config.readout_alpha),
            }

        # Gaze
        self.gaze = GazeSmoother(self.config.gaze or GazeConfig())

        # Playback
        self.playback = PlaybackModeController(self.transport, self.config.playback, self.events)
        self.volume = VolumeController(self.transport, self.config.playback, self.events, self.clock)
        if self.config.gaze is None and self.playback.gaze_gating:
            logger.warning("⚠ Gaze tracking disabled — gaze requirement turned off")
            self.playback.set_gaze_gating(False)

        self.events.subscribe(self._on_direction_changed, DirectionChanged)
        self.events.subscribe(self._on_ratios_updated, RatiosUpdated)

        self._playback_timer = None
        self.is_running = False

        # Tracks which sensors successfully initialised
        self._active_sensors: list = []
        self._failed_sensors: list = []

        logger.info(f"ControlPipeline created (chains: {list(self.chains)}, gaze: {self.config.gaze is not None})")

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start(self):
        """
        Start the control thread, every sensor and the playback tick.
        Failed sensors are logged and skipped.
        """
        if self.is_running:
            logger.warning("Pipeline already running")
            return

        logger.info("=" * 55)
        logger.info("  leanplay Control Pipeline — starting")
        logger.info("=" * 55)

        self.coordinator.start()

        for name in self.chains:
            self._init_chain(name)
        if self.config.gaze is not None:
            self._init_gaze()

        self._playback_timer = self._timer_factory(
            self.config.playback.tick_interval, self.tick_playback, 'playback-timer'
        )
        self._playback_timer.start()
        self.is_running = True

        logger.info(
            f"Pipeline ready — active: {self._active_sensors or 'none'} | "
            f"failed: {self._failed_sensors or 'none'}"
        )

    def stop(self):
        """Stop the playback tick, every sensor and finally the control thread."""
        if not self.is_running:
            return

        logger.info("Stopping control pipeline...")
        if self._playback_timer is not None:
            self._playback_timer.cancel()
            self._playback_timer = None

        self.coordinator.stop_all_sensors()
        # No more gaze frames: the viewer no longer counts as looking
        self.coordinator.post(self._reset_gaze)
        self.coordinator.stop()
        self.is_running = False
        logger.info("✓ Control pipeline stopped")

    # -----------------------------------------------------------------------
    # Thread-safe inputs (any context)
    # -----------------------------------------------------------------------

    def on_sample(self, chain: str, raw):
        """Raw frame from a pressure chain's link."""
        self.coordinator.post(self._engine(chain).handle_payload, raw)

    def on_connected(self, chain: str):
        self.coordinator.post(self._engine(chain).on_connected)

    def on_disconnected(self, chain: str):
        self.coordinator.post(self._engine(chain).on_disconnected)

    def on_gaze(self, looking: bool):
        """Raw per-frame "looking" flag from the gaze tracker."""
        self.coordinator.post(self._apply_gaze, looking)

    def start_calibration(self):
        """Operator "Re-Calibrate": playback back to Normal, every chain back to NEUTRAL."""
        self.coordinator.post(self._recalibrate)

    def start_current_phase(self):
        """Operator "Start": start the current phase on every chain."""
        for engine in self.chains.values():
            self.coordinator.post(engine.start_current_phase)

    def set_gaze_gating(self, enabled: bool):
        self.coordinator.post(self.playback.set_gaze_gating, enabled)

    def toggle_gaze_gating(self):
        self.coordinator.post(self.playback.toggle_gaze_gating)

    def tick_playback(self):
        """Playback timer callback."""
        self.coordinator.post(self.playback.tick)

    # -----------------------------------------------------------------------
    # Status
    # -----------------------------------------------------------------------

    def get_readouts(self, chain: str) -> dict:
        """Smoothed forward/backward intensity readouts of a chain."""
        smoothers = self._readouts[chain]
        return {
            'forward': smoothers['forward'].value,
            'backward': smoothers['backward'].value,
            'forward_percent': ratio_to_percent(smoothers['forward'].value),
            'backward_percent': ratio_to_percent(smoothers['backward'].value),
        }

    def get_status(self) -> dict:
        """
        Return a summary of the control core and sensor states for logging / UI display.
        """
        return {
            'active_sensors': self._active_sensors,
            'failed_sensors': self._failed_sensors,
            'chains': {name: engine.get_status() for name, engine in self.chains.items()},
            'readouts': {name: self.get_readouts(name) for name in self.chains},
            'gaze': {
                'looking': self.gaze.is_looking,
                'ratio': round(self.gaze.ratio, 3),
                'status': self.gaze.status_text,
            },
            'playback': self.playback.get_status(),
            'volume': self.volume.get_status(),
            'events': self.events.get_stats(),
            'coordinator': self.coordinator.get_coordinator_status(),
        }

    # -----------------------------------------------------------------------
    # Private — control context
    # -----------------------------------------------------------------------

    def _engine(self, chain: str) -> CalibrationEngine:
        if chain not in self.chains:
            raise ValueError(f"Unknown chain: {chain}")
        return self.chains[chain]

    def _recalibrate(self):
        logger.info("Re-calibration requested")
        self.playback.force_normal()
        for name, engine in self.chains.items():
            engine.start_calibration()
            for smoother in self._readouts[name].values():
                smoother.reset()

    def _apply_gaze(self, looking: bool):
        changed = self.gaze.update(looking)
        self.playback.set_looking(self.gaze.is_looking)
        if changed:
            logger.info(f"Gaze: {self.gaze.status_text} (ratio {self.gaze.ratio:.2f})")
            self.events.publish(GazeChanged(self.gaze.is_looking, self.gaze.ratio))
            self.events.publish(StatusChanged(SENSOR_GAZE, self.gaze.status_text))

    def _reset_gaze(self):
        was_looking = self.gaze.reset()
        self.playback.set_looking(False)
        if was_looking:
            logger.info("Gaze: tracking stopped, treated as not looking")
            self.events.publish(GazeChanged(False, 0.0))
            self.events.publish(StatusChanged(SENSOR_GAZE, self.gaze.status_text))

    def _on_direction_changed(self, event: DirectionChanged):
        if event.chain == self.config.steering.name:
            self.playback.set_direction(event.direction)
        elif self.config.volume is not None and event.chain == self.config.volume.name:
            self.volume.on_direction(event.direction)

    def _on_ratios_updated(self, event: RatiosUpdated):
        smoothers = self._readouts.get(event.chain)
        if smoothers is None:
            return
        smoothers['forward'].update(event.forward_ratio)
        smoothers['backward'].update(event.backward_ratio)

    # -----------------------------------------------------------------------
    # Private — sensor initialisation helpers
    # -----------------------------------------------------------------------

    def _init_chain(self, name: str):
        """Initialise the collector feeding one pressure chain."""
        try:
            config = self.chains[name].config
            factory = self._collector_factory
            if factory is None:
                from leanplay.sensors.pressure.collector import create_collector
                factory = create_collector

            collector = factory(
                config,
                lambda raw, chain=name: self.on_sample(chain, raw),
                lambda chain=name: self.on_connected(chain),
                lambda chain=name: self.on_disconnected(chain),
            )

            self.coordinator.register_sensor(name, collector, config)
            self.coordinator.start_sensor(name)
            self._active_sensors.append(name)

            source = 'synthetic' if config.synthetic else config.serial_port
            logger.info(f"✓ {name} chain initialised ({source})")

        except Exception as e:
            self._handle_sensor_failure(name, e)

    def _init_gaze(self):
        """Initialise webcam + FaceLandmarker gaze tracking."""
        try:
            factory = self._gaze_factory
            if factory is None:
                from leanplay.sensors.gaze.tracker import FaceGazeTracker
                factory = FaceGazeTracker

            tracker = factory(self.config.gaze, self.on_gaze)

            self.coordinator.register_sensor(SENSOR_GAZE, tracker, self.config.gaze)
            self.coordinator.start_sensor(SENSOR_GAZE)
            self._active_sensors.append(SENSOR_GAZE)
            logger.info(f"✓ Gaze tracking initialised (camera {self.config.gaze.camera_index})")

        except Exception as e:
            self._handle_sensor_failure(SENSOR_GAZE, e)

    def _handle_sensor_failure(self, sensor_name: str, exc: Exception):
        """
        Mark a failed sensor as skipped. The pipeline keeps running without it.
        """
        self._failed_sensors.append(sensor_name)
        logger.warning(
            f"⚠ {sensor_name} failed to initialise — skipping. "
            f"Error: {exc}"
        )
        if sensor_name == SENSOR_GAZE and self.playback.gaze_gating:
            logger.warning("⚠ Gaze requirement is on but no gaze data will arrive; playback stays Normal until it is turned off")

    # -----------------------------------------------------------------------
    # Dunder helpers
    # -----------------------------------------------------------------------

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def __repr__(self):
        return (
            f"<ControlPipeline("
            f"active={self._active_sensors}, "
            f"failed={self._failed_sensors})>"
        )
