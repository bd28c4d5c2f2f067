"""
Pressure Chain Calibration Engine
Phase state machine, per-phase sample accumulation and post-calibration
classification for one foot-pressure chain

State machine:
    NOT_STARTED --start--> NEUTRAL --(3s)--> FORWARD --(3s)--> BACKWARD --(3s)--> DONE
    DONE --start_calibration--> NEUTRAL
    any --disconnect--> NOT_STARTED

All methods mutate chain state and must run on the control context. Timer
ticks reach the engine through `dispatch`, which the pipeline binds to
ControlCoordinator.post.
"""

import logging
import math
from typing import Callable, Dict, Optional, Sequence

from leanplay.coordinator.clock import CentralClock
from leanplay.coordinator.timer import TimerFactory, repeating_timer_factory
from leanplay.events import (
    AwaitingData,
    BaselineReady,
    ConnectionChanged,
    CountdownChanged,
    DirectionChanged,
    EventBus,
    PhaseChanged,
    PhaseRunningChanged,
    RatiosUpdated,
    StatusChanged,
)
from leanplay.types import ACCUMULATING_PHASES, CalibrationPhase, Direction

from .baseline import BaselineStore, FeatureLayout, PhaseAccumulator
from .classifier import DirectionTracker, RatioClassifier, RatioPair, ratio_to_opacity, ratio_to_percent
from .config import PressureChainConfig
from .parser import parse_sample

logger = logging.getLogger(__name__)


_READY_PROMPTS = {
    CalibrationPhase.NEUTRAL: "Ready: stand still, then tap Start",
    CalibrationPhase.FORWARD: "Ready: lean forward, then tap Start",
    CalibrationPhase.BACKWARD: "Ready: lean backward, then tap Start",
    CalibrationPhase.DONE: "Calibration completed",
}

_RUNNING_PROMPTS = {
    CalibrationPhase.NEUTRAL: "Calibrating: stand still…",
    CalibrationPhase.FORWARD: "Calibrating: lean forward…",
    CalibrationPhase.BACKWARD: "Calibrating: lean backward…",
}


def _direct_dispatch(fn: Callable, *args):
    fn(*args)


class CalibrationEngine:
    """
    One calibration + classification pipeline ("chain")

    Two instances run side by side in the combined application:
    - steering: asymmetric backward baseline, drives playback mode
    - volume:   symmetric backward baseline, drives volume steps

    The baseline strategy and feature layout come from PressureChainConfig;
    the state machine is shared.
    """

    def __init__(
        self,
        config: PressureChainConfig,
        clock: Optional[CentralClock] = None,
        events: Optional[EventBus] = None,
        timer_factory: Optional[TimerFactory] = None,
        dispatch: Optional[Callable] = None,
    ):
        """
        Args:
            config:        Chain configuration
            clock:         Time reference for phase timing
            events:        Bus receiving the chain's state changes
            timer_factory: Builds the 0.1 s phase timer. A new timer is
                           built for every started phase.
            dispatch:      dispatch(fn, *args) used by timer callbacks to
                           reach the control context
        """
        self.config = config
        self.name = config.name
        self.clock = clock or CentralClock()
        self.events = events or EventBus()
        self._timer_factory = timer_factory or repeating_timer_factory
        self._dispatch = dispatch or _direct_dispatch

        layout = FeatureLayout(tuple(config.front_channels), config.back_channel)
        self.baselines = BaselineStore(config.baseline_strategy, layout)
        self.classifier = RatioClassifier(self.baselines, config.epsilon)
        self._direction = DirectionTracker(config.full_threshold)
        self._accumulators: Dict[CalibrationPhase, PhaseAccumulator] = {
            phase: PhaseAccumulator(config.num_channels) for phase in ACCUMULATING_PHASES
        }

        # Observable state
        self.phase = CalibrationPhase.NOT_STARTED
        self.countdown = config.initial_countdown
        self.is_phase_running = False
        self.is_connected = False
        self.awaiting_data = False
        self.status = self._label('Waiting for sensor connection')
        self.ratios = RatioPair()

        # Phase timer
        self._phase_start: Optional[float] = None
        self._timer = None
        self._timer_generation = 0

        # Statistics
        self.samples_received = 0
        self.samples_dropped = 0
        self.samples_accumulated = 0
        self.samples_classified = 0

        logger.info(
            f"Calibration engine '{self.name}' initialized "
            f"(strategy: {config.baseline_strategy}, threshold: {config.full_threshold})"
        )

    # ------------------------------------------------------------------
    # Observable properties
    # ------------------------------------------------------------------

    @property
    def direction(self) -> Direction:
        return self._direction.direction

    @property
    def is_calibrated(self) -> bool:
        return self.phase == CalibrationPhase.DONE and self.baselines.is_complete

    def accumulator(self, phase: CalibrationPhase) -> PhaseAccumulator:
        return self._accumulators[phase]

    # ------------------------------------------------------------------
    # Connection events
    # ------------------------------------------------------------------

    def on_connected(self, auto_calibrate: bool = True):
        """Sensor link is up. Starts a fresh calibration unless told otherwise."""
        self.is_connected = True
        logger.info(f"✓ Chain '{self.name}' connected")
        self.events.publish(ConnectionChanged(self.name, True))
        self._set_status('Connected')

        if auto_calibrate:
            self.start_calibration()

    def on_disconnected(self):
        """
        Sensor link dropped: invalidate the phase timer and return to
        NOT_STARTED so a reconnect restarts calibration from scratch.
        """
        self.is_connected = False
        self._cancel_timer()
        self._reset_calibration_data()
        self._set_running(False)
        self.awaiting_data = False
        self._publish_direction_reset()
        self._set_phase(CalibrationPhase.NOT_STARTED)
        self._set_countdown(self.config.initial_countdown)

        logger.warning(f"⚠ Chain '{self.name}' disconnected — calibration reset")
        self.events.publish(ConnectionChanged(self.name, False))
        self._set_status('Disconnected')

    # ------------------------------------------------------------------
    # Calibration control
    # ------------------------------------------------------------------

    def start_calibration(self):
        """
        Reset accumulators and baselines and wait at NEUTRAL for an explicit
        start_current_phase().
        """
        self._cancel_timer()
        self._reset_calibration_data()
        self._phase_start = None
        self.awaiting_data = False
        self._publish_direction_reset()

        self._set_running(False)
        self._set_phase(CalibrationPhase.NEUTRAL)
        self._set_countdown(self.config.initial_countdown)
        self._set_status(_READY_PROMPTS[CalibrationPhase.NEUTRAL])

        logger.info(f"Chain '{self.name}' calibration started — waiting for neutral phase")

    def start_current_phase(self):
        """
        Start the countdown for the current phase.

        No-op while disconnected or outside NEUTRAL/FORWARD/BACKWARD, so
        repeated taps are harmless. Restarting a running phase restarts its
        countdown.
        """
        if not self.is_connected:
            logger.debug(f"Chain '{self.name}': start ignored, not connected")
            return
        if not self.phase.is_accumulating:
            logger.debug(f"Chain '{self.name}': start ignored in phase '{self.phase.value}'")
            return

        self._phase_start = self.clock.now()
        self.awaiting_data = False
        self._set_countdown(self.config.initial_countdown)
        self._set_running(True)
        self._set_status(_RUNNING_PROMPTS[self.phase])

        self._cancel_timer()
        self._start_timer()

        logger.info(f"Chain '{self.name}' phase '{self.phase.value}' running ({self.config.phase_duration}s)")

    def on_tick(self, generation: int):
        """
        Phase timer tick: refresh the countdown and complete the phase once
        its duration has elapsed.

        Args:
            generation: Timer generation the tick belongs to. Ticks from an
                        invalidated timer are ignored.
        """
        if generation != self._timer_generation or self._timer is None:
            logger.debug(f"Chain '{self.name}': stale tick ignored (gen {generation})")
            return
        if not self.phase.is_accumulating or self._phase_start is None:
            return

        elapsed = self.clock.elapsed_since(self._phase_start)
        remaining = max(0.0, self.config.phase_duration - elapsed)
        self._set_countdown(max(0, int(math.ceil(remaining))))

        if elapsed >= self.config.phase_duration:
            self._complete_current_phase()

    # ------------------------------------------------------------------
    # Sample ingestion
    # ------------------------------------------------------------------

    def handle_payload(self, raw) -> bool:
        """
        Parse and process one raw frame from the sensor link.

        Returns:
            True if the frame was well formed.
        """
        values = parse_sample(raw, self.config.num_channels, self.config.label_prefix)
        if values is None:
            self.samples_dropped += 1
            logger.debug(f"[{self.name}] Dropped malformed frame: {raw!r}")
            return False

        return self.process_sample(values)

    def process_sample(self, values: Sequence[int]) -> bool:
        """
        Route one sample: accumulate during calibration, classify once DONE.

        Samples are accumulated against the current phase even before its
        timer is started (unless accumulate_before_start is disabled).

        Returns:
            True if the sample had the right arity.
        """
        if len(values) != self.config.num_channels:
            self.samples_dropped += 1
            logger.debug(f"[{self.name}] Dropped sample with {len(values)} channels")
            return False

        self.samples_received += 1
        logger.debug(f"[{self.name}] Sensors: {list(values)} | phase = {self.phase.value}")

        if self.phase == CalibrationPhase.NOT_STARTED:
            return True

        if self.phase == CalibrationPhase.DONE:
            self._classify(values)
            return True

        if not self.config.accumulate_before_start and not self.is_phase_running:
            return True

        self._accumulators[self.phase].add(values)
        self.samples_accumulated += 1
        return True

    # ------------------------------------------------------------------
    # Private — phase completion
    # ------------------------------------------------------------------

    def _complete_current_phase(self) -> bool:
        phase = self.phase
        accumulator = self._accumulators[phase]

        averages = accumulator.mean()
        if averages is None:
            if not self.awaiting_data:
                self.awaiting_data = True
                logger.warning(
                    f"⚠ Chain '{self.name}' phase '{phase.value}' elapsed with no samples — awaiting data"
                )
                self.events.publish(AwaitingData(self.name, phase))
                self._set_status('Waiting for sensor data…')
            return False

        sample_count = accumulator.count
        self.baselines.set(phase, averages)
        accumulator.reset()
        self.awaiting_data = False

        logger.info(f"[{self.name}-Calib] {phase.value.capitalize()} Avg = {averages.tolist()} ({sample_count} samples)")
        self.events.publish(BaselineReady(self.name, phase, tuple(float(v) for v in averages), sample_count))

        self._cancel_timer()
        self._phase_start = None
        self._set_running(False)

        next_phase = phase.next_phase()
        self._set_phase(next_phase)

        if next_phase == CalibrationPhase.DONE:
            self._set_countdown(0)
            logger.info(f"✓ Chain '{self.name}' — all 3 segments completed")
        else:
            self._set_countdown(self.config.initial_countdown)

        self._set_status(_READY_PROMPTS[next_phase])
        return True

    # ------------------------------------------------------------------
    # Private — classification
    # ------------------------------------------------------------------

    def _classify(self, values: Sequence[int]):
        ratios = self.classifier.classify(values)
        if ratios is None:
            return

        self.ratios = ratios
        self.samples_classified += 1

        cfg = self.config
        self.events.publish(RatiosUpdated(
            chain=self.name,
            forward_ratio=ratios.forward,
            backward_ratio=ratios.backward,
            forward_opacity=ratio_to_opacity(ratios.forward, cfg.opacity_floor, cfg.opacity_span),
            backward_opacity=ratio_to_opacity(ratios.backward, cfg.opacity_floor, cfg.opacity_span),
            forward_percent=ratio_to_percent(ratios.forward),
            backward_percent=ratio_to_percent(ratios.backward),
        ))

        previous = self._direction.direction
        changed = self._direction.update(ratios)
        if changed is not None:
            logger.info(f"Chain '{self.name}' direction: {previous.value} → {changed.value}")
            self.events.publish(DirectionChanged(self.name, changed, previous))
            self._set_status(self._direction_text(changed))

    def _direction_text(self, direction: Direction) -> str:
        if direction == Direction.FORWARD:
            return f"Leaning forward ({self.config.forward_action})"
        if direction == Direction.BACKWARD:
            return f"Leaning backward ({self.config.backward_action})"
        return "Neutral stance"

    def _publish_direction_reset(self):
        previous = self._direction.direction
        if self._direction.reset() is not None:
            self.events.publish(DirectionChanged(self.name, Direction.NEUTRAL, previous))
        self.ratios = RatioPair()

    # ------------------------------------------------------------------
    # Private — timer
    # ------------------------------------------------------------------

    def _start_timer(self):
        self._timer_generation += 1
        generation = self._timer_generation

        def tick():
            self._dispatch(self.on_tick, generation)

        self._timer = self._timer_factory(self.config.tick_interval, tick, f"{self.name}-phase-timer")
        self._timer.start()

    def _cancel_timer(self):
        # Bumping the generation invalidates ticks already queued
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ------------------------------------------------------------------
    # Private — state publication
    # ------------------------------------------------------------------

    def _reset_calibration_data(self):
        for accumulator in self._accumulators.values():
            accumulator.reset()
        self.baselines.clear()

    def _set_phase(self, phase: CalibrationPhase):
        previous = self.phase
        if phase == previous:
            return
        self.phase = phase
        self.events.publish(PhaseChanged(self.name, phase, previous, self.is_phase_running))

    def _set_running(self, running: bool):
        if running == self.is_phase_running:
            return
        self.is_phase_running = running
        self.events.publish(PhaseRunningChanged(self.name, self.phase, running))

    def _set_countdown(self, countdown: int):
        if countdown == self.countdown:
            return
        self.countdown = countdown
        self.events.publish(CountdownChanged(self.name, self.phase, countdown))

    def _label(self, text: str) -> str:
        return f"{self.config.status_label}: {text}" if self.config.status_label else text

    def _set_status(self, text: str):
        text = self._label(text)
        if text == self.status:
            return
        self.status = text
        self.events.publish(StatusChanged(self.name, text))

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict:
        """
        Return the current chain state.

        Returns:
            Dict with phase, countdown, running/awaiting flags, direction,
            latest ratios, baselines and sample statistics.
        """
        return {
            'chain': self.name,
            'is_connected': self.is_connected,
            'phase': self.phase.value,
            'countdown': self.countdown,
            'is_phase_running': self.is_phase_running,
            'awaiting_data': self.awaiting_data,
            'direction': self.direction.value,
            'forward_ratio': self.ratios.forward,
            'backward_ratio': self.ratios.backward,
            'status': self.status,
            'baseline_strategy': self.config.baseline_strategy,
            'baselines': self.baselines.as_dict(),
            'samples_received': self.samples_received,
            'samples_dropped': self.samples_dropped,
            'samples_accumulated': self.samples_accumulated,
            'samples_classified': self.samples_classified,
        }

    def __repr__(self):
        return (
            f"<CalibrationEngine(chain={self.name}, phase={self.phase.value}, "
            f"direction={self.direction.value})>"
        )
