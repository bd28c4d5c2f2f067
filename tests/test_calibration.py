import pytest

from leanplay.events import (
    AwaitingData,
    BaselineReady,
    ConnectionChanged,
    CountdownChanged,
    DirectionChanged,
    PhaseChanged,
    RatiosUpdated,
    StatusChanged,
)
from leanplay.sensors.pressure.calibration import CalibrationEngine
from leanplay.sensors.pressure.config import PressureChainConfig
from leanplay.types import CalibrationPhase, Direction

NEUTRAL = (500, 500, 500, 500)   # feature 0
FORWARD = (900, 900, 900, 100)   # feature 800
BACKWARD = (200, 200, 200, 900)  # feature -700


@pytest.fixture
def engine(clock, bus, timers):
    return CalibrationEngine(PressureChainConfig.for_volume(), clock=clock, events=bus, timer_factory=timers)


def run_phase(engine, timers, fake_time, sample, count=5):
    engine.start_current_phase()
    for _ in range(count):
        engine.process_sample(sample)
    fake_time.advance(3.1)
    timers.latest().fire()


def calibrate(engine, timers, fake_time):
    engine.on_connected()
    run_phase(engine, timers, fake_time, NEUTRAL)
    run_phase(engine, timers, fake_time, FORWARD)
    run_phase(engine, timers, fake_time, BACKWARD)


def test_connect_enters_neutral_and_waits(engine, recorder, timers):
    engine.on_connected()

    assert engine.phase == CalibrationPhase.NEUTRAL
    assert not engine.is_phase_running
    assert engine.countdown == 3
    assert timers.timers == []
    assert engine.status == "Volume: Ready: stand still, then tap Start"
    assert recorder.of_type(ConnectionChanged)[0].connected
    assert recorder.of_type(PhaseChanged)[-1].phase == CalibrationPhase.NEUTRAL


def test_start_is_ignored_when_disconnected(engine, timers):
    engine.start_current_phase()
    assert engine.phase == CalibrationPhase.NOT_STARTED
    assert timers.timers == []


def test_start_is_ignored_when_done(engine, timers, fake_time):
    calibrate(engine, timers, fake_time)
    created = len(timers.timers)

    engine.start_current_phase()

    assert engine.phase == CalibrationPhase.DONE
    assert len(timers.timers) == created


def test_countdown_follows_elapsed_time(engine, recorder, timers, fake_time):
    engine.on_connected()
    engine.start_current_phase()
    assert engine.is_phase_running
    timer = timers.latest()
    assert timer.started and timer.interval == 0.1

    fake_time.advance(0.5)
    timer.fire()
    assert engine.countdown == 3
    fake_time.advance(1.0)
    timer.fire()
    assert engine.countdown == 2
    fake_time.advance(1.0)
    timer.fire()
    assert engine.countdown == 1

    countdowns = [e.countdown for e in recorder.of_type(CountdownChanged)]
    assert countdowns[-2:] == [2, 1]


def test_full_calibration_records_three_baselines(engine, recorder, timers, fake_time):
    calibrate(engine, timers, fake_time)

    assert engine.phase == CalibrationPhase.DONE
    assert engine.is_calibrated
    assert engine.countdown == 0
    assert engine.status == "Volume: Calibration completed"

    ready = recorder.of_type(BaselineReady)
    assert [e.phase for e in ready] == [CalibrationPhase.NEUTRAL, CalibrationPhase.FORWARD, CalibrationPhase.BACKWARD]
    assert ready[1].averages == (900.0, 900.0, 900.0, 100.0)
    assert ready[1].sample_count == 5

    phases = [e.phase for e in recorder.of_type(PhaseChanged)]
    assert phases == [
        CalibrationPhase.NEUTRAL,
        CalibrationPhase.FORWARD,
        CalibrationPhase.BACKWARD,
        CalibrationPhase.DONE,
    ]
    # A fresh timer per phase, each cancelled on completion
    assert len(timers.timers) == 3
    assert all(t.cancelled for t in timers.timers)


def test_phase_never_advances_without_samples(engine, recorder, timers, fake_time):
    engine.on_connected()
    engine.start_current_phase()
    timer = timers.latest()

    fake_time.advance(3.5)
    timer.fire()
    fake_time.advance(1.0)
    timer.fire()

    assert engine.phase == CalibrationPhase.NEUTRAL
    assert engine.is_phase_running
    assert engine.awaiting_data
    assert engine.countdown == 0
    assert len(recorder.of_type(AwaitingData)) == 1
    assert engine.status == "Volume: Waiting for sensor data…"

    # Data arrives late; the next tick completes the phase
    engine.process_sample(NEUTRAL)
    timer.fire()
    assert engine.phase == CalibrationPhase.FORWARD
    assert not engine.awaiting_data


def test_samples_before_start_are_accumulated(engine, timers, fake_time):
    engine.on_connected()
    engine.process_sample(NEUTRAL)
    engine.process_sample(NEUTRAL)
    assert engine.accumulator(CalibrationPhase.NEUTRAL).count == 2

    engine.start_current_phase()
    fake_time.advance(3.1)
    timers.latest().fire()
    assert engine.phase == CalibrationPhase.FORWARD


def test_pre_start_accumulation_can_be_disabled(clock, bus, timers, fake_time):
    config = PressureChainConfig.for_steering()
    config.accumulate_before_start = False
    engine = CalibrationEngine(config, clock=clock, events=bus, timer_factory=timers)

    engine.on_connected()
    engine.process_sample(NEUTRAL)
    assert engine.accumulator(CalibrationPhase.NEUTRAL).count == 0

    engine.start_current_phase()
    engine.process_sample(NEUTRAL)
    assert engine.accumulator(CalibrationPhase.NEUTRAL).count == 1


def test_malformed_frames_change_nothing(engine):
    engine.on_connected()
    for raw in (b"1,2,3", b"1,2,three,4", b"", b"1,2,3,4,5",
                b"99999999999999999999,1,2,3", b"1_000,1,2,3"):
        assert not engine.handle_payload(raw)
    assert not engine.process_sample((1, 2, 3))

    assert engine.samples_dropped == 7
    assert engine.samples_received == 0
    assert engine.accumulator(CalibrationPhase.NEUTRAL).count == 0


def test_stale_tick_after_recalibration_is_ignored(engine, timers, fake_time):
    engine.on_connected()
    engine.process_sample(NEUTRAL)
    engine.start_current_phase()
    old_timer = timers.latest()

    engine.start_calibration()
    assert old_timer.cancelled

    fake_time.advance(5.0)
    old_timer.fire()
    assert engine.phase == CalibrationPhase.NEUTRAL
    assert not engine.is_phase_running


def test_restart_of_running_phase_restarts_countdown(engine, timers, fake_time):
    engine.on_connected()
    engine.process_sample(NEUTRAL)
    engine.start_current_phase()
    first = timers.latest()

    fake_time.advance(2.0)
    engine.start_current_phase()
    second = timers.latest()
    assert first.cancelled and second is not first

    fake_time.advance(1.5)
    first.fire()
    second.fire()
    assert engine.phase == CalibrationPhase.NEUTRAL
    assert engine.countdown == 2


def test_disconnect_resets_to_not_started(engine, recorder, timers, fake_time):
    calibrate(engine, timers, fake_time)
    engine.process_sample(FORWARD)
    assert engine.direction == Direction.FORWARD

    engine.on_disconnected()

    assert engine.phase == CalibrationPhase.NOT_STARTED
    assert not engine.is_calibrated
    assert engine.direction == Direction.NEUTRAL
    assert recorder.of_type(DirectionChanged)[-1].direction == Direction.NEUTRAL
    assert not recorder.of_type(ConnectionChanged)[-1].connected

    # Reconnect restarts from scratch
    engine.on_connected()
    assert engine.phase == CalibrationPhase.NEUTRAL
    assert engine.baselines.get(CalibrationPhase.NEUTRAL) is None


def test_disconnect_mid_phase_invalidates_timer(engine, timers, fake_time):
    engine.on_connected()
    engine.process_sample(NEUTRAL)
    engine.start_current_phase()
    timer = timers.latest()

    engine.on_disconnected()
    fake_time.advance(4.0)
    timer.fire()

    assert timer.cancelled
    assert engine.phase == CalibrationPhase.NOT_STARTED
    assert engine.accumulator(CalibrationPhase.NEUTRAL).count == 0


def test_classification_after_done(engine, recorder, timers, fake_time):
    calibrate(engine, timers, fake_time)
    recorder.clear()

    engine.process_sample((740, 740, 740, 100))  # feature 640 -> 0.8
    update = recorder.of_type(RatiosUpdated)[-1]
    assert update.forward_ratio == pytest.approx(0.8)
    assert update.forward_percent == 80
    assert update.forward_opacity == pytest.approx(0.76)
    assert engine.direction == Direction.NEUTRAL
    assert recorder.of_type(DirectionChanged) == []

    engine.process_sample(FORWARD)
    engine.process_sample(FORWARD)
    changes = recorder.of_type(DirectionChanged)
    assert [c.direction for c in changes] == [Direction.FORWARD]
    assert engine.status == "Volume: Leaning forward (volume up)"

    engine.process_sample(BACKWARD)
    assert engine.direction == Direction.BACKWARD
    assert engine.accumulator(CalibrationPhase.BACKWARD).count == 0


def test_recalibration_from_done(engine, recorder, timers, fake_time):
    calibrate(engine, timers, fake_time)
    engine.process_sample(BACKWARD)

    engine.start_calibration()

    assert engine.phase == CalibrationPhase.NEUTRAL
    assert not engine.baselines.is_complete
    assert engine.direction == Direction.NEUTRAL
    assert engine.ratios.forward == 0.0 and engine.ratios.backward == 0.0


def test_steering_chain_status_texts(clock, bus, timers, fake_time):
    engine = CalibrationEngine(PressureChainConfig.for_steering(), clock=clock, events=bus, timer_factory=timers)
    recorder_texts = []
    bus.subscribe(lambda e: recorder_texts.append(e.text), StatusChanged)

    calibrate(engine, timers, fake_time)
    engine.process_sample((100, 100, 100, 900))

    assert engine.direction == Direction.BACKWARD
    assert recorder_texts[-1] == "Leaning backward (rewind)"
    assert "Calibrating: lean forward…" in recorder_texts


def test_dispatch_routes_ticks(clock, bus, timers, fake_time):
    posted = []
    engine = CalibrationEngine(
        PressureChainConfig.for_steering(), clock=clock, events=bus, timer_factory=timers,
        dispatch=lambda fn, *args: posted.append((fn, args)),
    )
    engine.on_connected()
    engine.start_current_phase()

    timers.latest().fire()

    assert len(posted) == 1
    fn, args = posted[0]
    assert fn == engine.on_tick
    assert args == (engine._timer_generation,)
