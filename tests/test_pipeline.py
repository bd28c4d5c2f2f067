"""
End-to-end tests of the control pipeline with fake sensors.

The coordinator is driven synchronously with drain(); timers are fired by
hand, so no hardware, threads or real time are involved except where a
test starts the pipeline.
"""

import pytest

from leanplay.events import GazeChanged, PhaseChanged, StatusChanged, VolumeChanged
from leanplay.pipeline import ControlPipeline, PipelineConfig
from leanplay.playback.transport import SimulatedTransport
from leanplay.types import CalibrationPhase, Direction, PlaybackMode

NEUTRAL = (500, 500, 500, 500)
FORWARD = (900, 900, 900, 100)
BACKWARD = (200, 200, 200, 900)


def frame(sample):
    return (','.join(str(v) for v in sample) + '\n').encode('utf-8')


class FakeCollector:
    def __init__(self, config, on_payload, on_connected, on_disconnected):
        self.config = config
        self.on_payload = on_payload
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True
        self.on_connected()

    def stop(self):
        self.stopped = True


class FakeGaze:
    def __init__(self, config, on_sample):
        self.config = config
        self.on_sample = on_sample

    def start(self):
        pass

    def stop(self):
        pass


@pytest.fixture
def transport():
    return SimulatedTransport(position=30.0)


def make_pipeline(config, transport, clock, timers, **kwargs):
    return ControlPipeline(config, transport, clock=clock, timer_factory=timers, **kwargs)


def drain(pipeline):
    return pipeline.coordinator.drain()


def connect_all(pipeline):
    for chain in pipeline.chains:
        pipeline.on_connected(chain)
    drain(pipeline)


def calibrate(pipeline, timers, fake_time):
    for sample in (NEUTRAL, FORWARD, BACKWARD):
        pipeline.start_current_phase()
        drain(pipeline)
        for chain in pipeline.chains:
            for _ in range(3):
                pipeline.on_sample(chain, frame(sample))
        drain(pipeline)

        fake_time.advance(3.1)
        for chain in pipeline.chains:
            timers.latest(f"{chain}-phase-timer").fire()
        drain(pipeline)


@pytest.fixture
def pipeline(transport, clock, timers, fake_time):
    pipeline = make_pipeline(PipelineConfig.for_synthetic(), transport, clock, timers)
    connect_all(pipeline)
    calibrate(pipeline, timers, fake_time)
    return pipeline


def test_both_chains_calibrate(pipeline):
    for engine in pipeline.chains.values():
        assert engine.phase == CalibrationPhase.DONE
        assert engine.is_calibrated


def test_gaze_gate_off_without_gaze_tracking(pipeline):
    assert not pipeline.playback.gaze_gating


def test_steering_forward_fast_forwards_on_tick(pipeline, transport):
    pipeline.on_sample('steering', frame(FORWARD))
    drain(pipeline)
    assert pipeline.playback.direction == Direction.FORWARD
    assert transport.rate == 1.0  # nothing until the tick

    pipeline.tick_playback()
    drain(pipeline)
    assert pipeline.playback.mode == PlaybackMode.FAST_FORWARD
    assert transport.rate == 2.0
    assert pipeline.get_readouts('steering')['forward'] > 0.0


def test_steering_backward_rewinds(pipeline, transport):
    pipeline.on_sample('steering', frame(BACKWARD))
    pipeline.tick_playback()
    pipeline.tick_playback()
    drain(pipeline)

    assert pipeline.playback.mode == PlaybackMode.REWIND
    assert transport.muted
    assert transport.position == pytest.approx(28.0)


def test_volume_chain_steps_volume(pipeline, transport, recorder_for):
    recorder = recorder_for(pipeline)
    pipeline.on_sample('volume', frame(BACKWARD))
    drain(pipeline)
    assert transport.volume == pytest.approx(0.8)

    # Holding the lean is one edge only
    pipeline.on_sample('volume', frame(BACKWARD))
    pipeline.on_sample('volume', frame(NEUTRAL))
    pipeline.on_sample('volume', frame(FORWARD))
    drain(pipeline)

    assert transport.volume == pytest.approx(1.0)
    assert [e.hud_text for e in recorder.of_type(VolumeChanged)] == ["Volume Down 80%", "Volume Up 100%"]
    # Volume leans never change the playback mode
    assert pipeline.playback.direction == Direction.NEUTRAL


def test_recalibration_forces_normal(pipeline, transport):
    pipeline.on_sample('steering', frame(FORWARD))
    pipeline.tick_playback()
    drain(pipeline)
    assert transport.rate == 2.0

    pipeline.start_calibration()
    drain(pipeline)

    assert pipeline.playback.mode == PlaybackMode.NORMAL
    assert transport.rate == 1.0
    assert all(e.phase == CalibrationPhase.NEUTRAL for e in pipeline.chains.values())

    # Leaning during re-calibration changes nothing
    pipeline.on_sample('steering', frame(FORWARD))
    pipeline.tick_playback()
    drain(pipeline)
    assert transport.rate == 1.0


def test_disconnect_resets_chain(pipeline, recorder_for):
    recorder = recorder_for(pipeline)
    pipeline.on_disconnected('volume')
    drain(pipeline)

    assert pipeline.chains['volume'].phase == CalibrationPhase.NOT_STARTED
    assert pipeline.chains['steering'].phase == CalibrationPhase.DONE
    assert recorder.of_type(PhaseChanged)[-1].chain == 'volume'


def test_unknown_chain(pipeline):
    with pytest.raises(ValueError):
        pipeline.on_sample('left-foot', frame(NEUTRAL))


def test_gaze_gating(transport, clock, timers, fake_time, recorder_for):
    config = PipelineConfig.for_synthetic(camera_index=0)
    pipeline = make_pipeline(config, transport, clock, timers)
    recorder = recorder_for(pipeline)
    connect_all(pipeline)
    calibrate(pipeline, timers, fake_time)
    assert pipeline.playback.gaze_gating

    pipeline.on_sample('steering', frame(FORWARD))
    pipeline.tick_playback()
    drain(pipeline)
    assert pipeline.playback.mode == PlaybackMode.NORMAL

    pipeline.on_gaze(True)
    pipeline.tick_playback()
    drain(pipeline)
    assert pipeline.gaze.is_looking
    assert pipeline.playback.mode == PlaybackMode.FAST_FORWARD
    assert recorder.of_type(GazeChanged)[-1].looking
    assert any(e.source == 'gaze' and e.text == "Looking at screen" for e in recorder.of_type(StatusChanged))

    for _ in range(8):
        pipeline.on_gaze(False)
    pipeline.tick_playback()
    drain(pipeline)
    assert not pipeline.gaze.is_looking
    assert pipeline.playback.mode == PlaybackMode.NORMAL

    pipeline.toggle_gaze_gating()
    pipeline.tick_playback()
    drain(pipeline)
    assert not pipeline.playback.gaze_gating
    assert pipeline.playback.mode == PlaybackMode.FAST_FORWARD


def test_start_with_failing_sensors(transport, clock, timers):
    def collector_factory(config, *callbacks):
        if config.name == 'volume':
            raise RuntimeError("port busy")
        return FakeCollector(config, *callbacks)

    def gaze_factory(config, on_sample):
        raise RuntimeError("no camera")

    pipeline = make_pipeline(
        PipelineConfig.for_synthetic(camera_index=0), transport, clock, timers,
        collector_factory=collector_factory, gaze_factory=gaze_factory,
    )
    pipeline.start()
    try:
        assert pipeline.is_running
        status = pipeline.get_status()
        assert status['active_sensors'] == ['steering']
        assert status['failed_sensors'] == ['volume', 'gaze']
        assert timers.latest('playback-timer').started
        assert timers.latest('playback-timer').interval == 0.25
    finally:
        pipeline.stop()

    assert not pipeline.is_running
    assert timers.latest('playback-timer').cancelled
    assert pipeline.coordinator.sensors['steering'].stopped


def test_start_wires_collector_callbacks(transport, clock, timers):
    collectors = []

    def collector_factory(*args):
        collector = FakeCollector(*args)
        collectors.append(collector)
        return collector

    pipeline = make_pipeline(
        PipelineConfig.for_synthetic(camera_index=0), transport, clock, timers,
        collector_factory=collector_factory, gaze_factory=FakeGaze,
    )
    pipeline.start()
    pipeline.stop()

    # Commands posted by the collectors ran on the control thread before it stopped
    assert [c.config.name for c in collectors] == ['steering', 'volume']
    assert all(e.is_connected for e in pipeline.chains.values())
    assert all(e.phase == CalibrationPhase.NEUTRAL for e in pipeline.chains.values())
    assert pipeline.get_status()['active_sensors'] == ['steering', 'volume', 'gaze']


def test_stop_clears_gaze_state(transport, clock, timers, recorder_for):
    pipeline = make_pipeline(
        PipelineConfig.for_synthetic(camera_index=0), transport, clock, timers,
        collector_factory=FakeCollector, gaze_factory=FakeGaze,
    )
    recorder = recorder_for(pipeline)
    pipeline.start()
    pipeline.on_gaze(True)
    pipeline.stop()

    assert not pipeline.gaze.is_looking
    assert not pipeline.playback.is_looking
    assert [e.looking for e in recorder.of_type(GazeChanged)] == [True, False]


def test_recalibration_clears_readouts(pipeline):
    pipeline.on_sample('steering', frame(FORWARD))
    drain(pipeline)
    assert pipeline.get_readouts('steering')['forward'] > 0.0

    pipeline.start_calibration()
    drain(pipeline)
    assert pipeline.get_readouts('steering') == {
        'forward': 0.0, 'backward': 0.0, 'forward_percent': 0, 'backward_percent': 0,
    }
