import pytest

from leanplay.events import PlaybackModeChanged, VolumeChanged
from leanplay.playback.config import PlaybackConfig
from leanplay.playback.controller import PlaybackModeController, VolumeController
from leanplay.playback.transport import SimulatedTransport
from leanplay.types import Direction, PlaybackMode


@pytest.fixture
def transport():
    return SimulatedTransport(duration=120.0, position=3.5)


@pytest.fixture
def controller(transport, bus):
    controller = PlaybackModeController(transport, PlaybackConfig.without_gating(), bus)
    return controller


def test_fast_forward(controller, transport, recorder):
    controller.set_direction(Direction.FORWARD)
    assert controller.tick() == PlaybackMode.FAST_FORWARD

    assert transport.rate == 2.0
    assert not transport.muted
    assert transport.pitch_correction
    assert recorder.of_type(PlaybackModeChanged)[-1].mode == PlaybackMode.FAST_FORWARD


def test_steady_mode_issues_no_commands(controller, transport):
    controller.set_direction(Direction.FORWARD)
    controller.tick()
    calls = len(transport.calls)

    for _ in range(5):
        controller.tick()

    assert len(transport.calls) == calls


def test_normal_on_start_issues_nothing(controller, transport):
    controller.tick()
    assert transport.calls == []


def test_rewind_fallback_seeks_back_to_start(controller, transport):
    controller.set_direction(Direction.BACKWARD)

    positions = []
    for _ in range(6):
        controller.tick()
        positions.append(transport.position)

    assert positions == [2.5, 1.5, 0.5, 0.0, 0.0, 0.0]
    assert transport.muted
    assert transport.rate == 0.0
    assert transport.calls_named('seek') == [2.5, 1.5, 0.5, 0.0]


def test_rewind_with_reverse_support(bus):
    transport = SimulatedTransport(supports_reverse=True, position=10.0)
    controller = PlaybackModeController(transport, PlaybackConfig.without_gating(), bus)
    controller.set_direction(Direction.BACKWARD)
    controller.tick()

    assert transport.rate == -1.0
    assert transport.muted
    assert transport.calls_named('seek') == []


def test_back_to_normal_unmutes(controller, transport):
    controller.set_direction(Direction.BACKWARD)
    controller.tick()
    controller.set_direction(Direction.NEUTRAL)
    controller.tick()

    assert not transport.muted
    assert transport.rate == 1.0


def test_gaze_gate_forces_normal(transport, bus):
    controller = PlaybackModeController(transport, PlaybackConfig(), bus)
    controller.set_direction(Direction.FORWARD)

    assert controller.tick() == PlaybackMode.NORMAL
    assert transport.rate == 1.0

    controller.set_looking(True)
    assert controller.tick() == PlaybackMode.FAST_FORWARD

    controller.set_looking(False)
    assert controller.tick() == PlaybackMode.NORMAL

    assert controller.toggle_gaze_gating() is False
    assert controller.tick() == PlaybackMode.FAST_FORWARD


def test_force_normal(controller, transport):
    controller.set_direction(Direction.FORWARD)
    controller.tick()
    controller.force_normal()

    assert controller.mode == PlaybackMode.NORMAL
    assert transport.rate == 1.0


def test_rewind_step_from_config():
    assert PlaybackConfig().rewind_step == pytest.approx(1.0)
    assert PlaybackConfig(rewind_speed=4.0).rewind_step == pytest.approx(2.0)


def test_simulated_transport_clamps(transport):
    transport.set_volume(1.7)
    assert transport.volume == 1.0
    transport.seek(-3)
    assert transport.position == 0.0
    transport.set_rate(2.0)
    transport.advance(100.0)
    assert transport.position == transport.duration
    with pytest.raises(ValueError):
        transport.set_rate(-1.0)


# ---------------------------------------------------------------------------
# Volume
# ---------------------------------------------------------------------------

def test_volume_steps_and_clamps(transport, bus, recorder, clock):
    volume = VolumeController(transport, PlaybackConfig(), bus, clock)
    assert volume.volume == 1.0

    volume.on_direction(Direction.FORWARD)
    assert volume.volume == 1.0
    assert recorder.of_type(VolumeChanged)[-1].hud_text == "Volume Up 100%"

    for _ in range(3):
        volume.on_direction(Direction.BACKWARD)
    assert volume.volume == pytest.approx(0.4)
    assert volume.percent == 40
    assert recorder.of_type(VolumeChanged)[-1].hud_text == "Volume Down 40%"

    for _ in range(5):
        volume.on_direction(Direction.BACKWARD)
    assert volume.volume == 0.0

    assert volume.on_direction(Direction.NEUTRAL) is None
    assert volume.volume == 0.0


def test_volume_hud_expires(transport, bus, clock, fake_time):
    volume = VolumeController(transport, PlaybackConfig(initial_volume=0.5), bus, clock)
    assert transport.volume == 0.5

    volume.bump(0.2)
    assert volume.current_hud() == "Volume Up 70%"
    fake_time.advance(0.5)
    assert volume.current_hud() == "Volume Up 70%"
    fake_time.advance(0.4)
    assert volume.current_hud() is None
