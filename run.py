"""
leanplay Runner - hands-free playback control from the terminal
Usage:
    python run.py --synthetic --auto-start
    python run.py --steering-port /dev/ttyUSB0 --volume-port /dev/ttyUSB1 --camera 0

Operator commands (type then Enter):
    <Enter>  start the current calibration phase on every chain
    r        re-calibrate
    g        toggle the gaze requirement
    s        print full status
    q        quit
"""
import argparse
import json
import logging
import signal
import sys
import threading
import time

from leanplay.events import (
    AwaitingData,
    BaselineReady,
    PhaseChanged,
    PlaybackModeChanged,
    StatusChanged,
    VolumeChanged,
)
from leanplay.pipeline import SENSOR_STEERING, SENSOR_VOLUME, ControlPipeline, PipelineConfig
from leanplay.playback.transport import SimulatedTransport
from leanplay.sensors.pressure.collector import SyntheticPressureCollector
from leanplay.types import CalibrationPhase

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger('run')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Lean-to-seek media control")
    parser.add_argument('--steering-port', help="Serial device of the steering (right foot) insole")
    parser.add_argument('--volume-port', help="Serial device of the volume (left foot) insole")
    parser.add_argument('--synthetic', action='store_true', help="Use generated insole frames")
    parser.add_argument('--no-gaze', action='store_true', help="Run without the webcam")
    parser.add_argument('--camera', type=int, default=0, help="Webcam index (default 0)")
    parser.add_argument('--no-gating', action='store_true', help="Do not require looking at the screen")
    parser.add_argument('--reverse', action='store_true', help="Simulated player supports reverse playback")
    parser.add_argument('--duration', type=float, default=600.0, help="Simulated media length in seconds")
    parser.add_argument('--auto-start', action='store_true', help="Start every calibration phase as soon as it is ready")
    parser.add_argument('--log-file', help="Also write DEBUG logs to this file")
    args = parser.parse_args(argv)

    if not args.synthetic and not args.steering_port:
        parser.error("--steering-port is required unless --synthetic is given")
    return args


def build_config(args) -> PipelineConfig:
    camera = None if args.no_gaze else args.camera
    if args.synthetic:
        config = PipelineConfig.for_synthetic(camera_index=camera)
    else:
        config = PipelineConfig.for_serial(args.steering_port, args.volume_port, camera_index=camera)
    if args.no_gating:
        config.playback.gaze_gating = False
    return config


def attach_console(pipeline: ControlPipeline, auto_start: bool):
    """Log operator-facing events and optionally drive calibration hands-free."""
    events = pipeline.events

    def on_status(event: StatusChanged):
        logger.info(f"[{event.source}] {event.text}")

    def on_volume(event: VolumeChanged):
        logger.info(f"🔊 {event.hud_text}")

    def on_mode(event: PlaybackModeChanged):
        logger.info(f"▶ {event.previous.value} → {event.mode.value}")

    def on_awaiting(event: AwaitingData):
        logger.warning(f"⚠ [{event.chain}] {event.phase.value} phase has no data yet")

    def on_baseline(event: BaselineReady):
        averages = ', '.join(f"{v:.1f}" for v in event.averages)
        logger.info(f"✓ [{event.chain}] {event.phase.value} baseline [{averages}] ({event.sample_count} samples)")

    def on_phase(event: PhaseChanged):
        collector = pipeline.coordinator.sensors.get(event.chain)
        if isinstance(collector, SyntheticPressureCollector):
            # The generated wearer follows the calibration prompts
            collector.stance(event.phase.value if event.phase.is_accumulating else None)
        if auto_start and event.phase.is_accumulating:
            pipeline.coordinator.post(pipeline.chains[event.chain].start_current_phase)

    events.subscribe(on_status, StatusChanged)
    events.subscribe(on_volume, VolumeChanged)
    events.subscribe(on_mode, PlaybackModeChanged)
    events.subscribe(on_awaiting, AwaitingData)
    events.subscribe(on_baseline, BaselineReady)
    events.subscribe(on_phase, PhaseChanged)


def status_line(pipeline: ControlPipeline) -> str:
    parts = []
    for name in (SENSOR_STEERING, SENSOR_VOLUME):
        engine = pipeline.chains.get(name)
        if engine is None:
            continue
        if engine.phase == CalibrationPhase.DONE:
            readout = pipeline.get_readouts(name)
            parts.append(
                f"{name}: {engine.direction.value} "
                f"(fwd {readout['forward_percent']}% / back {readout['backward_percent']}%)"
            )
        else:
            running = 'running' if engine.is_phase_running else 'ready'
            parts.append(f"{name}: {engine.phase.value} {running} {engine.countdown}s")

    transport = pipeline.transport
    parts.append(f"gaze: {'on' if pipeline.gaze.is_looking else 'off'}")
    parts.append(f"mode: {pipeline.playback.mode.value}")
    parts.append(f"pos: {transport.position:.1f}s")
    parts.append(f"vol: {pipeline.volume.percent}%")
    return ' | '.join(parts)


def read_commands(pipeline: ControlPipeline, stop_event: threading.Event):
    """Operator input on stdin; runs on its own daemon thread."""
    for line in sys.stdin:
        command = line.strip().lower()
        if command == '':
            pipeline.start_current_phase()
        elif command == 'r':
            pipeline.start_calibration()
        elif command == 'g':
            pipeline.toggle_gaze_gating()
        elif command == 's':
            print(json.dumps(pipeline.get_status(), indent=2, default=str))
        elif command == 'q':
            break
        else:
            print("Commands: <Enter> start phase | r re-calibrate | g gaze requirement | s status | q quit")
    stop_event.set()


def main(argv=None):
    args = parse_args(argv)

    if args.log_file:
        fh = logging.FileHandler(args.log_file)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        root = logging.getLogger()
        root.setLevel(logging.DEBUG)
        root.handlers[0].setLevel(logging.INFO)
        root.addHandler(fh)

    transport = SimulatedTransport(duration=args.duration, supports_reverse=args.reverse)
    pipeline = ControlPipeline(build_config(args), transport)
    attach_console(pipeline, args.auto_start)

    stop_event = threading.Event()

    # Handle SIGINT / SIGTERM gracefully
    def shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping pipeline...")
        stop_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    pipeline.start()
    logger.info(f"✓ Pipeline active: {pipeline.get_status()['active_sensors']}")
    print("Commands: <Enter> start phase | r re-calibrate | g gaze requirement | s status | q quit")

    threading.Thread(target=read_commands, args=(pipeline, stop_event), name="Operator-Input", daemon=True).start()

    last = time.monotonic()
    last_report = last
    while not stop_event.wait(pipeline.config.playback.tick_interval):
        now = time.monotonic()
        pipeline.coordinator.post(transport.advance, now - last)
        last = now
        if now - last_report >= 2.0:
            logger.info(status_line(pipeline))
            last_report = now

    pipeline.stop()
    logger.info(f"Final: {status_line(pipeline)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
