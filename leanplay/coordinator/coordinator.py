"""
Control Coordinator
Serializes every control-state mutation onto one thread and manages the
lifecycle of the sensor channels feeding it
"""

import functools
import logging
import queue
import threading
from typing import Any, Callable, Dict, List, Optional

from .clock import CentralClock

logger = logging.getLogger(__name__)


class ControlCoordinator:
    """
    Single-consumer command queue plus sensor registry

    Responsibilities:
    - Accept commands from any context (sensor I/O threads, timer threads,
      operator input) via post()
    - Apply them one at a time, in arrival order, on the control thread
    - Provide the central clock
    - Manage sensor lifecycle (start/stop) and report status
    """

    _STOP = object()

    def __init__(self, clock: Optional[CentralClock] = None):
        """
        Initialize control coordinator

        Args:
            clock: Shared CentralClock. A new one is created when omitted.
        """
        self.clock = clock or CentralClock()

        self._commands: 'queue.Queue[Any]' = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self.is_running = False

        self.commands_executed = 0
        self.commands_failed = 0

        # Sensor registry
        self.sensors: Dict[str, Any] = {}
        self.sensor_configs: Dict[str, Any] = {}

        logger.info("Control Coordinator initialized")

    # ------------------------------------------------------------------
    # Command queue
    # ------------------------------------------------------------------

    def post(self, fn: Callable, *args, **kwargs):
        """
        Queue a command for the control thread. Safe from any thread.

        Args:
            fn: Callable to run on the control thread
            *args, **kwargs: Arguments bound to fn
        """
        self._commands.put(functools.partial(fn, *args, **kwargs))

    def drain(self) -> int:
        """
        Run every queued command on the calling thread.

        Only valid while the control thread is not running; used by tests and
        scripted runs that drive the core synchronously.

        Returns:
            Number of commands executed
        """
        if self.is_running:
            raise RuntimeError("drain() is not allowed while the control thread is running")

        executed = 0
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return executed
            if command is self._STOP:
                continue
            self._execute(command)
            executed += 1

    def pending(self) -> int:
        return self._commands.qsize()

    def start(self):
        """Start the control thread."""
        if self.is_running:
            logger.warning("Control coordinator already running")
            return

        self.is_running = True
        self._thread = threading.Thread(
            target=self._control_loop,
            name="Control-Thread",
            daemon=True
        )
        self._thread.start()
        logger.info("✓ Control thread started")

    def stop(self, timeout: float = 5.0):
        """Stop the control thread after the commands already queued have run."""
        if not self.is_running:
            return

        self._commands.put(self._STOP)
        if self._thread and self._thread.is_alive() and not self.is_control_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Control thread did not stop gracefully")

        self.is_running = False
        logger.info(
            f"✓ Control thread stopped ({self.commands_executed} commands, "
            f"{self.commands_failed} failed)"
        )

    def is_control_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def _control_loop(self):
        logger.info("Control loop started")
        while True:
            command = self._commands.get()
            if command is self._STOP:
                break
            self._execute(command)
        logger.info("Control loop stopped")

    def _execute(self, command: Callable):
        try:
            command()
            self.commands_executed += 1
        except Exception as e:
            self.commands_failed += 1
            logger.error(f"Error executing control command {command}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Sensor registry
    # ------------------------------------------------------------------

    def register_sensor(self, sensor_name: str, sensor_instance: Any, config: Optional[Any] = None):
        """
        Register a sensor with the coordinator

        Args:
            sensor_name: Unique identifier for sensor (e.g., 'steering', 'gaze')
            sensor_instance: Object exposing start()/stop()
            config: Optional sensor configuration
        """
        if sensor_name in self.sensors:
            logger.warning(f"Sensor '{sensor_name}' already registered, replacing")

        self.sensors[sensor_name] = sensor_instance
        if config:
            self.sensor_configs[sensor_name] = config

        logger.info(f"✓ Registered sensor: {sensor_name}")

    def start_sensor(self, sensor_name: str):
        """
        Start a registered sensor

        Args:
            sensor_name: Name of sensor to start
        """
        if sensor_name not in self.sensors:
            logger.error(f"Sensor '{sensor_name}' not registered")
            raise ValueError(f"Unknown sensor: {sensor_name}")

        try:
            self.sensors[sensor_name].start()
            logger.info(f"✓ Started sensor: {sensor_name}")
        except Exception as e:
            logger.error(f"✗ Failed to start sensor '{sensor_name}': {e}", exc_info=True)
            raise

    def stop_sensor(self, sensor_name: str):
        """
        Stop a registered sensor

        Args:
            sensor_name: Name of sensor to stop
        """
        if sensor_name not in self.sensors:
            logger.warning(f"Sensor '{sensor_name}' not registered")
            return

        try:
            self.sensors[sensor_name].stop()
            logger.info(f"✓ Stopped sensor: {sensor_name}")
        except Exception as e:
            logger.error(f"✗ Error stopping sensor '{sensor_name}': {e}", exc_info=True)

    def start_all_sensors(self) -> List[str]:
        """
        Start all registered sensors, continuing past failures

        Returns:
            list: Names of sensors that failed to start
        """
        logger.info(f"Starting {len(self.sensors)} sensors...")

        failed = []
        for sensor_name in list(self.sensors):
            try:
                self.start_sensor(sensor_name)
            except Exception:
                logger.error(f"Failed to start {sensor_name}, continuing with others")
                failed.append(sensor_name)

        if failed:
            logger.warning(f"⚠ Sensors failed to start: {failed}")
        else:
            logger.info("✓ All sensors started")
        return failed

    def stop_all_sensors(self):
        """Stop all registered sensors"""
        logger.info(f"Stopping {len(self.sensors)} sensors...")

        for sensor_name in list(self.sensors):
            self.stop_sensor(sensor_name)

        logger.info("✓ All sensors stopped")

    def get_sensor_status(self, sensor_name: str) -> Optional[dict]:
        """
        Get status of a specific sensor

        Returns:
            dict: Sensor status or None if not found
        """
        if sensor_name not in self.sensors:
            return None

        sensor = self.sensors[sensor_name]
        if hasattr(sensor, 'get_status'):
            return sensor.get_status()

        return {'sensor_name': sensor_name, 'registered': True}

    def get_coordinator_status(self) -> dict:
        """
        Get overall coordinator status

        Returns:
            dict: Coordinator status information
        """
        return {
            'is_running': self.is_running,
            'pending_commands': self.pending(),
            'commands_executed': self.commands_executed,
            'commands_failed': self.commands_failed,
            'registered_sensors': list(self.sensors.keys()),
            'clock_stats': self.clock.get_stats(),
            'sensors': {name: self.get_sensor_status(name) for name in self.sensors},
        }

    def __enter__(self):
        """Context manager entry"""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - cleanup"""
        self.stop_all_sensors()
        self.stop()

    def __repr__(self):
        status = "running" if self.is_running else "stopped"
        return f"<ControlCoordinator(status={status}, sensors={len(self.sensors)})>"
