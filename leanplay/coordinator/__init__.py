"""
leanplay Control Coordinator
Serialized control context, shared clock and periodic timers
"""

from .clock import CentralClock
from .coordinator import ControlCoordinator
from .timer import RepeatingTimer, repeating_timer_factory

__all__ = [
    'CentralClock',
    'ControlCoordinator',
    'RepeatingTimer',
    'repeating_timer_factory',
]

__version__ = '1.0.0'
