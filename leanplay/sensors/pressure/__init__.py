"""
Foot Pressure Sensor Module for leanplay
4-channel insole arrays (3 forefoot + 1 heel) streamed from an ESP32

Architecture:
- Collector:   Raw frame delivery (serial link or synthetic generator)
- Parser:      Frame decoding, malformed frames dropped
- Calibration: Neutral / forward / backward phase state machine per chain
- Baselines:   Per-phase averages and the forefoot-minus-heel feature
- Classifier:  Forward/backward ratios, lean direction, display intensity

Usage:
    engine = CalibrationEngine(PressureChainConfig.for_steering(), clock, events)
    engine.on_connected()          # enters NEUTRAL, waits for start
    engine.start_current_phase()   # 3 s countdown per phase
    engine.handle_payload(b"512,498,530,470")
"""

from .config import PressureChainConfig, STRATEGY_ASYMMETRIC, STRATEGY_SYMMETRIC
from .parser import parse_sample
from .baseline import BaselineStore, BaselineFeatures, FeatureLayout, PhaseAccumulator
from .classifier import (
    RatioPair,
    RatioClassifier,
    DirectionTracker,
    ForceSmoother,
    compute_ratios,
    classify_direction,
    ratio_to_opacity,
    ratio_to_percent,
)
from .calibration import CalibrationEngine
from .collector import SerialPressureCollector, SyntheticPressureCollector, create_collector

__all__ = [
    'PressureChainConfig',
    'STRATEGY_ASYMMETRIC',
    'STRATEGY_SYMMETRIC',
    'parse_sample',
    'BaselineStore',
    'BaselineFeatures',
    'FeatureLayout',
    'PhaseAccumulator',
    'RatioPair',
    'RatioClassifier',
    'DirectionTracker',
    'ForceSmoother',
    'compute_ratios',
    'classify_direction',
    'ratio_to_opacity',
    'ratio_to_percent',
    'CalibrationEngine',
    'SerialPressureCollector',
    'SyntheticPressureCollector',
    'create_collector',
]

__version__ = '1.0.0'
