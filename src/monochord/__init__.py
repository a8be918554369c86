"""
Monochord Studio
================

Binaural dual-oscillator drone with guided session timeline, live effects,
instrument tuner and autocorrelation pitch detector.
"""

__version__ = "1.0.0"

from .config import MonochordConfig, get_default_config, load_config, set_default_config
from .core import (
    LiveEffectsEngine, PitchDetector, RenderListener, Scheduler, ToneEngine, TunerToneEngine,
    VirtualClock,
)
from .session import PRESETS, SessionScheduler

__all__ = [
    '__version__',
    'MonochordConfig', 'get_default_config', 'set_default_config', 'load_config',
    'Scheduler', 'VirtualClock', 'RenderListener',
    'ToneEngine', 'TunerToneEngine', 'PitchDetector', 'LiveEffectsEngine',
    'SessionScheduler', 'PRESETS',
]
