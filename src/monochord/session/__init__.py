"""
Session layer: presets, phases, completion chime and the session scheduler.
"""

from .presets import PRESETS, Preset, get_preset, validate_presets
from .phases import PHASES, SessionPhase, current_phase, phase_index, phase_markers, timeline
from .chime import CompletionChime
from .controller import ChannelTarget, FrequencyPair, SessionScheduler, SessionState, format_time

__all__ = [
    'PRESETS', 'Preset', 'get_preset', 'validate_presets',
    'PHASES', 'SessionPhase', 'current_phase', 'phase_index', 'phase_markers', 'timeline',
    'CompletionChime',
    'SessionScheduler', 'SessionState', 'ChannelTarget', 'FrequencyPair', 'format_time',
]
