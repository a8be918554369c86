"""
Audio core: timers, signal graph, engines, pitch detection and effects.
"""

from .errors import AudioUnavailableError, MicrophoneDeniedError, MonochordError, StaleHandleError
from .events import LoggingListener, MultiListener, NullWakeLock, RenderListener, WakeLock
from .scheduler import Scheduler, TimerHandle, VirtualClock
from .audio_backend import (
    AudioBackend, AudioBackendType, DummyBackend, InputBackend, InputConstraints,
    OfflineBackend, PyAudioBackend, PyAudioInput, RingBuffer, SyntheticInput,
    create_audio_backend,
)
from .signal_graph import AudioParam, FrameClock, Oscillator, SignalGraph, Voice
from .tuning import (
    FREQ_432, FREQ_440, INSTRUMENT_STRINGS, NOTE_OFFSETS, TUNING_432, TUNING_440,
    Instrument, TuningSystem, get_tuning,
)
from .pitch_math import (
    calculate_frequency, cents, classify_beat, frequency_to_note, get_note_name, interval_name,
)
from .tone_engine import EngineState, ToneEngine
from .tuner import StringInfo, TunerMode, TunerToneEngine
from .pitch_detector import DetectorState, PitchDetector, PitchReading, analyze, autocorrelate
from .live_effects import Effect, EffectState, LiveEffectsEngine

__all__ = [
    'MonochordError', 'AudioUnavailableError', 'MicrophoneDeniedError', 'StaleHandleError',
    'RenderListener', 'LoggingListener', 'MultiListener', 'WakeLock', 'NullWakeLock',
    'Scheduler', 'TimerHandle', 'VirtualClock',
    'AudioBackend', 'AudioBackendType', 'PyAudioBackend', 'DummyBackend', 'OfflineBackend',
    'create_audio_backend', 'InputBackend', 'InputConstraints', 'PyAudioInput',
    'SyntheticInput', 'RingBuffer',
    'AudioParam', 'FrameClock', 'Oscillator', 'SignalGraph', 'Voice',
    'FREQ_432', 'FREQ_440', 'NOTE_OFFSETS', 'INSTRUMENT_STRINGS', 'Instrument',
    'TuningSystem', 'TUNING_432', 'TUNING_440', 'get_tuning',
    'calculate_frequency', 'get_note_name', 'frequency_to_note', 'cents',
    'classify_beat', 'interval_name',
    'ToneEngine', 'EngineState',
    'TunerToneEngine', 'TunerMode', 'StringInfo',
    'PitchDetector', 'PitchReading', 'DetectorState', 'autocorrelate', 'analyze',
    'LiveEffectsEngine', 'Effect', 'EffectState',
]
