"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                    MONOCHORD CONFIG - Centralized Parameters                  ║
║                                                                              ║
║   Single source of truth for:                                                ║
║   • Output stream (sample rate, buffer, backend)                             ║
║   • Drone engine fades, smoothing and detune drift                           ║
║   • Tuner tones, pitch detector thresholds                                   ║
║   • Live effect rates, session timing and completion chime                   ║
║                                                                              ║
║   Immutable defaults with runtime overrides (YAML or replace()).             ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════════
# CONFIG DATACLASSES - Immutable parameter containers
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AudioConfig:
    """Output stream settings."""
    sample_rate: int = 44100
    buffer_size: int = 1024
    backend: Optional[str] = None            # None = env var, then auto-detect

    def resolved_backend(self) -> Optional[str]:
        if self.backend:
            return self.backend
        return os.environ.get('MONOCHORD_AUDIO_BACKEND') or os.environ.get('AUDIO_BACKEND')


@dataclass(frozen=True)
class ToneConfig:
    """Binaural drone engine."""
    volume: float = 0.8                      # Master set point after fade-in
    channel_gain: float = 0.7
    fade: float = 3.0                        # Start/stop fade (s)
    transition: float = 2.0                  # Frequency glide (s)
    smoothing: float = 0.1                   # set_target time constant for volume/pan
    detune_interval: float = 2.0
    detune_spread: float = 3.0               # Cents, peak-to-peak
    detune_smoothing: float = 0.5
    detune_reset_smoothing: float = 0.3
    pan_reset_smoothing: float = 0.3
    pulse_rise: float = 0.1
    pulse_fall: float = 0.4
    pulse_intensity: float = 0.15
    unlock_frames: int = 1
    release_margin: float = 0.1              # Teardown after fade + margin


@dataclass(frozen=True)
class TunerToneConfig:
    """Reference tone generator."""
    single_gain: float = 0.4
    dual_gain: float = 0.3
    fade_in: float = 0.1
    fade_out: float = 0.15
    release_margin: float = 0.05
    sweep_dwell: float = 3.0
    check_duration: float = 4.0
    reference: int = 432
    root: str = 'D'
    instrument: str = 'monochord'


@dataclass(frozen=True)
class DetectorConfig:
    """Autocorrelation pitch detector."""
    window: int = 4096
    silence_rms: float = 0.01
    min_frequency: float = 50.0
    max_frequency: float = 1500.0
    in_tune_cents: float = 5.0
    display_cents: float = 50.0
    frame_interval: float = 1.0 / 60.0


@dataclass(frozen=True)
class EffectsConfig:
    pulse_bpm: float = 60.0
    pulse_intensity: float = 0.12
    pan_interval: float = 0.05
    pan_speed: float = 8.0
    breath_interval: float = 0.1
    breath_cycle: float = 8.0
    swell_interval: float = 0.1
    swell_period: float = 30.0
    swell_center: float = 0.85
    swell_depth: float = 0.15


@dataclass(frozen=True)
class ChimeConfig:
    note: str = 'D4'
    gain: float = 0.2
    attack: float = 0.5
    length: float = 5.0
    floor: float = 0.001


@dataclass(frozen=True)
class SessionConfig:
    duration: int = 600
    tick: float = 1.0
    fade_speed: float = 0.7
    preset: str = 'free'
    use_432: bool = True
    chime: ChimeConfig = field(default_factory=ChimeConfig)


_SECTIONS = {
    'audio': AudioConfig,
    'tone': ToneConfig,
    'tuner': TunerToneConfig,
    'detector': DetectorConfig,
    'effects': EffectsConfig,
    'session': SessionConfig,
}


@dataclass(frozen=True)
class MonochordConfig:
    """Master configuration aggregating every section."""
    audio: AudioConfig = field(default_factory=AudioConfig)
    tone: ToneConfig = field(default_factory=ToneConfig)
    tuner: TunerToneConfig = field(default_factory=TunerToneConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    effects: EffectsConfig = field(default_factory=EffectsConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MonochordConfig':
        """Build from a (partial) nested dict; unknown keys raise ValueError."""
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping, got {type(data).__name__}")
        unknown = set(data) - set(_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")
        sections = {}
        for name, section_cls in _SECTIONS.items():
            sections[name] = _build_section(section_cls, data.get(name) or {}, name)
        return cls(**sections)

    def with_overrides(self, **sections) -> 'MonochordConfig':
        return replace(self, **sections)


def _build_section(section_cls, values: Dict[str, Any], path: str):
    known = {f.name: f for f in fields(section_cls)}
    unknown = set(values) - set(known)
    if unknown:
        raise ValueError(f"Unknown keys in '{path}': {sorted(unknown)}")
    kwargs = dict(values)
    if section_cls is SessionConfig and 'chime' in kwargs:
        kwargs['chime'] = _build_section(ChimeConfig, kwargs['chime'] or {}, f"{path}.chime")
    return section_cls(**kwargs)


def load_config(path: str) -> MonochordConfig:
    """Load YAML configuration file."""
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    config = MonochordConfig.from_dict(data)
    logger.info("Loaded config from %s", path)
    return config


# ══════════════════════════════════════════════════════════════════════════════
# GLOBAL DEFAULT CONFIG
# ══════════════════════════════════════════════════════════════════════════════

_default_config: MonochordConfig = MonochordConfig()


def get_default_config() -> MonochordConfig:
    """Get the current default configuration."""
    return _default_config


def set_default_config(config: MonochordConfig) -> None:
    """Set the default configuration."""
    global _default_config
    _default_config = config
