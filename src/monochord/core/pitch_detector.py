"""
Autocorrelation Pitch Detector
==============================

Per frame:
    1. RMS below the silence threshold → no pitch
    2. lag-domain autocorrelation of the whole window (FFT, zero-padded to 2N
       so it equals the direct linear sum)
    3. skip the initial descending run (lag 0 is always the global maximum)
    4. strongest correlation beyond that point
    5. parabolic interpolation through the peak and its two neighbours
    6. f = sample_rate / lag, rejected outside [50, 1500] Hz
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from ..config import AudioConfig, DetectorConfig, get_default_config
from . import pitch_math
from .audio_backend import InputBackend, InputConstraints, PyAudioInput
from .errors import MicrophoneDeniedError
from .events import RenderListener
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


def _parabolic_offset(y1: float, y2: float, y3: float) -> float:
    denom = 2 * (2 * y2 - y1 - y3)
    if denom == 0:
        return 0.0
    return (y3 - y1) / denom


def autocorrelate(buffer: np.ndarray, sample_rate: float,
                  silence_rms: float = 0.01,
                  min_frequency: float = 50.0,
                  max_frequency: float = 1500.0) -> Optional[float]:
    """
    Estimate the fundamental frequency of a window of samples.

    Returns:
        Frequency in Hz, or None for a "no signal" frame (too quiet, no
        periodicity, or outside [min_frequency, max_frequency]).
    """
    x = np.asarray(buffer, dtype=np.float64)
    size = len(x)
    if size < 4:
        return None

    rms = math.sqrt(float(np.mean(x * x)))
    if rms < silence_rms:
        return None

    spectrum = np.fft.rfft(x, 2 * size)
    corr = np.fft.irfft(spectrum * np.conj(spectrum), 2 * size)[:size]

    # end of the initial descending run
    rising = np.flatnonzero(np.diff(corr) >= 0)
    if len(rising) == 0:
        return None
    start = int(rising[0])
    if start >= size - 2:
        return None

    peak = start + int(np.argmax(corr[start:size - 1]))

    lag = float(peak)
    if peak > 0:
        lag += _parabolic_offset(corr[peak - 1], corr[peak], corr[peak + 1])
    if lag <= 0:
        return None

    frequency = sample_rate / lag
    if frequency < min_frequency or frequency > max_frequency:
        return None
    return frequency


# ══════════════════════════════════════════════════════════════════════════════
# READINGS
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PitchReading:
    """One detection frame, ready for a tuning meter."""
    frequency: float
    note: str
    nearest_frequency: float
    cents: float                  # unclamped
    needle_cents: float           # clamped for display
    needle_position: float        # 0..100, 50 = centre
    in_tune: bool
    label: str                    # "in-tune" | "flat" | "sharp"
    target_frequency: float
    target_name: Optional[str] = None

    @property
    def cents_text(self) -> str:
        rounded = round(self.cents)
        return f"+{rounded} cents" if self.cents > 0 and rounded else f"{rounded} cents"


def analyze(frequency: float, reference: float = 432.0,
            target: Optional[float] = None, target_name: Optional[str] = None,
            in_tune_cents: float = 5.0, display_cents: float = 50.0) -> PitchReading:
    """Nearest note and deviation from target (or from the nearest note)."""
    note = pitch_math.frequency_to_note(frequency, reference)
    target_frequency = target or note.frequency
    cents = pitch_math.cents(frequency, target_frequency)
    needle = max(-display_cents, min(display_cents, cents))

    if abs(cents) <= in_tune_cents:
        label = "in-tune"
    elif cents < 0:
        label = "flat"
    else:
        label = "sharp"

    return PitchReading(
        frequency=frequency,
        note=note.name,
        nearest_frequency=note.frequency,
        cents=cents,
        needle_cents=needle,
        needle_position=50.0 + needle * 50.0 / display_cents,
        in_tune=label == "in-tune",
        label=label,
        target_frequency=target_frequency,
        target_name=target_name if target else note.name,
    )


# ══════════════════════════════════════════════════════════════════════════════
# DETECTOR LOOP
# ══════════════════════════════════════════════════════════════════════════════

class DetectorState(Enum):
    IDLE = "idle"
    LISTENING = "listening"


class PitchDetector:
    """
    Microphone → autocorrelation → PitchReading, once per frame.

    Args:
        scheduler: Timer loop that paces detection frames
        input_backend: Sample source (None = PyAudio microphone)
        listener: Receives on_pitch / on_microphone_denied
    """

    def __init__(self, scheduler: Optional[Scheduler] = None,
                 input_backend: Optional[InputBackend] = None,
                 listener: Optional[RenderListener] = None,
                 config: Optional[DetectorConfig] = None,
                 audio_config: Optional[AudioConfig] = None,
                 reference_pitch: float = 432.0):
        defaults = get_default_config()
        self.config = config or defaults.detector
        audio_config = audio_config or defaults.audio
        self.scheduler = scheduler or Scheduler()
        self.listener = listener or RenderListener()
        self.input = input_backend or PyAudioInput(audio_config.sample_rate, self.config.window)
        self.reference_pitch = reference_pitch
        self.state = DetectorState.IDLE
        self.target_frequency: Optional[float] = None
        self.target_name: Optional[str] = None
        self.last_reading: Optional[PitchReading] = None
        self._frame_timer: Optional[TimerHandle] = None

    @property
    def is_listening(self) -> bool:
        return self.state is DetectorState.LISTENING

    def start(self) -> bool:
        if self.is_listening:
            return True
        try:
            self.input.open(InputConstraints())
        except MicrophoneDeniedError as e:
            logger.warning("Microphone access denied: %s", e)
            self.listener.on_microphone_denied(str(e))
            return False
        self.state = DetectorState.LISTENING
        self._frame_timer = self.scheduler.call_every(
            self.config.frame_interval, self.detect_once, name="pitch-detect")
        logger.info("Pitch detector listening")
        return True

    def stop(self):
        if self._frame_timer is not None:
            self._frame_timer.cancel()
            self._frame_timer = None
        was_listening = self.is_listening
        self.input.close()
        self.state = DetectorState.IDLE
        self.last_reading = None
        self.listener.on_pitch(None)
        if was_listening:
            logger.info("Pitch detector stopped")

    def toggle(self) -> bool:
        if self.is_listening:
            self.stop()
            return False
        return self.start()

    def set_target(self, frequency: float, name: Optional[str] = None):
        self.target_frequency = frequency
        self.target_name = name

    def clear_target(self):
        self.target_frequency = None
        self.target_name = None

    def set_reference_pitch(self, reference: float):
        self.reference_pitch = reference

    def detect_once(self) -> Optional[PitchReading]:
        """Analyze the current window; None is a normal no-signal frame."""
        window = self.input.read_window()
        frequency = autocorrelate(window, self.input.sample_rate,
                                  self.config.silence_rms,
                                  self.config.min_frequency,
                                  self.config.max_frequency)
        if frequency is None:
            return None
        reading = analyze(frequency, self.reference_pitch,
                          self.target_frequency, self.target_name,
                          self.config.in_tune_cents, self.config.display_cents)
        self.last_reading = reading
        self.listener.on_pitch(reading)
        return reading
