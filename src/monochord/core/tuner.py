"""
Tuner Tone Engine
=================

Reference tones for tuning a physical instrument. Independent of the drone
engine: it owns a separate SignalGraph and output.

Modes:
    NORMAL        a string sounds while held
    DRONE         click toggles a sustained string
    SWEEP         every string of the instrument, 3 s each, then stop
    OCTAVE_CHECK  root at octaves 2 and 3 together (auto-stop 4 s)
    FIFTH_CHECK   root + fifth at octave 3 (auto-stop 4 s)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..config import AudioConfig, TunerToneConfig, get_default_config
from . import pitch_math
from .audio_backend import AudioBackend, create_audio_backend
from .errors import AudioUnavailableError, StaleHandleError
from .events import RenderListener
from .scheduler import Scheduler, TimerHandle
from .signal_graph import Oscillator, SignalGraph, Voice
from .tuning import DEFAULT_ROOT_OFFSET, NOTE_OFFSETS, Instrument, instrument_strings

if TYPE_CHECKING:
    from .pitch_detector import PitchDetector

logger = logging.getLogger(__name__)

ROOT_OFFSET = DEFAULT_ROOT_OFFSET    # root string in the D-rooted layout
FIFTH_OFFSET = 0                     # A


class TunerMode(Enum):
    NORMAL = "normal"
    DRONE = "drone"
    SWEEP = "sweep"
    OCTAVE_CHECK = "octave"
    FIFTH_CHECK = "fifth"


@dataclass(frozen=True)
class StringInfo:
    """Display info for one instrument string."""
    index: int
    note_offset: int
    octave: int
    frequency: float
    name: str


class TunerToneEngine:
    """
    Plays reference tones for the selected instrument, root and pitch.

    Args:
        scheduler: Timer loop for release, sweep and check timeouts
        backend: Output backend (None = create from config/env)
        listener: Receives the on_tuner_* pushes
        detector: Optional PitchDetector; pressing a string sets its target
    """

    def __init__(self, scheduler: Optional[Scheduler] = None,
                 backend: Optional[AudioBackend] = None,
                 listener: Optional[RenderListener] = None,
                 detector: Optional["PitchDetector"] = None,
                 clock=None,
                 config: Optional[TunerToneConfig] = None,
                 audio_config: Optional[AudioConfig] = None):
        defaults = get_default_config()
        self.config = config or defaults.tuner
        self.audio_config = audio_config or defaults.audio
        self.scheduler = scheduler or Scheduler()
        self.listener = listener or RenderListener()
        self.detector = detector
        self._backend = backend
        self._clock = clock
        self.graph: Optional[SignalGraph] = None

        self.reference_pitch = self.config.reference
        self.root_note = self.config.root
        self.instrument = Instrument(self.config.instrument)

        self.drone_mode = False
        self.sweeping = False
        self.octave_check = False
        self.fifth_check = False
        self.current_frequency = 0.0
        self.playing_string: Optional[int] = None

        self._tones: List[Tuple[Voice, Oscillator]] = []
        self._sweep_timer: Optional[TimerHandle] = None
        self._sweep_index = 0
        self._octave_timer: Optional[TimerHandle] = None
        self._fifth_timer: Optional[TimerHandle] = None

    # ══════════════════════════════════════════════════════════════════════════
    # OUTPUT
    # ══════════════════════════════════════════════════════════════════════════

    def init(self) -> bool:
        if self.graph is not None:
            return True
        try:
            backend = self._backend or create_audio_backend(
                self.audio_config.resolved_backend(),
                sample_rate=self.audio_config.sample_rate,
                buffer_size=self.audio_config.buffer_size,
            )
            graph = SignalGraph(self.audio_config.sample_rate, backend, clock=self._clock)
            graph.open()
        except AudioUnavailableError as e:
            logger.warning("Tuner audio unavailable: %s", e)
            self.listener.on_audio_unavailable(str(e))
            return False
        graph.unlock()
        self.graph = graph
        return True

    def close(self):
        self.stop_sweep()
        self.stop_octave_check()
        self.stop_fifth_check()
        self.stop_tone()
        if self.graph is not None:
            self.graph.close()
            self.graph = None

    @property
    def is_playing(self) -> bool:
        return bool(self._tones)

    @property
    def mode(self) -> TunerMode:
        if self.sweeping:
            return TunerMode.SWEEP
        if self.octave_check:
            return TunerMode.OCTAVE_CHECK
        if self.fifth_check:
            return TunerMode.FIFTH_CHECK
        if self.drone_mode:
            return TunerMode.DRONE
        return TunerMode.NORMAL

    # ══════════════════════════════════════════════════════════════════════════
    # FREQUENCY MATH
    # ══════════════════════════════════════════════════════════════════════════

    def calculate_frequency(self, note_offset: int, octave: int) -> float:
        return pitch_math.calculate_frequency(note_offset, octave, self.reference_pitch, self.root_note)

    def get_note_name(self, note_offset: int, octave: int) -> str:
        return pitch_math.get_note_name(note_offset, octave, self.root_note)

    def strings(self) -> List[StringInfo]:
        return [
            StringInfo(i, offset, octave,
                       self.calculate_frequency(offset, octave),
                       self.get_note_name(offset, octave))
            for i, (offset, octave) in enumerate(instrument_strings(self.instrument))
        ]

    # ══════════════════════════════════════════════════════════════════════════
    # TONES
    # ══════════════════════════════════════════════════════════════════════════

    def _add_tone(self, frequency: float, gain: float, fade_in: float):
        graph = self.graph
        with graph.lock:
            voice = graph.create_voice(f"tone{len(self._tones)}", gain=0.0)
            osc = graph.create_oscillator(frequency)
            voice.attach(osc)
            osc.start()
            graph.set_immediate(voice.gain, 0.0)
            graph.ramp(voice.gain, gain, fade_in)
        self._tones.append((voice, osc))

    def play_tone(self, frequency: float, fade_in: Optional[float] = None) -> bool:
        if not self.init():
            return False
        self.stop_tone()
        fade_in = self.config.fade_in if fade_in is None else fade_in
        self._add_tone(frequency, self.config.single_gain, fade_in)
        self.current_frequency = frequency
        self.listener.on_tuner_frequency(f"{frequency:.2f}")
        logger.debug("Tone %.2f Hz", frequency)
        return True

    def play_two_tones(self, f1: float, f2: float, fade_in: Optional[float] = None) -> bool:
        if not self.init():
            return False
        self.stop_tone()
        fade_in = self.config.fade_in if fade_in is None else fade_in
        self._add_tone(f1, self.config.dual_gain, fade_in)
        self._add_tone(f2, self.config.dual_gain, fade_in)
        self.current_frequency = f1
        self.listener.on_tuner_frequency(f"{f1:.2f} + {f2:.2f}")
        logger.debug("Tones %.2f + %.2f Hz", f1, f2)
        return True

    def stop_tone(self, fade_out: Optional[float] = None):
        """Fade every sounding tone out, then remove it. Safe when silent."""
        fade_out = self.config.fade_out if fade_out is None else fade_out
        tones, self._tones = self._tones, []
        for voice, osc in tones:
            self.graph.ramp(voice.gain, 0.0, fade_out)
            self.scheduler.call_later(fade_out + self.config.release_margin,
                                      self._remove_tone, voice, osc, name="tuner-release")
        if tones:
            self.listener.on_tuner_frequency("—")
        self.current_frequency = 0.0

    def _remove_tone(self, voice: Voice, osc: Oscillator):
        try:
            osc.stop()
        except StaleHandleError:
            logger.debug("Tuner oscillator already stopped")
        if self.graph is not None:
            self.graph.remove_voice(voice)

    def _set_playing_string(self, index: Optional[int]):
        if self.playing_string is not None and self.playing_string != index:
            self.listener.on_tuner_string(self.playing_string, False)
        self.playing_string = index
        if index is not None:
            self.listener.on_tuner_string(index, True)

    # ══════════════════════════════════════════════════════════════════════════
    # SETTINGS
    # ══════════════════════════════════════════════════════════════════════════

    def set_reference_pitch(self, reference: int):
        self.reference_pitch = reference
        if self.detector is not None:
            self.detector.set_reference_pitch(reference)

    def set_root_note(self, note: str):
        if note not in NOTE_OFFSETS:
            raise ValueError(f"Unknown root note: {note!r}")
        self.root_note = note

    def set_instrument(self, instrument):
        self.instrument = Instrument(instrument)
        self.stop_tone()
        self.stop_sweep()
        self._set_playing_string(None)

    # ══════════════════════════════════════════════════════════════════════════
    # STRINGS
    # ══════════════════════════════════════════════════════════════════════════

    def press_string(self, index: int) -> StringInfo:
        """String pressed: plays it (or toggles it in drone mode)."""
        info = self.strings()[index]
        self.stop_octave_check()
        self.stop_fifth_check()
        self.stop_sweep()

        if self.detector is not None:
            self.detector.set_target(info.frequency, info.name)

        if self.drone_mode and self.playing_string == index:
            self.stop_tone()
            self._set_playing_string(None)
            return info

        if self.play_tone(info.frequency):
            self._set_playing_string(index)
        return info

    def release_string(self, index: int):
        if not self.drone_mode and self.playing_string == index:
            self.stop_tone()
            self._set_playing_string(None)

    # ══════════════════════════════════════════════════════════════════════════
    # MODES
    # ══════════════════════════════════════════════════════════════════════════

    def toggle_drone(self) -> bool:
        self.drone_mode = not self.drone_mode
        self.listener.on_tuner_mode(TunerMode.DRONE.value, self.drone_mode)
        if not self.drone_mode:
            self.stop_tone()
            self._set_playing_string(None)
        return self.drone_mode

    def toggle_sweep(self) -> bool:
        if self.sweeping:
            self.stop_sweep()
            return False
        self.stop_octave_check()
        self.stop_fifth_check()
        self.sweeping = True
        self._sweep_index = 0
        self.listener.on_tuner_mode(TunerMode.SWEEP.value, True)
        self._sweep_next()
        return self.sweeping

    def _sweep_next(self):
        self._sweep_timer = None
        strings = self.strings()
        if not self.sweeping or self._sweep_index >= len(strings):
            self.stop_sweep()
            return
        info = strings[self._sweep_index]
        if not self.play_tone(info.frequency):
            self.stop_sweep()
            return
        self._set_playing_string(info.index)
        self._sweep_index += 1
        self._sweep_timer = self.scheduler.call_later(self.config.sweep_dwell, self._sweep_next,
                                                      name="tuner-sweep")

    def stop_sweep(self):
        was_sweeping = self.sweeping
        self.sweeping = False
        if self._sweep_timer is not None:
            self._sweep_timer.cancel()
            self._sweep_timer = None
        if was_sweeping:
            self.stop_tone()
            self._set_playing_string(None)
            self.listener.on_tuner_mode(TunerMode.SWEEP.value, False)

    def _tone_owner_remaining(self) -> bool:
        return self.octave_check or self.fifth_check or self.sweeping or self.drone_mode

    def toggle_octave_check(self) -> bool:
        if self.octave_check:
            self.stop_octave_check()
            return False
        self.stop_fifth_check()
        self.stop_sweep()
        f1 = self.calculate_frequency(ROOT_OFFSET, 2)
        f2 = self.calculate_frequency(ROOT_OFFSET, 3)
        if not self.play_two_tones(f1, f2):
            return False
        self.octave_check = True
        self.listener.on_tuner_mode(TunerMode.OCTAVE_CHECK.value, True)
        self._octave_timer = self.scheduler.call_later(
            self.config.check_duration, self.stop_octave_check, name="octave-check")
        return True

    def stop_octave_check(self):
        was_active = self.octave_check
        self.octave_check = False
        if self._octave_timer is not None:
            self._octave_timer.cancel()
            self._octave_timer = None
        if was_active:
            self.listener.on_tuner_mode(TunerMode.OCTAVE_CHECK.value, False)
            if self.is_playing and not self._tone_owner_remaining():
                self.stop_tone()

    def toggle_fifth_check(self) -> bool:
        if self.fifth_check:
            self.stop_fifth_check()
            return False
        self.stop_octave_check()
        self.stop_sweep()
        f1 = self.calculate_frequency(ROOT_OFFSET, 3)
        f2 = self.calculate_frequency(FIFTH_OFFSET, 3)
        if not self.play_two_tones(f1, f2):
            return False
        self.fifth_check = True
        self.listener.on_tuner_mode(TunerMode.FIFTH_CHECK.value, True)
        self._fifth_timer = self.scheduler.call_later(
            self.config.check_duration, self.stop_fifth_check, name="fifth-check")
        return True

    def stop_fifth_check(self):
        was_active = self.fifth_check
        self.fifth_check = False
        if self._fifth_timer is not None:
            self._fifth_timer.cancel()
            self._fifth_timer = None
        if was_active:
            self.listener.on_tuner_mode(TunerMode.FIFTH_CHECK.value, False)
            if self.is_playing and not self._tone_owner_remaining():
                self.stop_tone()
