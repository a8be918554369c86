"""
Session Scheduler
=================

Drives a drone session on the shared timer loop.

Guided mode: fixed duration, a 1 s tick counting down, five phases by
fraction of the duration, optional note sequence stepped evenly across the
session, completion chime at the end. Stop ends the session.

Free mode: no duration, the tick counts elapsed time up, notes are picked
per channel by the user. Stop pauses; start resumes the elapsed count.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from ..config import SessionConfig, get_default_config
from ..core import pitch_math
from ..core.events import NullWakeLock, RenderListener, WakeLock
from ..core.scheduler import Scheduler, TimerHandle
from ..core.tone_engine import ToneEngine
from ..core.tuning import TuningSystem, get_tuning
from . import phases
from .chime import CompletionChime
from .presets import Preset, get_preset

logger = logging.getLogger(__name__)


class SessionState(Enum):
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"        # free mode after stop
    ENDED = "ended"          # guided mode after stop or completion


class ChannelTarget(Enum):
    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"


@dataclass(frozen=True)
class FrequencyPair:
    left: float
    right: float
    left_note: str
    right_note: str

    @property
    def beat(self) -> float:
        return pitch_math.binaural_beat(self.left, self.right)

    @property
    def beat_class(self) -> str:
        return pitch_math.classify_beat(self.left, self.right)


def format_time(seconds: int) -> str:
    """m:ss"""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


class SessionScheduler:
    """
    Owns preset, timing and phase state; plays through a ToneEngine.

    Args:
        engine: The drone (its scheduler is reused unless one is given)
        listener: Receives session display pushes
        wake_lock: Power hint held while running
        chime: Completion chime (None = one on the same scheduler)
    """

    def __init__(self, engine: ToneEngine, scheduler: Optional[Scheduler] = None,
                 listener: Optional[RenderListener] = None,
                 wake_lock: Optional[WakeLock] = None,
                 chime: Optional[CompletionChime] = None,
                 config: Optional[SessionConfig] = None):
        self.engine = engine
        self.scheduler = scheduler or engine.scheduler
        self.listener = listener or RenderListener()
        self.wake_lock = wake_lock or NullWakeLock()
        self.config = config or get_default_config().session
        self.chime = chime or CompletionChime(self.scheduler, config=self.config.chime)

        self.duration = self.config.duration
        self.remaining = self.duration
        self.elapsed = 0
        self.state = SessionState.READY
        self.use_432 = self.config.use_432
        self.preset_key = get_preset(self.config.preset).key
        self.sequence_index = 0
        self.phase_index: Optional[int] = None

        self.free_left_note = 'D3'
        self.free_right_note = 'A3'
        self.selected_channel = ChannelTarget.LEFT
        self.fade_speed = self.config.fade_speed

        self._tick_timer: Optional[TimerHandle] = None
        self._sequence_timer: Optional[TimerHandle] = None

    # ══════════════════════════════════════════════════════════════════════════
    # DERIVED STATE
    # ══════════════════════════════════════════════════════════════════════════

    @property
    def preset(self) -> Preset:
        return get_preset(self.preset_key)

    @property
    def is_free_mode(self) -> bool:
        return self.preset.is_free_mode

    @property
    def is_running(self) -> bool:
        return self.state is SessionState.RUNNING

    @property
    def tuning(self) -> TuningSystem:
        return get_tuning(self.use_432)

    @property
    def progress(self) -> float:
        if self.is_free_mode or self.duration <= 0:
            return 0.0
        return max(0.0, min(1.0, (self.duration - self.remaining) / self.duration))

    @property
    def current_phase(self) -> Optional[phases.SessionPhase]:
        if self.phase_index is None:
            return None
        return phases.PHASES[self.phase_index]

    def current_frequencies(self) -> FrequencyPair:
        table = self.tuning
        if self.is_free_mode:
            left, right = self.free_left_note, self.free_right_note
        else:
            left, right = self.preset.notes_at(self.sequence_index)
        return FrequencyPair(table.frequency(left), table.frequency(right), left, right)

    def timeline(self) -> List[Tuple[phases.SessionPhase, int, int]]:
        return phases.timeline(self.duration)

    # ══════════════════════════════════════════════════════════════════════════
    # DISPLAY PUSHES
    # ══════════════════════════════════════════════════════════════════════════

    def _push_frequencies(self):
        pair = self.current_frequencies()
        self.listener.on_frequencies(pair.left, pair.right, pair.left_note, pair.right_note,
                                     pair.beat, pair.beat_class)

    def _push_phase(self):
        progress = self.progress
        index = phases.phase_index(progress)
        phase = phases.PHASES[index]
        self.phase_index = index
        self.listener.on_phase(index, phase.name, phase.icon, phase.guidance)
        self.listener.on_phase_markers(phases.phase_markers(progress))

    def _retune(self, transition: Optional[float] = None):
        pair = self.current_frequencies()
        self.engine.set_frequencies(pair.left, pair.right, transition)

    # ══════════════════════════════════════════════════════════════════════════
    # SETTINGS
    # ══════════════════════════════════════════════════════════════════════════

    def select_preset(self, key: str):
        preset = get_preset(key)
        was_free = self.is_free_mode
        self.preset_key = preset.key
        self.sequence_index = 0
        logger.info("Preset: %s", preset.name)
        if self.is_running:
            if was_free and not preset.is_free_mode:
                self._restart_countdown()
                self.listener.on_time(format_time(self.remaining), 0.0)
                self._push_phase()
            self._retune()
            self._cancel_sequence()
            if not preset.is_free_mode and preset.has_sequence:
                self._start_sequence()
        self._push_frequencies()

    def set_duration(self, seconds: int) -> bool:
        if self.is_running:
            return False
        if seconds <= 0:
            raise ValueError(f"Duration must be positive, got {seconds}")
        self.duration = int(seconds)
        self.remaining = self.duration
        self.elapsed = 0
        return True

    def set_tuning(self, use_432: bool):
        self.use_432 = bool(use_432)
        logger.info("Tuning: %s", self.tuning.name)
        if self.is_running:
            self._retune()
        self._push_frequencies()

    def toggle_tuning(self) -> bool:
        self.set_tuning(not self.use_432)
        return self.use_432

    def set_detune(self, active: bool):
        self.engine.set_detune(active)

    def set_volume(self, channel: str, percent: float):
        value = percent / 100.0
        if channel == 'left':
            self.engine.set_left_volume(value)
        elif channel == 'right':
            self.engine.set_right_volume(value)
        elif channel == 'master':
            self.engine.set_master_volume(value)
        else:
            raise ValueError(f"Unknown channel: {channel!r}")

    def select_channel(self, target):
        self.selected_channel = ChannelTarget(target)

    def select_note(self, note: str):
        """Assign a note to the selected channel(s) in free play."""
        if note not in self.tuning:
            raise ValueError(f"Unknown note: {note!r}")
        if self.selected_channel in (ChannelTarget.LEFT, ChannelTarget.BOTH):
            self.free_left_note = note
        if self.selected_channel in (ChannelTarget.RIGHT, ChannelTarget.BOTH):
            self.free_right_note = note
        if self.is_running and self.is_free_mode:
            self._retune(self.fade_speed)
        self._push_frequencies()

    def set_fade_speed(self, slider: float) -> float:
        """Slider 0..100 → 0.5..2.0 s glide for free-play note changes."""
        slider = max(0.0, min(100.0, float(slider)))
        self.fade_speed = 0.5 + slider / 100.0 * 1.5
        return self.fade_speed

    # ══════════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ══════════════════════════════════════════════════════════════════════════

    def start(self) -> bool:
        if self.is_running:
            return True
        if not self.engine.init():
            return False

        if not self.is_free_mode:
            self._restart_countdown()

        pair = self.current_frequencies()
        self.engine.start(pair.left, pair.right)
        self._acquire_wake_lock()

        self.state = SessionState.RUNNING
        self._tick_timer = self.scheduler.call_every(self.config.tick, self.tick, name="session-tick")
        if not self.is_free_mode and self.preset.has_sequence:
            self._start_sequence()

        self.listener.on_status('Free play active' if self.is_free_mode else 'Journey in progress')
        self._push_frequencies()
        logger.info("Session started: %s, %s", self.preset.name, self.tuning.name)
        return True

    def stop(self):
        if not self.is_running:
            return
        self.engine.stop()
        self._cancel_tick()
        self._cancel_sequence()
        self._release_wake_lock()

        if self.is_free_mode:
            self.state = SessionState.PAUSED
            self.listener.on_status(f"Paused • {format_time(self.elapsed)} played")
        else:
            self.state = SessionState.ENDED
            self.listener.on_status('Session ended')
        logger.info("Session stopped (%s)", self.state.value)

    def reset(self):
        self.stop()
        self.remaining = self.duration
        self.elapsed = 0
        self.sequence_index = 0
        self.phase_index = None
        self.state = SessionState.READY
        self.listener.on_phase_markers([phases.PENDING] * len(phases.PHASES))
        self.listener.on_time(format_time(0 if self.is_free_mode else self.duration), 0.0)
        self.listener.on_status('Ready to begin')
        self._push_frequencies()

    def tick(self):
        if self.is_free_mode:
            self.elapsed += 1
            self.listener.on_time(format_time(self.elapsed), 0.0)
            return

        self.remaining -= 1
        self.elapsed += 1
        self.listener.on_time(format_time(self.remaining), self.progress)
        self._push_phase()
        if self.remaining <= 0:
            self.complete()

    def complete(self):
        self.stop()
        self.listener.on_session_complete()
        try:
            self.chime.play(self.tuning.frequency(self.chime.config.note))
        except Exception:
            logger.exception("Completion chime failed")

    def on_visibility_restored(self):
        if self.is_running:
            self._acquire_wake_lock()

    # ══════════════════════════════════════════════════════════════════════════
    # TIMERS AND HINTS
    # ══════════════════════════════════════════════════════════════════════════

    def _start_sequence(self):
        if self._sequence_timer is not None:
            return
        step = self.duration / len(self.preset.sequence)
        self._sequence_timer = self.scheduler.call_every(step, self._advance_sequence,
                                                         name="session-sequence")

    def _advance_sequence(self):
        sequence = self.preset.sequence
        if not sequence:
            return
        self.sequence_index = (self.sequence_index + 1) % len(sequence)
        self._retune()
        self._push_frequencies()

    def _restart_countdown(self):
        self.remaining = self.duration
        self.elapsed = 0
        self.sequence_index = 0

    def _cancel_sequence(self):
        if self._sequence_timer is not None:
            self._sequence_timer.cancel()
            self._sequence_timer = None

    def _cancel_tick(self):
        if self._tick_timer is not None:
            self._tick_timer.cancel()
            self._tick_timer = None

    def _acquire_wake_lock(self):
        try:
            self.wake_lock.acquire()
        except Exception as e:
            logger.info("Wake lock not available: %s", e)

    def _release_wake_lock(self):
        try:
            self.wake_lock.release()
        except Exception as e:
            logger.debug("Wake lock release failed: %s", e)
