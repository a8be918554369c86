"""
Signal Graph - continuous oscillator/gain/pan primitives
=========================================================

Per voice:   oscillator → gain → pan ─┐
                                      ├→ master gain → output backend
Per voice:   oscillator → gain → pan ─┘

Parameters are automated over graph time rather than set directly, so the
audio thread interpolates smoothly between whatever the scheduling side last
requested. Issuing a new ramp on a parameter cancels the remaining portion of
any in-flight ramp on it (most recent wins).

Rendering is VECTORIZED: each buffer evaluates automation curves over a
NumPy time array and integrates instantaneous frequency with a cumulative
sum, keeping phase continuous across buffers and frequency changes.
"""

import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from .audio_backend import AudioBackend
from .errors import AudioUnavailableError, StaleHandleError

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * np.pi

Clock = Callable[[], float]


class FrameClock:
    """Audio-domain clock: time is the number of frames rendered so far."""

    def __init__(self, sample_rate: int):
        self.sample_rate = sample_rate
        self.frames = 0

    def __call__(self) -> float:
        return self.frames / self.sample_rate

    def advance_frames(self, count: int):
        self.frames += count


# ══════════════════════════════════════════════════════════════════════════════
# PARAMETER AUTOMATION
# ══════════════════════════════════════════════════════════════════════════════

class AutomationKind(Enum):
    SET = "set"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    TARGET = "target"


@dataclass(frozen=True)
class AutomationEvent:
    kind: AutomationKind
    time: float
    value: float
    time_constant: float = 0.0


def _constant(value: float):
    return lambda x: np.full_like(x, value, dtype=np.float64) if isinstance(x, np.ndarray) else value


def _linear(t0: float, v0: float, t1: float, v1: float):
    if t1 <= t0:
        return _constant(v1)
    slope = (v1 - v0) / (t1 - t0)
    return lambda x: v0 + slope * (x - t0)


def _exponential(t0: float, v0: float, t1: float, v1: float):
    # Same-sign, non-zero endpoints only; otherwise hold v0 until the end time
    if t1 <= t0 or v0 == 0.0 or v0 * v1 <= 0.0:
        return _constant(v0)
    ratio = v1 / v0
    return lambda x: v0 * np.power(ratio, (x - t0) / (t1 - t0))


def _target(t0: float, v0: float, target: float, time_constant: float):
    if time_constant <= 0.0:
        return _constant(target)
    return lambda x: target + (v0 - target) * np.exp(-(x - t0) / time_constant)


class AudioParam:
    """
    Automatable value over graph time.

    All scheduling is anchored to the owning graph's clock. The hold-based
    setters (set_value, linear_ramp_to, set_target) first freeze the current
    value at "now", so successive requests compose by most-recent-wins.
    """

    def __init__(self, name: str, default_value: float, clock: Clock,
                 min_value: float = -math.inf, max_value: float = math.inf,
                 lock: Optional[threading.RLock] = None):
        self.name = name
        self.default_value = float(default_value)
        self.min_value = min_value
        self.max_value = max_value
        self._clock = clock
        self._lock = lock if lock is not None else threading.RLock()
        self._events: List[AutomationEvent] = []

    def __repr__(self) -> str:
        return f"<AudioParam {self.name}={self.value:.4f} events={len(self._events)}>"

    @property
    def events(self) -> List[AutomationEvent]:
        with self._lock:
            return list(self._events)

    # ── evaluation ──────────────────────────────────────────────────────────

    def _curve(self, t: float):
        """Curve in effect at time t, valid until the next event after t."""
        value = self.default_value
        prev_time = -math.inf
        target = None
        for ev in self._events:
            if ev.time > t:
                if ev.kind is AutomationKind.LINEAR:
                    return _linear(prev_time, value, ev.time, ev.value)
                if ev.kind is AutomationKind.EXPONENTIAL:
                    return _exponential(prev_time, value, ev.time, ev.value)
                break
            if target is not None:
                value = float(target(ev.time))
                target = None
            if ev.kind is AutomationKind.TARGET:
                target = _target(ev.time, value, ev.value, ev.time_constant)
            else:
                value = ev.value
            prev_time = ev.time
        if target is not None:
            return target
        return _constant(value)

    def _clamp(self, value):
        if isinstance(value, np.ndarray):
            return np.clip(value, self.min_value, self.max_value)
        return min(max(value, self.min_value), self.max_value)

    def value_at(self, t: float) -> float:
        with self._lock:
            return float(self._clamp(self._curve(t)(t)))

    @property
    def value(self) -> float:
        """Instantaneous value at the current graph time."""
        return self.value_at(self._clock())

    def sample(self, times: np.ndarray) -> np.ndarray:
        """Vectorized evaluation over an ascending array of times."""
        times = np.asarray(times, dtype=np.float64)
        out = np.empty_like(times)
        if len(times) == 0:
            return out
        with self._lock:
            t_first, t_last = times[0], times[-1]
            cuts = sorted({ev.time for ev in self._events if t_first < ev.time <= t_last})
            starts = [0] + [int(np.searchsorted(times, c, side='left')) for c in cuts]
            ends = starts[1:] + [len(times)]
            for a, b in zip(starts, ends):
                if a >= b:
                    continue
                piece = times[a:b]
                out[a:b] = self._curve(piece[0])(piece)
            return self._clamp(out)

    # ── scheduling ──────────────────────────────────────────────────────────

    def _insert(self, event: AutomationEvent):
        idx = len(self._events)
        while idx > 0 and self._events[idx - 1].time > event.time:
            idx -= 1
        self._events.insert(idx, event)

    def cancel_scheduled_values(self, t: float):
        """Drop every event at or after t."""
        with self._lock:
            self._events = [ev for ev in self._events if ev.time < t]

    def cancel_and_hold(self, t: float) -> float:
        """Freeze the value the parameter has at t and drop everything after."""
        with self._lock:
            held = self.value_at(t)
            # nothing before t can influence times >= t once a SET anchors t
            self._events = [AutomationEvent(AutomationKind.SET, t, held)]
            return held

    def set_value_at_time(self, value: float, t: float):
        with self._lock:
            self._insert(AutomationEvent(AutomationKind.SET, t, float(value)))

    def set_value(self, value: float):
        """Immediate set: takes effect at the next processing instant."""
        with self._lock:
            now = self._clock()
            self._events = [AutomationEvent(AutomationKind.SET, now, float(value))]

    def linear_ramp_to(self, value: float, duration: float):
        """
        Linear ramp from the current value to value over duration seconds.

        Cancels the rest of any in-flight automation. duration <= 0 is an
        immediate set.
        """
        with self._lock:
            if duration <= 0:
                self.set_value(value)
                return
            now = self._clock()
            self.cancel_and_hold(now)
            self._insert(AutomationEvent(AutomationKind.LINEAR, now + duration, float(value)))

    def _ensure_anchor(self):
        if not self._events:
            now = self._clock()
            self._events.append(AutomationEvent(AutomationKind.SET, now, self.value_at(now)))

    def linear_ramp_to_value_at_time(self, value: float, t: float):
        """Append a linear segment ending at absolute time t."""
        with self._lock:
            self._ensure_anchor()
            self._insert(AutomationEvent(AutomationKind.LINEAR, t, float(value)))

    def exponential_ramp_to_value_at_time(self, value: float, t: float):
        """Append an exponential segment ending at absolute time t."""
        with self._lock:
            self._ensure_anchor()
            self._insert(AutomationEvent(AutomationKind.EXPONENTIAL, t, float(value)))

    def set_target(self, value: float, time_constant: float):
        """Exponential approach toward value starting now (smoothed setter)."""
        with self._lock:
            now = self._clock()
            self.cancel_and_hold(now)
            self._insert(AutomationEvent(AutomationKind.TARGET, now, float(value), float(time_constant)))


# ══════════════════════════════════════════════════════════════════════════════
# SOURCES AND VOICES
# ══════════════════════════════════════════════════════════════════════════════

class Oscillator:
    """Sine oscillator with frequency (Hz) and detune (cents) parameters."""

    def __init__(self, frequency: float, sample_rate: int, clock: Clock,
                 lock: Optional[threading.RLock] = None):
        self.sample_rate = sample_rate
        self._clock = clock
        self.frequency = AudioParam("frequency", frequency, clock, 0.0, sample_rate / 2.0, lock)
        self.detune = AudioParam("detune", 0.0, clock, -1200.0, 1200.0, lock)
        self._phase = 0.0
        self.start_time: Optional[float] = None
        self.stop_time: Optional[float] = None

    @property
    def started(self) -> bool:
        return self.start_time is not None

    @property
    def stopped(self) -> bool:
        return self.stop_time is not None

    def start(self, when: Optional[float] = None):
        if self.started:
            raise StaleHandleError("oscillator already started")
        self.start_time = self._clock() if when is None else when

    def stop(self, when: Optional[float] = None):
        if self.stopped:
            raise StaleHandleError("oscillator already stopped")
        self.stop_time = self._clock() if when is None else when

    def render(self, times: np.ndarray) -> np.ndarray:
        freq = self.frequency.sample(times) * np.power(2.0, self.detune.sample(times) / 1200.0)
        inc = TWO_PI * freq / self.sample_rate
        phases = self._phase + np.cumsum(inc) - inc
        self._phase = float((phases[-1] + inc[-1]) % TWO_PI)
        out = np.sin(phases)
        if self.start_time is None:
            return np.zeros_like(out)
        mask = times >= self.start_time
        if self.stop_time is not None:
            mask &= times < self.stop_time
        return np.where(mask, out, 0.0)


class Voice:
    """oscillator → gain → equal-power pan. The oscillator slot is replaceable."""

    def __init__(self, name: str, clock: Clock, gain: float = 1.0, pan: float = 0.0,
                 lock: Optional[threading.RLock] = None):
        self.name = name
        self.oscillator: Optional[Oscillator] = None
        self.gain = AudioParam(f"{name}.gain", gain, clock, 0.0, 1.0, lock)
        self.pan = AudioParam(f"{name}.pan", pan, clock, -1.0, 1.0, lock)

    def attach(self, oscillator: Oscillator) -> Optional[Oscillator]:
        previous, self.oscillator = self.oscillator, oscillator
        return previous

    def detach(self) -> Optional[Oscillator]:
        previous, self.oscillator = self.oscillator, None
        return previous

    @staticmethod
    def pan_gains(pan):
        x = (np.asarray(pan) + 1.0) / 2.0
        return np.cos(x * np.pi / 2.0), np.sin(x * np.pi / 2.0)

    def render(self, times: np.ndarray):
        if self.oscillator is None:
            zeros = np.zeros_like(times)
            return zeros, zeros
        signal = self.oscillator.render(times) * self.gain.sample(times)
        left_gain, right_gain = self.pan_gains(self.pan.sample(times))
        return signal * left_gain, signal * right_gain


# ══════════════════════════════════════════════════════════════════════════════
# GRAPH
# ══════════════════════════════════════════════════════════════════════════════

class SignalGraph:
    """
    A continuous output chain: voices summed into a shared master gain.

    Args:
        sample_rate: Output sample rate
        backend: Output backend (None = render only when called)
        clock: Graph time source; defaults to a FrameClock advanced by render()
        master_gain: Initial master gain
    """

    def __init__(self, sample_rate: int = 44100, backend: Optional[AudioBackend] = None,
                 clock: Optional[Clock] = None, master_gain: float = 1.0):
        self.sample_rate = sample_rate
        self.backend = backend
        self.lock = threading.RLock()
        self.clock = clock if clock is not None else FrameClock(sample_rate)
        self.master_gain = AudioParam("master.gain", master_gain, self.clock, 0.0, 1.0, self.lock)
        self.voices: List[Voice] = []
        self.is_open = False
        self.is_unlocked = False
        self._silent_frames = 0

    @property
    def current_time(self) -> float:
        return self.clock()

    def create_oscillator(self, frequency: float) -> Oscillator:
        return Oscillator(frequency, self.sample_rate, self.clock, self.lock)

    def create_voice(self, name: str, gain: float = 1.0, pan: float = 0.0) -> Voice:
        voice = Voice(name, self.clock, gain, pan, self.lock)
        with self.lock:
            self.voices.append(voice)
        return voice

    def remove_voice(self, voice: Voice):
        with self.lock:
            if voice in self.voices:
                self.voices.remove(voice)

    # The two update primitives

    def set_immediate(self, param: AudioParam, value: float):
        param.set_value(value)

    def ramp(self, param: AudioParam, value: float, duration: float):
        param.linear_ramp_to(value, duration)

    # ── lifecycle ───────────────────────────────────────────────────────────

    def open(self):
        """Start the backend stream. Raises AudioUnavailableError."""
        if self.is_open:
            return
        if self.backend is not None and not self.backend.start(self.render):
            raise AudioUnavailableError(f"{type(self.backend).__name__} failed to start")
        self.is_open = True

    def close(self):
        if self.backend is not None:
            self.backend.close()
        self.is_open = False

    def unlock(self, frames: int = 1):
        """Play a tiny silent buffer once (some platforms gate output on it)."""
        if self.is_unlocked:
            return
        with self.lock:
            self._silent_frames = frames
        self.is_unlocked = True

    # ── rendering (audio thread) ────────────────────────────────────────────

    def render(self, frame_count: int) -> np.ndarray:
        """Render a (frame_count, 2) float32 block at the current graph time."""
        with self.lock:
            start = self.clock()
            times = start + np.arange(frame_count, dtype=np.float64) / self.sample_rate
            left = np.zeros(frame_count, dtype=np.float64)
            right = np.zeros(frame_count, dtype=np.float64)
            for voice in self.voices:
                l, r = voice.render(times)
                left += l
                right += r
            master = self.master_gain.sample(times)
            left *= master
            right *= master
            if self._silent_frames:
                n = min(self._silent_frames, frame_count)
                left[:n] = 0.0
                right[:n] = 0.0
                self._silent_frames -= n
        if isinstance(self.clock, FrameClock):
            self.clock.advance_frames(frame_count)
        out = np.empty((frame_count, 2), dtype=np.float32)
        out[:, 0] = np.clip(left, -1.0, 1.0)
        out[:, 1] = np.clip(right, -1.0, 1.0)
        return out
