"""
Binaural Tone Engine
====================

Two sine oscillators, one per ear, each with its own gain and pan, summed
into a shared master gain. Everything audible changes through ramps:

    start      master 0 → target over the fade
    retune     linear frequency glide per channel
    volume     exponential approach (τ = 0.1 s)
    stop       master → 0, oscillators released after the fade

Deferred releases carry the generation they were scheduled in; a start()
that happens during a fade-out bumps the generation so the stale release
never tears down the new oscillators.
"""

import logging
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from ..config import AudioConfig, ToneConfig, get_default_config
from .audio_backend import AudioBackend, create_audio_backend
from .errors import AudioUnavailableError, StaleHandleError
from .events import RenderListener
from .scheduler import Scheduler, TimerHandle
from .signal_graph import Oscillator, SignalGraph, Voice

logger = logging.getLogger(__name__)


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    IDLE = "idle"
    PLAYING = "playing"


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


class ToneEngine:
    """
    Dual-oscillator binaural drone.

    Args:
        scheduler: Timer loop used for detune drift and deferred release
        backend: Output backend (None = create from config/env on init())
        listener: Receives on_audio_unavailable()
        clock: Graph time source (None = audio frame clock)
        config: Tone settings (defaults to the global config)
        rng: Random generator for detune drift
    """

    def __init__(self, scheduler: Optional[Scheduler] = None,
                 backend: Optional[AudioBackend] = None,
                 listener: Optional[RenderListener] = None,
                 clock=None,
                 config: Optional[ToneConfig] = None,
                 audio_config: Optional[AudioConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        defaults = get_default_config()
        self.config = config or defaults.tone
        self.audio_config = audio_config or defaults.audio
        self.scheduler = scheduler or Scheduler()
        self.listener = listener or RenderListener()
        self.rng = rng or np.random.default_rng()
        self._backend = backend
        self._clock = clock

        self.graph: Optional[SignalGraph] = None
        self.left_voice: Optional[Voice] = None
        self.right_voice: Optional[Voice] = None
        self.left_osc: Optional[Oscillator] = None
        self.right_osc: Optional[Oscillator] = None

        self.state = EngineState.UNINITIALIZED
        self.target_master_volume = self.config.volume
        self.detune_active = False
        self._frequencies: Tuple[float, float] = (0.0, 0.0)
        self._stopping = False
        self._generation = 0
        self._detune_timer: Optional[TimerHandle] = None
        self._release_timer: Optional[TimerHandle] = None

    # ══════════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ══════════════════════════════════════════════════════════════════════════

    def init(self) -> bool:
        """Build the graph and open the output. Idempotent."""
        if self.state is not EngineState.UNINITIALIZED:
            return True
        try:
            backend = self._backend
            if backend is None:
                backend = create_audio_backend(
                    self.audio_config.resolved_backend(),
                    sample_rate=self.audio_config.sample_rate,
                    buffer_size=self.audio_config.buffer_size,
                )
            graph = SignalGraph(self.audio_config.sample_rate, backend,
                                clock=self._clock, master_gain=0.0)
            left = graph.create_voice("left", gain=self.config.channel_gain, pan=-1.0)
            right = graph.create_voice("right", gain=self.config.channel_gain, pan=1.0)
            graph.open()
        except AudioUnavailableError as e:
            logger.warning("Audio init failed: %s", e)
            self.listener.on_audio_unavailable(str(e))
            return False

        graph.unlock(self.config.unlock_frames)
        self.graph = graph
        self.left_voice, self.right_voice = left, right
        self.state = EngineState.IDLE
        logger.info("Tone engine ready (%d Hz)", graph.sample_rate)
        return True

    def close(self):
        """Silence immediately and release the output."""
        self._cancel_detune_timer()
        if self._release_timer is not None:
            self._release_timer.cancel()
            self._release_timer = None
        if self.graph is None:
            return
        self._stop_oscillators()
        self.graph.close()
        self.graph = None
        self.state = EngineState.UNINITIALIZED

    @property
    def is_ready(self) -> bool:
        return self.graph is not None

    @property
    def is_playing(self) -> bool:
        return self.state is EngineState.PLAYING

    @property
    def is_stopping(self) -> bool:
        return self._stopping

    @property
    def frequencies(self) -> Tuple[float, float]:
        """Last requested (left, right) frequencies."""
        return self._frequencies

    @property
    def current_master_gain(self) -> float:
        if self.graph is None:
            return 0.0
        return self.graph.master_gain.value

    @property
    def now(self) -> float:
        return self.graph.current_time

    # ══════════════════════════════════════════════════════════════════════════
    # PLAYBACK
    # ══════════════════════════════════════════════════════════════════════════

    def _stop_oscillators(self):
        for voice in (self.left_voice, self.right_voice):
            if voice is None:
                continue
            osc = voice.detach()
            if osc is None:
                continue
            try:
                osc.stop()
            except StaleHandleError:
                logger.debug("Oscillator on %s already stopped", voice.name)
        self.left_osc = self.right_osc = None

    def start(self, left: float, right: float, fade: Optional[float] = None):
        """Start fresh oscillators and fade the master in to the set point."""
        if not self.is_ready:
            return
        fade = self.config.fade if fade is None else fade
        self._generation += 1
        if self._release_timer is not None:
            self._release_timer.cancel()
            self._release_timer = None

        graph = self.graph
        with graph.lock:
            self._stop_oscillators()
            self.left_osc = graph.create_oscillator(left)
            self.right_osc = graph.create_oscillator(right)
            self.left_voice.attach(self.left_osc)
            self.right_voice.attach(self.right_osc)
            self.left_osc.start()
            self.right_osc.start()
            graph.set_immediate(graph.master_gain, 0.0)
            graph.ramp(graph.master_gain, self.target_master_volume, fade)

        self._frequencies = (left, right)
        self._stopping = False
        self.state = EngineState.PLAYING
        logger.info("Playing L %.2f Hz / R %.2f Hz (fade %.1fs)", left, right, fade)

        if self.detune_active:
            self._start_detune_timer()

    def set_frequencies(self, left: float, right: float, transition: Optional[float] = None):
        """Glide both channels to new frequencies; starts playback when idle."""
        transition = self.config.transition if transition is None else transition
        if not self.is_playing or self.left_osc is None or self.right_osc is None:
            self.start(left, right, transition)
            return
        self.graph.ramp(self.left_osc.frequency, left, transition)
        self.graph.ramp(self.right_osc.frequency, right, transition)
        self._frequencies = (left, right)
        logger.debug("Retune → L %.2f / R %.2f over %.1fs", left, right, transition)

    def stop(self, fade: Optional[float] = None):
        """Fade out, then release the oscillators."""
        if not self.is_playing or self._stopping:
            return
        fade = self.config.fade if fade is None else fade
        self._stop_detune()
        self.graph.ramp(self.graph.master_gain, 0.0, fade)
        self._stopping = True
        generation = self._generation
        self._release_timer = self.scheduler.call_later(
            fade + self.config.release_margin, self._release, generation, name="tone-release")
        logger.info("Fading out over %.1fs", fade)

    def _release(self, generation: int):
        if generation != self._generation:
            logger.debug("Skipping stale release (generation %d != %d)", generation, self._generation)
            return
        self._release_timer = None
        if self.graph is not None:
            with self.graph.lock:
                self._stop_oscillators()
        self._stopping = False
        if self.state is EngineState.PLAYING:
            self.state = EngineState.IDLE
        logger.debug("Oscillators released")

    # ══════════════════════════════════════════════════════════════════════════
    # LEVELS AND PAN
    # ══════════════════════════════════════════════════════════════════════════

    def set_master_volume(self, value: float, remember: bool = True):
        """
        Smoothed master level.

        remember=False leaves the user's set point untouched; modulators
        (swell) pass it so that turning them off restores the set point.
        """
        value = _clamp01(value)
        if remember:
            self.target_master_volume = value
        # a fade-out in progress owns the master gain
        if self.graph is not None and not self._stopping:
            self.graph.master_gain.set_target(value, self.config.smoothing)

    def set_left_volume(self, value: float):
        if self.left_voice is not None:
            self.left_voice.gain.set_target(_clamp01(value), self.config.smoothing)

    def set_right_volume(self, value: float):
        if self.right_voice is not None:
            self.right_voice.gain.set_target(_clamp01(value), self.config.smoothing)

    def set_pan(self, pan: float):
        """Shift both channels together; pan in [-1, 1]."""
        if self.left_voice is None:
            return
        left_pan = max(-1.0, min(0.0, -1.0 + pan * 0.5 + 0.5))
        right_pan = min(1.0, max(0.0, 1.0 + pan * 0.5 - 0.5))
        self.left_voice.pan.set_target(left_pan, self.config.smoothing)
        self.right_voice.pan.set_target(right_pan, self.config.smoothing)

    def reset_pan(self):
        if self.left_voice is None:
            return
        self.left_voice.pan.set_target(-1.0, self.config.pan_reset_smoothing)
        self.right_voice.pan.set_target(1.0, self.config.pan_reset_smoothing)

    def pulse_volume(self, intensity: Optional[float] = None):
        """Momentary swell above the set point: rise 0.1 s, fall back by 0.4 s."""
        if not self.is_playing or self._stopping:
            return
        intensity = self.config.pulse_intensity if intensity is None else intensity
        master = self.graph.master_gain
        base = self.target_master_volume
        peak = min(1.0, base * (1 + intensity))
        with self.graph.lock:
            now = self.now
            master.set_value(base)
            master.linear_ramp_to_value_at_time(peak, now + self.config.pulse_rise)
            master.linear_ramp_to_value_at_time(base, now + self.config.pulse_fall)

    # ══════════════════════════════════════════════════════════════════════════
    # DETUNE DRIFT
    # ══════════════════════════════════════════════════════════════════════════

    def set_detune(self, active: bool):
        self.detune_active = bool(active)
        if self.detune_active and self.is_playing:
            self._start_detune_timer()
        else:
            self._stop_detune()

    def _start_detune_timer(self):
        if self._detune_timer is not None:
            return
        self._detune_timer = self.scheduler.call_every(
            self.config.detune_interval, self._drift_detune, name="detune")

    def _cancel_detune_timer(self):
        if self._detune_timer is not None:
            self._detune_timer.cancel()
            self._detune_timer = None

    def _drift_detune(self):
        if self.left_osc is None or self.right_osc is None:
            return
        spread = self.config.detune_spread
        left, right = (self.rng.random(2) - 0.5) * spread
        self.left_osc.detune.set_target(float(left), self.config.detune_smoothing)
        self.right_osc.detune.set_target(float(right), self.config.detune_smoothing)

    def _stop_detune(self):
        self._cancel_detune_timer()
        for osc in (self.left_osc, self.right_osc):
            if osc is not None:
                osc.detune.set_target(0.0, self.config.detune_reset_smoothing)
