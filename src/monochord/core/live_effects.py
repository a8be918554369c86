"""
Live Effects
============

Four independent periodic modulations layered over a playing drone:

    pulse       pulse_volume() once per beat
    pan drift   bounce a pan position between -1 and +1
    breath      inhale/exhale pacing (display only, no audio)
    swell       slow sinusoidal master level around the user's set point

Every effect owns its own timer and phase accumulator and reaches the engine
only through ToneEngine's public methods; stopping one leaves the others
untouched. Effects never start or restart playback.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from ..config import EffectsConfig, get_default_config
from .events import RenderListener
from .scheduler import Scheduler, TimerHandle
from .tone_engine import ToneEngine

logger = logging.getLogger(__name__)


class Effect(Enum):
    PULSE = "pulse"
    PAN_DRIFT = "pan"
    BREATH = "breath"
    SWELL = "swell"


@dataclass
class EffectState:
    active: bool = False
    rate: float = 0.0                 # BPM for pulse, seconds for the others
    phase: float = 0.0
    timer: Optional[TimerHandle] = None


class LiveEffectsEngine:
    """
    Periodic modulators driving a ToneEngine.

    Args:
        engine: The drone to modulate
        scheduler: Timer loop (normally the engine's own)
        listener: Receives on_effect(effect, active, value, label)
    """

    def __init__(self, engine: ToneEngine, scheduler: Optional[Scheduler] = None,
                 listener: Optional[RenderListener] = None,
                 config: Optional[EffectsConfig] = None):
        self.engine = engine
        self.scheduler = scheduler or engine.scheduler
        self.listener = listener or RenderListener()
        self.config = config or get_default_config().effects

        self.states: Dict[Effect, EffectState] = {
            Effect.PULSE: EffectState(rate=self.config.pulse_bpm),
            Effect.PAN_DRIFT: EffectState(rate=self.config.pan_speed),
            Effect.BREATH: EffectState(rate=self.config.breath_cycle),
            Effect.SWELL: EffectState(rate=self.config.swell_period),
        }
        self.pan_position = 0.0
        self.pan_direction = 1
        self.breath_label = "inhale"
        self.swell_multiplier = 1.0

    def is_active(self, effect: Effect) -> bool:
        return self.states[Effect(effect)].active

    def toggle(self, effect) -> bool:
        effect = Effect(effect)
        start, stop = {
            Effect.PULSE: (self.start_pulse, self.stop_pulse),
            Effect.PAN_DRIFT: (self.start_pan_drift, self.stop_pan_drift),
            Effect.BREATH: (self.start_breath, self.stop_breath),
            Effect.SWELL: (self.start_swell, self.stop_swell),
        }[effect]
        if self.states[effect].active:
            stop()
            return False
        start()
        return True

    def _arm(self, effect: Effect, interval: float, callback) -> bool:
        state = self.states[effect]
        if state.timer is not None:
            return False
        state.active = True
        state.timer = self.scheduler.call_every(interval, callback, name=effect.value)
        self.listener.on_effect(effect.value, True)
        logger.debug("Effect %s on (every %.3fs)", effect.value, interval)
        return True

    def _disarm(self, effect: Effect) -> bool:
        state = self.states[effect]
        was_active = state.active
        if state.timer is not None:
            state.timer.cancel()
            state.timer = None
        state.active = False
        if was_active:
            self.listener.on_effect(effect.value, False)
            logger.debug("Effect %s off", effect.value)
        return was_active

    # ══════════════════════════════════════════════════════════════════════════
    # PULSE
    # ══════════════════════════════════════════════════════════════════════════

    @property
    def pulse_bpm(self) -> float:
        return self.states[Effect.PULSE].rate

    def set_pulse_bpm(self, bpm: float):
        if bpm <= 0:
            raise ValueError(f"BPM must be positive, got {bpm}")
        self.states[Effect.PULSE].rate = float(bpm)
        if self.states[Effect.PULSE].active:
            self.stop_pulse()
            self.start_pulse()

    def start_pulse(self) -> bool:
        return self._arm(Effect.PULSE, 60.0 / self.pulse_bpm, self._pulse_tick)

    def _pulse_tick(self):
        self.engine.pulse_volume(self.config.pulse_intensity)

    def stop_pulse(self):
        self._disarm(Effect.PULSE)

    # ══════════════════════════════════════════════════════════════════════════
    # PAN DRIFT
    # ══════════════════════════════════════════════════════════════════════════

    def set_pan_speed(self, seconds: float):
        """Full sweep duration; takes effect on the next step."""
        if seconds <= 0:
            raise ValueError(f"Pan speed must be positive, got {seconds}")
        self.states[Effect.PAN_DRIFT].rate = float(seconds)

    def start_pan_drift(self) -> bool:
        if self.states[Effect.PAN_DRIFT].timer is not None:
            return False
        self.pan_position = 0.0
        self.pan_direction = 1
        return self._arm(Effect.PAN_DRIFT, self.config.pan_interval, self._pan_tick)

    def _pan_tick(self):
        speed = self.states[Effect.PAN_DRIFT].rate
        step = 2.0 / (speed * (1.0 / self.config.pan_interval))
        self.pan_position += step * self.pan_direction
        if self.pan_position >= 1.0:
            self.pan_position = 1.0
            self.pan_direction = -1
        elif self.pan_position <= -1.0:
            self.pan_position = -1.0
            self.pan_direction = 1
        self.engine.set_pan(self.pan_position)
        self.listener.on_effect(Effect.PAN_DRIFT.value, True, (self.pan_position + 1) / 2 * 100)

    def stop_pan_drift(self):
        if self._disarm(Effect.PAN_DRIFT):
            self.engine.reset_pan()
            self.pan_position = 0.0
            self.listener.on_effect(Effect.PAN_DRIFT.value, False, 50.0)

    # ══════════════════════════════════════════════════════════════════════════
    # BREATH GUIDE
    # ══════════════════════════════════════════════════════════════════════════

    def set_breath_cycle(self, seconds: float):
        if seconds <= 0:
            raise ValueError(f"Breath cycle must be positive, got {seconds}")
        self.states[Effect.BREATH].rate = float(seconds)

    def start_breath(self) -> bool:
        if self.states[Effect.BREATH].timer is not None:
            return False
        self.states[Effect.BREATH].phase = 0.0
        self.breath_label = "inhale"
        return self._arm(Effect.BREATH, self.config.breath_interval, self._breath_tick)

    def _breath_tick(self):
        state = self.states[Effect.BREATH]
        state.phase += self.config.breath_interval
        if state.phase >= state.rate:
            state.phase = 0.0
        self.breath_label = "inhale" if state.phase < state.rate / 2 else "exhale"
        self.listener.on_effect(Effect.BREATH.value, True, state.phase / state.rate, self.breath_label)

    def stop_breath(self):
        if self._disarm(Effect.BREATH):
            self.breath_label = "inhale"

    # ══════════════════════════════════════════════════════════════════════════
    # VOLUME SWELL
    # ══════════════════════════════════════════════════════════════════════════

    def set_swell_period(self, seconds: float):
        if seconds <= 0:
            raise ValueError(f"Swell period must be positive, got {seconds}")
        self.states[Effect.SWELL].rate = float(seconds)

    def start_swell(self) -> bool:
        if self.states[Effect.SWELL].timer is not None:
            return False
        self.states[Effect.SWELL].phase = 0.0
        return self._arm(Effect.SWELL, self.config.swell_interval, self._swell_tick)

    def _swell_tick(self):
        state = self.states[Effect.SWELL]
        state.phase += self.config.swell_interval
        if state.phase >= state.rate:
            state.phase = 0.0
        swell = math.sin(state.phase / state.rate * 2 * math.pi)
        self.swell_multiplier = self.config.swell_center + swell * self.config.swell_depth
        if self.engine.is_playing and not self.engine.is_stopping:
            # the set point is re-read every tick so manual volume changes stick
            self.engine.set_master_volume(self.engine.target_master_volume * self.swell_multiplier,
                                          remember=False)
        self.listener.on_effect(Effect.SWELL.value, True, 35 + (swell + 1) / 2 * 65)

    def stop_swell(self):
        if self._disarm(Effect.SWELL):
            self.swell_multiplier = 1.0
            if self.engine.is_playing:
                self.engine.set_master_volume(self.engine.target_master_volume)
            self.listener.on_effect(Effect.SWELL.value, False, 50.0)

    # ══════════════════════════════════════════════════════════════════════════

    def stop_all(self):
        self.stop_pulse()
        self.stop_pan_drift()
        self.stop_breath()
        self.stop_swell()
