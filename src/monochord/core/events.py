"""
Core → UI callbacks and the power hint.

The core never renders anything itself: it pushes display state through a
RenderListener. Subclass it and override only what your surface shows.
"""

import logging
from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from .pitch_detector import PitchReading

logger = logging.getLogger(__name__)


class RenderListener:
    """Base listener: every hook is a no-op."""

    # Session
    def on_frequencies(self, left: float, right: float, left_note: str, right_note: str,
                       beat: float, beat_class: str):
        pass

    def on_time(self, display: str, progress: float):
        pass

    def on_phase(self, index: int, name: str, icon: str, guidance: str):
        pass

    def on_phase_markers(self, markers: Sequence[str]):
        pass

    def on_status(self, text: str):
        pass

    def on_session_complete(self):
        pass

    def on_audio_unavailable(self, reason: str):
        pass

    # Effects
    def on_effect(self, effect: str, active: bool, value: Optional[float] = None,
                  label: Optional[str] = None):
        pass

    # Tuner
    def on_tuner_frequency(self, text: str):
        pass

    def on_tuner_string(self, index: int, playing: bool):
        pass

    def on_tuner_mode(self, mode: str, active: bool):
        pass

    # Pitch detector
    def on_pitch(self, reading: Optional["PitchReading"]):
        pass

    def on_microphone_denied(self, message: str):
        pass


class LoggingListener(RenderListener):
    """Headless listener: reports discrete events to the log."""

    def __init__(self, name: str = "monochord.ui"):
        self.log = logging.getLogger(name)
        self._last_phase: Optional[int] = None

    def on_frequencies(self, left, right, left_note, right_note, beat, beat_class):
        self.log.info("L %.2f Hz (%s) | R %.2f Hz (%s) | beat %.2f Hz, %s",
                      left, left_note, right, right_note, beat, beat_class)

    def on_time(self, display, progress):
        self.log.debug("time %s (%.0f%%)", display, progress * 100)

    def on_phase(self, index, name, icon, guidance):
        if index != self._last_phase:
            self._last_phase = index
            self.log.info("%s %s: %s", icon, name, guidance)

    def on_status(self, text):
        self.log.info(text)

    def on_session_complete(self):
        self.log.info("Session complete")

    def on_audio_unavailable(self, reason):
        self.log.warning("Audio unavailable: %s", reason)

    def on_effect(self, effect, active, value=None, label=None):
        if value is None:
            self.log.info("effect %s %s", effect, "on" if active else "off")

    def on_tuner_frequency(self, text):
        self.log.info("tuner %s Hz", text)

    def on_tuner_mode(self, mode, active):
        self.log.info("tuner mode %s %s", mode, "on" if active else "off")

    def on_pitch(self, reading):
        if reading is not None:
            self.log.info("%s %.2f Hz (%+.1f cents, %s)", reading.note,
                          reading.frequency, reading.cents, reading.label)

    def on_microphone_denied(self, message):
        self.log.warning("Microphone unavailable: %s", message)


class MultiListener(RenderListener):
    """Fan one stream of callbacks out to several listeners."""

    def __init__(self, *listeners: RenderListener):
        self.listeners: List[RenderListener] = list(listeners)

    def __getattribute__(self, name):
        if name.startswith("on_"):
            listeners = object.__getattribute__(self, "listeners")

            def fan_out(*args, **kwargs):
                for listener in listeners:
                    getattr(listener, name)(*args, **kwargs)
            return fan_out
        return object.__getattribute__(self, name)


# ══════════════════════════════════════════════════════════════════════════════
# POWER HINT
# ══════════════════════════════════════════════════════════════════════════════

@runtime_checkable
class WakeLock(Protocol):
    """Screen/system sleep inhibitor. Both methods may raise; callers log."""

    def acquire(self) -> None:
        ...

    def release(self) -> None:
        ...


class NullWakeLock:
    """Default hint: tracks the request, inhibits nothing."""

    def __init__(self):
        self.held = False

    def acquire(self) -> None:
        self.held = True

    def release(self) -> None:
        self.held = False
