"""
Shared fixtures: a virtual-time scheduler, offline audio graphs on the same
clock, and a listener that records every display push.
"""

import logging
import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from monochord.config import MonochordConfig, set_default_config
from monochord.core.audio_backend import AudioBackend, OfflineBackend
from monochord.core.events import RenderListener
from monochord.core.scheduler import Scheduler, VirtualClock
from monochord.core.tone_engine import ToneEngine
from monochord.core.tuner import TunerToneEngine
from monochord import logging_config
from monochord.session.chime import CompletionChime
from monochord.session.controller import SessionScheduler


class RecordingListener(RenderListener):
    """Keeps (hook, *args) for every call."""

    def __init__(self):
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)

    def named(self, name):
        return [call[1:] for call in self.calls if call[0] == name]

    def last(self, name):
        found = self.named(name)
        return found[-1] if found else None

    def on_frequencies(self, *args):
        self._record('on_frequencies', *args)

    def on_time(self, *args):
        self._record('on_time', *args)

    def on_phase(self, *args):
        self._record('on_phase', *args)

    def on_phase_markers(self, markers):
        self._record('on_phase_markers', list(markers))

    def on_status(self, text):
        self._record('on_status', text)

    def on_session_complete(self):
        self._record('on_session_complete')

    def on_audio_unavailable(self, reason):
        self._record('on_audio_unavailable', reason)

    def on_effect(self, *args):
        self._record('on_effect', *args)

    def on_tuner_frequency(self, text):
        self._record('on_tuner_frequency', text)

    def on_tuner_string(self, index, playing):
        self._record('on_tuner_string', index, playing)

    def on_tuner_mode(self, mode, active):
        self._record('on_tuner_mode', mode, active)

    def on_pitch(self, reading):
        self._record('on_pitch', reading)

    def on_microphone_denied(self, message):
        self._record('on_microphone_denied', message)


class FailingBackend(AudioBackend):
    """Output that never opens."""

    def start(self, callback):
        return False

    def stop(self):
        pass


@pytest.fixture(autouse=True)
def default_config():
    set_default_config(MonochordConfig())
    yield
    set_default_config(MonochordConfig())


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo handlers and levels installed by CLI runs."""
    root = logging.getLogger()
    level = root.level
    levels = {name: logging.getLogger(name).level for name in logging_config.LOGGER_NAMES}
    yield
    while logging_config._installed_handlers:
        root.removeHandler(logging_config._installed_handlers.pop())
    root.setLevel(level)
    for name, value in levels.items():
        logging.getLogger(name).setLevel(value)


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock)


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def engine(scheduler, clock, listener):
    engine = ToneEngine(scheduler, backend=OfflineBackend(), listener=listener,
                        clock=clock, rng=np.random.default_rng(7))
    assert engine.init()
    return engine


@pytest.fixture
def tuner(scheduler, clock, listener):
    return TunerToneEngine(scheduler, backend=OfflineBackend(), listener=listener, clock=clock)


@pytest.fixture
def chime(scheduler, clock):
    return CompletionChime(scheduler, backend_factory=OfflineBackend, clock=clock)


@pytest.fixture
def session(engine, scheduler, listener, chime):
    return SessionScheduler(engine, scheduler, listener=listener, chime=chime)
