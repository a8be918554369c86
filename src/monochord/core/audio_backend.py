"""
Backend-agnostic Audio I/O
===========================

Output backends pull stereo frames from a render callback:
- PyAudio (desktop)
- Dummy (silent, real-time paced thread; headless runs)
- Offline (no thread; frames are pulled on demand, used by tests)

Input backends fill the pitch detector's ring buffer:
- PyAudioInput (raw microphone, no processing)
- SyntheticInput (generated signal, for tests and demos)

Choose the output backend explicitly or via environment:
    MONOCHORD_AUDIO_BACKEND=dummy python -m monochord session
    AUDIO_BACKEND=pyaudio python -m monochord tuner
"""

import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .errors import AudioUnavailableError, MicrophoneDeniedError

logger = logging.getLogger(__name__)

RenderCallback = Callable[[int], np.ndarray]


class AudioBackendType(Enum):
    """Supported output backends"""
    PYAUDIO = "pyaudio"
    DUMMY = "dummy"
    OFFLINE = "offline"


class AudioBackend(ABC):
    """Abstract base for output backends"""

    def __init__(self, sample_rate: int = 44100, channels: int = 2, buffer_size: int = 1024):
        self.sample_rate = sample_rate
        self.channels = channels
        self.buffer_size = buffer_size
        self.playing = False
        self.callback_fn: Optional[RenderCallback] = None

    @abstractmethod
    def start(self, callback: RenderCallback) -> bool:
        """
        Start playback with a render callback.

        Args:
            callback: (num_frames) -> np.ndarray[float32] of shape (num_frames, channels)

        Returns:
            True if started successfully
        """

    @abstractmethod
    def stop(self):
        """Stop playback. Safe to call when already stopped."""

    def close(self):
        """Stop and release any device resources."""
        self.stop()

    def _render(self, frame_count: int) -> np.ndarray:
        if self.callback_fn is None:
            return np.zeros((frame_count, self.channels), dtype=np.float32)
        return self.callback_fn(frame_count)


class PyAudioBackend(AudioBackend):
    """PyAudio output stream driven by the PortAudio callback thread."""

    def __init__(self, sample_rate: int = 44100, channels: int = 2, buffer_size: int = 1024):
        super().__init__(sample_rate, channels, buffer_size)
        try:
            import pyaudio
        except ImportError:
            raise AudioUnavailableError("PyAudio not available. Install with: pip install pyaudio")
        self._pa_module = pyaudio
        try:
            self.pyaudio = pyaudio.PyAudio()
        except Exception as e:
            raise AudioUnavailableError(f"PortAudio initialisation failed: {e}") from e
        self.stream = None
        logger.debug("PyAudio backend initialized")

    def _pyaudio_callback(self, in_data, frame_count, time_info, status):
        if status:
            logger.debug("Audio callback status %s (frame_count=%d)", status, frame_count)
        try:
            audio_data = self._render(frame_count)
            audio_data = np.clip(audio_data, -1.0, 1.0).astype(np.float32)
            return (audio_data.tobytes(), self._pa_module.paContinue)
        except Exception:
            logger.exception("Audio callback error")
            silence = np.zeros((frame_count, self.channels), dtype=np.float32)
            return (silence.tobytes(), self._pa_module.paContinue)

    def start(self, callback: RenderCallback) -> bool:
        if self.playing:
            return True
        try:
            self.callback_fn = callback
            stream_params = {
                'format': self._pa_module.paFloat32,
                'channels': self.channels,
                'rate': self.sample_rate,
                'output': True,
                'frames_per_buffer': self.buffer_size,
                'stream_callback': self._pyaudio_callback,
            }
            self.stream = self.pyaudio.open(**stream_params)
            self.playing = True
            logger.info("PyAudio stream started (%d Hz, %d frames)", self.sample_rate, self.buffer_size)
            return True
        except Exception as e:
            logger.warning("Failed to start PyAudio: %s", e)
            return False

    def stop(self):
        if self.stream is None:
            return
        try:
            self.stream.stop_stream()
            self.stream.close()
        except Exception as e:
            logger.debug("Error stopping PyAudio stream: %s", e)
        self.stream = None
        self.playing = False
        logger.info("PyAudio stream stopped")

    def close(self):
        self.stop()
        try:
            self.pyaudio.terminate()
        except Exception as e:
            logger.debug("PortAudio terminate failed: %s", e)


class DummyBackend(AudioBackend):
    """Silent backend: renders on a thread at real-time pace and discards audio."""

    def __init__(self, sample_rate: int = 44100, channels: int = 2, buffer_size: int = 1024):
        super().__init__(sample_rate, channels, buffer_size)
        self.thread = None
        self._stop_flag = threading.Event()

    def _dummy_thread(self):
        interval = self.buffer_size / self.sample_rate
        while not self._stop_flag.is_set():
            try:
                self._render(self.buffer_size)
            except Exception:
                logger.exception("Dummy render error")
            time.sleep(interval)

    def start(self, callback: RenderCallback) -> bool:
        if self.playing:
            return True
        self.callback_fn = callback
        self._stop_flag.clear()
        self.thread = threading.Thread(target=self._dummy_thread, daemon=True)
        self.thread.start()
        self.playing = True
        logger.info("Dummy playback started (silent)")
        return True

    def stop(self):
        if not self.playing:
            return
        self._stop_flag.set()
        if self.thread:
            self.thread.join(timeout=1.0)
        self.playing = False


class OfflineBackend(AudioBackend):
    """No thread: frames are produced only when pull() is called."""

    def start(self, callback: RenderCallback) -> bool:
        self.callback_fn = callback
        self.playing = True
        return True

    def stop(self):
        self.playing = False

    def pull(self, frame_count: Optional[int] = None) -> np.ndarray:
        return self._render(frame_count or self.buffer_size)


def create_audio_backend(backend_type: Optional[str] = None, **kwargs) -> AudioBackend:
    """
    Factory for output backends.

    Args:
        backend_type: "pyaudio", "dummy", "offline", or None for auto-detect
        **kwargs: sample_rate, channels, buffer_size

    Auto-detection priority:
        1. MONOCHORD_AUDIO_BACKEND / AUDIO_BACKEND environment variable
        2. PyAudio if importable
        3. Dummy
    """
    if backend_type is None:
        backend_type = os.environ.get('MONOCHORD_AUDIO_BACKEND') or os.environ.get('AUDIO_BACKEND')

    if backend_type is None:
        try:
            import pyaudio  # noqa: F401
            backend_type = 'pyaudio'
        except ImportError:
            backend_type = 'dummy'
            logger.warning("No audio output library available, using silent Dummy backend")

    backend_type = backend_type.lower()
    if backend_type == AudioBackendType.PYAUDIO.value:
        return PyAudioBackend(**kwargs)
    elif backend_type == AudioBackendType.DUMMY.value:
        return DummyBackend(**kwargs)
    elif backend_type == AudioBackendType.OFFLINE.value:
        return OfflineBackend(**kwargs)
    raise AudioUnavailableError(f"Unknown backend: {backend_type}")


# ══════════════════════════════════════════════════════════════════════════════
# INPUT (microphone)
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class InputConstraints:
    """Capture constraints. Any processing would corrupt pitch estimates."""
    echo_cancellation: bool = False
    noise_suppression: bool = False
    auto_gain_control: bool = False


class RingBuffer:
    """Fixed-size float ring buffer holding the most recent samples."""

    def __init__(self, size: int):
        self.size = size
        self._data = np.zeros(size, dtype=np.float32)
        self._pos = 0
        self._lock = threading.Lock()

    def write(self, samples: np.ndarray):
        samples = np.asarray(samples, dtype=np.float32).ravel()
        if len(samples) >= self.size:
            with self._lock:
                self._data[:] = samples[-self.size:]
                self._pos = 0
            return
        with self._lock:
            end = self._pos + len(samples)
            if end <= self.size:
                self._data[self._pos:end] = samples
            else:
                first = self.size - self._pos
                self._data[self._pos:] = samples[:first]
                self._data[:end - self.size] = samples[first:]
            self._pos = end % self.size

    def snapshot(self) -> np.ndarray:
        """Oldest-to-newest copy of the buffer."""
        with self._lock:
            return np.concatenate((self._data[self._pos:], self._data[:self._pos]))

    def clear(self):
        with self._lock:
            self._data[:] = 0.0
            self._pos = 0


class InputBackend(ABC):
    """Abstract microphone source feeding a RingBuffer."""

    def __init__(self, sample_rate: int = 44100, window_size: int = 4096):
        self.sample_rate = sample_rate
        self.window_size = window_size
        self.buffer = RingBuffer(window_size)
        self.is_open = False

    @abstractmethod
    def open(self, constraints: InputConstraints = InputConstraints()):
        """Open the input. Raises MicrophoneDeniedError on failure."""

    @abstractmethod
    def close(self):
        """Release the input. Safe to call when already closed."""

    def read_window(self) -> np.ndarray:
        return self.buffer.snapshot()


class PyAudioInput(InputBackend):
    """Raw mono microphone capture through PyAudio (no AGC/NS/AEC in PortAudio)."""

    def __init__(self, sample_rate: int = 44100, window_size: int = 4096, buffer_size: int = 1024):
        super().__init__(sample_rate, window_size)
        self.buffer_size = buffer_size
        self.pyaudio = None
        self.stream = None

    def _callback(self, in_data, frame_count, time_info, status):
        self.buffer.write(np.frombuffer(in_data, dtype=np.float32))
        return (None, self._pa_module.paContinue)

    def open(self, constraints: InputConstraints = InputConstraints()):
        if self.is_open:
            return
        if constraints.echo_cancellation or constraints.noise_suppression or constraints.auto_gain_control:
            logger.warning("PortAudio captures raw input; processing constraints are ignored")
        try:
            import pyaudio
        except ImportError:
            raise MicrophoneDeniedError("PyAudio not available for microphone input")
        self._pa_module = pyaudio
        try:
            self.pyaudio = pyaudio.PyAudio()
            self.stream = self.pyaudio.open(
                format=pyaudio.paFloat32,
                channels=1,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.buffer_size,
                stream_callback=self._callback,
            )
        except Exception as e:
            self.close()
            raise MicrophoneDeniedError(f"Microphone unavailable: {e}") from e
        self.is_open = True
        logger.info("Microphone open (%d Hz)", self.sample_rate)

    def close(self):
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except Exception as e:
                logger.debug("Error closing microphone stream: %s", e)
            self.stream = None
        if self.pyaudio is not None:
            try:
                self.pyaudio.terminate()
            except Exception as e:
                logger.debug("PortAudio terminate failed: %s", e)
            self.pyaudio = None
        self.buffer.clear()
        self.is_open = False


class SyntheticInput(InputBackend):
    """
    Generated input signal.

    signal_fn receives an array of sample times (seconds) and returns the
    samples; each read_window() produces the next window_size samples.
    """

    def __init__(self, signal_fn: Callable[[np.ndarray], np.ndarray],
                 sample_rate: int = 44100, window_size: int = 4096):
        super().__init__(sample_rate, window_size)
        self.signal_fn = signal_fn
        self._frame = 0

    def open(self, constraints: InputConstraints = InputConstraints()):
        self.is_open = True

    def close(self):
        self.is_open = False
        self.buffer.clear()

    def read_window(self) -> np.ndarray:
        t = (self._frame + np.arange(self.window_size)) / self.sample_rate
        self._frame += self.window_size
        self.buffer.write(self.signal_fn(t))
        return self.buffer.snapshot()
