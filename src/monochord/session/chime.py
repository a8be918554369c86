"""
Completion chime: one sine note on its own short-lived graph.

Envelope: 0 → gain linearly over the attack, then exponentially down to the
floor by the end of the note; the oscillator stops and the graph closes at
the end. The chime owns its graph and sounds while the drone is still
fading out.
"""

import logging
from typing import Optional

from ..config import AudioConfig, ChimeConfig, get_default_config
from ..core.audio_backend import AudioBackend, create_audio_backend
from ..core.errors import MonochordError
from ..core.scheduler import Scheduler
from ..core.signal_graph import SignalGraph

logger = logging.getLogger(__name__)


class CompletionChime:
    """
    Args:
        scheduler: Timer loop that closes the graph after the note
        backend_factory: () -> AudioBackend for each chime (None = config/env)
        clock: Graph time source for the chime graph
    """

    def __init__(self, scheduler: Scheduler, backend_factory=None, clock=None,
                 config: Optional[ChimeConfig] = None,
                 audio_config: Optional[AudioConfig] = None):
        defaults = get_default_config()
        self.scheduler = scheduler
        self.config = config or defaults.session.chime
        self.audio_config = audio_config or defaults.audio
        self.backend_factory = backend_factory or self._default_backend
        self.clock = clock
        self.graph: Optional[SignalGraph] = None

    def _default_backend(self) -> AudioBackend:
        return create_audio_backend(self.audio_config.resolved_backend(),
                                    sample_rate=self.audio_config.sample_rate,
                                    buffer_size=self.audio_config.buffer_size)

    def play(self, frequency: float) -> bool:
        """Fire and forget. Failures are logged, never raised."""
        try:
            graph = SignalGraph(self.audio_config.sample_rate, self.backend_factory(),
                                clock=self.clock, master_gain=1.0)
            voice = graph.create_voice("chime", gain=0.0)
            osc = graph.create_oscillator(frequency)
            voice.attach(osc)
            graph.open()

            cfg = self.config
            with graph.lock:
                now = graph.current_time
                voice.gain.set_value_at_time(0.0, now)
                voice.gain.linear_ramp_to_value_at_time(cfg.gain, now + cfg.attack)
                voice.gain.exponential_ramp_to_value_at_time(cfg.floor, now + cfg.length)
                osc.start(now)
                osc.stop(now + cfg.length)
        except (MonochordError, OSError) as e:
            logger.warning("Chime failed: %s", e)
            return False

        self.graph = graph
        self.scheduler.call_later(self.config.length, self._close, graph, name="chime-close")
        logger.debug("Chime %.2f Hz", frequency)
        return True

    def _close(self, graph: SignalGraph):
        graph.close()
        if self.graph is graph:
            self.graph = None
