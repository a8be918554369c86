"""
Cooperative Scheduler
=====================

Single-threaded timer loop shared by every component: session tick,
effect intervals, sweep/check timeouts, deferred oscillator release and the
pitch detection frames. Nothing here runs in parallel; callbacks that fall due
at the same instant run in (due time, registration order).

Two clocks:
- real time (time.monotonic) driven by run_for()/run_until_idle()
- VirtualClock driven by advance(), deterministic for tests and offline runs
"""

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class VirtualClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 0.0):
        self.time = float(start)

    def __call__(self) -> float:
        return self.time

    def now(self) -> float:
        return self.time

    def set(self, t: float):
        if t < self.time:
            raise ValueError(f"clock cannot go backwards ({t} < {self.time})")
        self.time = float(t)


class TimerHandle:
    """
    Handle for a scheduled callback.

    cancel() is idempotent: cancelling twice, or cancelling a one-shot that
    already fired, is a no-op.
    """

    __slots__ = ("callback", "args", "due", "interval", "seq", "cancelled", "fired", "name")

    def __init__(self, callback: Callable, args: tuple, due: float,
                 interval: Optional[float], seq: int, name: str = ""):
        self.callback = callback
        self.args = args
        self.due = due
        self.interval = interval
        self.seq = seq
        self.cancelled = False
        self.fired = False
        self.name = name or getattr(callback, "__name__", "timer")

    def cancel(self):
        self.cancelled = True

    @property
    def active(self) -> bool:
        if self.cancelled:
            return False
        return self.interval is not None or not self.fired

    def __lt__(self, other: "TimerHandle") -> bool:
        return (self.due, self.seq) < (other.due, other.seq)

    def __repr__(self) -> str:
        kind = f"every {self.interval}s" if self.interval is not None else "once"
        return f"<TimerHandle {self.name} due={self.due:.3f} {kind} active={self.active}>"


class Scheduler:
    """
    Cooperative timer loop.

    Periodic timers are fixed-rate: the next due time is the previous due
    time plus the interval, so a late callback does not drift the schedule.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.clock = clock if clock is not None else time.monotonic
        self._queue: List[TimerHandle] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()
        self._stop = threading.Event()

    def now(self) -> float:
        return self.clock()

    # ══════════════════════════════════════════════════════════════════════════
    # REGISTRATION
    # ══════════════════════════════════════════════════════════════════════════

    def call_later(self, delay: float, callback: Callable, *args, name: str = "") -> TimerHandle:
        """Run callback once after delay seconds."""
        handle = TimerHandle(callback, args, self.now() + max(0.0, delay), None,
                             next(self._seq), name)
        with self._lock:
            heapq.heappush(self._queue, handle)
        return handle

    def call_every(self, interval: float, callback: Callable, *args, name: str = "") -> TimerHandle:
        """Run callback every interval seconds, first call one interval from now."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        handle = TimerHandle(callback, args, self.now() + interval, interval,
                             next(self._seq), name)
        with self._lock:
            heapq.heappush(self._queue, handle)
        return handle

    # ══════════════════════════════════════════════════════════════════════════
    # DISPATCH
    # ══════════════════════════════════════════════════════════════════════════

    def next_due(self) -> Optional[float]:
        with self._lock:
            self._drop_cancelled()
            return self._queue[0].due if self._queue else None

    def pending(self) -> int:
        with self._lock:
            return sum(1 for h in self._queue if not h.cancelled)

    def _drop_cancelled(self):
        while self._queue and self._queue[0].cancelled:
            heapq.heappop(self._queue)

    def _pop_due(self, until: float) -> Optional[TimerHandle]:
        with self._lock:
            self._drop_cancelled()
            if self._queue and self._queue[0].due <= until:
                return heapq.heappop(self._queue)
        return None

    def _dispatch(self, handle: TimerHandle):
        if handle.interval is not None:
            # re-arm before running so the callback may cancel itself
            handle.due += handle.interval
            handle.seq = next(self._seq)
            with self._lock:
                heapq.heappush(self._queue, handle)
        else:
            handle.fired = True
        try:
            handle.callback(*handle.args)
        except Exception:
            logger.exception("Timer callback %s failed", handle.name)

    def run_pending(self) -> int:
        """Run every callback due at the current clock time."""
        count = 0
        now = self.now()
        while True:
            handle = self._pop_due(now)
            if handle is None:
                return count
            self._dispatch(handle)
            count += 1

    def advance(self, seconds: float) -> int:
        """
        Move a VirtualClock forward, firing each timer at its exact due time.

        Args:
            seconds: How far to advance.

        Returns:
            Number of callbacks run.
        """
        if not isinstance(self.clock, VirtualClock):
            raise TypeError("advance() requires a VirtualClock")
        target = self.clock.time + seconds
        count = 0
        while True:
            handle = self._pop_due(target)
            if handle is None:
                break
            if handle.due > self.clock.time:
                self.clock.set(handle.due)
            self._dispatch(handle)
            count += 1
        self.clock.set(target)
        return count

    # ══════════════════════════════════════════════════════════════════════════
    # REAL-TIME LOOP
    # ══════════════════════════════════════════════════════════════════════════

    def run_for(self, seconds: float, max_sleep: float = 0.05):
        """Run the loop in real time for a duration (or until stop())."""
        if isinstance(self.clock, VirtualClock):
            self.advance(seconds)
            return
        self._stop.clear()
        deadline = self.now() + seconds
        while not self._stop.is_set():
            now = self.now()
            if now >= deadline:
                break
            self.run_pending()
            nxt = self.next_due()
            wait = deadline - now if nxt is None else nxt - self.now()
            time.sleep(min(max(wait, 0.0), max_sleep, deadline - now))

    def run_until_idle(self, timeout: Optional[float] = None, max_sleep: float = 0.05):
        """Run until no timers remain (periodic timers keep it alive)."""
        limit = None if timeout is None else self.now() + timeout
        self._stop.clear()
        while not self._stop.is_set() and self.pending():
            if limit is not None and self.now() >= limit:
                break
            if isinstance(self.clock, VirtualClock):
                nxt = self.next_due()
                if nxt is None:
                    break
                self.advance(max(0.0, nxt - self.clock.time))
                continue
            self.run_pending()
            nxt = self.next_due()
            if nxt is not None:
                time.sleep(min(max(nxt - self.now(), 0.0), max_sleep))

    def stop(self):
        self._stop.set()

    def cancel_all(self):
        with self._lock:
            for handle in self._queue:
                handle.cancelled = True
            self._queue.clear()
