import asyncio
import logging
import threading
import time
from collections import deque
from typing import Union

from .errors import AbortedError
from .types import RateLimit

# Max interval between cancel checks while a threaded caller is queued
CANCEL_POLL_INTERVAL = 0.05
# Minimum spacing of "throttled" log lines
NOTICE_INTERVAL = 5.0


# ---------- Base window (shared bookkeeping; synchronization handled by subclasses) ----------


class _SlidingWindow:
    """Sliding-window log of admission timestamps.

    A timestamp counts against the limit while ``now - ts < window``. When
    the log is full, the caller must wait until the oldest admission leaves
    the window, then re-check, since other callers may have been admitted.
    """

    def __init__(self, limit: RateLimit):
        self.limit = limit
        self._log: deque[float] = deque()
        self._admitted = 0
        self._throttled = 0
        self._logger = logging.getLogger("quickcall")
        self._next_notice = 0.0

    def _now(self) -> float:
        return time.monotonic()

    def _prune(self, now: float) -> None:
        cutoff = now - self.limit.window
        while self._log and self._log[0] <= cutoff:
            self._log.popleft()

    def _reserve(self, now: float) -> float:
        """Record an admission at `now` and return 0.0, or return how long to wait."""
        self._prune(now)
        if len(self._log) < self.limit.requests:
            self._log.append(now)
            self._admitted += 1
            return 0.0
        return self.limit.window - (now - self._log[0])

    def _notice(self, delay: float) -> None:
        self._throttled += 1
        now = self._now()
        if self._next_notice <= now:
            self._logger.info(
                f"rate limit {self.limit.requests}/{self.limit.window}s reached; "
                f"waiting ~{delay:.2f}s"
            )
            self._next_notice = now + NOTICE_INTERVAL

    def stats(self) -> dict[str, int]:
        return {"admitted": self._admitted, "throttled": self._throttled, "window": len(self._log)}


# ---------- Threaded limiter ----------


class SlidingWindowLimiter(_SlidingWindow):
    """Blocking limiter for threads, admitting callers first come, first served.

    Args:
        limit: (requests, window) bound.
        cancel: Optional event; once set, queued callers give up with
            :class:`AbortedError`.
    """

    def __init__(self, limit: RateLimit, cancel: Union[threading.Event, None] = None):
        super().__init__(limit)
        self._cond = threading.Condition(threading.Lock())
        self._queue: deque[object] = deque()
        self._cancel = cancel

    def admit(self, cancel: Union[threading.Event, None] = None) -> float:
        """Wait until admission is legal, record it, and return the seconds waited."""
        cancel = cancel or self._cancel
        ticket = object()
        started = self._now()
        with self._cond:
            self._queue.append(ticket)
            try:
                while True:
                    if cancel is not None and cancel.is_set():
                        raise AbortedError("rate limit wait cancelled")
                    delay = None
                    if self._queue[0] is ticket:
                        now = self._now()
                        delay = self._reserve(now)
                        if delay <= 0:
                            return now - started
                        self._notice(delay)
                    if cancel is not None:
                        delay = min(delay or CANCEL_POLL_INTERVAL, CANCEL_POLL_INTERVAL)
                    # releases the lock while waiting
                    self._cond.wait(timeout=delay)
            finally:
                self._queue.remove(ticket)
                self._cond.notify_all()


# ---------- Async limiter ----------


class AsyncSlidingWindowLimiter(_SlidingWindow):
    """Limiter for one event loop.

    Waiters queue on an :class:`asyncio.Lock`, which wakes them in FIFO
    order; only the head of the queue sleeps on the window. Cancelling the
    waiting task removes it from the queue.
    """

    def __init__(self, limit: RateLimit):
        super().__init__(limit)
        self._gate = asyncio.Lock()

    async def admit(self) -> float:
        started = self._now()
        async with self._gate:
            while True:
                now = self._now()
                delay = self._reserve(now)
                if delay <= 0:
                    return now - started
                self._notice(delay)
                await asyncio.sleep(delay)
