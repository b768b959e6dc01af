import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Callable, Hashable

from .errors import AbortedError


@dataclass
class _Entry:
    future: Any  # concurrent.futures.Future | asyncio.Future
    waiters: int = 0


# ---------- Base registry (shared bookkeeping; synchronization handled by subclasses) ----------


class _Registry:
    def __init__(self):
        self._entries: dict[Hashable, _Entry] = {}
        self._started = 0
        self._joined = 0
        self._logger = logging.getLogger("quickcall")

    def in_flight(self, key: Hashable) -> bool:
        return key in self._entries

    def stats(self) -> dict[str, int]:
        return {"in_flight": len(self._entries), "started": self._started, "joined": self._joined}

    def __len__(self) -> int:
        return len(self._entries)


# ---------- Threaded registry ----------


class InFlightRegistry(_Registry):
    """Coalesce concurrent identical calls made from multiple threads.

    The first caller for a key runs `start_fn` in its own thread; every other
    caller arriving before it settles blocks on the owner's future and gets
    the same return value or the same exception.
    """

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()

    def join_or_start(self, key: Hashable, start_fn: Callable[[], Any]) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            owner = entry is None
            if owner:
                entry = _Entry(concurrent.futures.Future())
                self._entries[key] = entry
                self._started += 1
            else:
                entry.waiters += 1
                self._joined += 1
        if not owner:
            self._logger.debug(f"joined in-flight request key={key} waiters={entry.waiters}")
            return entry.future.result()

        try:
            value = start_fn()
        except BaseException as exc:
            # settle: drop the entry first so later callers start fresh
            with self._lock:
                self._entries.pop(key, None)
            entry.future.set_exception(exc)
            raise
        with self._lock:
            self._entries.pop(key, None)
        entry.future.set_result(value)
        return value


# ---------- Async registry ----------


class AsyncInFlightRegistry(_Registry):
    """Coalesce concurrent identical calls on one event loop.

    Waiters await the owner's future through :func:`asyncio.shield`, so a
    cancelled waiter never cancels the owner. If the owner itself is
    cancelled, waiters receive :class:`AbortedError` while the owner's task
    sees the usual ``CancelledError``.
    """

    async def join_or_start(self, key: Hashable, start_fn: Callable[[], Awaitable[Any]]) -> Any:
        entry = self._entries.get(key)
        if entry is not None:
            entry.waiters += 1
            self._joined += 1
            self._logger.debug(f"joined in-flight request key={key} waiters={entry.waiters}")
            return await asyncio.shield(entry.future)

        entry = _Entry(asyncio.get_running_loop().create_future())
        self._entries[key] = entry
        self._started += 1
        try:
            value = await start_fn()
        except asyncio.CancelledError:
            self._entries.pop(key, None)
            self._settle_error(entry, AbortedError("in-flight request was cancelled"))
            raise
        except BaseException as exc:
            self._entries.pop(key, None)
            self._settle_error(entry, exc)
            raise
        self._entries.pop(key, None)
        entry.future.set_result(value)
        return value

    @staticmethod
    def _settle_error(entry: _Entry, exc: BaseException) -> None:
        entry.future.set_exception(exc)
        # mark retrieved so an unjoined failure does not log "never retrieved"
        entry.future.exception()
