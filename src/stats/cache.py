from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple, Union

from common.errors import (
    CacheNotLoadedError,
    NotAuthenticatedError,
    SdkError,
    UnknownOrWrongKindError,
)
from common.events import EventBus, SessionShutdown, StatsReceived, StatsStored, StatsStoreFailed
from common.host import Host
from common.provider import RemoteSessionProvider
from session.lifecycle import SessionLifecycle
from state.models import StatEntry, StatKind


logger = logging.getLogger(__name__)

DoneCallback = Optional[Callable[[bool], None]]


def _call(on_done: DoneCallback, ok: bool) -> None:
    if on_done is None:
        return
    try:
        on_done(ok)
    except Exception:
        logger.exception("Stats callback %r failed", on_done)


class StatCache:
    """
    Local view of the user's stats, flushed explicitly with `store_stats()`.

    Usage
    - `request_stats()` once authenticated; it replaces the whole cache.
    - `get_*` / `set_*` work on the local copy only and fail until the first
      successful load, for unknown ids, or for the wrong kind.
    - `store_stats()` sends every known entry; values are absolute, so
      re-sending is harmless. Nothing is retried internally.

    Results that arrive after the session was shut down are dropped without
    invoking callbacks or events.
    """

    def __init__(
        self,
        lifecycle: SessionLifecycle,
        provider: RemoteSessionProvider,
        host: Host,
        *,
        events: Optional[EventBus] = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._provider = provider
        self._host = host
        self.events = events or lifecycle.events
        self._lock = threading.RLock()
        self._entries: Dict[str, StatEntry] = {}
        self._loaded = False
        self._last_error: Optional[SdkError] = None
        self._unsubscribe = self.events.subscribe(SessionShutdown, lambda _e: self.reset())

    def close(self) -> None:
        self._unsubscribe()

    # --------------- Inspection ---------------
    @property
    def is_loaded(self) -> bool:
        with self._lock:
            return self._loaded

    @property
    def last_error(self) -> Optional[SdkError]:
        with self._lock:
            return self._last_error

    def is_dirty(self, stat_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(stat_id)
            return entry.dirty if entry is not None else False

    def entries(self) -> Dict[str, StatEntry]:
        with self._lock:
            return {k: v.model_copy() for k, v in self._entries.items()}

    def reset(self) -> None:
        with self._lock:
            self._entries = {}
            self._loaded = False

    # --------------- Remote ---------------
    def request_stats(self, on_done: DoneCallback = None) -> None:
        """Load all stats from the companion, replacing the local cache."""
        if not self._lifecycle.is_authenticated:
            self._reject(NotAuthenticatedError(), "request stats")
            _call(on_done, False)
            return
        epoch = self._lifecycle.epoch
        self._host.submit(lambda: self._fetch(epoch, on_done))

    def store_stats(self, on_done: DoneCallback = None) -> None:
        """Send every known stat to the companion and clear dirty flags on success."""
        with self._lock:
            if not self._loaded:
                snapshot: Optional[List[StatEntry]] = None
            else:
                snapshot = [e.model_copy() for e in self._entries.values()]
        if snapshot is None:
            self._reject(CacheNotLoadedError(), "store stats")
            _call(on_done, False)
            return
        epoch = self._lifecycle.epoch
        self._host.submit(lambda: self._store(epoch, snapshot, on_done))

    # --------------- Local ---------------
    def get_int(self, stat_id: str) -> Tuple[bool, int]:
        entry = self._lookup(stat_id, StatKind.INT)
        if entry is None:
            return (False, 0)
        return (True, int(entry.value))

    def get_float(self, stat_id: str) -> Tuple[bool, float]:
        entry = self._lookup(stat_id, StatKind.FLOAT)
        if entry is None:
            return (False, 0.0)
        return (True, float(entry.value))

    def set_int(self, stat_id: str, value: int) -> bool:
        if isinstance(value, bool) or not isinstance(value, int):
            self._reject(UnknownOrWrongKindError(stat_id, f"{value!r} is not an int"), "set stat")
            return False
        return self._set(stat_id, StatKind.INT, value)

    def set_float(self, stat_id: str, value: float) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self._reject(UnknownOrWrongKindError(stat_id, f"{value!r} is not a float"), "set stat")
            return False
        return self._set(stat_id, StatKind.FLOAT, float(value))

    # --------------- Internal ---------------
    def _reject(self, err: SdkError, what: str) -> None:
        with self._lock:
            self._last_error = err
        logger.error("Cannot %s: %s", what, err)

    def _lookup(self, stat_id: str, kind: StatKind) -> Optional[StatEntry]:
        with self._lock:
            err: Optional[SdkError] = None
            entry = self._entries.get(stat_id)
            if not self._loaded:
                err = CacheNotLoadedError()
            elif entry is None:
                err = UnknownOrWrongKindError(stat_id, "unknown stat")
            elif entry.kind is not kind:
                err = UnknownOrWrongKindError(stat_id, f"is {entry.kind.value}, not {kind.value}")
            if err is None:
                return entry
        self._reject(err, "access stat")
        return None

    def _set(self, stat_id: str, kind: StatKind, value: Union[int, float]) -> bool:
        with self._lock:
            entry = self._lookup(stat_id, kind)
            if entry is None:
                return False
            entry.value = value
            entry.dirty = True
        return True

    def _fetch(self, epoch: int, on_done: DoneCallback) -> None:
        try:
            entries = self._provider.request_stats()
        except SdkError as exc:
            if not self._lifecycle.is_current(epoch):
                return
            self._reject(exc, "load stats")
            _call(on_done, False)
            return
        if not self._lifecycle.is_current(epoch):
            return
        with self._lock:
            self._entries = {e.id: e.model_copy(update={"dirty": False}) for e in entries}
            self._loaded = True
            self._last_error = None
        logger.info("Stats loaded (%d entries)", len(entries))
        _call(on_done, True)
        self.events.emit(StatsReceived())

    def _store(self, epoch: int, snapshot: List[StatEntry], on_done: DoneCallback) -> None:
        try:
            self._provider.store_stats(snapshot)
        except SdkError as exc:
            if not self._lifecycle.is_current(epoch):
                return
            self._reject(exc, "store stats")
            self.events.emit(StatsStoreFailed(str(exc)))
            _call(on_done, False)
            return
        if not self._lifecycle.is_current(epoch):
            return
        with self._lock:
            for sent in snapshot:
                entry = self._entries.get(sent.id)
                # values set while the store was in flight stay dirty
                if entry is not None and entry.kind is sent.kind and entry.value == sent.value:
                    entry.dirty = False
            self._last_error = None
        logger.info("Stats stored (%d entries)", len(snapshot))
        self.events.emit(StatsStored())
        _call(on_done, True)


__all__ = ["StatCache"]
