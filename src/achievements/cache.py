from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, UTC
from typing import Callable, Dict, List, Optional, Set

from common.errors import NotAuthenticatedError, SdkError
from common.events import AchievementProgress, AchievementUnlocked, EventBus
from common.host import Host
from common.provider import RemoteSessionProvider
from session.lifecycle import SessionLifecycle
from state.models import AchievementEntry


logger = logging.getLogger(__name__)

DoneCallback = Optional[Callable[[bool], None]]
ListCallback = Optional[Callable[[Optional[List[AchievementEntry]]], None]]


class AchievementCache:
    """
    Local view of the user's achievements.

    Notes
    - `unlock()` is the only call that changes remote state; it is not
      retried on failure.
    - `set_progress()` below 100% is a local UI signal only; at 100% it is
      exactly `unlock()`.
    - `get_all()` replaces the cache with the companion's list, except that
      ids unlocked through this cache stay unlocked: a list fetched before
      the companion reflects an unlock must not revert it.
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
        self._entries: Dict[str, AchievementEntry] = {}
        self._confirmed_unlocks: Set[str] = set()
        self._last_error: Optional[SdkError] = None

    @property
    def last_error(self) -> Optional[SdkError]:
        with self._lock:
            return self._last_error

    # --------------- Public API ---------------
    def unlock(self, achievement_id: str, on_done: DoneCallback = None) -> None:
        if not self._lifecycle.is_authenticated:
            self._reject(NotAuthenticatedError(), f"unlock achievement {achievement_id}")
            if on_done is not None:
                on_done(False)
            return
        epoch = self._lifecycle.epoch
        self._host.submit(lambda: self._unlock(epoch, achievement_id, on_done))

    def set_progress(self, achievement_id: str, progress: float, on_done: DoneCallback = None) -> None:
        """Report progress in [0, 1]; values >= 1.0 unlock the achievement."""
        if not self._lifecycle.is_initialized:
            self._reject(NotAuthenticatedError("SDK not initialized"), "set achievement progress")
            if on_done is not None:
                on_done(False)
            return

        progress = 0.0 if math.isnan(progress) else min(max(float(progress), 0.0), 1.0)
        if progress >= 1.0:
            self.unlock(achievement_id, on_done)
            return
        self.events.emit(AchievementProgress(achievement_id, progress))
        if on_done is not None:
            on_done(True)

    def get_all(self, on_done: ListCallback) -> None:
        """Fetch the authoritative list and replace the cache with it."""
        if not self._lifecycle.is_authenticated:
            self._reject(NotAuthenticatedError(), "get achievements")
            if on_done is not None:
                on_done(None)
            return
        epoch = self._lifecycle.epoch
        self._host.submit(lambda: self._fetch_all(epoch, on_done))

    def is_unlocked(self, achievement_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(achievement_id)
            return entry.unlocked if entry is not None else False

    def get(self, achievement_id: str) -> Optional[AchievementEntry]:
        with self._lock:
            entry = self._entries.get(achievement_id)
            return entry.model_copy() if entry is not None else None

    def clear_cache(self) -> None:
        with self._lock:
            self._entries.clear()
            self._confirmed_unlocks.clear()

    # --------------- Internal ---------------
    def _reject(self, err: SdkError, what: str) -> None:
        with self._lock:
            self._last_error = err
        logger.error("Cannot %s: %s", what, err)

    def _unlock(self, epoch: int, achievement_id: str, on_done: DoneCallback) -> None:
        try:
            self._provider.unlock_achievement(achievement_id)
        except SdkError as exc:
            if not self._lifecycle.is_current(epoch):
                return
            self._reject(exc, f"unlock achievement {achievement_id}")
            if on_done is not None:
                on_done(False)
            return
        if not self._lifecycle.is_current(epoch):
            return
        with self._lock:
            entry = self._entries.get(achievement_id)
            if entry is None:
                entry = AchievementEntry(id=achievement_id, name=achievement_id)
                self._entries[achievement_id] = entry
            if not entry.unlocked:
                entry.unlocked = True
                entry.unlocked_at = datetime.now(UTC)
            entry.progress = None
            self._confirmed_unlocks.add(achievement_id)
        logger.info("Achievement unlocked: %s", achievement_id)
        self.events.emit(AchievementUnlocked(achievement_id))
        if on_done is not None:
            on_done(True)

    def _fetch_all(self, epoch: int, on_done: ListCallback) -> None:
        try:
            items = self._provider.list_achievements()
        except SdkError as exc:
            if not self._lifecycle.is_current(epoch):
                return
            self._reject(exc, "get achievements")
            if on_done is not None:
                on_done(None)
            return
        if not self._lifecycle.is_current(epoch):
            return
        with self._lock:
            fresh: Dict[str, AchievementEntry] = {}
            for item in items:
                entry = item.model_copy()
                if entry.id in self._confirmed_unlocks and not entry.unlocked:
                    previous = self._entries.get(entry.id)
                    entry.unlocked = True
                    entry.unlocked_at = previous.unlocked_at if previous is not None else None
                fresh[entry.id] = entry
            # confirmed unlocks the list does not mention yet are kept
            for achievement_id in self._confirmed_unlocks - fresh.keys():
                previous = self._entries.get(achievement_id)
                if previous is None:
                    previous = AchievementEntry(id=achievement_id, name=achievement_id)
                fresh[achievement_id] = previous.model_copy(update={"unlocked": True, "progress": None})
            self._entries = fresh
            result = [e.model_copy() for e in fresh.values()]
        logger.info("Loaded %d achievements", len(result))
        if on_done is not None:
            on_done(result)


__all__ = ["AchievementCache"]
