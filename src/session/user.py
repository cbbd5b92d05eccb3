from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from common.errors import NotAuthenticatedError, SdkError
from common.events import EventBus, SessionShutdown
from common.host import Host
from common.provider import RemoteSessionProvider
from state.models import UserInfo

from .lifecycle import SessionLifecycle


logger = logging.getLogger(__name__)

UserCallback = Optional[Callable[[Optional[UserInfo]], None]]


class UserDirectory:
    """Current user's profile, fetched once per session and cached."""

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
        self._lock = threading.Lock()
        self._cached: Optional[UserInfo] = None
        events = events or lifecycle.events
        self._unsubscribe = events.subscribe(SessionShutdown, lambda _e: self.clear_cache())

    def close(self) -> None:
        self._unsubscribe()

    @property
    def user_id(self) -> Optional[str]:
        return self._lifecycle.user_id

    @property
    def user_name(self) -> Optional[str]:
        with self._lock:
            return self._cached.name if self._cached is not None else None

    def get_user_info(self, on_done: UserCallback) -> None:
        if not self._lifecycle.is_authenticated:
            logger.error("Cannot get user info: %s", NotAuthenticatedError())
            if on_done is not None:
                on_done(None)
            return
        with self._lock:
            cached = self._cached
        if cached is not None:
            if on_done is not None:
                on_done(cached)
            return
        epoch = self._lifecycle.epoch
        self._host.submit(lambda: self._fetch(epoch, on_done))

    def clear_cache(self) -> None:
        with self._lock:
            self._cached = None

    def _fetch(self, epoch: int, on_done: UserCallback) -> None:
        try:
            info = self._provider.get_user_info()
        except SdkError as exc:
            if not self._lifecycle.is_current(epoch):
                return
            logger.error("Failed to get user info: %s", exc)
            if on_done is not None:
                on_done(None)
            return
        if not self._lifecycle.is_current(epoch):
            return
        with self._lock:
            self._cached = info
        logger.info("User info loaded: %s", info.name)
        if on_done is not None:
            on_done(info)


__all__ = ["UserDirectory"]
