from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Type, TypeVar


logger = logging.getLogger(__name__)


# --------------- Event types ---------------
@dataclass(frozen=True)
class Initialized:
    """Launch credentials were accepted and validation has been submitted."""


@dataclass(frozen=True)
class AuthenticationComplete:
    success: bool


@dataclass(frozen=True)
class CompanionDisconnected:
    reason: str = ""


@dataclass(frozen=True)
class SessionShutdown:
    pass


@dataclass(frozen=True)
class StatsReceived:
    pass


@dataclass(frozen=True)
class StatsStored:
    pass


@dataclass(frozen=True)
class StatsStoreFailed:
    message: str


@dataclass(frozen=True)
class AchievementUnlocked:
    achievement_id: str


@dataclass(frozen=True)
class AchievementProgress:
    achievement_id: str
    progress: float


E = TypeVar("E")


class EventBus:
    """
    Small observer registry keyed by event class.

    - `subscribe()` returns a callable that removes the handler again.
    - `emit()` delivers to a snapshot of the handlers registered at that
      moment, each at most once. A failing handler is logged and does not
      stop delivery to the remaining ones.
    """

    def __init__(self) -> None:
        self._handlers: Dict[type, List[Callable[[object], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)  # type: ignore[arg-type]

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(self, event_type: type, handler: Callable) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def emit(self, event: object) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), ()))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed for %s", handler, type(event).__name__)


__all__ = [
    "EventBus",
    "Initialized",
    "AuthenticationComplete",
    "CompanionDisconnected",
    "SessionShutdown",
    "StatsReceived",
    "StatsStored",
    "StatsStoreFailed",
    "AchievementUnlocked",
    "AchievementProgress",
]
