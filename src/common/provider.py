from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from state.models import (
    AchievementEntry,
    Identity,
    LaunchCredentials,
    StatEntry,
    UserInfo,
    ValidatedSession,
)


class RemoteSessionProvider(Protocol):
    """
    Everything the SDK needs from the companion application.

    Implementations raise `common.errors.CompanionError` subclasses on
    failure: `ValidationRejectedError` / `CompanionApiError` when the
    companion answers with a rejection, `CompanionTransportError` when it
    cannot be reached or a timeout expires. They never retry.
    """

    def validate(
        self,
        credentials: LaunchCredentials,
        identity: Identity,
        *,
        timeout: Optional[float] = None,
    ) -> ValidatedSession: ...

    def check_liveness(self, *, timeout: Optional[float] = None) -> None: ...

    def get_user_info(self) -> UserInfo: ...

    def unlock_achievement(self, achievement_id: str) -> None: ...

    def list_achievements(self) -> List[AchievementEntry]: ...

    def request_stats(self) -> List[StatEntry]: ...

    def store_stats(self, entries: List[StatEntry]) -> None: ...

    def notify(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None: ...

    def close(self) -> None: ...


__all__ = ["RemoteSessionProvider"]
