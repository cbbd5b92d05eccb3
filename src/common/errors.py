from __future__ import annotations

from typing import Iterable, List


class SdkError(RuntimeError):
    """Base error for the companion session SDK."""


class MissingCredentialError(SdkError):
    """One or more required launch arguments were absent."""

    def __init__(self, fields: Iterable[str], flags: Iterable[str] = ()) -> None:
        self.fields: List[str] = list(fields)
        flag_list = list(flags)
        if flag_list and len(flag_list) == len(self.fields):
            described = [f"{f} ({flag})" for f, flag in zip(self.fields, flag_list)]
        else:
            described = self.fields
        super().__init__(f"Missing required launch arguments: {', '.join(described)}")


class CompanionError(SdkError):
    """Base error for calls against the companion application."""


class CompanionApiError(CompanionError):
    """Companion rejected the request or answered with an unexpected payload."""


class ValidationRejectedError(CompanionApiError):
    """Companion refused the session token."""


class CompanionTransportError(CompanionError):
    """Companion could not be reached (connection refused, timeout, ...)."""


class NotAuthenticatedError(SdkError):
    """Operation attempted before the session was authenticated."""

    def __init__(self, message: str = "Session is not authenticated") -> None:
        super().__init__(message)


class CacheNotLoadedError(SdkError):
    """Stats accessed before a successful bulk load."""

    def __init__(self, message: str = "Stats not loaded; call request_stats() first") -> None:
        super().__init__(message)


class UnknownOrWrongKindError(SdkError):
    """Stat id is unknown or was accessed with the wrong kind."""

    def __init__(self, stat_id: str, detail: str) -> None:
        self.stat_id = stat_id
        super().__init__(f"Stat '{stat_id}': {detail}")


__all__ = [
    "SdkError",
    "MissingCredentialError",
    "CompanionError",
    "CompanionApiError",
    "ValidationRejectedError",
    "CompanionTransportError",
    "NotAuthenticatedError",
    "CacheNotLoadedError",
    "UnknownOrWrongKindError",
]
