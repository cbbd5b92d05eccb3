"""
Data model shared by the session lifecycle and the synchronization caches.

Nothing here is persisted: a `Session` lives exactly as long as the process.
"""

from .models import (
    AchievementEntry,
    CompanionEndpoint,
    CredentialMode,
    Identity,
    LaunchCredentials,
    Session,
    SessionState,
    StatEntry,
    StatKind,
    UserInfo,
    ValidatedSession,
)

__all__ = [
    "AchievementEntry",
    "CompanionEndpoint",
    "CredentialMode",
    "Identity",
    "LaunchCredentials",
    "Session",
    "SessionState",
    "StatEntry",
    "StatKind",
    "UserInfo",
    "ValidatedSession",
]
