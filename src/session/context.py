from __future__ import annotations

import threading
from typing import Optional, Sequence

from achievements.cache import AchievementCache
from common.companion import CompanionClient
from common.credentials import CredentialSource
from common.events import EventBus
from common.host import Host, ThreadHost
from common.log import setup_logger
from common.provider import RemoteSessionProvider
from common.settings import SdkSettings
from state.models import CredentialMode, Identity
from stats.cache import StatCache

from .lifecycle import SessionLifecycle
from .user import UserDirectory


class SessionContext:
    """
    Process-wide SDK context: one lifecycle plus the caches that depend on it.

    Build it once at startup with `SessionContext.create()` and pass it (or
    its parts) to game code; call `shutdown()` when the game exits.
    """

    def __init__(
        self,
        *,
        lifecycle: SessionLifecycle,
        stats: StatCache,
        achievements: AchievementCache,
        users: UserDirectory,
        provider: RemoteSessionProvider,
        host: Host,
        owns_provider: bool = False,
        owns_host: bool = False,
    ) -> None:
        self.lifecycle = lifecycle
        self.stats = stats
        self.achievements = achievements
        self.users = users
        self.events = lifecycle.events
        self._provider = provider
        self._host = host
        self._owns_provider = owns_provider
        self._owns_host = owns_host
        self._closed = False

    @classmethod
    def create(
        cls,
        *,
        settings: Optional[SdkSettings] = None,
        argv: Optional[Sequence[str]] = None,
        host: Optional[Host] = None,
        provider: Optional[RemoteSessionProvider] = None,
        configure_logging: bool = True,
    ) -> "SessionContext":
        settings = settings or SdkSettings.from_env()
        if configure_logging:
            setup_logger(level=settings.log_level)

        owns_host = host is None
        host = host or ThreadHost()
        owns_provider = provider is None
        if provider is None:
            endpoint = settings.default_endpoint if settings.credential_mode is CredentialMode.SESSION else None
            provider = CompanionClient(endpoint=endpoint, timeout=settings.request_timeout)

        events = EventBus()
        source = CredentialSource(
            argv,
            mode=settings.credential_mode,
            default_endpoint=settings.default_endpoint,
        )
        lifecycle = SessionLifecycle(
            provider, host, settings=settings, credential_source=source, events=events
        )
        return cls(
            lifecycle=lifecycle,
            stats=StatCache(lifecycle, provider, host),
            achievements=AchievementCache(lifecycle, provider, host),
            users=UserDirectory(lifecycle, provider, host),
            provider=provider,
            host=host,
            owns_provider=owns_provider,
            owns_host=owns_host,
        )

    def init(self, identity: Identity) -> bool:
        return self.lifecycle.init(identity)

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.lifecycle.shutdown()
        self.stats.close()
        self.users.close()
        host = self._host
        if self._owns_host and isinstance(host, ThreadHost) and host.in_worker():
            # a completion callback cannot join its own pool; finish teardown once it drains
            threading.Thread(target=self._release, name="ludolio-close", daemon=True).start()
            return
        self._release()

    def _release(self) -> None:
        try:
            if self._owns_host and isinstance(self._host, ThreadHost):
                # let the session_ended notification go out before the client closes
                self._host.close(wait=True)
        finally:
            if self._owns_provider:
                self._provider.close()

    def __enter__(self) -> "SessionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


__all__ = ["SessionContext"]
