import os
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


class _Timer:
    def __init__(self, due: float, fn: Callable[[], None]) -> None:
        self.due = due
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualHost:
    """Host with a virtual clock; nothing runs until the test drives it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.tasks: List[Callable[[], None]] = []
        self.timers: List[_Timer] = []
        self.quit_times: List[float] = []

    def submit(self, fn: Callable[[], None]) -> None:
        self.tasks.append(fn)

    def call_later(self, delay: float, fn: Callable[[], None]) -> _Timer:
        t = _Timer(self.now + delay, fn)
        self.timers.append(t)
        return t

    def quit(self) -> None:
        self.quit_times.append(self.now)

    @property
    def pending_timers(self) -> List[_Timer]:
        return [t for t in self.timers if not t.cancelled]

    def run_pending(self) -> None:
        while self.tasks:
            self.tasks.pop(0)()

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            self.run_pending()
            due = sorted(
                (t for t in self.timers if not t.cancelled and t.due <= target),
                key=lambda t: t.due,
            )
            if not due:
                break
            t = due[0]
            self.timers.remove(t)
            self.now = t.due
            t.fn()
        self.now = target
        self.run_pending()


class FakeProvider:
    """In-memory companion; set `fail[...]` to an exception to make a call fail."""

    def __init__(self) -> None:
        from state.models import ValidatedSession

        self.calls: List[Tuple[str, Any]] = []
        self.fail: Dict[str, Exception] = {}
        self.validated = ValidatedSession(game_id="g1", user_id="u1")
        self.liveness_failures: List[Optional[Exception]] = []
        self.user_info: Any = None
        self.achievements: List[Any] = []
        self.stats: List[Any] = []
        self.stored: List[List[Any]] = []
        self.notifications: List[str] = []

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)

    def _maybe_fail(self, name: str) -> None:
        exc = self.fail.get(name)
        if exc is not None:
            raise exc

    def validate(self, credentials, identity, *, timeout=None):
        self.calls.append(("validate", (credentials, identity, timeout)))
        self._maybe_fail("validate")
        return self.validated

    def check_liveness(self, *, timeout=None):
        self.calls.append(("check_liveness", timeout))
        if self.liveness_failures:
            exc = self.liveness_failures.pop(0)
            if exc is not None:
                raise exc
        self._maybe_fail("check_liveness")

    def get_user_info(self):
        self.calls.append(("get_user_info", None))
        self._maybe_fail("get_user_info")
        return self.user_info

    def unlock_achievement(self, achievement_id):
        self.calls.append(("unlock_achievement", achievement_id))
        self._maybe_fail("unlock_achievement")

    def list_achievements(self):
        self.calls.append(("list_achievements", None))
        self._maybe_fail("list_achievements")
        return list(self.achievements)

    def request_stats(self):
        self.calls.append(("request_stats", None))
        self._maybe_fail("request_stats")
        return list(self.stats)

    def store_stats(self, entries):
        self.calls.append(("store_stats", entries))
        self._maybe_fail("store_stats")
        self.stored.append(entries)

    def notify(self, event, payload=None):
        self.notifications.append(event)

    def close(self):
        pass


@pytest.fixture
def host() -> ManualHost:
    return ManualHost()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


DIRECT_ARGV = ["game.exe", "--ludolio-token", "tok-123", "--ludolio-user", "u1", "--ludolio-port", "47700"]


@pytest.fixture
def make_lifecycle(host, provider):
    """Build a SessionLifecycle over the fakes; pass argv to override launch args."""
    from common.credentials import CredentialSource
    from common.settings import SdkSettings
    from session.lifecycle import SessionLifecycle

    def _make(argv=None, **settings_kw):
        settings = SdkSettings(**settings_kw)
        source = CredentialSource(
            DIRECT_ARGV if argv is None else argv,
            mode=settings.credential_mode,
            default_endpoint=settings.default_endpoint,
        )
        return SessionLifecycle(provider, host, settings=settings, credential_source=source)

    return _make


@pytest.fixture
def authenticated(make_lifecycle, host):
    """An AUTHENTICATED lifecycle (validation already completed)."""
    from state.models import Identity

    lc = make_lifecycle()
    assert lc.init(Identity.for_app(480)) is True
    host.run_pending()
    return lc
