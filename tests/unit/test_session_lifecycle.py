from __future__ import annotations

from typing import List

import pytest

from common.errors import CompanionTransportError, ValidationRejectedError
from common.events import (
    AuthenticationComplete,
    CompanionDisconnected,
    Initialized,
    SessionShutdown,
)
from state.models import Identity, SessionState, ValidatedSession


def _record(lc, event_type) -> List[object]:
    seen: List[object] = []
    lc.events.subscribe(event_type, seen.append)
    return seen


def test_successful_validation_authenticates(make_lifecycle, host, provider):
    lc = make_lifecycle()
    auth = _record(lc, AuthenticationComplete)
    inits = _record(lc, Initialized)

    assert lc.init(Identity.for_app(480)) is True
    assert lc.state is SessionState.VALIDATING
    assert lc.game_id is None and lc.user_id is None  # not readable before AUTHENTICATED
    assert len(inits) == 1

    host.run_pending()

    assert lc.state is SessionState.AUTHENTICATED
    assert lc.is_authenticated
    assert lc.game_id == "g1"
    assert lc.user_id == "u1"
    assert auth == [AuthenticationComplete(True)]
    assert lc.monitor.running
    assert host.quit_times == []

    creds, identity, timeout = provider.calls[0][1]
    assert creds.token == "tok-123"
    assert creds.endpoint.port == 47700
    assert identity.app_id == 480
    assert timeout == 10.0


def test_missing_credentials_fail_without_remote_call(make_lifecycle, host, provider):
    lc = make_lifecycle(argv=["game.exe", "--ludolio-user", "u1"])
    auth = _record(lc, AuthenticationComplete)

    assert lc.init(Identity.for_app(480)) is False

    assert lc.state is SessionState.FAILED
    assert provider.count("validate") == 0
    assert "token (--ludolio-token)" in lc.last_error
    assert "endpoint (--ludolio-port)" in lc.last_error
    assert "user_id" not in lc.last_error
    assert auth == [AuthenticationComplete(False)]


def test_session_mode_requires_only_session_token(make_lifecycle, host, provider):
    lc = make_lifecycle(argv=["--ludolio-session", "sess-1"], credential_mode="session")
    assert lc.init(Identity.for_game("g1")) is True
    host.run_pending()
    assert lc.state is SessionState.AUTHENTICATED

    creds = provider.calls[0][1][0]
    assert creds.token == "sess-1"
    assert creds.endpoint.port == 47615


def test_session_mode_missing_token_names_flag(make_lifecycle):
    lc = make_lifecycle(argv=[], credential_mode="session")
    assert lc.init(Identity.for_game("g1")) is False
    assert "--ludolio-session" in lc.last_error


def test_init_is_idempotent(make_lifecycle, host, provider):
    lc = make_lifecycle()
    auth = _record(lc, AuthenticationComplete)

    assert lc.init(Identity.for_app(480)) is True
    host.run_pending()
    assert lc.init(Identity.for_app(480)) is True
    assert lc.init(Identity.for_app(999)) is True
    host.run_pending()

    assert provider.count("validate") == 1
    assert len(auth) == 1


def test_init_after_missing_credentials_keeps_returning_false(make_lifecycle, provider):
    lc = make_lifecycle(argv=[])
    assert lc.init(Identity.for_app(1)) is False
    assert lc.init(Identity.for_app(1)) is False
    assert provider.count("validate") == 0


@pytest.mark.parametrize(
    "exc",
    [ValidationRejectedError("token expired"), CompanionTransportError("Companion request timed out")],
)
def test_validation_failure_quits_after_grace_period(make_lifecycle, host, provider, exc):
    provider.fail["validate"] = exc
    lc = make_lifecycle()
    auth = _record(lc, AuthenticationComplete)

    assert lc.init(Identity.for_app(480)) is True
    host.run_pending()

    assert lc.state is SessionState.FAILED
    assert lc.last_error == str(exc)
    assert auth == [AuthenticationComplete(False)]
    assert not lc.monitor.running

    host.advance(0.5)
    assert host.quit_times == []  # not before the grace period
    host.advance(0.5)
    assert host.quit_times == [1.0]


def test_game_id_mismatch_is_rejected(make_lifecycle, host, provider):
    provider.validated = ValidatedSession(game_id="other", user_id="u1")
    lc = make_lifecycle()
    assert lc.init(Identity.for_game("g1")) is True
    host.run_pending()

    assert lc.state is SessionState.FAILED
    assert "mismatch" in lc.last_error


def test_liveness_failure_disconnects_once_and_stops_checks(authenticated, host, provider):
    lc = authenticated
    disconnects = _record(lc, CompanionDisconnected)
    provider.liveness_failures = [None, None, CompanionTransportError("Companion request timed out")]

    host.advance(30.0)
    host.advance(30.0)
    assert lc.state is SessionState.AUTHENTICATED
    assert provider.count("check_liveness") == 2

    host.advance(30.0)
    assert lc.state is SessionState.DISCONNECTED
    assert len(disconnects) == 1
    assert "timed out" in disconnects[0].reason
    assert host.quit_times == [90.0]
    assert not lc.is_authenticated
    assert lc.game_id is None

    host.advance(300.0)
    assert provider.count("check_liveness") == 3
    assert len(disconnects) == 1


def test_liveness_uses_short_timeout(authenticated, host, provider):
    host.advance(30.0)
    timeouts = [arg for name, arg in provider.calls if name == "check_liveness"]
    assert timeouts == [3.0]


def test_liveness_ticks_never_overlap(authenticated, host):
    host.advance(30.0)
    # exactly one pending timer after each completed tick
    assert len(host.pending_timers) == 1


def test_shutdown_cancels_monitor(authenticated, host, provider):
    lc = authenticated
    disconnects = _record(lc, CompanionDisconnected)
    shutdowns = _record(lc, SessionShutdown)
    provider.fail["check_liveness"] = CompanionTransportError("gone")

    lc.shutdown()
    lc.shutdown()
    host.advance(120.0)

    assert provider.count("check_liveness") == 0
    assert disconnects == []
    assert host.quit_times == []
    assert len(shutdowns) == 1
    assert not lc.is_initialized
    assert not lc.is_authenticated
    assert "session_ended" in provider.notifications


def test_shutdown_drops_pending_validation(make_lifecycle, host, provider):
    lc = make_lifecycle()
    auth = _record(lc, AuthenticationComplete)
    assert lc.init(Identity.for_app(480)) is True

    lc.shutdown()
    host.run_pending()

    assert provider.count("validate") == 1
    assert auth == []
    assert lc.state is not SessionState.AUTHENTICATED
    assert lc.init(Identity.for_app(480)) is False


def test_shutdown_before_init_is_safe(make_lifecycle):
    lc = make_lifecycle()
    lc.shutdown()
    assert lc.state is SessionState.UNINITIALIZED
    assert lc.init(Identity.for_app(1)) is False


def test_session_started_notification(authenticated, host, provider):
    host.run_pending()
    assert provider.notifications == ["session_started"]


def test_failing_event_handler_does_not_block_others(make_lifecycle, host):
    lc = make_lifecycle()
    seen: List[object] = []

    def boom(_event):
        raise RuntimeError("handler bug")

    lc.events.subscribe(AuthenticationComplete, boom)
    lc.events.subscribe(AuthenticationComplete, seen.append)
    lc.init(Identity.for_app(480))
    host.run_pending()

    assert seen == [AuthenticationComplete(True)]
    assert lc.is_authenticated
