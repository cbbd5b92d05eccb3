from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional

from common.credentials import CredentialSource, flags_for, missing_fields
from common.errors import MissingCredentialError, SdkError, ValidationRejectedError
from common.events import (
    AuthenticationComplete,
    CompanionDisconnected,
    EventBus,
    Initialized,
    SessionShutdown,
)
from common.host import Cancellable, Host
from common.provider import RemoteSessionProvider
from common.settings import SdkSettings
from state.models import Identity, LaunchCredentials, Session, SessionState, ValidatedSession


logger = logging.getLogger(__name__)


class LivenessMonitor:
    """
    Cancellable ticker that probes the companion at a fixed interval.

    Each tick runs to completion before the next one is scheduled, so checks
    never overlap. The first failure stops the ticker and calls `on_lost`
    with the error message; success only reschedules.
    """

    def __init__(
        self,
        host: Host,
        check: Callable[[float], None],
        on_lost: Callable[[str], None],
        *,
        interval: float,
        timeout: float,
    ) -> None:
        self._host = host
        self._check = check
        self._on_lost = on_lost
        self._interval = interval
        self._timeout = timeout
        self._lock = threading.Lock()
        self._running = False
        self._handle: Optional[Cancellable] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._handle = self._host.call_later(self._interval, self._tick)

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None

    def _tick(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._handle = None
        try:
            self._check(self._timeout)
        except Exception as exc:  # any failure means the companion is gone
            with self._lock:
                if not self._running:
                    return
                self._running = False
            self._on_lost(str(exc) or type(exc).__name__)
            return
        with self._lock:
            if self._running:
                self._handle = self._host.call_later(self._interval, self._tick)


class SessionLifecycle:
    """
    Owns the process session and its authentication state machine.

    UNINITIALIZED -> ARGS_PARSED -> VALIDATING -> AUTHENTICATED | FAILED,
    and AUTHENTICATED -> DISCONNECTED when the liveness monitor loses the
    companion. FAILED and DISCONNECTED both end the process through the host.

    All state lives behind one lock; events and callbacks are delivered
    outside of it. Background results carry the epoch they were issued in and
    are dropped once `shutdown()` has bumped it.
    """

    def __init__(
        self,
        provider: RemoteSessionProvider,
        host: Host,
        *,
        settings: Optional[SdkSettings] = None,
        credential_source: Optional[CredentialSource] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        self._provider = provider
        self._host = host
        self._settings = settings or SdkSettings()
        self._source = credential_source or CredentialSource(
            mode=self._settings.credential_mode,
            default_endpoint=self._settings.default_endpoint,
        )
        self.events = events or EventBus()

        self._lock = threading.RLock()
        self._session = Session()
        self._init_result: Optional[bool] = None
        self._initialized = False
        self._shut_down = False
        self._epoch = 0
        self._monitor = LivenessMonitor(
            host,
            lambda timeout: self._provider.check_liveness(timeout=timeout),
            self._on_companion_lost,
            interval=self._settings.liveness_interval,
            timeout=self._settings.liveness_timeout,
        )

    # --------------- Accessors ---------------
    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._session.state

    @property
    def is_initialized(self) -> bool:
        with self._lock:
            return self._initialized

    @property
    def is_authenticated(self) -> bool:
        with self._lock:
            return self._initialized and self._session.state is SessionState.AUTHENTICATED

    @property
    def user_id(self) -> Optional[str]:
        with self._lock:
            return self._session.user_id if self.is_authenticated else None

    @property
    def game_id(self) -> Optional[str]:
        with self._lock:
            return self._session.game_id if self.is_authenticated else None

    @property
    def last_error(self) -> Optional[str]:
        with self._lock:
            return self._session.last_error

    @property
    def session(self) -> Session:
        with self._lock:
            return self._session.model_copy()

    @property
    def epoch(self) -> int:
        with self._lock:
            return self._epoch

    def is_current(self, epoch: int) -> bool:
        """True while results issued in `epoch` may still be applied."""
        with self._lock:
            return self._initialized and epoch == self._epoch

    @property
    def monitor(self) -> LivenessMonitor:
        return self._monitor

    # --------------- Public API ---------------
    def init(self, identity: Identity) -> bool:
        """
        Parse launch credentials and start validating them.

        Returns True once validation has been submitted; the outcome arrives
        through `AuthenticationComplete`. Returns False when a required launch
        argument is missing (the session is FAILED and the host will quit).
        Later calls return the first call's result without side effects.
        """
        with self._lock:
            if self._shut_down:
                logger.warning("init() called after shutdown; session is dormant")
                return False
            if self._init_result is not None:
                logger.warning("Already initialized")
                return self._init_result

            self._initialized = True
            mode = self._source.mode
            credentials = self._source.read()
            self._session.raw_token = credentials.token or ""
            self._session.endpoint = credentials.endpoint
            self._set_state(SessionState.ARGS_PARSED)

            missing = missing_fields(credentials, mode)
            if missing:
                err = MissingCredentialError(missing, flags_for(missing, mode))
                self._fail_locked(str(err))
                self._init_result = False
            else:
                self._set_state(SessionState.VALIDATING)
                self._init_result = True
            epoch = self._epoch

        if not self._init_result:
            logger.error("Failed to initialize: %s", self.last_error)
            logger.error("Make sure the game is launched from the Ludolio desktop app")
            self._after_failure()
            return False

        logger.info("Launch credentials found; validating session for %s", identity.describe())
        self.events.emit(Initialized())
        self._host.submit(lambda: self._validate(epoch, credentials, identity))
        return True

    def shutdown(self) -> None:
        """Stop the liveness monitor and put the session to rest. Idempotent."""
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True
            was_authenticated = self.is_authenticated
            self._monitor.stop()
            self._initialized = False
            self._epoch += 1
        logger.info("Shutting down")
        if was_authenticated:
            self._notify("session_ended")
        self.events.emit(SessionShutdown())

    # --------------- Internal ---------------
    def _set_state(self, state: SessionState) -> None:
        logger.debug("Session state %s -> %s", self._session.state.value, state.value)
        self._session.state = state

    def _fail_locked(self, message: str) -> None:
        self._session.last_error = message
        self._set_state(SessionState.FAILED)

    def _validate(self, epoch: int, credentials: LaunchCredentials, identity: Identity) -> None:
        try:
            validated = self._provider.validate(
                credentials, identity, timeout=self._settings.validate_timeout
            )
            if identity.game_id is not None and validated.game_id != identity.game_id:
                raise ValidationRejectedError(
                    f"Game id mismatch: token is for {validated.game_id}, expected {identity.game_id}"
                )
        except SdkError as exc:
            self._complete_validation(epoch, None, str(exc))
            return
        except Exception as exc:
            logger.exception("Unexpected error during session validation")
            self._complete_validation(epoch, None, f"Unexpected validation error: {exc}")
            return
        self._complete_validation(epoch, validated, None)

    def _complete_validation(
        self,
        epoch: int,
        validated: Optional[ValidatedSession],
        error: Optional[str],
    ) -> None:
        with self._lock:
            if epoch != self._epoch or self._session.state is not SessionState.VALIDATING:
                logger.debug("Dropping stale validation result")
                return
            if validated is None:
                self._fail_locked(error or "Validation failed")
            else:
                self._session.game_id = validated.game_id
                self._session.user_id = validated.user_id
                self._session.last_error = None
                self._set_state(SessionState.AUTHENTICATED)
                self._monitor.start()

        if validated is None:
            logger.error("Authentication failed: %s", error)
            logger.error(
                "Possible causes: invalid or expired token, id mismatch, desktop app not running"
            )
            self._after_failure()
            return

        logger.info("Authentication successful (game %s)", validated.game_id)
        self.events.emit(AuthenticationComplete(True))
        self._notify("session_started", {"gameId": validated.game_id})

    def _after_failure(self) -> None:
        self.events.emit(AuthenticationComplete(False))
        grace = self._settings.quit_grace_period
        logger.error("Game will quit in %.1f seconds due to failed authentication", grace)
        self._host.call_later(grace, self._host.quit)

    def _on_companion_lost(self, reason: str) -> None:
        with self._lock:
            if not self._initialized or self._session.state is not SessionState.AUTHENTICATED:
                return
            self._session.last_error = f"Companion disconnected: {reason}"
            self._set_state(SessionState.DISCONNECTED)
        logger.error("Lost connection to the desktop app (%s); quitting", reason)
        self.events.emit(CompanionDisconnected(reason))
        self._host.quit()

    def _notify(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self._host.submit(lambda: self._provider.notify(event, payload))


__all__ = ["SessionLifecycle", "LivenessMonitor"]
