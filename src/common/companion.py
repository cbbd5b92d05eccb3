from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from state.models import (
    AchievementEntry,
    CompanionEndpoint,
    Identity,
    LaunchCredentials,
    StatEntry,
    UserInfo,
    ValidatedSession,
)

from .errors import (
    CompanionApiError,
    CompanionError,
    CompanionTransportError,
    ValidationRejectedError,
)


API_PREFIX = "/api/sdk"
USER_HEADER = "X-Ludolio-User"

logger = logging.getLogger(__name__)


class CompanionClient:
    """
    HTTP-over-loopback client for the companion desktop application.

    Notes
    - The endpoint and bearer token are taken from the launch credentials at
      `validate()` time; every other call requires a prior validation.
    - No retries: the session layer treats any failure as final.
    - Responses may use an envelope `{success, data, error}`; a payload with
      `success: false` is a rejection carrying `error` as its message.
    """

    def __init__(
        self,
        *,
        endpoint: Optional[CompanionEndpoint] = None,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)
        self._token: Optional[str] = None
        self._user_id: Optional[str] = None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "CompanionClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def endpoint(self) -> Optional[CompanionEndpoint]:
        return self._endpoint

    # --------------- Public API ---------------
    def validate(
        self,
        credentials: LaunchCredentials,
        identity: Identity,
        *,
        timeout: Optional[float] = None,
    ) -> ValidatedSession:
        """
        Validate the launch token with the companion.

        Returns the game and user ids the companion associates with the token.
        Raises ValidationRejectedError when the companion refuses the token.
        """
        if not credentials.token:
            raise ValidationRejectedError("No session token to validate")
        if credentials.endpoint is not None:
            self._endpoint = credentials.endpoint
        if self._endpoint is None:
            raise CompanionTransportError("Companion endpoint is unknown")

        body: Dict[str, Any] = {"token": credentials.token}
        if credentials.user_id:
            body["userId"] = credentials.user_id
        if identity.app_id is not None:
            body["appId"] = identity.app_id
        else:
            body["gameId"] = identity.game_id

        try:
            data = self._request("POST", "/auth/validate", json_body=body, timeout=timeout, auth=False)
        except ValidationRejectedError:
            raise
        except CompanionApiError as exc:
            raise ValidationRejectedError(str(exc)) from exc

        if not isinstance(data, dict):
            raise ValidationRejectedError("Malformed validation response from companion")
        if "userId" not in data and credentials.user_id:
            data = {**data, "userId": credentials.user_id}
        try:
            validated = ValidatedSession.model_validate(data)
        except ValidationError as ve:
            raise ValidationRejectedError(f"Malformed validation response: {ve}") from ve

        self._token = credentials.token
        self._user_id = validated.user_id
        return validated

    def check_liveness(self, *, timeout: Optional[float] = None) -> None:
        data = self._request("GET", "/health", timeout=timeout)
        if isinstance(data, dict) and data.get("alive") is False:
            raise CompanionApiError("Companion reported it is not alive")

    def get_user_info(self) -> UserInfo:
        data = self._request("GET", "/user")
        try:
            return UserInfo.model_validate(data)
        except ValidationError as ve:
            raise CompanionApiError(f"Failed to parse user info: {ve}") from ve

    def unlock_achievement(self, achievement_id: str) -> None:
        self._request("POST", f"/achievements/{quote(achievement_id, safe='')}/unlock")

    def list_achievements(self) -> List[AchievementEntry]:
        data = self._request("GET", "/achievements")
        items = self._unwrap_list(data, "achievements")
        try:
            return [AchievementEntry.model_validate(item) for item in items]
        except ValidationError as ve:
            raise CompanionApiError(f"Failed to parse achievements: {ve}") from ve

    def request_stats(self) -> List[StatEntry]:
        data = self._request("GET", "/stats")
        items = self._unwrap_list(data, "stats")
        try:
            return [StatEntry.model_validate(item) for item in items]
        except ValidationError as ve:
            raise CompanionApiError(f"Failed to parse stats: {ve}") from ve

    def store_stats(self, entries: List[StatEntry]) -> None:
        self._request("PUT", "/stats", json_body={"stats": [e.to_wire() for e in entries]})

    def notify(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Fire-and-forget notification; failures are logged, not raised."""
        try:
            self._request("POST", "/events", json_body={"event": event, "payload": payload or {}})
        except CompanionError as exc:
            logger.warning("Companion notification %r not delivered: %s", event, exc)

    # --------------- Internal ---------------
    def _headers(self, auth: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {"Accept": "application/json"}
        if auth:
            if not self._token:
                raise CompanionApiError("Companion session has not been validated")
            headers["Authorization"] = f"Bearer {self._token}"
            if self._user_id:
                headers[USER_HEADER] = self._user_id
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        auth: bool = True,
    ) -> Any:
        if self._endpoint is None:
            raise CompanionTransportError("Companion endpoint is unknown")
        url = f"{self._endpoint.base_url}{API_PREFIX}{path}"
        headers = self._headers(auth)
        try:
            resp = self._client.request(
                method,
                url,
                json=json_body,
                headers=headers,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise CompanionTransportError(f"Companion request timed out: {method} {path}") from exc
        except httpx.TransportError as exc:
            raise CompanionTransportError(f"Companion unreachable: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise CompanionApiError(
                f"HTTP {resp.status_code} from companion: {self._error_text(resp)}"
            )
        if not resp.content:
            return None
        try:
            payload = resp.json()
        except ValueError as exc:
            raise CompanionApiError("Failed to parse JSON from companion") from exc
        return self._unwrap_envelope(payload)

    @staticmethod
    def _error_text(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200]
        if isinstance(body, dict):
            msg = body.get("error") or body.get("message")
            if isinstance(msg, str) and msg:
                return msg
        return resp.text[:200]

    @staticmethod
    def _unwrap_envelope(payload: Any) -> Any:
        if isinstance(payload, dict) and "success" in payload:
            if payload.get("success") is not True:
                msg = payload.get("error") or payload.get("message") or "Companion API error"
                raise CompanionApiError(str(msg))
            return payload.get("data")
        return payload

    @staticmethod
    def _unwrap_list(data: Any, key: str) -> List[Any]:
        if isinstance(data, dict):
            data = data.get(key)
        if not isinstance(data, list):
            raise CompanionApiError(f"Expected a list of {key} from companion")
        return data


__all__ = ["CompanionClient", "API_PREFIX", "USER_HEADER"]
