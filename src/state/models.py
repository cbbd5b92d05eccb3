from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ARGS_PARSED = "args_parsed"
    VALIDATING = "validating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


class CredentialMode(str, Enum):
    """Which launch arguments the companion passes to the game.

    - DIRECT: separate token, user id and companion port.
    - SESSION: one combined session token; the endpoint comes from settings.
    """

    DIRECT = "direct"
    SESSION = "session"


class CompanionEndpoint(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(..., ge=1, le=65535)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class LaunchCredentials(BaseModel):
    """Raw values parsed from the process arguments. Any field may be absent."""

    token: Optional[str] = None
    user_id: Optional[str] = None
    endpoint: Optional[CompanionEndpoint] = None


class Identity(BaseModel):
    """
    Who the game claims to be when validating its launch token.

    Exactly one of `app_id` / `game_id` is set; build it with `for_app()` or
    `for_game()`.
    """

    model_config = ConfigDict(frozen=True)

    app_id: Optional[int] = None
    game_id: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "Identity":
        if (self.app_id is None) == (self.game_id is None):
            raise ValueError("Identity requires exactly one of app_id or game_id")
        if self.game_id is not None and not self.game_id:
            raise ValueError("game_id must not be empty")
        return self

    @classmethod
    def for_app(cls, app_id: int) -> "Identity":
        return cls(app_id=app_id)

    @classmethod
    def for_game(cls, game_id: str) -> "Identity":
        return cls(game_id=game_id)

    def describe(self) -> str:
        return f"app id {self.app_id}" if self.app_id is not None else f"game id {self.game_id}"


class ValidatedSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(..., alias="gameId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)


class Session(BaseModel):
    """
    Authenticated runtime identity of the current process.

    Owned and mutated only by `session.lifecycle.SessionLifecycle`. `game_id`
    and `user_id` stay None until the session reaches AUTHENTICATED.
    """

    raw_token: str = ""
    user_id: Optional[str] = None
    endpoint: Optional[CompanionEndpoint] = None
    game_id: Optional[str] = None
    state: SessionState = SessionState.UNINITIALIZED
    last_error: Optional[str] = None


class StatKind(str, Enum):
    INT = "int"
    FLOAT = "float"


class StatEntry(BaseModel):
    """
    One named statistic.

    Wire items look like {"id": "kills", "kind": "int", "value": 5}; when
    "kind" (or "type") is missing it is inferred from the JSON value.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    kind: StatKind
    value: Union[int, float]
    dirty: bool = False

    @model_validator(mode="before")
    @classmethod
    def _infer_kind(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = dict(data)
        if "kind" not in out and "type" in out:
            out["kind"] = out.pop("type")
        if "kind" not in out:
            val = out.get("value")
            out["kind"] = StatKind.INT if isinstance(val, int) and not isinstance(val, bool) else StatKind.FLOAT
        return out

    @model_validator(mode="after")
    def _coerce_value(self) -> "StatEntry":
        if isinstance(self.value, bool):
            raise ValueError("stat value must be numeric")
        if self.kind is StatKind.INT:
            if isinstance(self.value, float):
                if not self.value.is_integer():
                    raise ValueError(f"int stat '{self.id}' has non-integral value {self.value}")
                self.value = int(self.value)
        else:
            self.value = float(self.value)
        return self

    def to_wire(self) -> Dict[str, Any]:
        return {"id": self.id, "kind": self.kind.value, "value": self.value}


class AchievementEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    icon: str = ""
    unlocked: bool = False
    unlocked_at: Optional[datetime] = Field(default=None, alias="unlockedAt")
    progress: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="before")
    @classmethod
    def _blank_timestamp(cls, data: Any) -> Any:
        # Companion sends "" for achievements that were never unlocked
        if isinstance(data, dict):
            for key in ("unlockedAt", "unlocked_at"):
                if data.get(key) == "":
                    data = {**data, key: None}
        return data

    @model_validator(mode="after")
    def _full_progress_is_unlocked(self) -> "AchievementEntry":
        if self.progress is not None and self.progress >= 1.0:
            self.unlocked = True
            self.progress = None
        return self


class UserInfo(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    email: Optional[str] = None
