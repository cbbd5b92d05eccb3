from __future__ import annotations

import os
from typing import Callable, Dict, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError, model_validator

from state.models import CompanionEndpoint, CredentialMode


DEFAULT_COMPANION_HOST = "127.0.0.1"
DEFAULT_COMPANION_PORT = 47615

# Environment variable names (all optional)
ENV_COMPANION_HOST = "LUDOLIO_COMPANION_HOST"
ENV_COMPANION_PORT = "LUDOLIO_COMPANION_PORT"
ENV_CREDENTIAL_MODE = "LUDOLIO_CREDENTIAL_MODE"
ENV_VALIDATE_TIMEOUT = "LUDOLIO_VALIDATE_TIMEOUT"
ENV_REQUEST_TIMEOUT = "LUDOLIO_REQUEST_TIMEOUT"
ENV_LIVENESS_INTERVAL = "LUDOLIO_LIVENESS_INTERVAL"
ENV_LIVENESS_TIMEOUT = "LUDOLIO_LIVENESS_TIMEOUT"
ENV_QUIT_GRACE = "LUDOLIO_QUIT_GRACE"
ENV_LOG_LEVEL = "LUDOLIO_LOG_LEVEL"

T = TypeVar("T")


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _parse_env(name: str, raw: str, conv: Callable[[str], T]) -> T:
    try:
        return conv(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from exc


class SdkSettings(BaseModel):
    """
    Runtime configuration of the SDK.

    Fields
    - companion_host / companion_port: where the companion listens. The port
      is only used in SESSION mode; DIRECT mode takes it from --ludolio-port.
    - validate_timeout: upper bound for the one-shot token validation.
    - request_timeout: upper bound for stats/achievement/user calls.
    - liveness_interval / liveness_timeout: health-check cadence; the timeout
      must be well below the interval.
    - quit_grace_period: delay between a failed validation and host quit, so
      diagnostics get flushed.
    """

    companion_host: str = DEFAULT_COMPANION_HOST
    companion_port: int = Field(default=DEFAULT_COMPANION_PORT, ge=1, le=65535)
    credential_mode: CredentialMode = CredentialMode.DIRECT
    validate_timeout: float = Field(default=10.0, gt=0)
    request_timeout: float = Field(default=15.0, gt=0)
    liveness_interval: float = Field(default=30.0, gt=0)
    liveness_timeout: float = Field(default=3.0, gt=0)
    quit_grace_period: float = Field(default=1.0, ge=0)
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_liveness(self) -> "SdkSettings":
        if self.liveness_timeout >= self.liveness_interval:
            raise ValueError("liveness_timeout must be smaller than liveness_interval")
        return self

    @property
    def default_endpoint(self) -> CompanionEndpoint:
        return CompanionEndpoint(host=self.companion_host, port=self.companion_port)

    @classmethod
    def from_env(cls) -> "SdkSettings":
        values: Dict[str, object] = {}
        host = _getenv(ENV_COMPANION_HOST)
        if host:
            values["companion_host"] = host
        port = _getenv(ENV_COMPANION_PORT)
        if port:
            values["companion_port"] = _parse_env(ENV_COMPANION_PORT, port, int)
        mode = _getenv(ENV_CREDENTIAL_MODE)
        if mode:
            values["credential_mode"] = _parse_env(
                ENV_CREDENTIAL_MODE, mode, lambda s: CredentialMode(s.strip().lower())
            )
        for env_name, field in (
            (ENV_VALIDATE_TIMEOUT, "validate_timeout"),
            (ENV_REQUEST_TIMEOUT, "request_timeout"),
            (ENV_LIVENESS_INTERVAL, "liveness_interval"),
            (ENV_LIVENESS_TIMEOUT, "liveness_timeout"),
            (ENV_QUIT_GRACE, "quit_grace_period"),
        ):
            raw = _getenv(env_name)
            if raw:
                values[field] = _parse_env(env_name, raw, float)
        level = _getenv(ENV_LOG_LEVEL)
        if level:
            values["log_level"] = level.upper()
        try:
            return cls(**values)
        except ValidationError as ve:
            raise ValueError(f"Invalid SDK configuration from environment: {ve}") from ve


__all__ = ["SdkSettings", "DEFAULT_COMPANION_PORT", "DEFAULT_COMPANION_HOST"]
