from __future__ import annotations

import sys
from typing import Dict, List, Optional, Sequence

from state.models import CompanionEndpoint, CredentialMode, LaunchCredentials


FLAG_TOKEN = "--ludolio-token"
FLAG_USER = "--ludolio-user"
FLAG_PORT = "--ludolio-port"
FLAG_SESSION = "--ludolio-session"

_KNOWN_FLAGS = (FLAG_TOKEN, FLAG_USER, FLAG_PORT, FLAG_SESSION)

# field name -> flag that supplies it, per mode
REQUIRED_FIELDS: Dict[CredentialMode, Dict[str, str]] = {
    CredentialMode.DIRECT: {"token": FLAG_TOKEN, "user_id": FLAG_USER, "endpoint": FLAG_PORT},
    CredentialMode.SESSION: {"token": FLAG_SESSION},
}


def _collect_flags(argv: Sequence[str]) -> Dict[str, str]:
    """Collect `--flag value` and `--flag=value` pairs for the known flags.

    A flag followed by another flag (or nothing) has no value and is skipped.
    Later occurrences win.
    """
    out: Dict[str, str] = {}
    i = 0
    while i < len(argv):
        arg = argv[i]
        if "=" in arg:
            name, _, val = arg.partition("=")
            if name in _KNOWN_FLAGS:
                if val.strip():
                    out[name] = val.strip()
                i += 1
                continue
        if arg in _KNOWN_FLAGS and i + 1 < len(argv) and not argv[i + 1].startswith("--"):
            val = argv[i + 1].strip()
            if val:
                out[arg] = val
            i += 2
            continue
        i += 1
    return out


def _parse_port(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        port = int(raw)
    except ValueError:
        return None
    return port if 1 <= port <= 65535 else None


def parse_launch_args(
    argv: Sequence[str],
    *,
    mode: CredentialMode = CredentialMode.DIRECT,
    default_endpoint: Optional[CompanionEndpoint] = None,
) -> LaunchCredentials:
    """
    Extract launch credentials from process arguments. Pure parsing, no I/O.

    - DIRECT: --ludolio-token, --ludolio-user, --ludolio-port. The endpoint
      host comes from `default_endpoint` (loopback if not given).
    - SESSION: --ludolio-session; the endpoint is `default_endpoint`.

    Unparseable values (e.g. a non-numeric port) are treated as absent so the
    caller reports them as missing instead of guessing.
    """
    flags = _collect_flags(argv)
    host = default_endpoint.host if default_endpoint is not None else "127.0.0.1"

    if mode is CredentialMode.SESSION:
        return LaunchCredentials(token=flags.get(FLAG_SESSION), endpoint=default_endpoint)

    port = _parse_port(flags.get(FLAG_PORT))
    endpoint = CompanionEndpoint(host=host, port=port) if port is not None else None
    return LaunchCredentials(
        token=flags.get(FLAG_TOKEN),
        user_id=flags.get(FLAG_USER),
        endpoint=endpoint,
    )


def missing_fields(credentials: LaunchCredentials, mode: CredentialMode) -> List[str]:
    """Return the required field names that are absent, in a stable order."""
    return [name for name in REQUIRED_FIELDS[mode] if not getattr(credentials, name)]


def flags_for(fields: Sequence[str], mode: CredentialMode) -> List[str]:
    required = REQUIRED_FIELDS[mode]
    return [required[f] for f in fields]


class CredentialSource:
    """Reads launch credentials from the process arguments (sys.argv by default)."""

    def __init__(
        self,
        argv: Optional[Sequence[str]] = None,
        *,
        mode: CredentialMode = CredentialMode.DIRECT,
        default_endpoint: Optional[CompanionEndpoint] = None,
    ) -> None:
        self._argv = list(argv) if argv is not None else list(sys.argv[1:])
        self.mode = mode
        self._default_endpoint = default_endpoint

    def read(self) -> LaunchCredentials:
        return parse_launch_args(self._argv, mode=self.mode, default_endpoint=self._default_endpoint)


__all__ = [
    "CredentialSource",
    "parse_launch_args",
    "missing_fields",
    "flags_for",
    "FLAG_TOKEN",
    "FLAG_USER",
    "FLAG_PORT",
    "FLAG_SESSION",
]
