"""
Common utilities for the Ludolio session SDK.

Modules:
- companion: HTTP client for the companion desktop app
- credentials: launch-argument parsing
- events: observer registry and event types
- host: background-task / timer / quit primitives
- provider: the remote session provider contract
- settings: environment-driven configuration
"""

__all__ = [
    "companion",
    "credentials",
    "errors",
    "events",
    "host",
    "log",
    "provider",
    "settings",
]
