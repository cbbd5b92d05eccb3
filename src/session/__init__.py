"""
Session lifecycle for games launched by the Ludolio desktop app.

Modules:
- lifecycle: authentication state machine and liveness monitor
- user: current user's profile cache
- context: `SessionContext`, wiring lifecycle, stats and achievements
  (import it from `session.context`)
"""

from .lifecycle import LivenessMonitor, SessionLifecycle
from .user import UserDirectory

__all__ = ["LivenessMonitor", "SessionLifecycle", "UserDirectory"]
