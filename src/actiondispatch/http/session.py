"""
=============================================================================
SESSIONS
=============================================================================

In-memory session storage. Session-scoped handlers live here, keyed by
their canonical binding string, for as long as the session does.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Cookie: DSESSIONID=3f2a...                                         │
    │        │                                                            │
    │        ▼                                                            │
    │  SessionStore._sessions["3f2a..."]                                  │
    │        │                                                            │
    │        ▼                                                            │
    │  Session.attributes                                                 │
    │    "/wizard/{step}"  →  <CheckoutWizard instance>                   │
    │    "cart"            →  [...]                                       │
    └─────────────────────────────────────────────────────────────────────┘

Each session owns a re-entrant lock. The action resolver holds it while it
fetches or creates a session-scoped handler, so two concurrent requests in
one session never build two instances. Field writes on the shared instance
are not serialized (last write wins).

=============================================================================
"""

import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class Session:
    """A single client session."""

    id: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)
    is_new: bool = True
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def get_attribute(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def set_attribute(self, name: str, value: Any) -> None:
        self.attributes[name] = value

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    def touch(self) -> None:
        """Record an access; a touched session is no longer new."""
        self.last_accessed = time.time()
        self.is_new = False


class SessionStore:
    """
    Thread-safe map of session id to Session with idle expiry.

    Args:
        max_idle: Seconds a session may stay untouched before it is dropped.
    """

    def __init__(self, max_idle: float = 1800.0):
        self.max_idle = max_idle
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        """Return a live session, or None if unknown or expired."""
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if time.time() - session.last_accessed > self.max_idle:
                del self._sessions[session_id]
                return None
            session.touch()
            return session

    def create(self) -> Session:
        """Create and register a new session with an unguessable id."""
        session = Session(id=secrets.token_hex(16))
        with self._lock:
            self._sessions[session.id] = session
        return session

    def invalidate(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
