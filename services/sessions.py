"""In-memory login sessions.

Sessions live only in RAM: a restart logs everybody out. Expiry is absolute
from creation and expired entries are dropped lazily, on lookup.
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


SESSION_COOKIE_NAME = "session_token"
DEFAULT_SESSION_SECONDS = 24 * 3600


@dataclass(frozen=True)
class Session:
    username: str
    token: str
    expires_at: float


class SessionStore:
    """Token -> :class:`Session` registry guarded by a single lock."""

    def __init__(
        self,
        duration_seconds: float = DEFAULT_SESSION_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.duration_seconds = float(duration_seconds)
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, username: str) -> Session:
        with self._lock:
            token = secrets.token_urlsafe(32)
            while token in self._sessions:
                token = secrets.token_urlsafe(32)
            sess = Session(
                username=username,
                token=token,
                expires_at=self._clock() + self.duration_seconds,
            )
            self._sessions[token] = sess
            return sess

    def validate(self, token: Optional[str]) -> Optional[Session]:
        """Return the live session for ``token``, or None.

        An expired session is removed as a side effect.
        """
        if not token:
            return None
        with self._lock:
            sess = self._sessions.get(token)
            if sess is None:
                return None
            if self._clock() >= sess.expires_at:
                del self._sessions[token]
                return None
            return sess

    def invalidate(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            self._sessions.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
