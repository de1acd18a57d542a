"""Bearer sessions handed out by the login endpoint."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

DEFAULT_SESSION_TTL = timedelta(hours=8)


@dataclass
class _Session:
    handle: str
    expires_at: datetime


class SessionManager:
    """Issue opaque tokens for verified handles with a sliding expiry.

    Resolving a token extends its lifetime; tokens are dropped on logout,
    on expiry, or for every session of a handle whose password was reset.
    """

    def __init__(self, *, ttl: timedelta = DEFAULT_SESSION_TTL) -> None:
        self._ttl = ttl
        self._sessions: Dict[str, _Session] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def expires_in(self) -> int:
        return int(self._ttl.total_seconds())

    def create(self, handle: str) -> str:
        token = secrets.token_urlsafe(32)
        expires_at = self._now() + self._ttl
        with self._lock:
            self._sessions[token] = _Session(handle=handle, expires_at=expires_at)
        return token

    def resolve(self, token: str) -> Optional[str]:
        now = self._now()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.expires_at <= now:
                del self._sessions[token]
                return None
            session.expires_at = now + self._ttl
            return session.handle

    def destroy(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def revoke_handle(self, handle: str) -> int:
        """Drop every session held by ``handle`` and return how many were removed."""

        target = handle.strip().lower()
        with self._lock:
            tokens = [
                token
                for token, session in self._sessions.items()
                if session.handle.lower() == target
            ]
            for token in tokens:
                del self._sessions[token]
        return len(tokens)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["DEFAULT_SESSION_TTL", "SessionManager"]
