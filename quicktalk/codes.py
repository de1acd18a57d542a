"""In-memory issuance and consumption of one-time verification codes."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

DEFAULT_CODE_TTL = timedelta(minutes=5)
CODE_DIGITS = 6


@dataclass
class _CodeRecord:
    code: str
    expires_at: datetime


def _normalise_address(address: str) -> str:
    return address.strip().lower()


class CodeIssuer:
    """Generate and consume single-use, time-limited codes keyed by address.

    Every address holds at most one live code; issuing again replaces it.
    Expiry is checked lazily when a code is consumed, and a successful
    match removes the entry so the same code can never be used twice.
    """

    def __init__(
        self,
        *,
        ttl: timedelta = DEFAULT_CODE_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._codes: Dict[str, _CodeRecord] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, address: str) -> str:
        key = _normalise_address(address)
        if not key:
            raise ValueError("Address must not be empty")

        code = f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"
        now = self._now()
        with self._lock:
            self._prune_expired_locked(now)
            self._codes[key] = _CodeRecord(code=code, expires_at=now + self._ttl)
        return code

    def consume(self, address: str, code: str) -> bool:
        key = _normalise_address(address)
        now = self._now()
        with self._lock:
            record = self._codes.get(key)
            if record is None:
                return False
            if now > record.expires_at:
                self._codes.pop(key, None)
                return False
            if not secrets.compare_digest(record.code.encode("utf-8"), code.strip().encode("utf-8")):
                return False
            self._codes.pop(key, None)
            return True

    def has_live_code(self, address: str) -> bool:
        """Return ``True`` if an unexpired code is held for ``address``."""

        key = _normalise_address(address)
        now = self._now()
        with self._lock:
            record = self._codes.get(key)
            return record is not None and now <= record.expires_at

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""

        now = self._now()
        with self._lock:
            return self._prune_expired_locked(now)

    def _prune_expired_locked(self, now: datetime) -> int:
        expired = [key for key, record in self._codes.items() if now > record.expires_at]
        for key in expired:
            del self._codes[key]
        return len(expired)

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(timezone.utc)


__all__ = ["CODE_DIGITS", "CodeIssuer", "DEFAULT_CODE_TTL"]
