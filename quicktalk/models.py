"""Domain models for accounts and relayed messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Profile:
    """Display attributes supplied at registration; opaque to the core."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    country_of_origin: Optional[str] = None


@dataclass(frozen=True)
class Account:
    """Represents a registered account stored in the identity store."""

    id: int
    handle: str
    address: str
    password_hash: str = field(repr=False)
    verified: bool
    created_at: datetime
    profile: Profile = field(default_factory=Profile)


@dataclass(frozen=True)
class Message:
    """A persisted chat message between two handles."""

    id: int
    room: str
    sender: str
    recipient: str
    content: str
    sent_at: datetime

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "room": self.room,
            "sender": self.sender,
            "recipient": self.recipient,
            "content": self.content,
            "sent_at": self.sent_at.isoformat(),
        }


__all__ = ["Account", "Message", "Profile"]
