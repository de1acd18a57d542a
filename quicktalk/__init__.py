"""Core of the QuickTalk chat service: OTP-verified accounts and a two-party relay."""

from __future__ import annotations

from typing import Any

from .conversations import GLOBAL_CONVERSATION_KEY, key_for
from .database import Database


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP + WebSocket application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "GLOBAL_CONVERSATION_KEY",
    "create_app",
    "key_for",
]
