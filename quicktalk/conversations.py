"""Canonical conversation keys for pairs of handles."""

from __future__ import annotations

from typing import Optional

# Returned when either participant is missing; no persisted message carries it
# because the relay drops such submissions before keying them.
GLOBAL_CONVERSATION_KEY = "global"

KEY_SEPARATOR = "|"


def normalise_handle(handle: Optional[str]) -> str:
    if handle is None:
        return ""
    return handle.strip().lower()


def key_for(first: Optional[str], second: Optional[str]) -> str:
    """Return the direction-independent key for a conversation between two handles.

    Both handles are trimmed and lowercased and joined in lexicographic order,
    so ``key_for("Siri", "usha") == key_for("usha", "siri") == "siri|usha"``.
    """

    a = normalise_handle(first)
    b = normalise_handle(second)
    if not a or not b:
        return GLOBAL_CONVERSATION_KEY
    if b < a:
        a, b = b, a
    return f"{a}{KEY_SEPARATOR}{b}"


__all__ = ["GLOBAL_CONVERSATION_KEY", "KEY_SEPARATOR", "key_for", "normalise_handle"]
