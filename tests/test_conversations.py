from __future__ import annotations

import pytest

from quicktalk.conversations import GLOBAL_CONVERSATION_KEY, key_for


def test_key_is_direction_independent() -> None:
    assert key_for("siri", "usha") == "siri|usha"
    assert key_for("usha", "siri") == "siri|usha"


@pytest.mark.parametrize(
    "first, second",
    [
        ("Siri", "usha"),
        ("  siri ", "USHA"),
        ("alice", "bob"),
        ("zed", "amy"),
        ("same", "same"),
    ],
)
def test_key_is_symmetric(first: str, second: str) -> None:
    assert key_for(first, second) == key_for(second, first)


def test_handles_are_trimmed_and_lowercased() -> None:
    assert key_for("  Siri ", "USHA") == "siri|usha"


def test_self_conversation_key() -> None:
    assert key_for("siri", "siri") == "siri|siri"


@pytest.mark.parametrize("first, second", [(None, "usha"), ("siri", None), ("", "usha"), ("siri", "   ")])
def test_missing_participant_maps_to_global(first, second) -> None:
    assert key_for(first, second) == GLOBAL_CONVERSATION_KEY
    assert GLOBAL_CONVERSATION_KEY == "global"
