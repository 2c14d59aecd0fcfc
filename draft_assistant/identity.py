"""Conversation and draft-thread identifiers.

A conversation id is long-lived; every draft thread id is derived from it as
"<conversation_id>-ai-<suffix>", so all draft history of a conversation can be
deleted with a single prefix match.
"""

from __future__ import annotations

import re
import secrets
import string
import time
from dataclasses import dataclass, field

THREAD_SEPARATOR = "-ai-"
_ALPHABET = string.ascii_lowercase + string.digits
_NAME_RE = re.compile(r"[^a-z0-9]+")


def _base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_ALPHABET[remainder])
    return "".join(reversed(digits))


def _random_suffix(length: int = 6) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _time_token() -> str:
    return _base36(int(time.time() * 1000))


def new_conversation_id(customer_name: str = "") -> str:
    """Purpose: Allocate a fresh conversation id for a customer session.
    Inputs/Outputs: Input is the customer display name; output is
        "conv-<sanitized name>-<time36>-<random>".
    Side Effects / State: None; uses the clock and a random source.
    Dependencies: secrets, time.
    Failure Modes: Empty or symbol-only names fall back to "client".
    If Removed: clear() has no way to start a brand-new conversation.
    Testing Notes: Two calls in a row must differ; name "Jean Dupont" gives "conv-jean-dupont-".
    """
    sanitized = _NAME_RE.sub("-", (customer_name or "").strip().lower()).strip("-") or "client"
    return f"conv-{sanitized}-{_time_token()}-{_random_suffix()}"


@dataclass(frozen=True)
class ThreadIdentity:
    """Draft thread id derived from, and always prefixed by, its conversation id."""

    conversation_id: str
    suffix: str = field(default_factory=lambda: f"{_time_token()}-{_random_suffix()}")

    def __post_init__(self) -> None:
        if not self.conversation_id or not self.conversation_id.strip():
            raise ValueError("conversation_id is required")
        if not self.suffix:
            raise ValueError("suffix is required")

    @property
    def thread_id(self) -> str:
        return f"{self.conversation_id}{THREAD_SEPARATOR}{self.suffix}"

    def rotate(self) -> "ThreadIdentity":
        """Return a fresh identity for the same conversation."""
        return ThreadIdentity(self.conversation_id)

    def belongs_to(self, conversation_id: str) -> bool:
        return bool(conversation_id) and self.thread_id.startswith(conversation_id)

    def __str__(self) -> str:
        return self.thread_id
