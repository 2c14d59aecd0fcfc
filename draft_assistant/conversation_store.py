from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from .models import PersistedMessage

logger = logging.getLogger("drafter.store")

SENDERS = ("customer", "seller")


class ConversationStore:
    """Persistent customer/seller conversation messages, keyed by conversation id."""

    def __init__(self, path: Optional[Path] = None) -> None:
        """Purpose: Initialize the store and hydrate it from disk if available.
        Inputs/Outputs: Input is an optional JSON file path; no return.
        Side Effects / State: Loads and caches conversations in memory.
        Dependencies: Calls _load; relies on the PersistedMessage model.
        Failure Modes: Corrupt JSON is logged and leaves an empty cache.
        If Removed: Approved messages are lost and the follow-up flag is always false.
        Testing Notes: Pass path=None for a memory-only store in tests.
        """
        self._path = path
        self._lock = threading.Lock()
        self._conversations: Dict[str, List[PersistedMessage]] = {}
        self._load()

    def _load(self) -> None:
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("conversation_store=corrupt path=%s", self._path)
            return
        for conversation_id, messages in data.get("conversations", {}).items():
            self._conversations[conversation_id] = [PersistedMessage(**msg) for msg in messages]

    def _persist(self) -> None:
        """Purpose: Write the in-memory conversations to disk.
        Inputs/Outputs: Writes to self._path; no return value.
        Side Effects / State: Creates the parent directory and rewrites the JSON file.
        Dependencies: json.dumps and Path.write_text.
        Failure Modes: IO errors raise (not caught here); callers map them to PersistenceError.
        If Removed: Conversations vanish on restart.
        Testing Notes: Add a message with a tmp path and reload a second store from it.
        """
        if not self._path:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "conversations": {
                conversation_id: [msg.dict() for msg in messages]
                for conversation_id, messages in self._conversations.items()
            }
        }
        self._path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    def add_message(
        self,
        conversation_id: str,
        sender: str,
        content: str,
        customer_name: Optional[str] = None,
    ) -> PersistedMessage:
        """Purpose: Append an immutable message to a conversation.
        Inputs/Outputs: Inputs are conversation id, sender, content and optional customer
            name; output is the stored PersistedMessage with id and timestamp.
        Side Effects / State: Mutates the cache and persists to disk.
        Dependencies: PersistedMessage, _persist.
        Failure Modes: Empty conversation id/content or unknown sender raise ValueError;
            IO errors propagate.
        If Removed: Approval has nowhere to deliver the proposed message.
        Testing Notes: Two adds must list back in timestamp order.
        """
        if not conversation_id or not conversation_id.strip():
            raise ValueError("conversation_id is required")
        if not content or not content.strip():
            raise ValueError("content is required")
        if sender not in SENDERS:
            raise ValueError(f"unknown sender: {sender}")
        message = PersistedMessage(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            sender=sender,
            content=content,
            customer_name=customer_name,
            timestamp=time.time(),
        )
        with self._lock:
            self._conversations.setdefault(conversation_id, []).append(message)
            self._persist()
        logger.info(
            "conversation=%s message=%s sender=%s length=%s",
            conversation_id,
            message.id,
            sender,
            len(content),
        )
        return message

    def list_messages(self, conversation_id: str) -> List[PersistedMessage]:
        with self._lock:
            messages = list(self._conversations.get(conversation_id, []))
        return sorted(messages, key=lambda msg: msg.timestamp)

    def has_messages(self, conversation_id: str) -> bool:
        with self._lock:
            return bool(self._conversations.get(conversation_id))

    def delete_messages(self, conversation_id: str) -> int:
        """Delete every message of a conversation and return how many were removed."""
        with self._lock:
            removed = self._conversations.pop(conversation_id, [])
            if removed:
                self._persist()
        logger.info("conversation=%s deleted_messages=%s", conversation_id, len(removed))
        return len(removed)
