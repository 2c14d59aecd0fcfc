from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from .identity import THREAD_SEPARATOR
from .models import ThreadMessage

logger = logging.getLogger("drafter.store")

ROLES = ("user", "assistant")


class ThreadStore:
    """Ephemeral drafting-thread history, keyed by thread id."""

    def __init__(self, path: Optional[Path] = None) -> None:
        """Purpose: Initialize the thread store and hydrate it from disk if available.
        Inputs/Outputs: Input is an optional JSON file path; no return.
        Side Effects / State: Loads and caches thread turns in memory.
        Dependencies: Calls _load; relies on the ThreadMessage model.
        Failure Modes: Corrupt JSON is logged and leaves an empty cache.
        If Removed: The assistant forgets earlier turns of the current draft.
        Testing Notes: Pass path=None for a memory-only store in tests.
        """
        self._path = path
        self._lock = threading.Lock()
        self._threads: Dict[str, List[ThreadMessage]] = {}
        self._load()

    def _load(self) -> None:
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("thread_store=corrupt path=%s", self._path)
            return
        for thread_id, messages in data.get("threads", {}).items():
            self._threads[thread_id] = [ThreadMessage(**msg) for msg in messages]

    def _persist(self) -> None:
        if not self._path:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "threads": {
                thread_id: [msg.dict() for msg in messages]
                for thread_id, messages in self._threads.items()
            }
        }
        self._path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    def append(self, thread_id: str, role: str, content: str) -> ThreadMessage:
        if not thread_id:
            raise ValueError("thread_id is required")
        if role not in ROLES:
            raise ValueError(f"unknown role: {role}")
        message = ThreadMessage(thread_id=thread_id, role=role, content=content, timestamp=time.time())
        with self._lock:
            self._threads.setdefault(thread_id, []).append(message)
            self._persist()
        return message

    def list_thread_history(self, thread_id: str) -> List[ThreadMessage]:
        with self._lock:
            messages = list(self._threads.get(thread_id, []))
        return sorted(messages, key=lambda msg: msg.timestamp)

    def delete_threads_by_prefix(self, prefix: str) -> int:
        """Purpose: Delete every draft thread derived from a conversation id.
        Inputs/Outputs: Input is a conversation id; threads "<id>-ai-*" match; output is the number of
            thread messages removed.
        Side Effects / State: Mutates the cache and persists to disk.
        Dependencies: _persist.
        Failure Modes: An empty prefix raises ValueError (it would match every thread).
        If Removed: Draft history of cleared conversations accumulates forever.
        Testing Notes: Threads of another conversation must survive the delete.
        """
        if not prefix:
            raise ValueError("prefix is required")
        with self._lock:
            # Match whole conversation ids only: "conv-a" must not reach "conv-ab-ai-*".
            owned = prefix + THREAD_SEPARATOR
            matched = [
                thread_id for thread_id in self._threads if thread_id == prefix or thread_id.startswith(owned)
            ]
            removed = sum(len(self._threads.pop(thread_id)) for thread_id in matched)
            if matched:
                self._persist()
        logger.info("prefix=%s deleted_threads=%s deleted_messages=%s", prefix, len(matched), removed)
        return removed
