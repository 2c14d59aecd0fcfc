from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict

START = "start"
TOKEN = "token"
END = "end"
ERROR = "error"
CANCELLED = "cancelled"

TERMINAL_EVENTS = (END, ERROR, CANCELLED)


@dataclass(frozen=True)
class StreamEvent:
    """One event of a streamed reply: start, token*, then end, error or cancelled."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def encode(self) -> str:
        """Serialize as a server-sent event frame."""
        return f"event: {self.type}\ndata: {json.dumps(self.data, ensure_ascii=False)}\n\n"
