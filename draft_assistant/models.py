from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field


class DraftingStreamRequest(BaseModel):
    """Request payload for the streamed drafting endpoint."""
    message: str = ""
    thread_id: str = Field(default="", alias="threadId")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    customer_name: Optional[str] = Field(default=None, alias="customerName")


class SaveMessageRequest(BaseModel):
    """Request payload for saving an approved customer message."""
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    content: Optional[str] = None
    customer_name: Optional[str] = Field(default=None, alias="customerName")


class SellerMessageRequest(BaseModel):
    """Request payload for a seller reply added to a conversation."""
    content: Optional[str] = None


class OpenDraftRequest(BaseModel):
    """Request payload opening a drafting session."""
    customer_name: Optional[str] = Field(default=None, alias="customerName")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class SubmitDraftRequest(BaseModel):
    """Request payload for one customer turn in a drafting session."""
    message: str = ""


class PersistedMessage(BaseModel):
    """Approved customer message or seller reply stored under a conversation."""
    id: str
    conversation_id: str
    sender: Literal["customer", "seller"]
    content: str
    customer_name: Optional[str] = None
    timestamp: float

    @property
    def timestamp_iso(self) -> str:
        return to_iso(self.timestamp)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "from": self.sender,
            "content": self.content,
            "timestamp": self.timestamp_iso,
            "customerName": self.customer_name,
        }


class ThreadMessage(BaseModel):
    """One turn of an ephemeral drafting thread."""
    thread_id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: float

    def to_payload(self) -> dict:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": to_iso(self.timestamp),
        }


def to_iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
