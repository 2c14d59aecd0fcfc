from __future__ import annotations

from typing import Optional


class DraftingError(Exception):
    """Base class for failures surfaced by the drafting session layer."""

    status_code = 500

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation


class InvalidTransitionError(DraftingError):
    """Operation invoked from a session state where it is not allowed."""

    status_code = 409

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f"Cannot {operation} while session is {state}", operation=operation)
        self.state = state


class SessionBusyError(DraftingError):
    """Another submit or approval is already running on the same conversation."""

    status_code = 409

    def __init__(self, conversation_id: str, operation: str) -> None:
        super().__init__(f"Conversation {conversation_id} is busy", operation=operation)
        self.conversation_id = conversation_id


class ApprovalWithoutProposalError(DraftingError):
    """Approval requested but no proposed message could be extracted."""

    status_code = 422

    def __init__(self) -> None:
        super().__init__("No proposed message to approve", operation="approve")


class PersistenceError(DraftingError):
    """Wraps a storage failure with the name of the operation that failed."""

    status_code = 500

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Failed to {operation}", operation=operation)
        self.cause = cause
