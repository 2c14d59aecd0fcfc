"""Drafting session state machine.

Role:
    Sequences one customer's drafting rounds: streams assistant replies into draft turns,
    detects proposals, persists the approved message into the conversation and resets
    or clears the ephemeral draft identity.

States:
    Idle             no draft turns, nothing pending
    Drafting         turns exchanged on the current thread, no approvable proposal
    ProposalPending  latest assistant turn carries a non-empty proposed message
    Approving        persistence of the approved message in flight

Transitions:
    submit   Idle|Drafting|ProposalPending -> ProposalPending (proposal found) | Drafting
    approve  ProposalPending -> Approving -> Idle (persisted, turns cleared, thread rotated)
                                          -> ProposalPending (nothing to approve)
                                          -> Drafting (persistence failure)
    clear    any -> Idle under a brand-new conversation id

Concurrency:
    One asyncio.Lock per session. A submit or approve arriving while another is in flight
    raises SessionBusyError instead of queueing.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional

from .conversation_store import ConversationStore
from .errors import ApprovalWithoutProposalError, InvalidTransitionError, PersistenceError, SessionBusyError
from .events import CANCELLED, END, ERROR, START, TOKEN, StreamEvent
from .identity import ThreadIdentity, new_conversation_id
from .message_context import DEFAULT_CUSTOMER_NAME, MessageContext, build_message_context
from .models import PersistedMessage
from .proposal import ProposedMessage, extract_proposal, has_proposal_marker
from .thread_store import ThreadStore

logger = logging.getLogger("drafter.session")

ReplyGenerator = Callable[[str, str, MessageContext], AsyncIterator[str]]

STATUS_COMPLETE = "complete"
STATUS_STREAMING = "streaming"
STATUS_ERROR = "error"
STATUS_CANCELLED = "cancelled"

STREAM_ERROR_TEXT = "Erreur lors de la génération de la réponse: {error}"
CANCELLED_TEXT = "[Génération annulée]"
NO_PROPOSAL_TEXT = "Erreur: Aucun message proposé trouvé. Veuillez réessayer."
SAVE_FAILED_TEXT = "Erreur: Impossible d'envoyer le message au vendeur. Veuillez réessayer."
DEFAULT_MAX_SESSIONS = 1000


class DraftState(str, Enum):
    IDLE = "Idle"
    DRAFTING = "Drafting"
    PROPOSAL_PENDING = "ProposalPending"
    APPROVING = "Approving"


@dataclass
class DraftTurn:
    """One customer or assistant turn of the current drafting round."""
    role: str
    content: str = ""
    is_streaming: bool = False
    status: str = STATUS_COMPLETE
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "isStreaming": self.is_streaming,
            "status": self.status,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ClearResult:
    """Outcome of clear(): deletion counts plus the identities to use from now on."""
    previous_conversation_id: str
    deleted_messages: int
    deleted_thread_messages: int
    conversation_id: str
    thread_id: str


class DraftSessionManager:
    """State machine for one customer drafting session."""

    def __init__(
        self,
        conversation_id: str,
        customer_name: Optional[str],
        reply_generator: ReplyGenerator,
        conversation_store: ConversationStore,
        thread_store: ThreadStore,
        default_customer_name: str = DEFAULT_CUSTOMER_NAME,
    ) -> None:
        self._identity = ThreadIdentity(conversation_id)
        self._default_customer_name = default_customer_name
        self._customer_name = (customer_name or "").strip() or default_customer_name
        self._reply_generator = reply_generator
        self._conversation_store = conversation_store
        self._thread_store = thread_store
        self._state = DraftState.IDLE
        self._turns: List[DraftTurn] = []
        self._last_proposal = ProposedMessage()
        self._lock = asyncio.Lock()
        self._cancel_requested = asyncio.Event()

    @property
    def state(self) -> DraftState:
        return self._state

    @property
    def conversation_id(self) -> str:
        return self._identity.conversation_id

    @property
    def thread_id(self) -> str:
        return self._identity.thread_id

    @property
    def identity(self) -> ThreadIdentity:
        return self._identity

    @property
    def customer_name(self) -> str:
        return self._customer_name

    @property
    def turns(self) -> List[DraftTurn]:
        return list(self._turns)

    @property
    def last_proposal(self) -> ProposedMessage:
        return self._last_proposal

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    async def submit_stream(self, text: str) -> AsyncIterator[StreamEvent]:
        """Purpose: Run one customer turn and stream the assistant reply as events.
        Inputs/Outputs: Input is the customer text; yields start, token*, then exactly one
            of end, error or cancelled.
        Side Effects / State: Appends a customer and an assistant DraftTurn; moves to
            ProposalPending when the reply carries a proposal, else Drafting.
        Dependencies: build_message_context, the reply generator, has_proposal_marker,
            extract_proposal.
        Failure Modes: SessionBusyError when another operation holds the session,
            ValueError on empty text. Generator errors become an error turn, not exceptions.
            Task cancellation marks the turn cancelled and re-raises.
        If Removed: No drafting round can run.
        Testing Notes: A failing generator must leave the session in Drafting.
        """
        if not text or not text.strip():
            raise ValueError("message is required")
        if self._lock.locked():
            raise SessionBusyError(self.conversation_id, "submit")

        async with self._lock:
            self._cancel_requested.clear()
            conversation_id = self.conversation_id
            thread_id = self.thread_id
            self._turns.append(DraftTurn(role="customer", content=text))
            reply = DraftTurn(role="assistant", is_streaming=True, status=STATUS_STREAMING)
            self._turns.append(reply)
            self._state = DraftState.DRAFTING
            self._last_proposal = ProposedMessage()
            logger.info(
                "conversation=%s thread=%s state=%s turn=%s length=%s",
                conversation_id,
                thread_id,
                self._state.value,
                reply.id,
                len(text),
            )
            context: Optional[MessageContext] = None
            try:
                yield StreamEvent(
                    START, {"conversationId": conversation_id, "threadId": thread_id, "turnId": reply.id}
                )
                # The follow-up flag is recomputed from the store on every submit.
                context = await asyncio.to_thread(
                    build_message_context,
                    text,
                    thread_id,
                    conversation_id,
                    self._customer_name,
                    self._conversation_store,
                    self._thread_store,
                    self._default_customer_name,
                )
                stream = self._reply_generator(text, thread_id, context)
                try:
                    async for fragment in stream:
                        if self._cancel_requested.is_set():
                            break
                        reply.content += fragment
                        yield StreamEvent(TOKEN, {"text": fragment})
                finally:
                    aclose = getattr(stream, "aclose", None)
                    if aclose is not None:
                        await aclose()
            except (asyncio.CancelledError, GeneratorExit):
                self._finish_cancelled(reply)
                raise
            except Exception as exc:
                logger.warning(
                    "conversation=%s thread=%s stream=failed error=%s",
                    conversation_id,
                    thread_id,
                    type(exc).__name__,
                )
                self._finish_failed(reply, exc)
                yield StreamEvent(ERROR, {"message": reply.content, "turnId": reply.id})
                return

            if self._cancel_requested.is_set():
                self._finish_cancelled(reply)
                yield StreamEvent(CANCELLED, {"message": "Request was cancelled", "turnId": reply.id})
                return

            reply.is_streaming = False
            reply.status = STATUS_COMPLETE
            if has_proposal_marker(reply.content):
                proposal = extract_proposal(
                    reply.content,
                    customer_name=self._customer_name,
                    include_seller_hints=not context.disable_seller_hints,
                )
            else:
                proposal = ProposedMessage(intro=reply.content.strip())
            if proposal.has_proposal:
                self._last_proposal = proposal
                self._state = DraftState.PROPOSAL_PENDING
            else:
                self._state = DraftState.DRAFTING
            logger.info(
                "conversation=%s thread=%s state=%s reply_length=%s",
                conversation_id,
                thread_id,
                self._state.value,
                len(reply.content),
            )
            yield StreamEvent(
                END,
                {
                    "conversationId": conversation_id,
                    "threadId": thread_id,
                    "turnId": reply.id,
                    "state": self._state.value,
                    "proposal": proposal.as_payload(),
                },
            )

    async def submit(self, text: str) -> DraftTurn:
        """Run submit_stream to completion and return the final assistant turn."""
        async for _ in self.submit_stream(text):
            pass
        return self._turns[-1]

    def cancel(self) -> bool:
        """Request cooperative cancellation of the in-flight submit, if any."""
        if not self._lock.locked() or self._state == DraftState.APPROVING:
            return False
        self._cancel_requested.set()
        logger.info("conversation=%s thread=%s cancel=requested", self.conversation_id, self.thread_id)
        return True

    async def approve(self) -> PersistedMessage:
        """Purpose: Persist the pending proposal as the customer's message to the seller.
        Inputs/Outputs: No inputs; returns the stored PersistedMessage.
        Side Effects / State: On success clears draft turns, rotates the thread identity
            and returns to Idle. On failure appends an error turn.
        Dependencies: ConversationStore.add_message, extract_proposal for recovery.
        Failure Modes: InvalidTransitionError outside ProposalPending; SessionBusyError;
            ApprovalWithoutProposalError (stays ProposalPending); any store failure
            becomes PersistenceError (back to Drafting, error turn appended).
        If Removed: Drafts can never reach the seller.
        Testing Notes: The new thread id must still start with the conversation id.
        """
        if self._lock.locked():
            raise SessionBusyError(self.conversation_id, "approve")

        async with self._lock:
            if self._state != DraftState.PROPOSAL_PENDING:
                raise InvalidTransitionError("approve", self._state.value)
            self._state = DraftState.APPROVING
            content = self._resolve_approved_content()
            if not content:
                self._state = DraftState.PROPOSAL_PENDING
                self._append_error_turn(NO_PROPOSAL_TEXT)
                logger.warning("conversation=%s approve=rejected reason=no_proposal", self.conversation_id)
                raise ApprovalWithoutProposalError()

            try:
                message = await asyncio.to_thread(
                    self._conversation_store.add_message,
                    self.conversation_id,
                    "customer",
                    content,
                    self._customer_name,
                )
            except asyncio.CancelledError:
                self._state = DraftState.DRAFTING
                raise
            except Exception as exc:
                self._state = DraftState.DRAFTING
                self._append_error_turn(SAVE_FAILED_TEXT)
                logger.error(
                    "conversation=%s approve=failed error=%s", self.conversation_id, type(exc).__name__
                )
                raise PersistenceError("save message", exc) from exc

            previous_thread = self.thread_id
            self._turns = []
            self._last_proposal = ProposedMessage()
            self._identity = self._identity.rotate()
            self._state = DraftState.IDLE
            logger.info(
                "conversation=%s message=%s previous_thread=%s thread=%s state=%s",
                self.conversation_id,
                message.id,
                previous_thread,
                self.thread_id,
                self._state.value,
            )
            return message

    async def clear(self) -> ClearResult:
        """Purpose: Delete the conversation and all of its draft threads, then start over.
        Inputs/Outputs: No inputs; returns a ClearResult with counts and the new ids.
        Side Effects / State: Deletes persisted messages and every thread prefixed by the
            conversation id; allocates a new conversation id and thread identity; Idle.
        Dependencies: ConversationStore.delete_messages, ThreadStore.delete_threads_by_prefix.
        Failure Modes: SessionBusyError while a submit/approve runs; PersistenceError
            when a store fails (identities are left unchanged).
        If Removed: Old draft threads can never be cleaned up.
        Testing Notes: delete_threads_by_prefix is called once with the old conversation id.
        """
        if self._lock.locked():
            raise SessionBusyError(self.conversation_id, "clear")

        async with self._lock:
            previous = self.conversation_id
            try:
                deleted_messages = await asyncio.to_thread(self._conversation_store.delete_messages, previous)
                deleted_threads = await asyncio.to_thread(self._thread_store.delete_threads_by_prefix, previous)
            except Exception as exc:
                logger.error("conversation=%s clear=failed error=%s", previous, type(exc).__name__)
                raise PersistenceError("clear conversation", exc) from exc

            self._turns = []
            self._last_proposal = ProposedMessage()
            self._identity = ThreadIdentity(new_conversation_id(self._customer_name))
            self._state = DraftState.IDLE
            logger.info(
                "conversation=%s cleared deleted_messages=%s deleted_thread_messages=%s next=%s",
                previous,
                deleted_messages,
                deleted_threads,
                self.conversation_id,
            )
            return ClearResult(
                previous_conversation_id=previous,
                deleted_messages=deleted_messages,
                deleted_thread_messages=deleted_threads,
                conversation_id=self.conversation_id,
                thread_id=self.thread_id,
            )

    def snapshot(self) -> Dict[str, object]:
        return {
            "conversationId": self.conversation_id,
            "threadId": self.thread_id,
            "customerName": self._customer_name,
            "state": self._state.value,
            "busy": self.is_busy,
            "turns": [turn.to_payload() for turn in self._turns],
            "proposal": self._last_proposal.as_payload() if self._last_proposal.has_proposal else None,
        }

    def _resolve_approved_content(self) -> str:
        if self._last_proposal.has_proposal:
            return self._last_proposal.proposed_message.strip()
        # Recovery path: parse the latest completed assistant turn again.
        for turn in reversed(self._turns):
            if turn.role == "assistant" and turn.status == STATUS_COMPLETE:
                if not has_proposal_marker(turn.content):
                    return ""
                recovered = extract_proposal(turn.content, customer_name=self._customer_name)
                return recovered.proposed_message.strip()
        return ""

    def _append_error_turn(self, content: str) -> None:
        self._turns.append(DraftTurn(role="assistant", content=content, status=STATUS_ERROR))

    def _finish_failed(self, reply: DraftTurn, exc: Exception) -> None:
        reply.content = STREAM_ERROR_TEXT.format(error=exc)
        reply.is_streaming = False
        reply.status = STATUS_ERROR
        self._state = DraftState.DRAFTING

    def _finish_cancelled(self, reply: DraftTurn) -> None:
        reply.content = f"{reply.content}\n\n{CANCELLED_TEXT}".strip()
        reply.is_streaming = False
        reply.status = STATUS_CANCELLED
        self._state = DraftState.DRAFTING
        logger.info("conversation=%s thread=%s turn=%s status=cancelled", self.conversation_id, self.thread_id, reply.id)


class DraftSessionRegistry:
    """In-process map from conversation id to its drafting session.

    Sessions are kept in least-recently-used order. Opening a session beyond
    max_sessions evicts the oldest idle ones; busy sessions are never evicted.
    """

    def __init__(
        self,
        reply_generator: ReplyGenerator,
        conversation_store: ConversationStore,
        thread_store: ThreadStore,
        default_customer_name: str = DEFAULT_CUSTOMER_NAME,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ) -> None:
        self._reply_generator = reply_generator
        self._conversation_store = conversation_store
        self._thread_store = thread_store
        self._default_customer_name = default_customer_name
        self._max_sessions = max(max_sessions, 1)
        self._sessions: OrderedDict[str, DraftSessionManager] = OrderedDict()

    def open(self, customer_name: Optional[str] = None, conversation_id: Optional[str] = None) -> DraftSessionManager:
        if conversation_id and conversation_id in self._sessions:
            self._sessions.move_to_end(conversation_id)
            return self._sessions[conversation_id]
        session = DraftSessionManager(
            conversation_id or new_conversation_id(customer_name or ""),
            customer_name,
            self._reply_generator,
            self._conversation_store,
            self._thread_store,
            default_customer_name=self._default_customer_name,
        )
        self._sessions[session.conversation_id] = session
        logger.info("conversation=%s thread=%s session=opened", session.conversation_id, session.thread_id)
        self._evict(keep=session.conversation_id)
        return session

    def get(self, conversation_id: str) -> DraftSessionManager:
        """Return the session for conversation_id; KeyError when unknown."""
        session = self._sessions[conversation_id]
        self._sessions.move_to_end(conversation_id)
        return session

    def drop(self, conversation_id: str) -> None:
        self._sessions.pop(conversation_id, None)

    def rekey(self, previous_conversation_id: str, session: DraftSessionManager) -> None:
        """Track a session under its new conversation id after clear()."""
        self._sessions.pop(previous_conversation_id, None)
        self._sessions[session.conversation_id] = session

    def _evict(self, keep: str) -> None:
        overflow = len(self._sessions) - self._max_sessions
        if overflow <= 0:
            return
        evictable = [
            conversation_id
            for conversation_id, session in self._sessions.items()
            if conversation_id != keep and not session.is_busy
        ]
        for conversation_id in evictable[:overflow]:
            del self._sessions[conversation_id]
            logger.info("conversation=%s session=evicted", conversation_id)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
