from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from pathlib import Path
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from .config import Settings, load_settings
from .conversation_store import ConversationStore
from .draft_session import DraftSessionManager, DraftSessionRegistry, ReplyGenerator
from .drafting_agent import DraftingAgent
from .errors import DraftingError
from .events import END, ERROR, START, TOKEN, StreamEvent
from .gemini_client import GeminiClient
from .knowledge.knowledge_store import SellerKnowledgeStore
from .message_context import build_message_context
from .models import (
    DraftingStreamRequest,
    OpenDraftRequest,
    SaveMessageRequest,
    SellerMessageRequest,
    SubmitDraftRequest,
)
from .requirements import SellerRequirementsLookup
from .thread_store import ThreadStore

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

log_level = getattr(logging, load_settings().log_level, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("drafter").setLevel(log_level)
logger = logging.getLogger("drafter.api")

app = FastAPI(title="Seller Message Drafting Assistant")

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@lru_cache()
def get_settings() -> Settings:
    return load_settings()


@lru_cache()
def get_conversation_store() -> ConversationStore:
    return ConversationStore(get_settings().data_dir / "conversations.json")


@lru_cache()
def get_thread_store() -> ThreadStore:
    return ThreadStore(get_settings().data_dir / "threads.json")


@lru_cache()
def get_reply_generator() -> ReplyGenerator:
    """Purpose: Build the Gemini-backed drafting agent once per process.
    Inputs/Outputs: No inputs; returns the agent's generate_reply callable.
    Side Effects / State: Configures the Gemini SDK and the knowledge store.
    Dependencies: GeminiClient, SellerKnowledgeStore, SellerRequirementsLookup, DraftingAgent.
    Failure Modes: Missing GEMINI_API_KEY raises ValueError on first use.
    If Removed: Drafting endpoints have no reply generator.
    Testing Notes: Override this dependency with a fake async generator.
    """
    settings = get_settings()
    knowledge = SellerKnowledgeStore(settings.knowledge_dir)
    requirements = SellerRequirementsLookup(
        knowledge,
        top_k=settings.requirements_top_k,
        limit=settings.max_requirement_hints,
    )
    agent = DraftingAgent(
        gemini=GeminiClient(settings),
        requirements=requirements,
        thread_store=get_thread_store(),
        prompts_dir=settings.prompts_dir,
        model=settings.gemini_model,
        default_customer_name=settings.default_customer_name,
    )
    return agent.generate_reply


@lru_cache()
def get_registry() -> DraftSessionRegistry:
    settings = get_settings()
    return DraftSessionRegistry(
        get_reply_generator(),
        get_conversation_store(),
        get_thread_store(),
        default_customer_name=settings.default_customer_name,
        max_sessions=settings.max_draft_sessions,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _find_session(registry: DraftSessionRegistry, conversation_id: str) -> Optional[DraftSessionManager]:
    try:
        return registry.get(conversation_id)
    except KeyError:
        return None


async def _encode_events(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    # Headers are already sent once streaming starts, so late session errors become events.
    try:
        async for event in events:
            yield event.encode()
    except DraftingError as exc:
        logger.warning("stream=rejected operation=%s error=%s", exc.operation, type(exc).__name__)
        yield StreamEvent(ERROR, {"message": exc.message}).encode()


@app.exception_handler(DraftingError)
async def drafting_error_handler(request: Request, exc: DraftingError) -> JSONResponse:
    """Purpose: Map session-layer failures to JSON error responses.
    Inputs/Outputs: Inputs are the request and the raised DraftingError; output is a
        JSONResponse carrying the error's status code and a short message.
    Side Effects / State: Logs the failed operation.
    Dependencies: DraftingError.status_code.
    Failure Modes: None.
    If Removed: Busy/transition/persistence failures surface as bare 500s.
    Testing Notes: Approving outside ProposalPending must answer 409.
    """
    logger.warning("path=%s operation=%s error=%s", request.url.path, exc.operation, type(exc).__name__)
    return _error(exc.status_code, exc.message)


@app.post("/api/drafting/stream")
async def stream_drafting(
    request: DraftingStreamRequest,
    reply_generator: ReplyGenerator = Depends(get_reply_generator),
    conversation_store: ConversationStore = Depends(get_conversation_store),
    thread_store: ThreadStore = Depends(get_thread_store),
    settings: Settings = Depends(get_settings),
):
    """Purpose: Stream one assistant reply for a stateless drafting client.
    Inputs/Outputs: Input is {message, threadId, conversationId, customerName}; output is
        an SSE stream start -> token* -> end | error.
    Side Effects / State: The agent appends the turn pair to the draft thread.
    Dependencies: build_message_context, the reply generator.
    Failure Modes: 400 on missing message/threadId or a threadId not derived from the
        conversationId. Generation errors become an "error" event.
    If Removed: Clients that keep draft state themselves cannot stream replies.
    Testing Notes: Parse the SSE body and check the event order.
    """
    if not request.message or not request.message.strip():
        return _error(400, "Message is required")
    if not request.thread_id:
        return _error(400, "ThreadId is required")
    if request.conversation_id and not request.thread_id.startswith(request.conversation_id):
        return _error(400, "ThreadId must start with ConversationId")

    async def events() -> AsyncIterator[StreamEvent]:
        yield StreamEvent(START, {"contextId": request.thread_id, "conversationId": request.conversation_id})
        try:
            context = await asyncio.to_thread(
                build_message_context,
                request.message,
                request.thread_id,
                request.conversation_id,
                request.customer_name,
                conversation_store,
                thread_store,
                settings.default_customer_name,
            )
            async for fragment in reply_generator(request.message, request.thread_id, context):
                yield StreamEvent(TOKEN, {"text": fragment})
        except asyncio.CancelledError:
            logger.info("thread=%s stream=cancelled", request.thread_id)
            raise
        except Exception as exc:
            logger.warning("thread=%s stream=failed error=%s", request.thread_id, type(exc).__name__)
            yield StreamEvent(ERROR, {"message": str(exc)})
            return
        yield StreamEvent(END, {"contextId": request.thread_id, "conversationId": request.conversation_id})

    return StreamingResponse(_encode_events(events()), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/conversation/message")
def save_customer_message(
    request: SaveMessageRequest,
    conversation_store: ConversationStore = Depends(get_conversation_store),
):
    """Purpose: Save an approved customer message into the seller conversation.
    Inputs/Outputs: Input is {conversationId, content, customerName}; output is
        {success, conversationId, messageId, timestamp}.
    Side Effects / State: Appends to the conversation store.
    Dependencies: ConversationStore.add_message.
    Failure Modes: 400 on missing fields, 500 {"error": "Failed to save message"} on IO errors.
    If Removed: Stateless clients cannot deliver approved drafts.
    Testing Notes: Save twice and read the conversation back in order.
    """
    if not request.conversation_id or not request.conversation_id.strip():
        return _error(400, "ConversationId is required")
    if not request.content or not request.content.strip():
        return _error(400, "Content is required")
    try:
        message = conversation_store.add_message(
            request.conversation_id,
            "customer",
            request.content,
            request.customer_name,
        )
    except (OSError, ValueError) as exc:
        logger.error("conversation=%s save=failed error=%s", request.conversation_id, type(exc).__name__)
        return _error(500, "Failed to save message")
    return {
        "success": True,
        "conversationId": request.conversation_id,
        "messageId": message.id,
        "timestamp": message.timestamp_iso,
    }


@app.post("/api/conversation/{conversation_id}/seller")
def save_seller_message(
    conversation_id: str,
    request: SellerMessageRequest,
    conversation_store: ConversationStore = Depends(get_conversation_store),
):
    if not request.content or not request.content.strip():
        return _error(400, "Content is required")
    try:
        message = conversation_store.add_message(conversation_id, "seller", request.content)
    except (OSError, ValueError) as exc:
        logger.error("conversation=%s seller_save=failed error=%s", conversation_id, type(exc).__name__)
        return _error(500, "Failed to save message")
    return {
        "success": True,
        "conversationId": conversation_id,
        "messageId": message.id,
        "timestamp": message.timestamp_iso,
    }


@app.get("/api/conversation/{conversation_id}")
def get_conversation(
    conversation_id: str,
    conversation_store: ConversationStore = Depends(get_conversation_store),
) -> dict:
    messages = conversation_store.list_messages(conversation_id)
    return {
        "conversationId": conversation_id,
        "messages": [message.to_payload() for message in messages],
    }


@app.delete("/api/conversation/{conversation_id}")
def clear_conversation(
    conversation_id: str,
    conversation_store: ConversationStore = Depends(get_conversation_store),
    thread_store: ThreadStore = Depends(get_thread_store),
    registry: DraftSessionRegistry = Depends(get_registry),
):
    """Purpose: Delete a conversation and every draft thread prefixed by its id.
    Inputs/Outputs: Input is the conversation id; output is {success, conversationId,
        deletedConversationMessages, deletedAiThreadMessages}.
    Side Effects / State: Deletes from both stores and forgets any drafting session.
    Dependencies: ConversationStore.delete_messages, ThreadStore.delete_threads_by_prefix.
    Failure Modes: 500 {"error": "Failed to clear conversation"} on IO errors.
    If Removed: Stateless clients cannot reset a conversation.
    Testing Notes: Threads of other conversations must survive.
    """
    try:
        deleted_messages = conversation_store.delete_messages(conversation_id)
        deleted_threads = thread_store.delete_threads_by_prefix(conversation_id)
    except (OSError, ValueError) as exc:
        logger.error("conversation=%s clear=failed error=%s", conversation_id, type(exc).__name__)
        return _error(500, "Failed to clear conversation")
    registry.drop(conversation_id)
    return {
        "success": True,
        "conversationId": conversation_id,
        "deletedConversationMessages": deleted_messages,
        "deletedAiThreadMessages": deleted_threads,
    }


@app.get("/api/threads/{thread_id}")
def get_thread(thread_id: str, thread_store: ThreadStore = Depends(get_thread_store)) -> dict:
    return {
        "threadId": thread_id,
        "messages": [message.to_payload() for message in thread_store.list_thread_history(thread_id)],
    }


@app.post("/api/drafts")
async def open_draft(request: OpenDraftRequest, registry: DraftSessionRegistry = Depends(get_registry)) -> dict:
    session = registry.open(request.customer_name, request.conversation_id)
    return session.snapshot()


@app.get("/api/drafts/{conversation_id}")
async def get_draft(conversation_id: str, registry: DraftSessionRegistry = Depends(get_registry)):
    session = _find_session(registry, conversation_id)
    if session is None:
        return _error(404, "Drafting session not found")
    return session.snapshot()


@app.post("/api/drafts/{conversation_id}/submit")
async def submit_draft(
    conversation_id: str,
    request: SubmitDraftRequest,
    registry: DraftSessionRegistry = Depends(get_registry),
):
    """Purpose: Submit a customer turn to a drafting session and stream the reply.
    Inputs/Outputs: Input is {message}; output is an SSE stream start -> token* ->
        end | error | cancelled. The end event carries the new state and proposal.
    Side Effects / State: Drives DraftSessionManager.submit_stream.
    Dependencies: DraftSessionRegistry, DraftSessionManager.
    Failure Modes: 400 empty message, 404 unknown session, 409 busy session.
    If Removed: Server-side drafting sessions cannot progress.
    Testing Notes: Use a fake generator and assert the end event state.
    """
    if not request.message or not request.message.strip():
        return _error(400, "Message is required")
    session = _find_session(registry, conversation_id)
    if session is None:
        return _error(404, "Drafting session not found")
    if session.is_busy:
        return _error(409, f"Conversation {conversation_id} is busy")
    events = session.submit_stream(request.message)
    return StreamingResponse(_encode_events(events), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/drafts/{conversation_id}/approve")
async def approve_draft(conversation_id: str, registry: DraftSessionRegistry = Depends(get_registry)):
    session = _find_session(registry, conversation_id)
    if session is None:
        return _error(404, "Drafting session not found")
    message = await session.approve()
    return {
        "success": True,
        "conversationId": session.conversation_id,
        "threadId": session.thread_id,
        "messageId": message.id,
        "content": message.content,
        "timestamp": message.timestamp_iso,
    }


@app.post("/api/drafts/{conversation_id}/cancel")
async def cancel_draft(conversation_id: str, registry: DraftSessionRegistry = Depends(get_registry)):
    session = _find_session(registry, conversation_id)
    if session is None:
        return _error(404, "Drafting session not found")
    return {"conversationId": conversation_id, "cancelled": session.cancel()}


@app.delete("/api/drafts/{conversation_id}")
async def clear_draft(conversation_id: str, registry: DraftSessionRegistry = Depends(get_registry)):
    session = _find_session(registry, conversation_id)
    if session is None:
        return _error(404, "Drafting session not found")
    result = await session.clear()
    registry.rekey(result.previous_conversation_id, session)
    return {
        "success": True,
        "previousConversationId": result.previous_conversation_id,
        "conversationId": result.conversation_id,
        "threadId": result.thread_id,
        "deletedConversationMessages": result.deleted_messages,
        "deletedAiThreadMessages": result.deleted_thread_messages,
    }
