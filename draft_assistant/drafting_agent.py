"""Reply generation for drafting turns.

Role:
    Implements the reply-generator collaborator used by DraftSessionManager:
    generate_reply(message, thread_id, context) -> async stream of text fragments.

Step contracts (run in order before streaming):
    Thread History:
        Reads the draft thread and builds role-tagged model contents ending with the
        contextual prompt of the current turn.
    Seller Requirements:
        Calls SellerRequirementsLookup.search with the per-turn disable flag taken from
        the MessageContext. Follow-up turns get an empty block.
    System Prompt:
        Renders prompts/drafting_agent.md with the customer name and requirement block.

After the stream completes, the customer message and the full reply are appended to the
draft thread. Failed or cancelled streams record nothing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from .message_context import DEFAULT_CUSTOMER_NAME, MessageContext
from .prompt_loader import load_prompt, render_prompt
from .requirements import SellerRequirementsLookup
from .step_runner import Step, StepRunner
from .thread_store import ThreadStore

logger = logging.getLogger("drafter.agent")

PROMPT_FILE = "drafting_agent.md"
HINTS_INSTRUCTION = (
    "La ligne `💡 **Le vendeur pourrait aussi demander:**` suivie d'au plus trois puces "
    "reprises des exigences vendeur ci-dessous."
)
NO_HINTS_INSTRUCTION = "N'affiche pas le bloc 💡 : ce message fait suite à un échange déjà commencé."


@dataclass
class DraftContext:
    """Mutable context passed through each preparation step."""
    thread_id: str
    message: str
    context: MessageContext
    contents: List[dict] = field(default_factory=list)
    seller_requirements: str = ""
    system_instruction: str = ""
    thinking_logs: List[Dict[str, str]] = field(default_factory=list)

    def log(self, event: str, detail: str, status: str = "success") -> None:
        self.thinking_logs.append({"event": event, "detail": detail, "status": status})


class DraftingAgent:
    """Prepare the prompt for a drafting turn and stream the model reply."""

    def __init__(
        self,
        gemini,
        requirements: SellerRequirementsLookup,
        thread_store: ThreadStore,
        prompts_dir: Path,
        model: Optional[str] = None,
        default_customer_name: str = DEFAULT_CUSTOMER_NAME,
    ) -> None:
        self._gemini = gemini
        self._default_customer_name = default_customer_name
        self._requirements = requirements
        self._thread_store = thread_store
        self._prompts_dir = prompts_dir
        self._model = model
        self._runner = StepRunner(
            [
                Step("thread_history", self._step_thread_history),
                Step("seller_requirements", self._step_seller_requirements),
                Step("system_prompt", self._step_system_prompt, always_run=True),
            ]
        )

    async def generate_reply(
        self,
        message: str,
        thread_id: str,
        context: Optional[MessageContext] = None,
    ) -> AsyncIterator[str]:
        """Purpose: Stream the assistant reply for one customer turn.
        Inputs/Outputs: Inputs are the raw customer message, the draft thread id and the
            request-scoped MessageContext; yields text fragments in arrival order.
        Side Effects / State: Reads the thread store and knowledge; appends the turn pair to
            the thread store once the stream completes.
        Dependencies: StepRunner, GeminiClient.stream_content, SellerRequirementsLookup.
        Failure Modes: Step, model and store errors propagate; nothing is recorded then.
        If Removed: The session manager has no reply stream to assemble.
        Testing Notes: Use a fake gemini yielding fixed fragments and check thread records.
        """
        if context is None:
            context = MessageContext(
                prompt=message,
                disable_seller_hints=False,
                is_first_interaction=True,
                customer_name=self._default_customer_name,
            )
        draft = DraftContext(thread_id=thread_id, message=message, context=context)
        # Preparation reads files and stores; keep it off the event loop.
        await asyncio.to_thread(self._runner.run, draft)
        logger.info(
            "thread=%s conversation=%s hints=%s history=%s",
            thread_id,
            context.conversation_id,
            "off" if context.disable_seller_hints else "on",
            len(draft.contents) - 1,
        )

        fragments: List[str] = []
        async for fragment in self._gemini.stream_content(
            draft.contents,
            system_instruction=draft.system_instruction,
            model=self._model,
        ):
            fragments.append(fragment)
            yield fragment

        reply = "".join(fragments)
        await asyncio.to_thread(self._record_turn, thread_id, message, reply)
        logger.info("thread=%s reply_length=%s fragments=%s", thread_id, len(reply), len(fragments))

    def _step_thread_history(self, draft: DraftContext) -> None:
        contents = []
        for turn in self._thread_store.list_thread_history(draft.thread_id):
            role = "model" if turn.role == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": turn.content}]})
        contents.append({"role": "user", "parts": [{"text": draft.context.prompt}]})
        draft.contents = contents
        draft.log("thread_history", f"{len(contents) - 1} previous turns")

    def _step_seller_requirements(self, draft: DraftContext) -> None:
        draft.seller_requirements = self._requirements.search(
            draft.message,
            disable_hints=draft.context.disable_seller_hints,
        )
        status = "skipped" if draft.context.disable_seller_hints else "success"
        draft.log("seller_requirements", f"{len(draft.seller_requirements)} chars", status=status)

    def _step_system_prompt(self, draft: DraftContext) -> None:
        template = load_prompt(self._prompts_dir / PROMPT_FILE)
        disabled = draft.context.disable_seller_hints
        draft.system_instruction = render_prompt(
            template,
            {
                "customer_name": draft.context.customer_name,
                "hints_instruction": NO_HINTS_INSTRUCTION if disabled else HINTS_INSTRUCTION,
                "seller_requirements": draft.seller_requirements or "-",
            },
        )
        draft.log("system_prompt", PROMPT_FILE)

    def _record_turn(self, thread_id: str, message: str, reply: str) -> None:
        self._thread_store.append(thread_id, "user", message)
        if reply:
            self._thread_store.append(thread_id, "assistant", reply)
