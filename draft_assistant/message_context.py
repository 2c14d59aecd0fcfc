"""Contextual prompt assembly for one drafting turn.

The model receives the customer's message wrapped with:
    - the customer name header,
    - a first/ongoing interaction marker (first iff the draft thread is empty),
    - the persisted seller conversation, or an explicit "no history" marker,
    - the new customer message.

The same lookup decides the per-turn seller-hint flag: hints are only useful for the
first message of a conversation, so any persisted history disables them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from .conversation_store import ConversationStore
from .models import PersistedMessage
from .thread_store import ThreadStore

DEFAULT_CUSTOMER_NAME = "Client"

FIRST_INTERACTION_MARKER = "=== PREMIÈRE INTERACTION AVEC L'ASSISTANT (NE SE PRÉSENTER QU'UNE FOIS) ==="
ONGOING_INTERACTION_MARKER = (
    "=== INTERACTION ASSISTANT EN COURS "
    "(NE PAS SE REPRÉSENTER, NE PAS RÉPÉTER LES QUESTIONS DÉJÀ RÉPONDUES) ==="
)
FOLLOW_UP_MARKER = "=== MESSAGE DE SUIVI (NE PAS AFFICHER LE BLOC 💡) ==="
NO_HISTORY_MARKER = "=== AUCUN HISTORIQUE AVEC LE VENDEUR (PREMIER MESSAGE) ==="
HISTORY_HEADER = "=== HISTORIQUE DE LA CONVERSATION AVEC LE VENDEUR ==="
HISTORY_SUBTITLE = "(Messages précédemment envoyés au vendeur par ce client)"
HISTORY_FOOTER = "=== FIN DE L'HISTORIQUE ==="
NEW_MESSAGE_HEADER = "--- NOUVEAU MESSAGE DU CLIENT ---"


@dataclass(frozen=True)
class MessageContext:
    """Request-scoped drafting context handed to the reply generator."""
    prompt: str
    disable_seller_hints: bool
    is_first_interaction: bool
    customer_name: str
    conversation_id: Optional[str] = None


def format_conversation_history(
    messages: Iterable[PersistedMessage],
    default_customer_name: str = DEFAULT_CUSTOMER_NAME,
) -> str:
    """Purpose: Render persisted customer/seller messages as a prompt block.
    Inputs/Outputs: Input is messages ordered by timestamp; output is the history block,
        or "" when there are none.
    Side Effects / State: None.
    Dependencies: PersistedMessage.
    Failure Modes: None.
    If Removed: Follow-up drafts ignore what was already said to the seller.
    Testing Notes: A customer line reads "[dd/mm/yyyy HH:MM] CLIENT (name):".
    """
    lines = []
    for message in messages:
        if message.sender == "customer":
            sender = f"CLIENT ({message.customer_name or default_customer_name})"
        else:
            sender = "VENDEUR"
        stamp = datetime.fromtimestamp(message.timestamp, tz=timezone.utc).strftime("%d/%m/%Y %H:%M")
        lines.append(f"[{stamp}] {sender}:")
        lines.append(message.content)
        lines.append("")
    if not lines:
        return ""
    return "\n".join([HISTORY_HEADER, HISTORY_SUBTITLE, ""] + lines + [HISTORY_FOOTER, ""]) + "\n"


def build_message_context(
    message: str,
    thread_id: str,
    conversation_id: Optional[str],
    customer_name: Optional[str],
    conversation_store: ConversationStore,
    thread_store: ThreadStore,
    default_customer_name: str = DEFAULT_CUSTOMER_NAME,
) -> MessageContext:
    """Purpose: Build the contextual prompt and per-turn flags for one submit.
    Inputs/Outputs: Inputs are the raw message, ids, customer name, both stores and
        the configured fallback name; output is a MessageContext.
    Side Effects / State: Reads both stores; writes nothing.
    Dependencies: format_conversation_history, ConversationStore, ThreadStore.
    Failure Modes: Store errors propagate to the caller.
    If Removed: The assistant re-introduces itself every turn and hint suppression for
        follow-ups is lost.
    Testing Notes: With persisted history, disable_seller_hints must be True.
    """
    name = (customer_name or "").strip() or default_customer_name
    is_first = not thread_store.list_thread_history(thread_id)

    parts = [f"[NOM DU CLIENT: {name}]\n\n"]
    parts.append(f"{FIRST_INTERACTION_MARKER if is_first else ONGOING_INTERACTION_MARKER}\n\n")

    disable_hints = False
    if conversation_id:
        history = format_conversation_history(
            conversation_store.list_messages(conversation_id), default_customer_name
        )
        if history:
            disable_hints = True
            parts.append(f"{history}\n")
            parts.append(f"{FOLLOW_UP_MARKER}\n\n")
        else:
            parts.append(f"{NO_HISTORY_MARKER}\n\n")

    parts.append(f"{NEW_MESSAGE_HEADER}\n{message}")
    return MessageContext(
        prompt="".join(parts),
        disable_seller_hints=disable_hints,
        is_first_interaction=is_first,
        customer_name=name,
        conversation_id=conversation_id,
    )
