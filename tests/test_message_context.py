from draft_assistant.message_context import (
    FIRST_INTERACTION_MARKER,
    FOLLOW_UP_MARKER,
    HISTORY_HEADER,
    NEW_MESSAGE_HEADER,
    NO_HISTORY_MARKER,
    ONGOING_INTERACTION_MARKER,
    build_message_context,
    format_conversation_history,
)
from draft_assistant.models import PersistedMessage


def _build(message, conversation_store, thread_store, conversation_id="conv-a", customer_name="Marie"):
    return build_message_context(
        message,
        f"{conversation_id or 'conv-x'}-ai-1",
        conversation_id,
        customer_name,
        conversation_store,
        thread_store,
    )


def test_first_message_of_new_conversation(conversation_store, thread_store):
    context = _build("Mon colis est cassé", conversation_store, thread_store)
    assert context.is_first_interaction
    assert not context.disable_seller_hints
    assert context.customer_name == "Marie"
    assert context.prompt.startswith("[NOM DU CLIENT: Marie]")
    assert FIRST_INTERACTION_MARKER in context.prompt
    assert NO_HISTORY_MARKER in context.prompt
    assert context.prompt.endswith(f"{NEW_MESSAGE_HEADER}\nMon colis est cassé")


def test_no_history_marker_requires_a_conversation(conversation_store, thread_store):
    context = _build("Bonjour", conversation_store, thread_store, conversation_id=None)
    assert NO_HISTORY_MARKER not in context.prompt
    assert not context.disable_seller_hints


def test_persisted_history_disables_seller_hints(conversation_store, thread_store):
    conversation_store.add_message("conv-a", "customer", "Mon colis est cassé", customer_name="Marie")
    conversation_store.add_message("conv-a", "seller", "Pouvez-vous envoyer une photo ?")
    context = _build("Voici la photo", conversation_store, thread_store)
    assert context.disable_seller_hints
    assert HISTORY_HEADER in context.prompt
    assert FOLLOW_UP_MARKER in context.prompt
    assert "VENDEUR:\nPouvez-vous envoyer une photo ?" in context.prompt
    assert NO_HISTORY_MARKER not in context.prompt


def test_other_conversation_history_is_ignored(conversation_store, thread_store):
    conversation_store.add_message("conv-b", "customer", "Autre dossier")
    context = _build("Bonjour", conversation_store, thread_store)
    assert not context.disable_seller_hints


def test_thread_history_switches_to_ongoing_marker(conversation_store, thread_store):
    thread_store.append("conv-a-ai-1", "user", "Bonjour")
    context = _build("Suite", conversation_store, thread_store)
    assert not context.is_first_interaction
    assert ONGOING_INTERACTION_MARKER in context.prompt
    assert FIRST_INTERACTION_MARKER not in context.prompt


def test_missing_customer_name_uses_default(conversation_store, thread_store):
    context = _build("Bonjour", conversation_store, thread_store, customer_name="  ")
    assert context.customer_name == "Client"


def test_history_format():
    messages = [
        PersistedMessage(id="1", conversation_id="conv-a", sender="customer", content="Bonjour", timestamp=0.0),
        PersistedMessage(id="2", conversation_id="conv-a", sender="seller", content="Oui ?", timestamp=60.0),
    ]
    block = format_conversation_history(messages)
    assert "[01/01/1970 00:00] CLIENT (Client):\nBonjour" in block
    assert "[01/01/1970 00:01] VENDEUR:\nOui ?" in block
    assert format_conversation_history([]) == ""


def test_configured_default_name_reaches_the_prompt(conversation_store, thread_store):
    conversation_store.add_message("conv-a", "customer", "Bonjour")
    context = build_message_context(
        "Suite",
        "conv-a-ai-1",
        "conv-a",
        None,
        conversation_store,
        thread_store,
        default_customer_name="Cliente",
    )
    assert context.customer_name == "Cliente"
    assert context.prompt.startswith("[NOM DU CLIENT: Cliente]")
    assert "CLIENT (Cliente):\nBonjour" in context.prompt
