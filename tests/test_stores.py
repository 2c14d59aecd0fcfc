import pytest

from draft_assistant.conversation_store import ConversationStore
from draft_assistant.thread_store import ThreadStore


def test_conversation_messages_are_listed_in_timestamp_order(conversation_store):
    first = conversation_store.add_message("conv-a", "customer", "Bonjour", customer_name="Marie")
    second = conversation_store.add_message("conv-a", "seller", "Bonjour Marie")
    messages = conversation_store.list_messages("conv-a")
    assert [msg.id for msg in messages] == [first.id, second.id]
    assert messages[0].customer_name == "Marie"
    assert conversation_store.has_messages("conv-a")
    assert not conversation_store.has_messages("conv-b")
    assert conversation_store.list_messages("conv-b") == []


def test_message_payload_uses_api_names(conversation_store):
    message = conversation_store.add_message("conv-a", "customer", "Bonjour", customer_name="Marie")
    payload = message.to_payload()
    assert payload["from"] == "customer"
    assert payload["customerName"] == "Marie"
    assert payload["timestamp"].endswith("+00:00")


@pytest.mark.parametrize(
    "conversation_id, sender, content",
    [("", "customer", "Bonjour"), ("conv-a", "customer", "   "), ("conv-a", "bot", "Bonjour")],
)
def test_invalid_messages_are_rejected(conversation_store, conversation_id, sender, content):
    with pytest.raises(ValueError):
        conversation_store.add_message(conversation_id, sender, content)
    assert not conversation_store.has_messages("conv-a")


def test_delete_messages_returns_count(conversation_store):
    conversation_store.add_message("conv-a", "customer", "un")
    conversation_store.add_message("conv-a", "customer", "deux")
    conversation_store.add_message("conv-b", "customer", "trois")
    assert conversation_store.delete_messages("conv-a") == 2
    assert conversation_store.delete_messages("conv-a") == 0
    assert len(conversation_store.list_messages("conv-b")) == 1


def test_conversations_survive_reload(tmp_path):
    path = tmp_path / "data" / "conversations.json"
    store = ConversationStore(path)
    saved = store.add_message("conv-a", "customer", "Bonjour")
    reloaded = ConversationStore(path)
    assert [msg.id for msg in reloaded.list_messages("conv-a")] == [saved.id]


def test_corrupt_conversation_file_starts_empty(tmp_path):
    path = tmp_path / "conversations.json"
    path.write_text("{not json", encoding="utf-8")
    store = ConversationStore(path)
    assert store.list_messages("conv-a") == []


def test_thread_history_round_trip(thread_store):
    thread_store.append("conv-a-ai-1", "user", "question")
    thread_store.append("conv-a-ai-1", "assistant", "réponse")
    history = thread_store.list_thread_history("conv-a-ai-1")
    assert [(msg.role, msg.content) for msg in history] == [("user", "question"), ("assistant", "réponse")]
    assert thread_store.list_thread_history("conv-a-ai-2") == []


def test_thread_store_validates_input(thread_store):
    with pytest.raises(ValueError):
        thread_store.append("", "user", "question")
    with pytest.raises(ValueError):
        thread_store.append("conv-a-ai-1", "system", "question")
    with pytest.raises(ValueError):
        thread_store.delete_threads_by_prefix("")


def test_delete_threads_by_prefix_keeps_other_conversations(thread_store):
    thread_store.append("conv-a-ai-1", "user", "q1")
    thread_store.append("conv-a-ai-1", "assistant", "r1")
    thread_store.append("conv-a-ai-2", "user", "q2")
    thread_store.append("conv-b-ai-1", "user", "q3")
    assert thread_store.delete_threads_by_prefix("conv-a") == 3
    assert thread_store.list_thread_history("conv-a-ai-1") == []
    assert len(thread_store.list_thread_history("conv-b-ai-1")) == 1


def test_threads_survive_reload(tmp_path):
    path = tmp_path / "threads.json"
    ThreadStore(path).append("conv-a-ai-1", "user", "question")
    assert [msg.content for msg in ThreadStore(path).list_thread_history("conv-a-ai-1")] == ["question"]


def test_delete_threads_by_prefix_matches_whole_conversation_ids(thread_store):
    thread_store.append("conv-a-ai-1", "user", "q1")
    thread_store.append("conv-ab-ai-1", "user", "q2")
    thread_store.append("conv-a2-ai-1", "user", "q3")
    assert thread_store.delete_threads_by_prefix("conv-a") == 1
    assert len(thread_store.list_thread_history("conv-ab-ai-1")) == 1
    assert len(thread_store.list_thread_history("conv-a2-ai-1")) == 1
    assert thread_store.delete_threads_by_prefix("c") == 0
