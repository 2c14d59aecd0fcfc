"""Pytest configuration and shared fixtures."""

import json
import sys
from pathlib import Path

import pytest

# Make the package importable without installation.
sys.path.insert(0, str(Path(__file__).parent.parent))

from draft_assistant.conversation_store import ConversationStore
from draft_assistant.thread_store import ThreadStore

PROPOSAL_REPLY_FRAGMENTS = [
    "Voici ma proposition.\n",
    "📝 **Message proposé au vendeur:** X\n",
    "💡 **Le vendeur pourrait aussi demander:** - une photo\n",
    "Cliquez sur le bouton Approuver pour l'envoyer.",
]


@pytest.fixture(autouse=True)
def _disable_env_side_effects(monkeypatch):
    """Keep tests independent from a developer's local environment."""
    monkeypatch.delenv("KNOWLEDGE_ENABLED", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "")


@pytest.fixture
def conversation_store():
    return ConversationStore()


@pytest.fixture
def thread_store():
    return ThreadStore()


@pytest.fixture
def proposal_fragments():
    return list(PROPOSAL_REPLY_FRAGMENTS)


@pytest.fixture
def scripted_reply():
    """Factory for fake reply generators that yield fixed fragments and record calls."""

    def factory(*fragments, error=None):
        calls = []

        async def generate(message, thread_id, context):
            calls.append({"message": message, "thread_id": thread_id, "context": context})
            for fragment in fragments:
                yield fragment
            if error is not None:
                raise error

        generate.calls = calls
        return generate

    return factory


@pytest.fixture
def parse_sse():
    def parse(body):
        events = []
        for frame in body.strip().split("\n\n"):
            if not frame.strip():
                continue
            lines = frame.split("\n")
            event_type = lines[0][len("event: "):]
            data = json.loads(lines[1][len("data: "):])
            events.append((event_type, data))
        return events

    return parse
