import pytest

from draft_assistant.config import load_settings
from draft_assistant.gemini_client import GeminiClient, _chunk_text, _flatten_contents, _normalize_model_name


def test_missing_api_key_is_rejected():
    with pytest.raises(ValueError):
        GeminiClient(load_settings())


def test_model_name_normalization():
    assert _normalize_model_name(" models/gemini-2.5-flash ") == "gemini-2.5-flash"
    assert _normalize_model_name("gemini-pro") == "gemini-pro"
    assert _normalize_model_name(None) == ""


def test_flatten_contents_keeps_roles():
    contents = [
        {"role": "user", "parts": [{"text": "Bonjour"}]},
        {"role": "model", "parts": [{"text": "Que se passe-t-il ?"}, "Précisez."]},
        {"role": "user", "parts": []},
        "ignored",
    ]
    assert _flatten_contents(contents) == "USER: Bonjour\n\nMODEL: Que se passe-t-il ?\nPrécisez."


def test_chunk_text_tolerates_chunks_without_text():
    class Blocked:
        @property
        def text(self):
            raise ValueError("no text part")

    class Chunk:
        text = "fragment"

    assert _chunk_text(Blocked()) == ""
    assert _chunk_text(Chunk()) == "fragment"
    assert _chunk_text(object()) == ""
