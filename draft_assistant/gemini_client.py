from __future__ import annotations

from typing import AsyncIterator, Dict, List, Optional

import google.generativeai as genai

try:  # Prefer typed enums when available
    from google.generativeai import types as genai_types

    DEFAULT_SAFETY_SETTINGS = [
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_HARASSMENT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_NONE,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_NONE,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_NONE,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_NONE,
        },
    ]
except (ImportError, AttributeError):  # pragma: no cover - older SDKs take plain strings
    DEFAULT_SAFETY_SETTINGS = [
        {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
        {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
        {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
    ]

from .config import Settings


class GeminiClient:
    """Thin wrapper around the Gemini SDK with model caching and safety settings."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the SDK global API key.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if the API key or model name is missing.
        If Removed: Replies cannot be generated and the drafting endpoints fail.
        Testing Notes: Validate that a missing key raises ValueError.
        """
        self._settings = settings
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("Gemini model name is required")
        self._models: Dict[str, genai.GenerativeModel] = {}

    async def stream_content(
        self,
        contents: List[dict],
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: int = 4096,
    ) -> AsyncIterator[str]:
        """Purpose: Stream a reply to structured chat contents as text fragments.
        Inputs/Outputs: Inputs are role-tagged contents and an optional system prompt;
            yields non-empty text fragments in arrival order.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: genai.GenerativeModel.generate_content_async(stream=True).
        Failure Modes: SDK/network errors propagate to the caller; older SDKs without
            system_instruction support get it flattened into the contents.
        If Removed: The drafting agent has no reply stream to forward.
        Testing Notes: Replace with a fake exposing the same async generator in tests.
        """
        model_name = _normalize_model_name(model) if model else self._default_model
        generation_config = {
            "temperature": self._settings.temperature if temperature is None else temperature,
            "max_output_tokens": max_output_tokens,
        }
        try:
            generative_model = self._model_for(model_name, system_instruction or "")
            payload = contents
        except TypeError:
            generative_model = self._model_for(model_name, "", with_instruction=False)
            payload = _flatten_contents(contents)
            if system_instruction:
                payload = f"{system_instruction}\n\n{payload}"

        response = await generative_model.generate_content_async(
            payload,
            generation_config=generation_config,
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            stream=True,
        )
        async for chunk in response:
            text = _chunk_text(chunk)
            if text:
                yield text

    def _model_for(
        self, model_name: str, system_instruction: str, with_instruction: bool = True
    ) -> genai.GenerativeModel:
        # The system prompt changes every turn, so only instruction-less models are cached.
        if with_instruction and system_instruction:
            return genai.GenerativeModel(model_name, system_instruction=system_instruction)
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)
        return self._models[model_name]


def _chunk_text(chunk: object) -> str:
    # The SDK raises ValueError on chunks that carry no text part (finish/safety chunks).
    try:
        return getattr(chunk, "text", "") or ""
    except ValueError:
        return ""


def _normalize_model_name(name: Optional[str]) -> str:
    """Purpose: Normalize model names by stripping prefix and whitespace.
    Inputs/Outputs: Input is a model name string; output is normalized name.
    Side Effects / State: None.
    Dependencies: None; used by GeminiClient.
    Failure Modes: Returns empty string for falsy input.
    If Removed: Model caching and selection may use invalid names and fail.
    Testing Notes: Ensure "models/foo" becomes "foo" and whitespace is trimmed.
    """
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned


def _flatten_contents(contents: list) -> str:
    """Convert role-tagged contents into a plain-text prompt for SDKs without system_instruction."""
    parts: list[str] = []
    for entry in contents:
        if not isinstance(entry, dict):
            continue
        role = entry.get("role", "")
        segments = entry.get("parts", []) or []
        texts = []
        for segment in segments:
            if isinstance(segment, dict):
                text = segment.get("text")
                if text:
                    texts.append(str(text))
            elif isinstance(segment, str) and segment:
                texts.append(segment)
        if texts:
            prefix = f"{role.upper()}: " if role else ""
            parts.append(prefix + "\n".join(texts))
    return "\n\n".join(parts)
