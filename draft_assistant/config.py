from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    """Configuration container for the model, stores, knowledge and ranking limits."""
    gemini_api_key: str
    gemini_model: str
    temperature: float
    data_dir: Path
    knowledge_dir: Path
    prompts_dir: Path
    requirements_top_k: int
    max_requirement_hints: int
    default_customer_name: str
    max_draft_sessions: int
    log_level: str


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid REQUIREMENTS_TOP_K/MAX_REQUIREMENT_HINTS/MAX_DRAFT_SESSIONS/TEMPERATURE
        values raise ValueError.
    If Removed: App cannot configure the model, stores or knowledge and fails at startup.
    Testing Notes: Verify defaults and overrides via monkeypatched environment variables.
    """
    data_dir = os.getenv("DATA_DIR")
    knowledge_dir = os.getenv("KNOWLEDGE_DIR")

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        temperature=float(os.getenv("TEMPERATURE", "0.3")),
        data_dir=Path(data_dir) if data_dir else (BASE_DIR / "data").resolve(),
        knowledge_dir=Path(knowledge_dir) if knowledge_dir else (BASE_DIR / "knowledge" / "data").resolve(),
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        requirements_top_k=int(os.getenv("REQUIREMENTS_TOP_K", "6")),
        max_requirement_hints=int(os.getenv("MAX_REQUIREMENT_HINTS", "3")),
        default_customer_name=os.getenv("DEFAULT_CUSTOMER_NAME", "Client"),
        max_draft_sessions=int(os.getenv("MAX_DRAFT_SESSIONS", "1000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
