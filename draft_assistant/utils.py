import re
import unicodedata

_NON_WORD_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for stable keyword matching and dedupe keys.
    Inputs/Outputs: Input is a raw string; output is a lowercase string with diacritics
        removed, punctuation replaced by spaces and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by typology, ranking and retrieval.
    Failure Modes: Returns an empty string for falsy or whitespace-only input.
    If Removed: Keyword rules miss accented or punctuated input and dedupe keys diverge.
    Testing Notes: normalize_text(normalize_text(x)) must equal normalize_text(x).
    """
    # Lowercase, drop combining marks, then reduce to letters, digits and single spaces.
    if not text or not text.strip():
        return ""
    lowered = text.strip().lower()
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    cleaned = _NON_WORD_RE.sub(" ", stripped)
    collapsed = _WHITESPACE_RE.sub(" ", cleaned).strip()
    if collapsed.startswith("- "):
        collapsed = collapsed[2:].strip()
    return collapsed


def contains_any(normalized: str, keywords) -> bool:
    """Return True when any keyword is a substring of the already-normalized text."""
    return any(keyword and keyword in normalized for keyword in keywords)
