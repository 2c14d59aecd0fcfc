"""Structured proposal extraction from marker-delimited assistant replies.

Expected reply layout (every zone optional):

    <intro>
    📝 **Message proposé au vendeur:** <message>
    💡 **Le vendeur pourrait aussi demander:** <bullets>
    Cliquez sur le bouton Approuver ...

Extraction tiers:
    1. Primary proposal sentinel (📝, else 📜): intro / message / hints / approval.
    2. Legacy prose marker ("Voici un message que vous pourriez envoyer au vendeur"):
       message between two "--" lines, else everything after the marker.
    3. No marker: the whole trimmed reply is the intro.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

PROPOSAL_MARKERS: Tuple[str, ...] = ("📝", "📜")
SELLER_HINT_MARKERS: Tuple[str, ...] = ("💡", "Le vendeur pourrait", "vendeur pourrait aussi demander")
APPROVAL_MARKERS: Tuple[str, ...] = (
    "Cliquez sur le bouton",
    "Si ce message vous convient",
    "Approuvez-vous ce message",
    "Vous pouvez approuver",
    "Souhaitez-vous apporter",
)
LEGACY_MARKER = "Voici un message que vous pourriez envoyer au vendeur"
PROPOSAL_HEADER = "Message proposé au vendeur"
LEGACY_DELIMITER = "--"

_HEADER_LEAK_TOKENS = ("message proposé", "au vendeur")
_PROVIDE_BLOCK_TOKENS = ("je peux fournir", "i can also provide")
_SIGNATURE_RE = re.compile(r"\[(?:votre|your)\s+(?:nom|name)\]", re.IGNORECASE)
_THANKS_LINE_RE = re.compile(r"^[ \t]*(?:merci|thank you)[^\n]*", re.IGNORECASE | re.MULTILINE)
_BOLD_HEADER_RE = re.compile(r"^\*\*.*?\*\*:?\s*")


@dataclass(frozen=True)
class ProposedMessage:
    """Structured view of one assistant reply."""

    intro: str = ""
    proposed_message: str = ""
    seller_hints: str = ""
    approval_prompt: str = ""

    @property
    def has_proposal(self) -> bool:
        return bool(self.proposed_message.strip())

    def as_payload(self) -> Dict[str, str]:
        return {
            "intro": self.intro,
            "proposedMessage": self.proposed_message,
            "sellerHints": self.seller_hints,
            "approvalPrompt": self.approval_prompt,
        }


def has_proposal_marker(text: str) -> bool:
    """Cheap check for any sign of a proposal before running the full extraction."""
    if not text:
        return False
    if any(marker in text for marker in PROPOSAL_MARKERS):
        return True
    if PROPOSAL_HEADER in text:
        return True
    if LEGACY_MARKER.lower() in text.lower():
        return True
    return "Cliquez sur le bouton Approuver" in text or "Approuver pour envoyer" in text


def extract_proposal(
    response: str,
    customer_name: Optional[str] = None,
    include_seller_hints: bool = True,
) -> ProposedMessage:
    """Purpose: Split one assistant reply into intro, proposed message, seller hints and
        approval prompt.
    Inputs/Outputs: Inputs are the raw reply, the customer name used for signature
        placeholders and whether hints should be surfaced; output is a ProposedMessage.
    Side Effects / State: None; pure function.
    Dependencies: Marker tables above, _find_first, _earliest.
    Failure Modes: Never raises; unrecognized layouts degrade to intro-only output.
    If Removed: The session cannot tell whether a reply is approvable, and approval has
        nothing to persist.
    Testing Notes: Re-extracting a returned proposed_message must give it back as intro.
    """
    text = response or ""
    proposal_start, _ = _find_first(text, PROPOSAL_MARKERS)
    if proposal_start == -1:
        return _extract_legacy(text, customer_name)

    intro = text[:proposal_start].strip()
    hints_start, _ = _find_first(text, SELLER_HINT_MARKERS, start=proposal_start)
    approval_start = _earliest(text, APPROVAL_MARKERS, start=proposal_start)

    # The proposal ends at whichever following zone starts first.
    proposal_end = len(text)
    for boundary in (hints_start, approval_start):
        if boundary > proposal_start:
            proposal_end = min(proposal_end, boundary)

    message = _clean_proposal_segment(text[proposal_start:proposal_end], customer_name)

    seller_hints = ""
    if include_seller_hints and hints_start != -1:
        hints_end = approval_start if approval_start > hints_start else len(text)
        seller_hints = _after_header(text[hints_start:hints_end])

    approval_prompt = text[approval_start:].strip() if approval_start != -1 else ""
    return ProposedMessage(
        intro=intro,
        proposed_message=message,
        seller_hints=seller_hints,
        approval_prompt=approval_prompt,
    )


def _clean_proposal_segment(segment: str, customer_name: Optional[str]) -> str:
    colon = segment.find(":")
    if colon == -1:
        blank = segment.find("\n\n")
        if blank != -1:
            message = segment[blank + 2 :]
        else:
            # Drop the sentinel character, then a leading bold header.
            message = _BOLD_HEADER_RE.sub("", segment[1:].strip())
        message = _strip_bold(message)
    else:
        message = _strip_bold(segment[colon + 1 :])
        lines = message.split("\n")
        first_line = lines[0].strip().lower()
        if first_line and any(token in first_line for token in _HEADER_LEAK_TOKENS):
            message = "\n".join(lines[1:]).strip()

    message = strip_optional_provide_block(message)
    return replace_signature_placeholders(message, customer_name).strip()


def _extract_legacy(text: str, customer_name: Optional[str]) -> ProposedMessage:
    marker_index = text.lower().find(LEGACY_MARKER.lower())
    if marker_index == -1:
        return ProposedMessage(intro=text.strip())

    lines = text.splitlines()
    delimiters = [index for index, line in enumerate(lines) if line.strip() == LEGACY_DELIMITER]
    if len(delimiters) >= 2:
        block = "\n".join(lines[delimiters[0] + 1 : delimiters[1]]).strip()
    else:
        block = text[marker_index + len(LEGACY_MARKER) :].lstrip(" :\t").strip()

    block = strip_optional_provide_block(block)
    block = replace_signature_placeholders(block, customer_name).strip()
    return ProposedMessage(intro=text[:marker_index].strip(), proposed_message=block)


def strip_optional_provide_block(text: str) -> str:
    """Purpose: Remove an "I can also provide..." offer from a drafted message.
    Inputs/Outputs: Input is message text; output keeps the part before the offer plus
        the first thank-you line that follows it.
    Side Effects / State: None.
    Dependencies: _PROVIDE_BLOCK_TOKENS, _THANKS_LINE_RE.
    Failure Modes: Text without the offer is returned unchanged.
    If Removed: Sellers receive the assistant's optional-document list as part of the message.
    Testing Notes: "A\\nJe peux fournir: x\\nMerci d'avance" gives "A\\n\\nMerci d'avance".
    """
    lowered = text.lower()
    positions = [lowered.find(token) for token in _PROVIDE_BLOCK_TOKENS]
    positions = [position for position in positions if position != -1]
    if not positions:
        return text
    index = min(positions)
    before = text[:index].strip()
    match = _THANKS_LINE_RE.search(text[index:])
    thanks = match.group(0).strip() if match else ""
    return f"{before}\n\n{thanks}".strip()


def replace_signature_placeholders(text: str, customer_name: Optional[str]) -> str:
    """Substitute "[Votre nom]" / "[Your name]" in any case with the customer name."""
    if not customer_name:
        return text
    return _SIGNATURE_RE.sub(lambda _: customer_name, text)


def _after_header(segment: str) -> str:
    colon = segment.find(":")
    if colon == -1:
        # Header without a colon: keep everything after its line.
        newline = segment.find("\n")
        body = segment[newline + 1 :] if newline != -1 else ""
    else:
        body = segment[colon + 1 :]
    return _strip_bold(body)


def _strip_bold(text: str) -> str:
    return text.replace("**", "").strip()


def _find_first(text: str, markers: Sequence[str], start: int = 0) -> Tuple[int, str]:
    """Return the first occurrence of the highest-priority marker present."""
    for marker in markers:
        index = text.find(marker, start)
        if index != -1:
            return index, marker
    return -1, ""


def _earliest(text: str, markers: Sequence[str], start: int = 0) -> int:
    found = [text.find(marker, start) for marker in markers]
    found = [index for index in found if index != -1]
    return min(found) if found else -1
