"""Seller-requirement hint ranking.

Turns the sections returned by knowledge retrieval into a short bullet list for the
"💡 Le vendeur pourrait aussi demander" block of a proposal:
    1. Prefer sections whose id/title matches the problem typology.
    2. Collect "- " bullet lines, stopping early when the best section is rich enough.
    3. Dedupe by normalized text, sort by section rank, proof-like first, then shorter.
    4. Keep at most three lines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .knowledge.knowledge_store import RetrievalResult, SellerKnowledgeStore
from .typology import ProblemTypology, classify_problem
from .utils import contains_any, normalize_text

logger = logging.getLogger("drafter.requirements")

BULLET_PREFIX = "- "
DEFAULT_HINT_LIMIT = 3
NO_REQUIREMENTS_FOUND = "Aucune information vendeur pertinente trouvée pour ce type de problème."
NO_REQUIREMENTS_RETRIEVED = "Aucune exigence spécifique trouvée pour ce type de problème."

TYPOLOGY_HINTS: Dict[ProblemTypology, Tuple[str, ...]] = {
    ProblemTypology.WRONG_ITEM: ("wrong", "different", "produit recu different"),
    ProblemTypology.DAMAGED: ("damaged", "endommag", "casse", "degat"),
    ProblemTypology.MALFUNCTION: ("defective", "malfunction", "defectu", "ne fonctionne"),
    ProblemTypology.MISSING_PARTS: ("missing", "incomplet", "manqu"),
    ProblemTypology.TRACKING: ("tracking", "suivi"),
    ProblemTypology.DELIVERY: ("delivery", "livraison", "colis"),
    ProblemTypology.QUALITY: ("quality", "qualite", "conforme", "description"),
    ProblemTypology.WARRANTY: ("warranty", "garantie"),
    ProblemTypology.SIZE: ("size", "taille"),
    ProblemTypology.REFUND: ("refund", "rembours"),
}

PROOF_KEYWORDS = (
    "photo",
    "video",
    "facture",
    "invoice",
    "preuve",
    "proof",
    "bon de livraison",
    "etiquette",
    "label",
    "numero de suivi",
    "tracking number",
    "numero de serie",
    "serial number",
    "capture",
    "screenshot",
    "reference",
)

TIP_VERBS = (
    "verifier",
    "tester",
    "charger",
    "tenter",
    "patienter",
    "redemarrer",
    "reinitialiser",
    "comparer",
    "verify",
    "test",
    "charge",
    "try",
    "wait",
    "restart",
    "reset",
    "compare",
)


@dataclass(frozen=True)
class RequirementCandidate:
    """One bullet line eligible for the seller-hint block."""
    source_rank: int
    text: str
    is_document_like: bool


def _matches_hints(result: RetrievalResult, hints: Sequence[str]) -> bool:
    section_id = normalize_text(result.section_id)
    title = normalize_text(result.title)
    for hint in hints:
        key = normalize_text(hint)
        if key and (key in section_id or key in title):
            return True
    return False


def prefer_by_typology(results: Sequence[RetrievalResult], typology: ProblemTypology) -> List[RetrievalResult]:
    """Purpose: Reorder retrieval results so sections matching the typology come first.
    Inputs/Outputs: Inputs are ranked results and a typology; output is a new list with
        preferred results first, then the remaining ones in their original order.
    Side Effects / State: None.
    Dependencies: TYPOLOGY_HINTS and normalize_text.
    Failure Modes: Unknown typology or an empty preferred set returns the input order.
    If Removed: Vector retrieval mistakes (damage sections for wrong-item queries) leak
        straight into the hint block.
    Testing Notes: WrongItem with only Damaged/Generic sections must prefer Generic.
    """
    ordered = list(results)
    hints = TYPOLOGY_HINTS.get(typology)
    if typology == ProblemTypology.UNKNOWN or not hints:
        return ordered

    preferred = [result for result in ordered if _matches_hints(result, hints)]
    if not preferred and typology == ProblemTypology.WRONG_ITEM:
        # Damage sections are the usual false positive for wrong-item queries.
        damaged_hints = TYPOLOGY_HINTS[ProblemTypology.DAMAGED]
        preferred = [result for result in ordered if not _matches_hints(result, damaged_hints)]
    if not preferred:
        return ordered

    preferred_ids = {id(result) for result in preferred}
    rest = [result for result in ordered if id(result) not in preferred_ids]
    return preferred + rest


def is_document_like(line: str) -> bool:
    """Purpose: Tell whether a bullet asks for a document/proof rather than giving a tip.
    Inputs/Outputs: Input is one bullet line; output is True for proof-style items.
    Side Effects / State: None.
    Dependencies: PROOF_KEYWORDS, TIP_VERBS, normalize_text.
    Failure Modes: None; lines matching neither list default to True.
    If Removed: Ranking can no longer push photos/invoices ahead of troubleshooting tips.
    Testing Notes: "- Vérifier la photo du colis" is document-like (proof wins over tip).
    """
    # Proof keywords take precedence over the tip-verb exclusion.
    normalized = normalize_text(line)
    if contains_any(normalized, PROOF_KEYWORDS):
        return True
    return not any(normalized.startswith(verb) for verb in TIP_VERBS)


def extract_candidates(results: Sequence[RetrievalResult]) -> List[RequirementCandidate]:
    """Collect "- " bullet lines from results, tagging each with its source rank."""
    candidates: List[RequirementCandidate] = []
    for rank, result in enumerate(results):
        if not result.content or not result.content.strip():
            continue
        for raw_line in result.content.splitlines():
            line = raw_line.strip()
            if not line.startswith(BULLET_PREFIX):
                continue
            candidates.append(RequirementCandidate(rank, line, is_document_like(line)))
        # Avoid blending sections when the best match is already rich enough.
        if rank == 0 and sum(1 for c in candidates if c.source_rank == 0) >= DEFAULT_HINT_LIMIT:
            break
    return candidates


def dedupe_candidates(candidates: Sequence[RequirementCandidate]) -> List[RequirementCandidate]:
    """Drop candidates whose normalized text was already seen, keeping the first one."""
    seen = set()
    unique: List[RequirementCandidate] = []
    for candidate in candidates:
        key = normalize_text(candidate.text)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def rank_requirements(
    results: Sequence[RetrievalResult],
    typology: ProblemTypology,
    limit: int = DEFAULT_HINT_LIMIT,
    empty_message: str = NO_REQUIREMENTS_FOUND,
) -> str:
    """Purpose: Build the display-ready seller-hint block from retrieval results.
    Inputs/Outputs: Inputs are ranked results, typology, cap and the "nothing found"
        sentinel; output is newline-joined "- " bullets or the sentinel.
    Side Effects / State: None.
    Dependencies: prefer_by_typology, extract_candidates, dedupe_candidates.
    Failure Modes: No bullet lines at all returns empty_message, never "".
    If Removed: The drafting prompt has no seller requirements to surface.
    Testing Notes: 6 sections x 4 bullets must yield at most 3 unique lines.
    """
    ordered = prefer_by_typology(results, typology)
    candidates = extract_candidates(ordered)
    if not candidates:
        return empty_message

    unique = dedupe_candidates(candidates)
    unique.sort(key=lambda c: (c.source_rank, not c.is_document_like, len(c.text)))

    selected = []
    for candidate in unique[: max(limit, 0)]:
        text = candidate.text if candidate.text.startswith(BULLET_PREFIX) else f"{BULLET_PREFIX}{candidate.text}"
        selected.append(text)
    return "\n".join(selected).strip()


class SellerRequirementsLookup:
    """Retrieve, classify and rank what a seller will likely ask the customer for."""

    def __init__(
        self,
        knowledge_store: SellerKnowledgeStore,
        top_k: int = 6,
        limit: int = DEFAULT_HINT_LIMIT,
    ) -> None:
        self._knowledge_store = knowledge_store
        self._top_k = top_k
        self._limit = limit

    def search(self, problem_description: str, disable_hints: bool = False) -> str:
        """Purpose: Produce the seller-requirement block for one drafting turn.
        Inputs/Outputs: Inputs are the problem text and the per-turn disable flag; output
            is "" when disabled, a sentinel when nothing is retrieved, else ranked bullets.
        Side Effects / State: Reads the knowledge index (may rebuild it on disk).
        Dependencies: SellerKnowledgeStore.retrieve_candidates, classify_problem,
            rank_requirements.
        Failure Modes: Knowledge file errors propagate to the caller.
        If Removed: Follow-up turns would re-surface hints and first turns would get none.
        Testing Notes: disable_hints=True must return "" without touching retrieval.
        """
        if disable_hints:
            logger.info("seller_hints=disabled reason=follow_up")
            return ""
        # Fetch more candidates than displayed, then let the typology pick the sections.
        results = self._knowledge_store.retrieve_candidates(problem_description, top_k=self._top_k)
        if not results:
            logger.info("seller_hints=empty retrieved=0")
            return NO_REQUIREMENTS_RETRIEVED
        typology = classify_problem(problem_description)
        block = rank_requirements(results, typology, limit=self._limit)
        logger.info(
            "seller_hints=ranked typology=%s retrieved=%s sections=%s",
            typology.value,
            len(results),
            ",".join(result.section_id for result in results),
        )
        return block
