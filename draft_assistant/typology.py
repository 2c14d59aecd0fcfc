"""Problem typology classification for customer problem descriptions.

The classifier is an ordered decision table: rules are evaluated top to bottom and the
first rule with a keyword contained in the normalized description wins. Order matters
because some keyword sets overlap (a wrong-model description often also mentions damage).
"""

from __future__ import annotations

from enum import Enum
from typing import List, Tuple

from .utils import contains_any, normalize_text


class ProblemTypology(str, Enum):
    """Closed set of problem categories used to steer seller-requirement hints."""
    UNKNOWN = "Unknown"
    WRONG_ITEM = "WrongItem"
    DAMAGED = "Damaged"
    MALFUNCTION = "Malfunction"
    MISSING_PARTS = "MissingParts"
    DELIVERY = "Delivery"
    TRACKING = "Tracking"
    QUALITY = "Quality"
    WARRANTY = "Warranty"
    SIZE = "Size"
    REFUND = "Refund"


# Substring rules on normalized text, highest priority first.
TYPOLOGY_RULES: List[Tuple[ProblemTypology, Tuple[str, ...]]] = [
    (
        ProblemTypology.WRONG_ITEM,
        (
            "mauvais",
            "pas le bon",
            "pas la bonne",
            "a la place",
            "erreur de modele",
            "produit different",
            "recu le model",
            "recu le modele",
        ),
    ),
    (ProblemTypology.DAMAGED, ("casse", "endommag", "degat", "fissur", "abime", "brise")),
    (ProblemTypology.MALFUNCTION, ("ne s allume", "ne fonctionne", "ne marche", "panne", "defectu")),
    (ProblemTypology.MISSING_PARTS, ("manqu", "incomplet", "accessoire", "piece")),
    (ProblemTypology.TRACKING, ("suivi", "tracking")),
    (ProblemTypology.DELIVERY, ("pas recu", "non recu", "livraison", "colis", "perdu")),
    (ProblemTypology.WARRANTY, ("garantie",)),
    (ProblemTypology.SIZE, ("taille", "trop petit", "trop grand")),
    (ProblemTypology.REFUND, ("rembours",)),
    (ProblemTypology.QUALITY, ("qualite", "non conforme", "description")),
]


def classify_problem(description: str) -> ProblemTypology:
    """Purpose: Map a free-text problem description to a ProblemTypology.
    Inputs/Outputs: Input is the raw description; output is the first matching typology
        from TYPOLOGY_RULES, or UNKNOWN.
    Side Effects / State: None; pure function.
    Dependencies: normalize_text, contains_any, TYPOLOGY_RULES.
    Failure Modes: Never raises; empty or unrecognized input yields UNKNOWN.
    If Removed: Requirement ranking cannot prefer sections matching the customer's problem.
    Testing Notes: "endommage ... mauvais modele" must classify as WRONG_ITEM.
    """
    # Short-circuit on the first rule whose keywords appear in the normalized text.
    normalized = normalize_text(description)
    if not normalized:
        return ProblemTypology.UNKNOWN
    for typology, keywords in TYPOLOGY_RULES:
        if contains_any(normalized, keywords):
            return typology
    return ProblemTypology.UNKNOWN
