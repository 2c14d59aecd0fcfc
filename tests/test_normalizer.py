import pytest

from draft_assistant.utils import contains_any, normalize_text


def test_strips_case_accents_and_punctuation():
    assert normalize_text("  Le Produit est ENDOMMAGÉ !!  ") == "le produit est endommage"


def test_apostrophes_become_spaces():
    assert normalize_text("L'appareil ne s'allume plus") == "l appareil ne s allume plus"


def test_leading_bullet_is_removed():
    assert normalize_text("- Photo du colis") == "photo du colis"


@pytest.mark.parametrize("value", ["", "   ", "\n\t", None])
def test_blank_input_normalizes_to_empty(value):
    assert normalize_text(value) == ""


@pytest.mark.parametrize(
    "value",
    [
        "Reçu le modèle XL à la place du M",
        "- Vérifier   que l'appareil est chargé...",
        "Numéro de série: 12-34_56",
        "ÇA NE MARCHE PAS !!!",
        "   - - double bullet",
    ],
)
def test_normalization_is_idempotent(value):
    once = normalize_text(value)
    assert normalize_text(once) == once


def test_contains_any_is_substring_match():
    normalized = normalize_text("Surgarantie expirée")
    assert contains_any(normalized, ("garantie",))
    assert not contains_any(normalized, ("rembours", ""))
