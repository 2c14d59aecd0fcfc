import pytest

from draft_assistant.typology import TYPOLOGY_RULES, ProblemTypology, classify_problem


def test_wrong_item_has_priority_over_damage():
    description = "le produit est endommagé mais j'ai reçu le mauvais modèle"
    assert classify_problem(description) == ProblemTypology.WRONG_ITEM


def test_unrecognized_description_is_unknown():
    assert classify_problem("Bonjour, je voudrais des informations") == ProblemTypology.UNKNOWN


def test_empty_description_is_unknown():
    assert classify_problem("   ") == ProblemTypology.UNKNOWN


def test_keywords_match_inside_longer_words():
    assert classify_problem("La surgarantie a expiré") == ProblemTypology.WARRANTY


@pytest.mark.parametrize(
    "description,expected",
    [
        ("J'ai reçu le modele noir au lieu du blanc", ProblemTypology.WRONG_ITEM),
        ("L'écran est fissuré", ProblemTypology.DAMAGED),
        ("L'appareil ne s'allume plus", ProblemTypology.MALFUNCTION),
        ("Il manque le chargeur", ProblemTypology.MISSING_PARTS),
        ("Je n'ai pas de suivi pour mon colis", ProblemTypology.TRACKING),
        ("Mon colis n'est jamais arrivé", ProblemTypology.DELIVERY),
        ("La taille est trop petite", ProblemTypology.SIZE),
        ("Je veux être remboursé", ProblemTypology.REFUND),
        ("La qualité est décevante", ProblemTypology.QUALITY),
    ],
)
def test_classifies_each_typology(description, expected):
    assert classify_problem(description) == expected


def test_tracking_is_checked_before_delivery():
    order = [typology for typology, _ in TYPOLOGY_RULES]
    assert order.index(ProblemTypology.TRACKING) < order.index(ProblemTypology.DELIVERY)
    assert order[0] == ProblemTypology.WRONG_ITEM
    assert order[-1] == ProblemTypology.QUALITY
