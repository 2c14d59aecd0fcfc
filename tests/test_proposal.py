from draft_assistant.proposal import ProposedMessage, extract_proposal, has_proposal_marker

ROUND_TRIP = (
    "Bonjour.\n"
    "📝 Message proposé au vendeur: Bonjour, mon produit...\n"
    "💡 Le vendeur pourrait aussi demander: - une photo\n"
    "Cliquez sur le bouton Approuver..."
)


def test_extracts_all_four_zones():
    proposal = extract_proposal(ROUND_TRIP)
    assert proposal.intro == "Bonjour."
    assert proposal.proposed_message == "Bonjour, mon produit..."
    assert proposal.seller_hints == "- une photo"
    assert proposal.approval_prompt.startswith("Cliquez sur le bouton Approuver...")
    assert proposal.has_proposal


def test_plain_text_becomes_intro():
    proposal = extract_proposal("  Pouvez-vous préciser le numéro de commande ?  ")
    assert proposal == ProposedMessage(intro="Pouvez-vous préciser le numéro de commande ?")
    assert proposal.proposed_message == ""
    assert not proposal.has_proposal


def test_reextracting_the_message_returns_it_as_intro():
    message = extract_proposal(ROUND_TRIP).proposed_message
    again = extract_proposal(message)
    assert again.intro == message
    assert again.proposed_message == again.seller_hints == again.approval_prompt == ""


def test_bold_header_and_signature_placeholder():
    reply = (
        "Parfait, voici une proposition.\n\n"
        "📝 **Message proposé au vendeur:**\n\n"
        "Bonjour,\nJ'ai reçu un article abîmé.\nCordialement,\n[Votre nom]\n\n"
        "Cliquez sur le bouton Approuver pour l'envoyer."
    )
    proposal = extract_proposal(reply, customer_name="Marie")
    assert proposal.proposed_message == "Bonjour,\nJ'ai reçu un article abîmé.\nCordialement,\nMarie"
    assert proposal.seller_hints == ""
    assert proposal.approval_prompt == "Cliquez sur le bouton Approuver pour l'envoyer."


def test_english_and_uppercase_placeholders_are_replaced():
    reply = "📝 Message: Hello\n[YOUR NAME] / [votre   NOM]"
    assert extract_proposal(reply, customer_name="Sam").proposed_message == "Hello\nSam / Sam"


def test_placeholder_kept_without_customer_name():
    assert extract_proposal("📝 Message: Merci\n[Votre nom]").proposed_message == "Merci\n[Votre nom]"


def test_alternative_sentinel_and_header_leak():
    reply = "📜 Voici le message: Message proposé au vendeur\nBonjour, le colis est abîmé."
    assert extract_proposal(reply).proposed_message == "Bonjour, le colis est abîmé."


def test_segment_without_colon_uses_text_after_blank_line():
    reply = "Intro\n📝 Proposition\n\nBonjour, le produit est arrivé cassé. Merci"
    proposal = extract_proposal(reply)
    assert proposal.intro == "Intro"
    assert proposal.proposed_message == "Bonjour, le produit est arrivé cassé. Merci"


def test_segment_without_colon_or_blank_line_drops_bold_header():
    reply = "📝 **Proposition** Bonjour, merci de me rembourser."
    assert extract_proposal(reply).proposed_message == "Bonjour, merci de me rembourser."


def test_seller_hints_can_be_suppressed():
    proposal = extract_proposal(ROUND_TRIP, include_seller_hints=False)
    assert proposal.seller_hints == ""
    assert proposal.proposed_message == "Bonjour, mon produit..."
    assert proposal.approval_prompt.startswith("Cliquez")


def test_textual_hint_marker_without_emoji():
    reply = (
        "📝 Message proposé au vendeur: Bonjour\n"
        "Le vendeur pourrait aussi demander:\n- Facture\n- Photo\n"
        "Souhaitez-vous apporter des modifications ?"
    )
    proposal = extract_proposal(reply)
    assert proposal.proposed_message == "Bonjour"
    assert proposal.seller_hints == "- Facture\n- Photo"
    assert proposal.approval_prompt == "Souhaitez-vous apporter des modifications ?"


def test_earliest_approval_phrase_wins():
    reply = (
        "📝 Message proposé au vendeur: Bonjour\n"
        "Si ce message vous convient, Cliquez sur le bouton Approuver."
    )
    proposal = extract_proposal(reply)
    assert proposal.proposed_message == "Bonjour"
    assert proposal.approval_prompt == "Si ce message vous convient, Cliquez sur le bouton Approuver."


def test_only_known_approval_phrases_end_the_message():
    proposal = extract_proposal("📝 Message: Bonjour\nVous pourrez approuver le retour.")
    assert proposal.proposed_message == "Bonjour\nVous pourrez approuver le retour."
    assert proposal.approval_prompt == ""


def test_optional_provide_block_is_stripped():
    reply = (
        "📝 Message proposé au vendeur: Bonjour,\nle produit est cassé.\n"
        "Je peux fournir des photos si besoin.\nMerci d'avance,\n[Votre nom]"
    )
    assert extract_proposal(reply, customer_name="Léa").proposed_message == (
        "Bonjour,\nle produit est cassé.\n\nMerci d'avance,"
    )


def test_legacy_marker_with_delimiters():
    reply = (
        "Voici un message que vous pourriez envoyer au vendeur :\n"
        "--\n"
        "Bonjour,\nJe n'ai pas reçu ma commande.\n[Votre nom]\n"
        "--\n"
        "Dites-moi si cela vous convient."
    )
    proposal = extract_proposal(reply, customer_name="Paul")
    assert proposal.proposed_message == "Bonjour,\nJe n'ai pas reçu ma commande.\nPaul"
    assert proposal.intro == ""
    assert proposal.seller_hints == ""
    assert proposal.approval_prompt == ""


def test_legacy_marker_without_delimiters_is_case_insensitive():
    reply = "Très bien. voici un message que vous pourriez envoyer au vendeur : Bonjour, mon colis est perdu."
    proposal = extract_proposal(reply)
    assert proposal.intro == "Très bien."
    assert proposal.proposed_message == "Bonjour, mon colis est perdu."


def test_has_proposal_marker():
    assert has_proposal_marker(ROUND_TRIP)
    assert has_proposal_marker("Message proposé au vendeur : ...")
    assert has_proposal_marker("VOICI UN MESSAGE QUE VOUS POURRIEZ ENVOYER AU VENDEUR")
    assert not has_proposal_marker("Pouvez-vous m'envoyer une photo ?")
    assert not has_proposal_marker("")


def test_payload_uses_api_field_names():
    payload = extract_proposal(ROUND_TRIP).as_payload()
    assert set(payload) == {"intro", "proposedMessage", "sellerHints", "approvalPrompt"}
