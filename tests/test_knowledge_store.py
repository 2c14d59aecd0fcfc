import os

from draft_assistant.knowledge.knowledge_store import SellerKnowledgeStore


def test_default_requirements_are_created(tmp_path):
    store = SellerKnowledgeStore(tmp_path / "knowledge")
    text = store.load_source()
    assert (tmp_path / "knowledge" / "seller_requirements.md").exists()
    assert "## damaged" in text


def test_chunk_sections_reads_ids_and_titles(tmp_path):
    store = SellerKnowledgeStore(tmp_path)
    sections = store.chunk_sections("# Titre\n\n## warranty\n### Garantie\n- Facture\n\n## empty\n### Rien\n")
    assert sections == [{"id": "req-0", "section_id": "warranty", "title": "Garantie", "content": "- Facture"}]


def test_retrieve_ranks_matching_section_first(tmp_path):
    store = SellerKnowledgeStore(tmp_path)
    results = store.retrieve_candidates("Ma garantie est-elle valable ?", top_k=3)
    assert results
    assert results[0].section_id == "warranty"
    assert (tmp_path / "seller_requirements_index.json").exists()


def test_retrieve_handles_empty_query_and_disabled_knowledge(tmp_path, monkeypatch):
    store = SellerKnowledgeStore(tmp_path)
    assert store.retrieve_candidates("", top_k=3) == []
    assert store.retrieve_candidates("garantie", top_k=0) == []
    monkeypatch.setenv("KNOWLEDGE_ENABLED", "0")
    assert store.retrieve_candidates("garantie", top_k=3) == []


def test_index_rebuilds_when_markdown_changes(tmp_path):
    source = tmp_path / "seller_requirements.md"
    source.write_text("## size\n### Taille\n- Taille reçue\n", encoding="utf-8")
    store = SellerKnowledgeStore(tmp_path)
    assert [r.section_id for r in store.retrieve_candidates("taille", top_k=5)] == ["size"]

    source.write_text("## size-v2\n### Taille\n- Taille commandée\n", encoding="utf-8")
    stat = source.stat()
    os.utime(source, (stat.st_atime, stat.st_mtime + 10))
    assert [r.section_id for r in store.retrieve_candidates("taille", top_k=5)] == ["size-v2"]
