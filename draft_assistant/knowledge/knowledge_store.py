"""Markdown seller-requirements store with section chunking and keyword retrieval."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..utils import normalize_text

logger = logging.getLogger("drafter.store")


@dataclass(frozen=True)
class RetrievalResult:
    """One retrieved knowledge section, ranked by the retriever."""
    id: str
    section_id: str
    title: str
    content: str


class SellerKnowledgeStore:
    """Manage the seller-requirements markdown and retrieve the sections relevant to a problem."""

    def __init__(self, knowledge_dir: Path) -> None:
        self._knowledge_dir = knowledge_dir
        self._source_path = self._knowledge_dir / "seller_requirements.md"
        self._index_path = self._knowledge_dir / "seller_requirements_index.json"
        self._index_cache: Optional[Dict[str, object]] = None
        self._index_mtime: float = 0.0

    def load_source(self) -> str:
        """Purpose: Load the requirements markdown, creating the default template if missing.
        Inputs/Outputs: No inputs; returns the markdown text.
        Side Effects / State: Ensures the knowledge directory and source file exist.
        Dependencies: Uses filesystem paths under knowledge_dir.
        Failure Modes: File read/write errors propagate to caller.
        If Removed: Retrieval has no sections to rank and hints are never shown.
        Testing Notes: Point at an empty tmp dir and verify the default file is written.
        """
        self._ensure_files()
        return self._source_path.read_text(encoding="utf-8")

    def build_or_load_index(self) -> Dict[str, object]:
        """Purpose: Build or load the section index for the requirements markdown.
        Inputs/Outputs: No inputs; returns an index dict with sections and source mtime.
        Side Effects / State: Writes the JSON index when rebuilding.
        Dependencies: Uses chunk_sections and load_source.
        Failure Modes: JSON decode errors trigger a rebuild.
        If Removed: retrieve_candidates must parse markdown on every call.
        Testing Notes: Touch the markdown and confirm the index rebuilds.
        """
        source_text = self.load_source()
        source_mtime = self._source_path.stat().st_mtime

        if self._index_cache and self._index_mtime == source_mtime:
            return self._index_cache

        if self._index_path.exists():
            try:
                cached = json.loads(self._index_path.read_text(encoding="utf-8"))
                if isinstance(cached, dict) and cached.get("source_mtime") == source_mtime:
                    self._index_cache = cached
                    self._index_mtime = source_mtime
                    return cached
            except json.JSONDecodeError:
                pass

        index = {
            "source_mtime": source_mtime,
            "sections": self.chunk_sections(source_text),
        }
        self._write_index(index)
        self._index_cache = index
        self._index_mtime = source_mtime
        logger.info("knowledge_index=rebuilt sections=%s", len(index["sections"]))
        return index

    def retrieve_candidates(self, query: str, top_k: int = 6) -> List[RetrievalResult]:
        """Purpose: Retrieve the top-K requirement sections relevant to a problem description.
        Inputs/Outputs: Input is query string and top_k; output is ranked RetrievalResult list.
        Side Effects / State: Loads or rebuilds the index as needed.
        Dependencies: Uses normalize_text and build_or_load_index.
        Failure Modes: Empty query, disabled knowledge or empty index returns empty list.
        If Removed: Seller hints cannot be grounded in the requirements knowledge.
        Testing Notes: Query "colis endommagé" and expect the damaged section first.
        """
        if not query or top_k <= 0:
            return []
        if os.getenv("KNOWLEDGE_ENABLED", "1") == "0":
            return []

        index = self.build_or_load_index()
        sections = index.get("sections", []) if isinstance(index, dict) else []
        if not sections:
            return []

        query_tokens = _tokenize(query)
        if not query_tokens:
            return []

        scored: List[Tuple[float, int, Dict[str, str]]] = []
        for position, section in enumerate(sections):
            score = _score_section(query_tokens, section)
            if score > 0:
                scored.append((score, position, section))

        # Stable on ties: keep document order for equal scores.
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            RetrievalResult(
                id=section.get("id", ""),
                section_id=section.get("section_id", ""),
                title=section.get("title", ""),
                content=section.get("content", ""),
            )
            for _, _, section in scored[:top_k]
        ]

    def chunk_sections(self, md_text: str) -> List[Dict[str, str]]:
        """Purpose: Split markdown into requirement sections.
        Inputs/Outputs: Input is markdown text; output is a list of section dicts.
        Side Effects / State: None.
        Dependencies: None.
        Failure Modes: Empty input returns empty list.
        If Removed: Retrieval cannot target one problem typology at a time.
        Testing Notes: "## id" opens a section, "### title" sets its title.
        """
        if not md_text:
            return []

        sections: List[Dict[str, str]] = []
        section_id = ""
        title = ""
        buffer: List[str] = []

        def flush() -> None:
            nonlocal buffer
            content = "\n".join(buffer).strip()
            buffer = []
            if not content or not section_id:
                return
            sections.append(
                {
                    "id": f"req-{len(sections)}",
                    "section_id": section_id,
                    "title": title or section_id,
                    "content": content,
                }
            )

        for line in md_text.splitlines():
            if line.startswith("## "):
                flush()
                section_id = line[3:].strip()
                title = ""
                continue
            if line.startswith("### "):
                title = line[4:].strip()
                continue
            if line.startswith("# "):
                continue
            buffer.append(line)

        flush()
        return sections

    def _ensure_files(self) -> None:
        self._knowledge_dir.mkdir(parents=True, exist_ok=True)
        if not self._source_path.exists():
            self._source_path.write_text(_DEFAULT_REQUIREMENTS, encoding="utf-8")

    def _write_index(self, index: Dict[str, object]) -> None:
        tmp_path = self._index_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(index, ensure_ascii=True), encoding="utf-8")
        tmp_path.replace(self._index_path)


def _tokenize(text: str) -> List[str]:
    normalized = normalize_text(text)
    return [token for token in normalized.split() if len(token) > 2]


def _score_section(tokens: List[str], section: Dict[str, str]) -> float:
    content_tokens = _tokenize(section.get("content", ""))
    if not content_tokens:
        return 0.0
    content_counts: Dict[str, int] = {}
    for token in content_tokens:
        content_counts[token] = content_counts.get(token, 0) + 1

    title_tokens = set(_tokenize(section.get("title", "")))
    section_tokens = set(_tokenize(section.get("section_id", "")))

    score = 0.0
    for token in tokens:
        score += content_counts.get(token, 0)
        if token in title_tokens:
            score += 2.0
        if token in section_tokens:
            score += 1.0
    return score


_DEFAULT_REQUIREMENTS = (
    "# Exigences vendeur\n\n"
    "## wrong-item\n"
    "### Produit reçu différent de la commande\n"
    "- Photo du produit reçu\n"
    "- Photo de l'étiquette du colis\n"
    "- Numéro de commande\n"
    "- Comparer la référence reçue avec la commande\n\n"
    "## damaged\n"
    "### Produit endommagé ou cassé à la livraison\n"
    "- Photos des dégâts\n"
    "- Photo de l'emballage extérieur\n"
    "- Bon de livraison signé\n\n"
    "## defective\n"
    "### Produit défectueux qui ne fonctionne pas\n"
    "- Vidéo montrant le problème\n"
    "- Numéro de série\n"
    "- Facture d'achat\n"
    "- Vérifier que l'appareil est chargé\n"
    "- Redémarrer l'appareil\n\n"
    "## missing-parts\n"
    "### Pièces ou accessoires manquants\n"
    "- Photo du contenu du colis\n"
    "- Liste des éléments manquants\n\n"
    "## tracking\n"
    "### Suivi de colis\n"
    "- Numéro de suivi\n"
    "- Capture d'écran du suivi transporteur\n\n"
    "## delivery\n"
    "### Colis non reçu ou perdu en livraison\n"
    "- Numéro de suivi\n"
    "- Adresse de livraison complète\n"
    "- Patienter 48h après la date prévue\n\n"
    "## quality\n"
    "### Qualité non conforme à la description\n"
    "- Photos du défaut de qualité\n"
    "- Capture de la description du produit\n\n"
    "## warranty\n"
    "### Demande de garantie\n"
    "- Facture d'achat\n"
    "- Numéro de série\n"
    "- Description du problème\n\n"
    "## size\n"
    "### Problème de taille\n"
    "- Taille commandée et taille reçue\n"
    "- Photo de l'étiquette de taille\n\n"
    "## refund\n"
    "### Demande de remboursement\n"
    "- Numéro de commande\n"
    "- Moyen de paiement utilisé\n"
)
