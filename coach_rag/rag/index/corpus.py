"""Knowledge corpus snapshot and artifact loading.

Documents and chunks are produced by an external ingestion pipeline. This
module only reads them: from memory, or from an artifacts directory with
``documents.json``, ``chunks.json`` and an optional ``embeddings.npy``
(one row per chunk in ``chunks.json`` order; rows containing NaN mark
chunks whose embedding failed upstream). An optional ``graph.json`` holds
entity relations as ``[{"source", "target", "type"}]``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from coach_rag.rag.types import Chunk, Document, DocumentStatus, RelatedEntity

DOCUMENTS_FILE = "documents.json"
CHUNKS_FILE = "chunks.json"
EMBEDDINGS_FILE = "embeddings.npy"
GRAPH_FILE = "graph.json"


@dataclass
class KnowledgeCorpus:
    """Read-only snapshot of documents, chunks and entity relations."""

    documents: list[Document]
    chunks: list[Chunk]
    relations: dict[str, list[RelatedEntity]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._documents_by_id = {doc.id: doc for doc in self.documents}
        seen = set()
        for chunk in self.chunks:
            if chunk.ref in seen:
                raise ValueError(f"Duplicate chunk key {chunk.document_id}#{chunk.index}")
            seen.add(chunk.ref)

    def document(self, document_id: str) -> Document | None:
        return self._documents_by_id.get(document_id)

    def searchable_chunks(self) -> list[tuple[Chunk, Document]]:
        """Chunks of READY documents, with their owning document."""
        pairs: list[tuple[Chunk, Document]] = []
        for chunk in self.chunks:
            doc = self._documents_by_id.get(chunk.document_id)
            if doc is not None and doc.is_searchable:
                pairs.append((chunk, doc))
        return pairs

    def category_vocabulary(self) -> frozenset[str]:
        return frozenset(tag for doc in self.documents if doc.is_searchable for tag in doc.categories)


def load_corpus(artifacts_dir: Path) -> KnowledgeCorpus:
    """Load a corpus from pre-computed artifacts.

    Args:
        artifacts_dir: Directory containing the artifact files

    Returns:
        KnowledgeCorpus

    Raises:
        RuntimeError: If required artifacts are missing or inconsistent
    """
    documents_path = artifacts_dir / DOCUMENTS_FILE
    chunks_path = artifacts_dir / CHUNKS_FILE
    embeddings_path = artifacts_dir / EMBEDDINGS_FILE
    graph_path = artifacts_dir / GRAPH_FILE

    if not documents_path.exists() or not chunks_path.exists():
        raise RuntimeError(f"Corpus artifacts missing in {artifacts_dir}: expected {DOCUMENTS_FILE} and {CHUNKS_FILE}")

    with documents_path.open(encoding="utf-8") as f:
        documents_data = json.load(f)
    documents = [
        Document(
            id=str(data["id"]),
            title=data["title"],
            status=DocumentStatus(data.get("status", DocumentStatus.READY)),
            categories=frozenset(data.get("categories", [])),
        )
        for data in documents_data
    ]

    with chunks_path.open(encoding="utf-8") as f:
        chunks_data = json.load(f)

    embeddings = None
    if embeddings_path.exists():
        embeddings = np.load(embeddings_path)
        if embeddings.shape[0] != len(chunks_data):
            raise RuntimeError(
                f"Chunk count mismatch: {len(chunks_data)} chunks but {embeddings.shape[0]} embeddings"
            )

    chunks: list[Chunk] = []
    for row, data in enumerate(chunks_data):
        vector = None
        if embeddings is not None and not np.isnan(embeddings[row]).any():
            vector = embeddings[row].astype(float).tolist()
        chunks.append(
            Chunk(
                id=str(data.get("id", f"{data['document_id']}#{data['index']}")),
                document_id=str(data["document_id"]),
                index=int(data["index"]),
                content=data["content"],
                embedding=vector,
            )
        )

    relations: dict[str, list[RelatedEntity]] = {}
    if graph_path.exists():
        with graph_path.open(encoding="utf-8") as f:
            for edge in json.load(f):
                relations.setdefault(edge["source"], []).append(RelatedEntity(edge["target"], edge.get("type", "RELATED_TO")))

    return KnowledgeCorpus(documents=documents, chunks=chunks, relations=relations)


def save_corpus(corpus: KnowledgeCorpus, output_dir: Path) -> None:
    """Write a corpus in the artifact layout read by ``load_corpus``."""
    output_dir.mkdir(parents=True, exist_ok=True)

    documents_data = [
        {"id": d.id, "title": d.title, "status": d.status.value, "categories": sorted(d.categories)}
        for d in corpus.documents
    ]
    with (output_dir / DOCUMENTS_FILE).open("w", encoding="utf-8") as f:
        json.dump(documents_data, f, indent=2)

    chunks_data = [{"id": c.id, "document_id": c.document_id, "index": c.index, "content": c.content} for c in corpus.chunks]
    with (output_dir / CHUNKS_FILE).open("w", encoding="utf-8") as f:
        json.dump(chunks_data, f, indent=2)

    dimensions = {len(c.embedding) for c in corpus.chunks if c.embedding is not None}
    if len(dimensions) == 1:
        dim = dimensions.pop()
        embeddings = np.full((len(corpus.chunks), dim), np.nan, dtype=np.float32)
        for row, chunk in enumerate(corpus.chunks):
            if chunk.embedding is not None:
                embeddings[row] = chunk.embedding
        np.save(output_dir / EMBEDDINGS_FILE, embeddings)

    if corpus.relations:
        edges = [
            {"source": source, "target": rel.name, "type": rel.relation_type}
            for source, related in corpus.relations.items()
            for rel in related
        ]
        with (output_dir / GRAPH_FILE).open("w", encoding="utf-8") as f:
            json.dump(edges, f, indent=2)
