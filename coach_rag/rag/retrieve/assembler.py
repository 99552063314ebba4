"""Context assembler for the answer-generation collaborator.

This module turns ranked results into an opaque context payload plus a
citation list, grouping chunks by source document.
"""

from dataclasses import dataclass, field

from coach_rag.rag.types import RankedResult

CHUNK_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class Citation:
    document_id: str
    title: str


@dataclass
class RagContext:
    """Assembled context with citations."""

    context_text: str
    citations: list[Citation]
    results: list[RankedResult] = field(default_factory=list)

    def to_payload(self) -> dict:
        """Output contract for the answer generator."""
        return {
            "contextText": self.context_text,
            "citations": [{"id": c.document_id, "title": c.title} for c in self.citations],
        }


def assemble_context(ranked: list[RankedResult], max_chunks: int) -> RagContext:
    """Assemble ranked results into context and citations.

    Steps:
    1. Truncate to ``max_chunks``
    2. Group by document; groups ordered by their best fused score, descending
    3. Within a group, order chunks by chunk index

    Args:
        ranked: Fused and diversified results
        max_chunks: Hard cap on the number of chunks

    Returns:
        RagContext with context text, citations and the ordered results
    """
    kept = ranked[: max(0, max_chunks)]

    groups: dict[str, list[RankedResult]] = {}
    for result in kept:
        groups.setdefault(result.chunk_ref.document_id, []).append(result)

    # Stable sort keeps first-appearance order for equal best scores
    ordered_groups = sorted(groups.values(), key=lambda g: -max(r.fused_score for r in g))

    ordered: list[RankedResult] = []
    citations: list[Citation] = []
    for group in ordered_groups:
        group.sort(key=lambda r: r.chunk_ref.index)
        ordered.extend(group)
        citations.append(Citation(document_id=group[0].chunk_ref.document_id, title=group[0].document_title))

    context_text = CHUNK_SEPARATOR.join(r.content for r in ordered)
    return RagContext(context_text=context_text, citations=citations, results=ordered)
