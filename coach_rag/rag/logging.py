"""Observability logging for retrieval.

This module logs retrieval operations and soft failures for debugging and
auditability.
"""

from loguru import logger

from coach_rag.rag.errors import SoftRetrievalError
from coach_rag.rag.retrieve.assembler import RagContext
from coach_rag.rag.retrieve.confidence import RetrievalConfidence
from coach_rag.rag.types import Query, RankedResult


def log_retrieval(
    query: Query,
    max_chunks: int,
    *,
    results: list[RankedResult],
    confidence: RetrievalConfidence | None = None,
    failed_strategies: list[str] | None = None,
    deadline_exceeded: bool = False,
    elapsed_ms: float | None = None,
) -> None:
    """Log a retrieval operation.

    Args:
        query: Analysed query
        max_chunks: Requested number of chunks
        results: Final ranked results
        confidence: Optional confidence score
        failed_strategies: Strategies or collaborators that failed softly
        deadline_exceeded: Whether the overall deadline cut retrieval short
        elapsed_ms: Wall-clock duration of the retrieval
    """
    log_data = {
        "query": query.raw_text,
        "language": query.detected_language.value,
        "query_type": query.query_type.value,
        "myth_check": query.myth_check,
        "sub_queries": len(query.sub_queries),
        "priority_categories": list(query.priority_categories),
        "k_requested": max_chunks,
        "chunks_returned": len(results),
        "chunk_refs": [f"{r.chunk_ref.document_id}#{r.chunk_ref.index}" for r in results],
        "doc_ids": sorted({r.chunk_ref.document_id for r in results}),
        "failed_strategies": failed_strategies or [],
        "deadline_exceeded": deadline_exceeded,
    }

    if confidence:
        log_data["confidence_score"] = confidence.score
        log_data["confidence_reason"] = confidence.reason

    if elapsed_ms is not None:
        log_data["elapsed_ms"] = round(elapsed_ms, 1)

    logger.info("rag_retrieval", **log_data)


def log_context_assembly(context: RagContext) -> None:
    """Log context assembly.

    Args:
        context: Assembled context
    """
    logger.info(
        "rag_context_assembly",
        num_chunks=len(context.results),
        citations=[c.document_id for c in context.citations],
        context_chars=len(context.context_text),
    )


def log_strategy_failure(error: SoftRetrievalError) -> None:
    logger.warning(f"Strategy degraded to empty contribution: {error}", strategy=error.strategy)
