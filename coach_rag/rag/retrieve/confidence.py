"""Confidence scoring for retrieval results.

Confidence is computed from the number of surviving results, their fused
scores and how many distinct documents they come from.
"""

from dataclasses import dataclass
from typing import Literal

from coach_rag.rag.types import RankedResult

ConfidenceLevel = Literal["low", "medium", "high"]


@dataclass
class RetrievalConfidence:
    """Retrieval confidence score with explanation."""

    score: float  # 0.0-1.0
    reason: str

    @property
    def level(self) -> ConfidenceLevel:
        """Thresholds: < 0.4 low, 0.4-0.7 medium, > 0.7 high."""
        if self.score < 0.4:
            return "low"
        if self.score <= 0.7:
            return "medium"
        return "high"


def compute_confidence(
    results: list[RankedResult],
    min_results: int = 1,
    ideal_results: int = 5,
) -> RetrievalConfidence:
    """Compute retrieval confidence score.

    Signals considered:
    - Number of results
    - Average fused score and score spread
    - Document diversity

    Args:
        results: Final ranked results
        min_results: Minimum results expected
        ideal_results: Ideal number of results

    Returns:
        RetrievalConfidence with score and reason
    """
    num_results = len(results)

    if num_results == 0:
        return RetrievalConfidence(score=0.0, reason="No results survived fusion")

    if num_results < min_results:
        return RetrievalConfidence(
            score=0.3,
            reason=f"Only {num_results} result(s) retrieved, below minimum {min_results}",
        )

    # Result count component (0.0-0.5)
    count_score = min(0.5, (num_results / ideal_results) * 0.5)

    # Score component (0.0-0.3); fused scores may exceed 1 after boosts
    scores = [min(1.0, r.fused_score) for r in results]
    avg_score = sum(scores) / len(scores)
    score_component = min(0.3, avg_score * 0.3)
    if max(scores) - min(scores) > 0.3:
        score_component *= 0.7

    # Document diversity component (0.0-0.2)
    unique_documents = len({r.chunk_ref.document_id for r in results})
    diversity_component = min(0.2, (unique_documents / 3.0) * 0.2)

    total_score = min(1.0, max(0.0, count_score + score_component + diversity_component))

    reason = "; ".join(
        [
            f"Retrieved {num_results} result(s)",
            f"average fused score {avg_score:.2f}",
            f"{unique_documents} document(s)",
        ]
    )
    return RetrievalConfidence(score=total_score, reason=reason)
