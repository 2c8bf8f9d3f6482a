from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from errormem.models import SearchResult
from errormem.service_state import RelevanceWeights


def fuse_results(
    batches: Iterable[List[SearchResult]],
    limit: Optional[int] = None,
) -> List[SearchResult]:
    """Merge per-strategy result lists into one ranked, de-duplicated list.

    The first strategy to report an error keeps its match type; the highest
    similarity seen for that error across strategies is kept. Ties keep
    strategy order (exact, semantic, lexical) because the sort is stable.
    """
    merged: Dict[int, SearchResult] = {}
    order: List[int] = []
    for batch in batches:
        for result in batch:
            error_id = result.error.id
            existing = merged.get(error_id)
            if existing is None:
                merged[error_id] = result
                order.append(error_id)
                continue
            if (result.similarity or 0.0) > (existing.similarity or 0.0):
                existing.similarity = result.similarity

    fused = [merged[error_id] for error_id in order]
    fused.sort(key=lambda r: r.similarity or 0.0, reverse=True)
    return fused if limit is None else fused[:limit]


def relevance_score(result: SearchResult, weights: Optional[RelevanceWeights] = None) -> float:
    """Composite score favouring proven fixes over merely similar errors.

    With the default weights: similarity scaled to 40 points, 20 points for
    having any solution, the best solution's success rate scaled to 30
    points, and 2 points per recorded attempt capped at 10.
    """
    weights = weights or RelevanceWeights()
    score = (result.similarity or 0.0) * weights.similarity

    best = result.best_solution
    if best is not None:
        score += weights.has_solution
        score += best.success_rate * weights.success_rate
        score += min(best.total_attempts * weights.points_per_attempt, weights.attempt_cap)
    return score


def rank_by_relevance(
    results: List[SearchResult],
    weights: Optional[RelevanceWeights] = None,
    limit: Optional[int] = None,
) -> List[SearchResult]:
    for result in results:
        result.score = relevance_score(result, weights)
    ranked = sorted(results, key=lambda r: r.score or 0.0, reverse=True)
    return ranked if limit is None else ranked[:limit]
