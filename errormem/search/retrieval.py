"""Retrieval strategies and their fusion.

``find_similar`` runs exact, semantic and lexical matching in that order and
merges them by error id. ``find_by_tags`` is the separate tag-driven entry
point. All strategies read through the record store and scan in full; there
is no approximate index.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from errormem.classification.error_classifier import classify_error
from errormem.config import normalize_severity
from errormem.errors import ValidationError
from errormem.fingerprint import fingerprint, normalize
from errormem.models import ErrorRecord, SearchOptions, SearchResult
from errormem.search.ranking import fuse_results
from errormem.search.similarity import combined_similarity, top_cosine_matches
from errormem.service_state import ServiceState
from errormem.utils.tags import _prepare_tag_filters

logger = logging.getLogger(__name__)

MATCH_EXACT = "exact"
MATCH_SEMANTIC = "semantic"
MATCH_LEXICAL = "lexical"
MATCH_TAG = "tag"


def _passes_filters(error: ErrorRecord, options: SearchOptions) -> bool:
    if options.project_name and error.project_name != options.project_name:
        return False
    if options.error_type and error.error_type != options.error_type:
        return False
    if options.severity and error.severity != normalize_severity(options.severity):
        return False
    tag_filters = _prepare_tag_filters(options.tags)
    if tag_filters and not set(tag_filters) & set(error.tags):
        return False
    return True


def _validate_options(options: SearchOptions) -> None:
    if options.limit is not None and options.limit <= 0:
        raise ValidationError("limit must be positive")
    if options.severity and normalize_severity(options.severity) is None:
        raise ValidationError(f"Unknown severity '{options.severity}'")


def exact_match(state: ServiceState, query: str, options: SearchOptions) -> List[SearchResult]:
    """Fingerprint the query as capture would and look the hash up directly."""
    category = options.error_type or classify_error(query)
    error = state.store.get_error_by_hash(fingerprint(query, category))
    if error is None or not _passes_filters(error, options):
        return []
    return [SearchResult(error=error, solutions=[], match_type=MATCH_EXACT, similarity=1.0)]


def semantic_matches(
    state: ServiceState,
    query: str,
    options: SearchOptions,
    limit: int,
    min_similarity: float,
) -> List[SearchResult]:
    """Cosine-rank stored embeddings of the provider's dimensionality.

    Provider exceptions propagate; ``find_similar`` decides how to degrade.
    """
    provider = state.embedding_provider
    if provider is None:
        return []

    query_vector = provider.generate_embedding(query)
    candidates = state.store.iter_embeddings(dimensions=len(query_vector))
    ranked = top_cosine_matches(query_vector, candidates, min_similarity)
    if not ranked:
        return []

    errors = state.store.get_errors([error_id for error_id, _ in ranked])
    results: List[SearchResult] = []
    for error_id, score in ranked:
        error = errors.get(error_id)
        if error is None or not _passes_filters(error, options):
            continue
        results.append(
            SearchResult(error=error, solutions=[], match_type=MATCH_SEMANTIC, similarity=score)
        )
        if len(results) >= limit:
            break
    return results


def lexical_matches(
    state: ServiceState,
    query: str,
    options: SearchOptions,
    limit: int,
    min_similarity: float,
) -> List[SearchResult]:
    """Compare the normalized query with recently seen candidates."""
    settings = state.search
    candidates = state.store.search_errors(
        tags=options.tags,
        project_name=options.project_name,
        error_type=options.error_type,
        severity=options.severity,
        limit=limit * settings.lexical_oversample,
    )
    normalized_query = normalize(query)

    scored: List[Tuple[ErrorRecord, float]] = []
    for error in candidates:
        score = combined_similarity(
            normalized_query,
            error.normalized_message,
            weight_token=settings.weight_token,
            weight_edit=settings.weight_edit,
        )
        if score >= min_similarity:
            scored.append((error, score))
    scored.sort(key=lambda pair: pair[1], reverse=True)

    return [
        SearchResult(error=error, solutions=[], match_type=MATCH_LEXICAL, similarity=score)
        for error, score in scored[:limit]
    ]


def _attach_solutions(state: ServiceState, results: List[SearchResult]) -> List[SearchResult]:
    solutions = state.store.get_solutions_for_errors([r.error.id for r in results])
    for result in results:
        result.solutions = solutions.get(result.error.id, [])
    return results


def find_similar(
    state: ServiceState,
    query: str,
    options: Optional[SearchOptions] = None,
) -> List[SearchResult]:
    """Return errors resembling ``query``, each with its ranked solutions.

    A missing or failing embedding provider only removes the semantic
    strategy; exact and lexical matching still run.
    """
    if not query or not query.strip():
        raise ValidationError("query text is required")
    options = options or SearchOptions()
    _validate_options(options)

    settings = state.search
    limit = options.limit or settings.default_limit
    batches: List[List[SearchResult]] = []

    exact = exact_match(state, query, options)
    batches.append(exact)

    if options.include_embeddings and state.embeddings_active:
        floor = (
            options.min_similarity
            if options.min_similarity is not None
            else settings.semantic_min_similarity
        )
        try:
            batches.append(semantic_matches(state, query, options, limit, floor))
        except Exception:
            logger.warning("Semantic search failed, falling back to text similarity", exc_info=True)

    if not exact:
        floor = (
            options.min_similarity
            if options.min_similarity is not None
            else settings.lexical_min_similarity
        )
        batches.append(lexical_matches(state, query, options, limit, floor))

    results = fuse_results(batches, limit=limit)
    logger.debug(
        "find_similar matched %d error(s) (%s)",
        len(results),
        ", ".join(r.match_type for r in results) or "none",
    )
    return _attach_solutions(state, results)


def find_by_tags(state: ServiceState, tags: Sequence[str]) -> List[SearchResult]:
    """Every error carrying any of ``tags``, most recently seen first."""
    tag_names = _prepare_tag_filters(list(tags))
    if not tag_names:
        return []
    errors = state.store.search_errors(tags=tag_names, limit=None)
    results = [SearchResult(error=error, solutions=[], match_type=MATCH_TAG) for error in errors]
    return _attach_solutions(state, results)


def group_by_match_type(results: Sequence[SearchResult]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for result in results:
        counts[result.match_type] = counts.get(result.match_type, 0) + 1
    return counts
