"""Operations exposed by the memory layer.

Every function takes the ``ServiceState`` it works against; there is no
module-level store or provider.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from errormem.classification.error_classifier import (
    classify_error,
    derive_tags,
    suggest_severity,
    tag_category_for,
)
from errormem.context_builder import build_memory_context, extract_context_keywords
from errormem.errors import NotFoundError, ValidationError
from errormem.fingerprint import fingerprint, normalize
from errormem.models import (
    ErrorInput,
    MemoryContext,
    MemoryStats,
    SearchOptions,
    SearchResult,
    SolutionInput,
    TaskContext,
)
from errormem.search.ranking import rank_by_relevance
from errormem.search.retrieval import find_by_tags, find_similar
from errormem.service_state import ServiceState
from errormem.utils.tags import _prepare_tag_filters

logger = logging.getLogger(__name__)

KNOWN_SOLUTION_LIMIT = 3
KNOWN_SOLUTION_MIN_SIMILARITY = 0.7
STATS_TOP_N = 10


def _embed_error(state: ServiceState, error_id: int, message: str) -> bool:
    """Generate and store an embedding; provider failures are logged, not raised."""
    provider = state.embedding_provider
    if provider is None:
        return False
    try:
        vector = provider.generate_embedding(message)
    except Exception:
        logger.warning("Failed to generate embedding for error %d", error_id, exc_info=True)
        return False
    state.store.store_embedding(error_id, vector, provider.provider_name())
    return True


def capture_error(state: ServiceState, error: ErrorInput) -> int:
    """Record an error sighting and return its id.

    Re-sighting an error with the same category and normalized message
    increments its occurrence count instead of creating a second record.
    """
    if not error.message or not error.message.strip():
        raise ValidationError("message is required")

    error_type = (error.error_type or "").strip() or classify_error(error.message)
    severity = error.severity or suggest_severity(error.message)

    categories: Dict[str, str] = {}
    derived: Set[str] = derive_tags(error.message, error_type)
    for tag in derived:
        category = tag_category_for(tag, error_type)
        if category:
            categories[tag] = category
    tags = _prepare_tag_filters(list(error.tags) + sorted(derived))

    error_id, created = state.store.upsert_error(
        error_hash=fingerprint(error.message, error_type),
        message=error.message,
        normalized_message=normalize(error.message),
        error_type=error_type,
        severity=severity,
        stack_trace=error.stack_trace,
        file_path=error.file_path,
        project_name=error.project_name,
        tags=tags,
        tag_categories=categories,
    )

    # Runs after the upsert has committed so a slow provider never holds the write lock.
    if state.embeddings_active and (created or not state.store.has_embedding(error_id)):
        _embed_error(state, error_id, error.message)

    return error_id


def capture_solution(state: ServiceState, solution: SolutionInput) -> int:
    return state.store.record_solution(
        error_id=solution.error_id,
        content=solution.content,
        source=solution.source,
        code_snippet=solution.code_snippet,
        project_name=solution.project_name,
    )


def report_outcome(state: ServiceState, solution_id: int, success: bool) -> None:
    state.store.record_outcome(solution_id, success)


def tag_error(state: ServiceState, error_id: int, tags: Sequence[str]) -> List[str]:
    """Attach tags to an existing error; returns the error's full tag list."""
    if state.store.get_error(error_id) is None:
        raise NotFoundError("Error", error_id)
    tag_records = state.store.get_or_create_tags(list(tags))
    if tag_records:
        state.store.add_tags_to_error(error_id, [t.id for t in tag_records])
    return [t.name for t in state.store.get_tags_for_error(error_id)]


def record_error_with_solution(
    state: ServiceState,
    error: ErrorInput,
    content: str,
    source: str = "manual",
    code_snippet: Optional[str] = None,
) -> Tuple[int, int]:
    """Capture an error and immediately attach a solution to it.

    Returns:
        tuple of (error_id, solution_id)
    """
    error_id = capture_error(state, error)
    solution_id = capture_solution(
        state,
        SolutionInput(
            error_id=error_id,
            content=content,
            source=source,
            code_snippet=code_snippet,
            project_name=error.project_name,
        ),
    )
    return error_id, solution_id


def get_relevant_memories(state: ServiceState, context: TaskContext) -> MemoryContext:
    """Collect errors relevant to a task and format them for a prompt.

    Sources, in order: similarity to the task's error message, explicit
    tags, then keywords from the task text used as tags. Results are
    re-ranked so errors with proven fixes come first.
    """
    settings = state.relevant
    results: List[SearchResult] = []
    seen: Set[int] = set()

    def add(batch: List[SearchResult]) -> None:
        for result in batch:
            if result.error.id not in seen:
                seen.add(result.error.id)
                results.append(result)

    if context.error_message and context.error_message.strip():
        add(
            find_similar(
                state,
                context.error_message,
                SearchOptions(limit=settings.error_limit, min_similarity=settings.min_similarity),
            )
        )

    if context.tags:
        add(find_by_tags(state, context.tags)[: settings.tag_limit])

    keywords = extract_context_keywords(context)
    if keywords:
        add(find_by_tags(state, keywords[: settings.keyword_tags])[: settings.tag_limit])

    ranked = rank_by_relevance(results, state.relevance, limit=settings.max_results)
    logger.debug("Relevant memories: %d candidate(s), %d kept", len(results), len(ranked))
    return build_memory_context(ranked)


def check_for_known_solutions(state: ServiceState, message: str) -> Dict[str, Any]:
    results = find_similar(
        state,
        message,
        SearchOptions(limit=KNOWN_SOLUTION_LIMIT, min_similarity=KNOWN_SOLUTION_MIN_SIMILARITY),
    )
    with_solutions = [r for r in results if r.solutions]
    return {"found": bool(with_solutions), "solutions": with_solutions}


def get_stats(state: ServiceState) -> MemoryStats:
    store = state.store
    return MemoryStats(
        total_errors=store.get_error_count(),
        total_solutions=store.get_solution_count(),
        total_tags=store.get_tag_count(),
        total_embeddings=store.get_embedding_count(),
        top_error_types=store.get_error_type_stats()[:STATS_TOP_N],
        average_success_rate=store.get_average_success_rate(),
        errors_with_solutions=store.get_errors_with_solutions_count(),
        errors_by_project=store.get_errors_by_project_stats()[:STATS_TOP_N],
    )


def export_data(state: ServiceState) -> Dict[str, Any]:
    """Every error with its solutions, plus aggregate stats, as plain dicts."""
    errors = state.store.search_errors(limit=None)
    solutions = state.store.get_solutions_for_errors([e.id for e in errors])
    exported = [
        SearchResult(
            error=error,
            solutions=solutions.get(error.id, []),
            match_type="exact",
            similarity=1.0,
        ).to_dict()
        for error in errors
    ]
    return {"errors": exported, "stats": get_stats(state).to_dict()}


def backfill_embeddings(state: ServiceState, limit: int = 100) -> int:
    """Embed up to ``limit`` errors that have no embedding yet.

    Vectors are generated in one provider batch and written in one
    transaction. Returns the number stored; 0 when the provider fails.
    """
    provider = state.embedding_provider
    if provider is None:
        logger.warning("No embedding provider configured; nothing to backfill")
        return 0

    pending = state.store.get_errors_without_embeddings(limit)
    if not pending:
        return 0

    try:
        vectors = provider.generate_embeddings_batch([e.message for e in pending])
    except Exception:
        logger.warning("Embedding backfill failed for %d error(s)", len(pending), exc_info=True)
        return 0

    items = [(error.id, vector) for error, vector in zip(pending, vectors)]
    stored = state.store.batch_store_embeddings(items, provider.provider_name())
    logger.info("Backfilled %d embedding(s) with %s", stored, provider.provider_name())
    return stored
