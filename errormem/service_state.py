from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from errormem import config
from errormem.embedding.provider import EmbeddingProvider
from errormem.stores.record_store import RecordStore


@dataclass
class SearchSettings:
    default_limit: int = config.SEARCH_DEFAULT_LIMIT
    semantic_min_similarity: float = config.SEMANTIC_MIN_SIMILARITY
    lexical_min_similarity: float = config.LEXICAL_MIN_SIMILARITY
    lexical_oversample: int = config.LEXICAL_OVERSAMPLE
    weight_token: float = config.SIMILARITY_WEIGHT_TOKEN
    weight_edit: float = config.SIMILARITY_WEIGHT_EDIT


@dataclass
class RelevanceWeights:
    similarity: float = config.RELEVANCE_WEIGHT_SIMILARITY
    has_solution: float = config.RELEVANCE_WEIGHT_HAS_SOLUTION
    success_rate: float = config.RELEVANCE_WEIGHT_SUCCESS_RATE
    points_per_attempt: float = config.RELEVANCE_POINTS_PER_ATTEMPT
    attempt_cap: float = config.RELEVANCE_ATTEMPT_CAP


@dataclass
class RelevantMemorySettings:
    error_limit: int = config.RELEVANT_ERROR_LIMIT
    min_similarity: float = config.RELEVANT_MIN_SIMILARITY
    tag_limit: int = config.RELEVANT_TAG_LIMIT
    keyword_tags: int = config.RELEVANT_KEYWORD_TAGS
    max_results: int = config.RELEVANT_MAX_RESULTS


@dataclass
class ServiceState:
    """Everything an operation needs, built once and passed down explicitly."""

    store: RecordStore
    embedding_provider: Optional[EmbeddingProvider] = None
    enable_embeddings: bool = False
    search: SearchSettings = field(default_factory=SearchSettings)
    relevance: RelevanceWeights = field(default_factory=RelevanceWeights)
    relevant: RelevantMemorySettings = field(default_factory=RelevantMemorySettings)

    @property
    def embeddings_active(self) -> bool:
        return self.enable_embeddings and self.embedding_provider is not None

    @classmethod
    def from_config(
        cls,
        db_path: Optional[Path] = None,
        enable_embeddings: Optional[bool] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ) -> "ServiceState":
        """Open the store and select a provider from the environment.

        Raises SchemaError when the database cannot be used.
        """
        from errormem.embedding.provider_init import init_embedding_provider

        path = db_path or (config.DATA_DIR / config.DB_FILENAME)
        store = RecordStore(path).open()
        enabled = config.ENABLE_EMBEDDINGS if enable_embeddings is None else enable_embeddings
        state = cls(store=store, embedding_provider=embedding_provider, enable_embeddings=enabled)
        if enabled:
            init_embedding_provider(
                state=state,
                vector_size=config.VECTOR_SIZE,
                embedding_model=config.EMBEDDING_MODEL,
            )
        return state

    def close(self) -> None:
        self.store.close()
