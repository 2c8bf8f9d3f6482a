import sys
from pathlib import Path
from typing import Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from errormem.embedding.placeholder import PlaceholderEmbeddingProvider  # noqa: E402
from errormem.fingerprint import fingerprint, normalize  # noqa: E402
from errormem.service_state import ServiceState  # noqa: E402
from errormem.stores.record_store import RecordStore  # noqa: E402


@pytest.fixture
def store(tmp_path):
    record_store = RecordStore(tmp_path / "memory.db").open()
    yield record_store
    record_store.close()


@pytest.fixture
def state(store):
    """Lexical-only service state over a fresh store."""
    return ServiceState(store=store)


@pytest.fixture
def semantic_state(store):
    """Service state with deterministic placeholder embeddings enabled."""
    return ServiceState(
        store=store,
        embedding_provider=PlaceholderEmbeddingProvider(dimension=64),
        enable_embeddings=True,
    )


def add_error(
    store: RecordStore,
    message: str,
    error_type: str = "TypeError",
    severity: str = "medium",
    project_name: Optional[str] = None,
    tags=None,
) -> int:
    """Insert an error directly through the store and return its id."""
    error_id, _ = store.upsert_error(
        error_hash=fingerprint(message, error_type),
        message=message,
        normalized_message=normalize(message),
        error_type=error_type,
        severity=severity,
        project_name=project_name,
        tags=tags,
    )
    return error_id


@pytest.fixture(name="add_error")
def add_error_fixture(store):
    def _add(message: str, **kwargs) -> int:
        return add_error(store, message, **kwargs)

    return _add
