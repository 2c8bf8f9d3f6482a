import gc
import threading

import pytest

from errormem.errors import NotFoundError, SchemaError, ValidationError
from errormem.fingerprint import fingerprint, normalize
from errormem.stores.record_store import RecordStore


def test_upsert_same_fingerprint_increments(store):
    message = "TypeError: Cannot read property 'x' of undefined"
    kwargs = dict(
        error_hash=fingerprint(message, "TypeError"),
        message=message,
        normalized_message=normalize(message),
        error_type="TypeError",
        severity="medium",
    )
    first_id, first_created = store.upsert_error(**kwargs)
    second_id, second_created = store.upsert_error(**kwargs)

    assert first_id == second_id
    assert first_created is True
    assert second_created is False

    record = store.get_error(first_id)
    assert record.occurrence_count == 2
    assert record.last_seen_at >= record.first_seen_at
    assert store.get_error_count() == 1


def test_upsert_normalizes_severity_case(store, add_error):
    error_id = add_error("boom", severity="HIGH")
    assert store.get_error(error_id).severity == "high"


def test_upsert_rejects_invalid_input(store, add_error):
    with pytest.raises(ValidationError):
        add_error("boom", severity="urgent")
    with pytest.raises(ValidationError):
        add_error("   ")


def test_concurrent_upserts_never_duplicate(store):
    message = "ECONNREFUSED 127.0.0.1:5432"
    error_hash = fingerprint(message, "ConnectionRefused")
    failures = []

    def worker():
        try:
            for _ in range(5):
                store.upsert_error(
                    error_hash=error_hash,
                    message=message,
                    normalized_message=normalize(message),
                    error_type="ConnectionRefused",
                    severity="high",
                )
        except Exception as exc:  # pragma: no cover - surfaced below
            failures.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert failures == []
    assert store.get_error_count() == 1
    assert store.get_error_by_hash(error_hash).occurrence_count == 40


def test_tags_are_returned_alphabetically(store, add_error):
    error_id = add_error("boom", tags=["zeta", "Alpha", "mid"])
    assert store.get_error(error_id).tags == ["alpha", "mid", "zeta"]


def test_search_errors_filters_and_orders_by_recency(store, add_error):
    older = add_error("first failure", project_name="web", tags=["react"])
    newer = add_error("second failure", project_name="web", severity="high")
    add_error("third failure", project_name="api")

    web = store.search_errors(project_name="web")
    assert [e.id for e in web] == [newer, older]

    assert [e.id for e in store.search_errors(tags=["REACT"])] == [older]
    assert [e.id for e in store.search_errors(severity="high")] == [newer]
    assert len(store.search_errors(limit=1)) == 1

    with pytest.raises(ValidationError):
        store.search_errors(severity="urgent")


def test_delete_error_cascades(store, add_error):
    error_id = add_error("boom", tags=["react"])
    store.record_solution(error_id=error_id, content="restart it")
    store.store_embedding(error_id, [0.1, 0.2, 0.3], "test-model")

    assert store.delete_error(error_id) is True
    assert store.get_error(error_id) is None
    assert store.get_solution_count() == 0
    assert store.get_embedding_count() == 0
    tag = store.get_tag_by_name("react")
    assert tag is not None
    assert store.get_error_ids_by_tags([tag.id]) == []
    assert store.delete_error(error_id) is False


def test_solution_requires_existing_error(store):
    with pytest.raises(NotFoundError):
        store.record_solution(error_id=999, content="nothing to fix")


def test_solution_validation(store, add_error):
    error_id = add_error("boom")
    with pytest.raises(ValidationError):
        store.record_solution(error_id=error_id, content="")
    with pytest.raises(ValidationError):
        store.record_solution(error_id=error_id, content="fix", source="oracle")
    solution_id = store.record_solution(error_id=error_id, content="fix", source="Auto-Mode")
    assert store.get_solution(solution_id).source == "auto_mode"


def test_success_rate_is_derived_from_counts(store, add_error):
    error_id = add_error("boom")
    solution_id = store.record_solution(error_id=error_id, content="fix")
    assert store.get_solution(solution_id).success_rate == 0.0

    store.record_outcome(solution_id, True)
    store.record_outcome(solution_id, True)
    store.record_outcome(solution_id, False)

    solution = store.get_solution(solution_id)
    assert solution.success_count == 2
    assert solution.failure_count == 1
    assert solution.success_rate == pytest.approx(2 / 3)


def test_record_outcome_unknown_solution(store):
    with pytest.raises(NotFoundError):
        store.record_outcome(12345, True)


def test_best_solution_prefers_higher_success_rate(store, add_error):
    error_id = add_error("boom")
    mixed = store.record_solution(error_id=error_id, content="sometimes works")
    store.record_outcome(mixed, True)
    store.record_outcome(mixed, False)
    proven = store.record_solution(error_id=error_id, content="always works")
    store.record_outcome(proven, True)
    store.record_outcome(proven, True)

    assert store.get_best_solution(error_id).id == proven
    assert [s.id for s in store.get_solutions_for_error(error_id)] == [proven, mixed]


def test_successful_solutions_need_two_attempts(store, add_error):
    error_id = add_error("boom")
    once = store.record_solution(error_id=error_id, content="lucky once")
    store.record_outcome(once, True)
    twice = store.record_solution(error_id=error_id, content="worked twice")
    store.record_outcome(twice, True)
    store.record_outcome(twice, True)

    assert [s.id for s in store.get_successful_solutions()] == [twice]
    assert store.get_average_success_rate() == pytest.approx(1.0)
    assert store.get_errors_with_solutions_count() == 1


def test_update_and_delete_solution(store, add_error):
    error_id = add_error("boom")
    solution_id = store.record_solution(error_id=error_id, content="old")

    assert store.update_solution(solution_id) is False
    assert store.update_solution(solution_id, content="new", code_snippet="x = 1") is True
    solution = store.get_solution(solution_id)
    assert solution.content == "new"
    assert solution.code_snippet == "x = 1"

    store.record_solution(error_id=error_id, content="another")
    assert store.delete_solution(solution_id) is True
    assert store.delete_solutions_for_error(error_id) == 1
    assert store.get_solution_count() == 0


def test_tag_names_are_case_insensitive(store):
    created = store.create_tag("React", category="technology")
    fetched = store.get_tag_by_name("react")
    assert fetched.id == created.id
    assert fetched.name == "react"
    with pytest.raises(ValidationError):
        store.create_tag("REACT")
    with pytest.raises(ValidationError):
        store.create_tag("vue", category="flavour")


def test_get_or_create_tags_is_idempotent(store):
    first = store.get_or_create_tags(["react", "Vite", "react"], category="technology")
    second = store.get_or_create_tags(["vite", "react"])
    assert [t.name for t in first] == ["react", "vite"]
    assert {t.id for t in first} == {t.id for t in second}
    assert store.get_tag_count() == 2
    assert [t.name for t in store.get_tags_by_category("technology")] == ["react", "vite"]


def test_tag_links_are_idempotent_and_replaceable(store, add_error):
    error_id = add_error("boom")
    tags = store.get_or_create_tags(["a", "b", "c"])
    ids = {t.name: t.id for t in tags}

    store.add_tags_to_error(error_id, [ids["a"], ids["b"]])
    store.add_tags_to_error(error_id, [ids["a"]])
    assert [t.name for t in store.get_tags_for_error(error_id)] == ["a", "b"]

    store.remove_tags_from_error(error_id, [ids["a"]])
    assert [t.name for t in store.get_tags_for_error(error_id)] == ["b"]

    store.set_error_tags(error_id, [ids["c"]])
    assert [t.name for t in store.get_tags_for_error(error_id)] == ["c"]

    with pytest.raises(NotFoundError):
        store.add_tags_to_error(999, [ids["a"]])


def test_popular_and_prefix_tag_queries(store, add_error):
    add_error("one", tags=["react", "redux"])
    add_error("two", tags=["react"])
    store.create_tag("rest_api")

    popular = store.get_popular_tags(limit=2)
    assert popular[0].name == "react"
    assert popular[0].usage_count == 2

    assert [t.name for t in store.search_tags("re")] == ["react", "redux", "rest_api"]
    assert [t.name for t in store.search_tags("rest_")] == ["rest_api"]

    tag = store.get_tag_by_name("redux")
    assert store.update_tag_category(tag.id, "framework") is True
    assert store.get_tag_by_id(tag.id).category == "framework"
    assert store.delete_tag(tag.id) is True
    assert store.get_tag_by_name("redux") is None


def test_embedding_upsert_replaces_previous(store, add_error):
    error_id = add_error("boom")
    store.store_embedding(error_id, [0.5, 0.25, 0.125], "model-a")
    store.store_embedding(error_id, [1.0, 0.0], "model-b")

    record = store.get_embedding(error_id)
    assert record.model == "model-b"
    assert record.dimensions == 2
    assert len(record.embedding) == 8
    assert store.get_embedding_vector(error_id) == pytest.approx([1.0, 0.0])
    assert store.get_embedding_count() == 1


def test_embedding_validation(store, add_error):
    error_id = add_error("boom")
    with pytest.raises(ValidationError):
        store.store_embedding(error_id, [], "model")
    with pytest.raises(NotFoundError):
        store.store_embedding(999, [0.1], "model")


def test_iter_embeddings_filters_by_dimension(store, add_error):
    first = add_error("first")
    second = add_error("second")
    third = add_error("third")
    store.store_embedding(first, [0.1, 0.2, 0.3], "m")
    store.store_embedding(second, [0.1, 0.2], "m")

    assert [error_id for error_id, _ in store.iter_embeddings()] == [first, second]
    assert [error_id for error_id, _ in store.iter_embeddings(dimensions=3)] == [first]
    assert store.has_embedding(first) is True
    assert [e.id for e in store.get_errors_without_embeddings()] == [third]
    assert store.delete_embedding(first) is True
    assert store.has_embedding(first) is False


def test_batch_store_embeddings_is_all_or_nothing(store, add_error):
    error_id = add_error("boom")
    with pytest.raises(NotFoundError):
        store.batch_store_embeddings([(error_id, [0.1, 0.2]), (999, [0.3, 0.4])], "m")
    assert store.get_embedding_count() == 0

    assert store.batch_store_embeddings([(error_id, [0.1, 0.2])], "m") == 1
    assert store.batch_store_embeddings([], "m") == 0


def test_transaction_rolls_back_on_error(store, add_error):
    error_id = add_error("boom")
    with pytest.raises(RuntimeError):
        with store.transaction() as conn:
            conn.execute("UPDATE errors SET occurrence_count = 50 WHERE id = ?", (error_id,))
            raise RuntimeError("abort")
    assert store.get_error(error_id).occurrence_count == 1


def test_aggregate_stats(store, add_error):
    add_error("a", error_type="TypeError", project_name="web")
    add_error("b", error_type="TypeError")
    add_error("c", error_type="SyntaxError", project_name="web")

    assert store.get_error_type_stats() == [
        {"type": "TypeError", "count": 2},
        {"type": "SyntaxError", "count": 1},
    ]
    assert store.get_errors_by_project_stats() == [
        {"project": "web", "count": 2},
        {"project": "unknown", "count": 1},
    ]
    assert [e.message for e in store.get_recent_errors(limit=2)] == ["c", "b"]

    stats = store.database_stats()
    assert stats["size_bytes"] == stats["page_count"] * stats["page_size"]
    store.optimize()


def test_frequent_errors_sort_by_occurrences(store, add_error):
    add_error("rare")
    add_error("common")
    add_error("common")
    assert store.get_frequent_errors(limit=1)[0].message == "common"


def test_store_must_be_opened(tmp_path):
    unopened = RecordStore(tmp_path / "closed.db")
    with pytest.raises(SchemaError):
        unopened.get_error_count()


def test_finished_thread_releases_its_connection(store):
    counts = []
    worker = threading.Thread(target=lambda: counts.append(store.get_error_count()))
    worker.start()
    worker.join()
    del worker
    gc.collect()

    assert counts == [0]
    assert len(store._connections) == 1
    assert store.get_error_count() == 0
