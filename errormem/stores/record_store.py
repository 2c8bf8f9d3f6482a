"""SQLite-backed record store for errors, solutions, tags and embeddings.

Each thread gets its own connection (SQLite connections must not be shared
across threads). Connections run in autocommit mode and every multi-step
mutation goes through ``transaction()``, which takes the database write lock
up front with ``BEGIN IMMEDIATE`` so concurrent writers serialize instead of
interleaving.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from errormem.config import (
    normalize_severity,
    normalize_solution_source,
    normalize_tag_category,
)
from errormem.errors import NotFoundError, SchemaError, ValidationError
from errormem.models import EmbeddingRecord, ErrorRecord, SolutionRecord, TagRecord
from errormem.search.similarity import pack_vector, unpack_vector
from errormem.stores.schema import SUCCESS_RATE_SQL, run_migrations, validate_schema
from errormem.utils.tags import _prepare_tag_filters
from errormem.utils.time import utc_now

logger = logging.getLogger(__name__)

SOLUTION_ORDER = f"{SUCCESS_RATE_SQL} DESC, success_count DESC, id ASC"


def _release_connection(
    connections: List[sqlite3.Connection], lock: threading.Lock, conn: sqlite3.Connection
) -> None:
    with lock:
        if conn in connections:
            connections.remove(conn)
    conn.close()


class RecordStore:
    """Owns persistence for the four entity sets and enforces their invariants."""

    def __init__(self, db_path: str | Path, busy_timeout_ms: int = 5000):
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._opened = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "RecordStore":
        """Create the database if needed, migrate it and validate the schema."""
        if self._opened:
            return self
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Opening record store at %s", self.db_path)
        conn = self._connect()
        try:
            run_migrations(conn)
            validate_schema(conn)
        except Exception:
            self.close()
            raise
        self._opened = True
        return self

    def close(self) -> None:
        with self._connections_lock:
            connections = list(self._connections)
            self._connections.clear()
        for index, conn in enumerate(connections):
            if index == 0:
                try:
                    conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                except sqlite3.Error:
                    logger.warning("WAL checkpoint failed during close", exc_info=True)
            conn.close()
        self._local = threading.local()
        self._opened = False
        logger.info("Record store closed")

    @property
    def is_open(self) -> bool:
        return self._opened

    def __enter__(self) -> "RecordStore":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _connect(self) -> sqlite3.Connection:
        conn: Optional[sqlite3.Connection] = getattr(self._local, "conn", None)
        if conn is not None:
            return conn

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")

        self._local.conn = conn
        with self._connections_lock:
            self._connections.append(conn)
        # Short-lived worker threads must not pile up open handles.
        weakref.finalize(
            threading.current_thread(), _release_connection, self._connections, self._connections_lock, conn
        )
        return conn

    def _conn(self) -> sqlite3.Connection:
        if not self._opened:
            raise SchemaError("Record store is not open; call open() first")
        return self._connect()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a unit of work atomically; nested calls join the outer transaction."""
        conn = self._conn()
        if conn.in_transaction:
            yield conn
            return
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def upsert_error(
        self,
        *,
        error_hash: str,
        message: str,
        normalized_message: str,
        error_type: str,
        severity: str,
        stack_trace: Optional[str] = None,
        file_path: Optional[str] = None,
        project_name: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        tag_categories: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, bool]:
        """Insert a new error or count another sighting of an existing one.

        The uniqueness of ``hash`` is enforced by the table constraint and the
        insert/increment is a single upsert statement, so two writers with the
        same fingerprint can never produce two rows.

        Returns:
            tuple of (error_id, created)
        """
        if not message or not message.strip():
            raise ValidationError("message is required")
        if not error_type or not error_type.strip():
            raise ValidationError("error_type is required")
        canonical_severity = normalize_severity(severity)
        if canonical_severity is None:
            raise ValidationError(f"Unknown severity '{severity}'")

        now = utc_now()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO errors (
                    hash, message, normalized_message, error_type, severity,
                    stack_trace, file_path, project_name,
                    occurrence_count, first_seen_at, last_seen_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(hash) DO UPDATE SET
                    occurrence_count = errors.occurrence_count + 1,
                    last_seen_at = excluded.last_seen_at
                """,
                (
                    error_hash,
                    message,
                    normalized_message,
                    error_type,
                    canonical_severity,
                    stack_trace or None,
                    file_path or None,
                    project_name or None,
                    now,
                    now,
                ),
            )
            row = conn.execute(
                "SELECT id, occurrence_count FROM errors WHERE hash = ?", (error_hash,)
            ).fetchone()
            error_id = int(row["id"])
            created = int(row["occurrence_count"]) == 1

            if tags:
                tag_records = self.get_or_create_tags(tags, categories=tag_categories)
                self.add_tags_to_error(error_id, [t.id for t in tag_records])

        if created:
            logger.info("Recorded new error (id: %d, type: %s)", error_id, error_type)
        else:
            logger.debug("Updated existing error (id: %d, occurrences+1)", error_id)
        return error_id, created

    def get_error(self, error_id: int) -> Optional[ErrorRecord]:
        row = self._conn().execute("SELECT * FROM errors WHERE id = ?", (error_id,)).fetchone()
        if row is None:
            return None
        return ErrorRecord.from_row(row, self._tag_names_for([error_id]).get(error_id, []))

    def get_error_by_hash(self, error_hash: str) -> Optional[ErrorRecord]:
        row = self._conn().execute("SELECT * FROM errors WHERE hash = ?", (error_hash,)).fetchone()
        if row is None:
            return None
        error_id = int(row["id"])
        return ErrorRecord.from_row(row, self._tag_names_for([error_id]).get(error_id, []))

    def get_errors(self, error_ids: Sequence[int]) -> Dict[int, ErrorRecord]:
        """Fetch several errors (with tags) keyed by id; unknown ids are omitted."""
        ids = list(dict.fromkeys(int(i) for i in error_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self._conn().execute(
            f"SELECT * FROM errors WHERE id IN ({placeholders})", ids
        ).fetchall()
        return {record.id: record for record in self._hydrate_errors(rows)}

    def search_errors(
        self,
        *,
        tags: Optional[Sequence[str]] = None,
        project_name: Optional[str] = None,
        error_type: Optional[str] = None,
        severity: Optional[str] = None,
        limit: Optional[int] = 20,
    ) -> List[ErrorRecord]:
        """Filtered scan, most recently seen first. Tag filters match any tag."""
        conditions: List[str] = []
        params: List[Any] = []

        tag_names = _prepare_tag_filters(list(tags or []))
        if tag_names:
            placeholders = ", ".join("?" for _ in tag_names)
            conditions.append(
                "e.id IN (SELECT et.error_id FROM error_tags et "
                f"JOIN tags t ON t.id = et.tag_id WHERE t.name IN ({placeholders}))"
            )
            params.extend(tag_names)
        if project_name:
            conditions.append("e.project_name = ?")
            params.append(project_name)
        if error_type:
            conditions.append("e.error_type = ?")
            params.append(error_type)
        if severity:
            canonical = normalize_severity(severity)
            if canonical is None:
                raise ValidationError(f"Unknown severity '{severity}'")
            conditions.append("e.severity = ?")
            params.append(canonical)

        query = "SELECT e.* FROM errors e"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY e.last_seen_at DESC, e.id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))

        rows = self._conn().execute(query, params).fetchall()
        return self._hydrate_errors(rows)

    def get_recent_errors(self, limit: int = 20) -> List[ErrorRecord]:
        return self.search_errors(limit=limit)

    def get_frequent_errors(self, limit: int = 20) -> List[ErrorRecord]:
        rows = self._conn().execute(
            "SELECT * FROM errors ORDER BY occurrence_count DESC, last_seen_at DESC, id DESC LIMIT ?",
            (int(limit),),
        ).fetchall()
        return self._hydrate_errors(rows)

    def delete_error(self, error_id: int) -> bool:
        """Delete an error; solutions, tag links and its embedding cascade."""
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM errors WHERE id = ?", (error_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted error %d", error_id)
        return deleted

    def get_error_count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM errors")

    def get_error_type_stats(self) -> List[Dict[str, Any]]:
        rows = self._conn().execute(
            """
            SELECT error_type AS type, COUNT(*) AS count
            FROM errors
            GROUP BY error_type
            ORDER BY count DESC, type ASC
            """
        ).fetchall()
        return [{"type": row["type"], "count": int(row["count"])} for row in rows]

    def get_errors_by_project_stats(self) -> List[Dict[str, Any]]:
        rows = self._conn().execute(
            """
            SELECT COALESCE(project_name, 'unknown') AS project, COUNT(*) AS count
            FROM errors
            GROUP BY COALESCE(project_name, 'unknown')
            ORDER BY count DESC, project ASC
            """
        ).fetchall()
        return [{"project": row["project"], "count": int(row["count"])} for row in rows]

    def _hydrate_errors(self, rows: Sequence[sqlite3.Row]) -> List[ErrorRecord]:
        ids = [int(row["id"]) for row in rows]
        tags_by_error = self._tag_names_for(ids)
        return [ErrorRecord.from_row(row, tags_by_error.get(int(row["id"]), [])) for row in rows]

    def _require_error(self, conn: sqlite3.Connection, error_id: int) -> None:
        if conn.execute("SELECT 1 FROM errors WHERE id = ?", (error_id,)).fetchone() is None:
            raise NotFoundError("Error", error_id)

    # ------------------------------------------------------------------
    # Solutions
    # ------------------------------------------------------------------

    def record_solution(
        self,
        *,
        error_id: int,
        content: str,
        source: str = "manual",
        code_snippet: Optional[str] = None,
        project_name: Optional[str] = None,
    ) -> int:
        if not content or not content.strip():
            raise ValidationError("content is required")
        canonical_source = normalize_solution_source(source)
        if canonical_source is None:
            raise ValidationError(f"Unknown solution source '{source}'")

        with self.transaction() as conn:
            self._require_error(conn, error_id)
            cursor = conn.execute(
                """
                INSERT INTO solutions (error_id, content, code_snippet, source, project_name, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (error_id, content, code_snippet or None, canonical_source, project_name or None, utc_now()),
            )
        solution_id = int(cursor.lastrowid)
        logger.info("Recorded solution (id: %d) for error %d", solution_id, error_id)
        return solution_id

    def record_outcome(self, solution_id: int, success: bool) -> None:
        """Atomically increment the success or failure counter of a solution."""
        column = "success_count" if success else "failure_count"
        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE solutions SET {column} = {column} + 1 WHERE id = ?", (solution_id,)
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Solution", solution_id)
        logger.debug("Recorded %s for solution %d", "success" if success else "failure", solution_id)

    def get_solution(self, solution_id: int) -> Optional[SolutionRecord]:
        row = self._conn().execute("SELECT * FROM solutions WHERE id = ?", (solution_id,)).fetchone()
        return SolutionRecord.from_row(row) if row else None

    def get_solutions_for_error(self, error_id: int) -> List[SolutionRecord]:
        rows = self._conn().execute(
            f"SELECT * FROM solutions WHERE error_id = ? ORDER BY {SOLUTION_ORDER}", (error_id,)
        ).fetchall()
        return [SolutionRecord.from_row(row) for row in rows]

    def get_solutions_for_errors(self, error_ids: Sequence[int]) -> Dict[int, List[SolutionRecord]]:
        ids = list(dict.fromkeys(int(i) for i in error_ids))
        grouped: Dict[int, List[SolutionRecord]] = {error_id: [] for error_id in ids}
        if not ids:
            return grouped
        placeholders = ", ".join("?" for _ in ids)
        rows = self._conn().execute(
            f"SELECT * FROM solutions WHERE error_id IN ({placeholders}) ORDER BY {SOLUTION_ORDER}",
            ids,
        ).fetchall()
        for row in rows:
            solution = SolutionRecord.from_row(row)
            grouped[solution.error_id].append(solution)
        return grouped

    def get_best_solution(self, error_id: int) -> Optional[SolutionRecord]:
        row = self._conn().execute(
            f"SELECT * FROM solutions WHERE error_id = ? ORDER BY {SOLUTION_ORDER} LIMIT 1",
            (error_id,),
        ).fetchone()
        return SolutionRecord.from_row(row) if row else None

    def get_successful_solutions(
        self, min_success_rate: float = 0.7, limit: int = 20
    ) -> List[SolutionRecord]:
        rows = self._conn().execute(
            f"""
            SELECT * FROM solutions
            WHERE {SUCCESS_RATE_SQL} >= ? AND (success_count + failure_count) >= 2
            ORDER BY {SOLUTION_ORDER}
            LIMIT ?
            """,
            (float(min_success_rate), int(limit)),
        ).fetchall()
        return [SolutionRecord.from_row(row) for row in rows]

    def get_recent_solutions(self, limit: int = 20) -> List[SolutionRecord]:
        rows = self._conn().execute(
            "SELECT * FROM solutions ORDER BY created_at DESC, id DESC LIMIT ?", (int(limit),)
        ).fetchall()
        return [SolutionRecord.from_row(row) for row in rows]

    def get_solutions_by_source(self, source: str) -> List[SolutionRecord]:
        canonical_source = normalize_solution_source(source)
        if canonical_source is None:
            raise ValidationError(f"Unknown solution source '{source}'")
        rows = self._conn().execute(
            f"SELECT * FROM solutions WHERE source = ? ORDER BY {SOLUTION_ORDER}",
            (canonical_source,),
        ).fetchall()
        return [SolutionRecord.from_row(row) for row in rows]

    def update_solution(
        self,
        solution_id: int,
        *,
        content: Optional[str] = None,
        code_snippet: Optional[str] = None,
    ) -> bool:
        """Update solution text; returns False when nothing was changed."""
        assignments: List[str] = []
        params: List[Any] = []
        if content is not None:
            if not content.strip():
                raise ValidationError("content cannot be empty")
            assignments.append("content = ?")
            params.append(content)
        if code_snippet is not None:
            assignments.append("code_snippet = ?")
            params.append(code_snippet or None)
        if not assignments:
            return False

        params.append(solution_id)
        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE solutions SET {', '.join(assignments)} WHERE id = ?", params
            )
        return cursor.rowcount > 0

    def delete_solution(self, solution_id: int) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM solutions WHERE id = ?", (solution_id,))
        return cursor.rowcount > 0

    def delete_solutions_for_error(self, error_id: int) -> int:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM solutions WHERE error_id = ?", (error_id,))
        return int(cursor.rowcount)

    def get_solution_count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM solutions")

    def get_average_success_rate(self) -> float:
        row = self._conn().execute(
            f"""
            SELECT AVG({SUCCESS_RATE_SQL}) FROM solutions
            WHERE (success_count + failure_count) > 0
            """
        ).fetchone()
        return float(row[0]) if row and row[0] is not None else 0.0

    def get_errors_with_solutions_count(self) -> int:
        return self._scalar("SELECT COUNT(DISTINCT error_id) FROM solutions")

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def create_tag(self, name: str, category: Optional[str] = None) -> TagRecord:
        normalized = (name or "").strip().lower()
        if not normalized:
            raise ValidationError("tag name is required")
        canonical_category, valid = normalize_tag_category(category)
        if not valid:
            raise ValidationError(f"Unknown tag category '{category}'")

        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO tags (name, category) VALUES (?, ?)",
                    (normalized, canonical_category),
                )
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Tag '{normalized}' already exists") from exc

        tag_id = int(cursor.lastrowid)
        logger.debug("Created tag: %s (id: %d)", normalized, tag_id)
        return TagRecord(id=tag_id, name=normalized, category=canonical_category)

    def get_tag_by_name(self, name: str) -> Optional[TagRecord]:
        normalized = (name or "").strip().lower()
        row = self._conn().execute("SELECT * FROM tags WHERE name = ?", (normalized,)).fetchone()
        return TagRecord.from_row(row) if row else None

    def get_tag_by_id(self, tag_id: int) -> Optional[TagRecord]:
        row = self._conn().execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone()
        return TagRecord.from_row(row) if row else None

    def get_or_create_tags(
        self,
        names: Sequence[str],
        category: Optional[str] = None,
        categories: Optional[Dict[str, str]] = None,
    ) -> List[TagRecord]:
        """Return tags for ``names``, creating missing ones.

        ``category`` applies to every created tag; ``categories`` maps
        individual names to a category. An existing tag keeps its category
        unless it had none.
        """
        default_category, valid = normalize_tag_category(category)
        if not valid:
            raise ValidationError(f"Unknown tag category '{category}'")

        normalized_names = _prepare_tag_filters(list(names))
        if not normalized_names:
            return []

        results: List[TagRecord] = []
        with self.transaction() as conn:
            for tag_name in normalized_names:
                tag_category = default_category
                if categories and tag_name in categories:
                    tag_category, valid = normalize_tag_category(categories[tag_name])
                    if not valid:
                        raise ValidationError(f"Unknown tag category '{categories[tag_name]}'")
                conn.execute(
                    """
                    INSERT INTO tags (name, category) VALUES (?, ?)
                    ON CONFLICT(name) DO UPDATE SET category = COALESCE(tags.category, excluded.category)
                    """,
                    (tag_name, tag_category),
                )
                row = conn.execute("SELECT * FROM tags WHERE name = ?", (tag_name,)).fetchone()
                results.append(TagRecord.from_row(row))
        return results

    def get_all_tags(self) -> List[TagRecord]:
        rows = self._conn().execute("SELECT * FROM tags ORDER BY name ASC").fetchall()
        return [TagRecord.from_row(row) for row in rows]

    def get_tags_by_category(self, category: str) -> List[TagRecord]:
        canonical_category, valid = normalize_tag_category(category)
        if not valid or canonical_category is None:
            raise ValidationError(f"Unknown tag category '{category}'")
        rows = self._conn().execute(
            "SELECT * FROM tags WHERE category = ? ORDER BY name ASC", (canonical_category,)
        ).fetchall()
        return [TagRecord.from_row(row) for row in rows]

    def get_tags_for_error(self, error_id: int) -> List[TagRecord]:
        rows = self._conn().execute(
            """
            SELECT t.* FROM tags t
            JOIN error_tags et ON t.id = et.tag_id
            WHERE et.error_id = ?
            ORDER BY t.name ASC
            """,
            (error_id,),
        ).fetchall()
        return [TagRecord.from_row(row) for row in rows]

    def add_tags_to_error(self, error_id: int, tag_ids: Sequence[int]) -> None:
        """Link tags to an error; existing links are left untouched."""
        with self.transaction() as conn:
            self._require_error(conn, error_id)
            conn.executemany(
                "INSERT OR IGNORE INTO error_tags (error_id, tag_id) VALUES (?, ?)",
                [(error_id, int(tag_id)) for tag_id in tag_ids],
            )

    def remove_tags_from_error(self, error_id: int, tag_ids: Sequence[int]) -> None:
        with self.transaction() as conn:
            conn.executemany(
                "DELETE FROM error_tags WHERE error_id = ? AND tag_id = ?",
                [(error_id, int(tag_id)) for tag_id in tag_ids],
            )

    def set_error_tags(self, error_id: int, tag_ids: Sequence[int]) -> None:
        """Replace every tag link of an error."""
        with self.transaction() as conn:
            self._require_error(conn, error_id)
            conn.execute("DELETE FROM error_tags WHERE error_id = ?", (error_id,))
            if tag_ids:
                self.add_tags_to_error(error_id, tag_ids)

    def get_error_ids_by_tags(self, tag_ids: Sequence[int]) -> List[int]:
        ids = [int(tag_id) for tag_id in tag_ids]
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self._conn().execute(
            f"SELECT DISTINCT error_id FROM error_tags WHERE tag_id IN ({placeholders}) ORDER BY error_id",
            ids,
        ).fetchall()
        return [int(row["error_id"]) for row in rows]

    def get_popular_tags(self, limit: int = 20) -> List[TagRecord]:
        rows = self._conn().execute(
            """
            SELECT t.*, COUNT(et.error_id) AS usage_count
            FROM tags t
            LEFT JOIN error_tags et ON t.id = et.tag_id
            GROUP BY t.id
            ORDER BY usage_count DESC, t.name ASC
            LIMIT ?
            """,
            (int(limit),),
        ).fetchall()
        return [TagRecord.from_row(row) for row in rows]

    def update_tag_category(self, tag_id: int, category: Optional[str]) -> bool:
        canonical_category, valid = normalize_tag_category(category)
        if not valid:
            raise ValidationError(f"Unknown tag category '{category}'")
        with self.transaction() as conn:
            cursor = conn.execute(
                "UPDATE tags SET category = ? WHERE id = ?", (canonical_category, tag_id)
            )
        return cursor.rowcount > 0

    def delete_tag(self, tag_id: int) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        return cursor.rowcount > 0

    def search_tags(self, prefix: str, limit: int = 10) -> List[TagRecord]:
        escaped = (prefix or "").strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self._conn().execute(
            "SELECT * FROM tags WHERE name LIKE ? ESCAPE '\\' ORDER BY name ASC LIMIT ?",
            (escaped + "%", int(limit)),
        ).fetchall()
        return [TagRecord.from_row(row) for row in rows]

    def get_tag_count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM tags")

    def _tag_names_for(self, error_ids: Sequence[int]) -> Dict[int, List[str]]:
        ids = list(dict.fromkeys(int(i) for i in error_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self._conn().execute(
            f"""
            SELECT et.error_id AS error_id, t.name AS name
            FROM error_tags et
            JOIN tags t ON t.id = et.tag_id
            WHERE et.error_id IN ({placeholders})
            ORDER BY t.name ASC
            """,
            ids,
        ).fetchall()
        grouped: Dict[int, List[str]] = {}
        for row in rows:
            grouped.setdefault(int(row["error_id"]), []).append(row["name"])
        return grouped

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def store_embedding(self, error_id: int, vector: Sequence[float], model: str) -> None:
        """Insert or replace the embedding for an error."""
        with self.transaction() as conn:
            self._write_embedding(conn, error_id, vector, model)
        logger.debug("Stored embedding for error %d (dimensions: %d)", error_id, len(vector))

    def batch_store_embeddings(self, items: Sequence[Tuple[int, Sequence[float]]], model: str) -> int:
        """Store several embeddings in one transaction; all or nothing."""
        if not items:
            return 0
        with self.transaction() as conn:
            for error_id, vector in items:
                self._write_embedding(conn, error_id, vector, model)
        logger.info("Batch stored %d embeddings", len(items))
        return len(items)

    def _write_embedding(
        self, conn: sqlite3.Connection, error_id: int, vector: Sequence[float], model: str
    ) -> None:
        if len(vector) == 0:
            raise ValidationError("embedding vector must not be empty")
        if not model:
            raise ValidationError("embedding model identifier is required")
        self._require_error(conn, error_id)
        buffer = pack_vector(vector)
        conn.execute(
            """
            INSERT INTO embeddings (error_id, embedding, model, dimensions)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(error_id) DO UPDATE SET
                embedding = excluded.embedding,
                model = excluded.model,
                dimensions = excluded.dimensions
            """,
            (error_id, buffer, model, len(vector)),
        )

    def get_embedding(self, error_id: int) -> Optional[EmbeddingRecord]:
        row = self._conn().execute(
            "SELECT * FROM embeddings WHERE error_id = ?", (error_id,)
        ).fetchone()
        return EmbeddingRecord.from_row(row) if row else None

    def get_embedding_vector(self, error_id: int) -> Optional[List[float]]:
        record = self.get_embedding(error_id)
        return unpack_vector(record.embedding) if record else None

    def iter_embeddings(self, dimensions: Optional[int] = None) -> Iterator[Tuple[int, List[float]]]:
        """Yield ``(error_id, vector)`` for every stored embedding (full scan).

        With ``dimensions`` set, embeddings of any other size are skipped.
        """
        query = "SELECT * FROM embeddings"
        params: Tuple[Any, ...] = ()
        if dimensions is not None:
            query += " WHERE dimensions = ?"
            params = (int(dimensions),)
        query += " ORDER BY error_id"
        for row in self._conn().execute(query, params).fetchall():
            record = EmbeddingRecord.from_row(row)
            yield record.error_id, unpack_vector(record.embedding)

    def delete_embedding(self, error_id: int) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM embeddings WHERE error_id = ?", (error_id,))
        return cursor.rowcount > 0

    def has_embedding(self, error_id: int) -> bool:
        row = self._conn().execute(
            "SELECT 1 FROM embeddings WHERE error_id = ?", (error_id,)
        ).fetchone()
        return row is not None

    def get_embedding_count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM embeddings")

    def get_errors_without_embeddings(self, limit: int = 100) -> List[ErrorRecord]:
        rows = self._conn().execute(
            """
            SELECT e.* FROM errors e
            LEFT JOIN embeddings emb ON e.id = emb.error_id
            WHERE emb.id IS NULL
            ORDER BY e.last_seen_at DESC, e.id DESC
            LIMIT ?
            """,
            (int(limit),),
        ).fetchall()
        return self._hydrate_errors(rows)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def database_stats(self) -> Dict[str, Any]:
        conn = self._conn()
        page_count = int(conn.execute("PRAGMA page_count").fetchone()[0])
        page_size = int(conn.execute("PRAGMA page_size").fetchone()[0])
        return {
            "path": str(self.db_path),
            "size_bytes": page_count * page_size,
            "page_count": page_count,
            "page_size": page_size,
        }

    def optimize(self) -> None:
        conn = self._conn()
        logger.info("Optimizing record store (ANALYZE + VACUUM)")
        conn.execute("ANALYZE")
        conn.execute("VACUUM")

    def _scalar(self, query: str, params: Sequence[Any] = ()) -> int:
        row = self._conn().execute(query, params).fetchone()
        return int(row[0]) if row and row[0] is not None else 0
