"""SQLite schema and sequential migrations for the record store.

Tables:
- errors: unique error records keyed by fingerprint hash
- solutions: fixes linked to an error with success/failure counters
- tags / error_tags: tag vocabulary and the many-to-many link
- embeddings: one packed float32 vector per error
- schema_migrations: one row per applied target version
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable, Dict, List, Optional

from errormem.errors import SchemaError
from errormem.utils.time import utc_now

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2

REQUIRED_TABLES = ("errors", "solutions", "tags", "error_tags", "embeddings")

# Success rate is always computed from the counters at read time.
SUCCESS_RATE_SQL = (
    "(CASE WHEN (success_count + failure_count) = 0 THEN 0.0 "
    "ELSE CAST(success_count AS REAL) / (success_count + failure_count) END)"
)

SCHEMA_MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
)
"""

INITIAL_SCHEMA: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS errors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        hash TEXT NOT NULL UNIQUE,
        message TEXT NOT NULL,
        normalized_message TEXT NOT NULL,
        error_type TEXT NOT NULL,
        severity TEXT NOT NULL CHECK (severity IN ('low', 'medium', 'high', 'critical')),
        stack_trace TEXT,
        file_path TEXT,
        project_name TEXT,
        occurrence_count INTEGER NOT NULL DEFAULT 1 CHECK (occurrence_count >= 1),
        first_seen_at TEXT NOT NULL,
        last_seen_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS solutions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        error_id INTEGER NOT NULL,
        content TEXT NOT NULL,
        code_snippet TEXT,
        success_count INTEGER NOT NULL DEFAULT 0 CHECK (success_count >= 0),
        failure_count INTEGER NOT NULL DEFAULT 0 CHECK (failure_count >= 0),
        source TEXT NOT NULL CHECK (source IN ('auto_mode', 'agent', 'manual')),
        project_name TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (error_id) REFERENCES errors(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        category TEXT CHECK (category IN ('error_type', 'technology', 'framework', 'domain', 'custom'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS error_tags (
        error_id INTEGER NOT NULL,
        tag_id INTEGER NOT NULL,
        PRIMARY KEY (error_id, tag_id),
        FOREIGN KEY (error_id) REFERENCES errors(id) ON DELETE CASCADE,
        FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS embeddings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        error_id INTEGER NOT NULL UNIQUE,
        embedding BLOB NOT NULL,
        model TEXT NOT NULL,
        dimensions INTEGER NOT NULL CHECK (length(embedding) = dimensions * 4),
        FOREIGN KEY (error_id) REFERENCES errors(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_errors_type ON errors(error_type)",
    "CREATE INDEX IF NOT EXISTS idx_errors_severity ON errors(severity)",
    "CREATE INDEX IF NOT EXISTS idx_errors_project ON errors(project_name)",
    "CREATE INDEX IF NOT EXISTS idx_errors_last_seen ON errors(last_seen_at)",
    "CREATE INDEX IF NOT EXISTS idx_solutions_error_id ON solutions(error_id)",
    "CREATE INDEX IF NOT EXISTS idx_tags_category ON tags(category)",
    "CREATE INDEX IF NOT EXISTS idx_error_tags_tag_id ON error_tags(tag_id)",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_dimensions ON embeddings(dimensions)",
]

FREQUENCY_INDEX: List[str] = [
    "CREATE INDEX IF NOT EXISTS idx_errors_occurrences ON errors(occurrence_count)",
]


def _run_statements(statements: List[str]) -> Callable[[sqlite3.Connection], None]:
    def migrate(conn: sqlite3.Connection) -> None:
        for statement in statements:
            conn.execute(statement)

    return migrate


# Keyed by target version; each entry upgrades from (version - 1) to version.
MIGRATIONS: Dict[int, Callable[[sqlite3.Connection], None]] = {
    1: _run_statements(INITIAL_SCHEMA),
    2: _run_statements(FREQUENCY_INDEX),
}


def get_schema_version(conn: sqlite3.Connection) -> int:
    exists = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_migrations'"
    ).fetchone()
    if not exists:
        return 0
    row = conn.execute("SELECT MAX(version) FROM schema_migrations").fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def _apply_next_migration(conn: sqlite3.Connection, target_version: int) -> Optional[int]:
    """Apply the next pending migration, or return None when up to date.

    The version is read under the write lock so concurrent openers of a fresh
    database never both apply the same step.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        current = get_schema_version(conn)
        if current > target_version:
            raise SchemaError(
                f"Database schema version ({current}) is newer than supported ({target_version}). "
                "Please update errormem."
            )
        version: Optional[int] = None
        if current < target_version:
            version = current + 1
            migration = MIGRATIONS.get(version)
            if migration is None:
                raise SchemaError(f"Missing migration for version {version}")
            conn.execute(SCHEMA_MIGRATIONS_TABLE)
            migration(conn)
            conn.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (version, utc_now()),
            )
    except Exception:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
    return version


def run_migrations(conn: sqlite3.Connection, target_version: int = CURRENT_SCHEMA_VERSION) -> int:
    """Apply every pending migration, one transaction per version.

    Returns the number of migrations applied. Raises SchemaError if the
    database was written by a newer release or a migration step is missing.
    """
    applied = 0
    while True:
        version = _apply_next_migration(conn, target_version)
        if version is None:
            break
        applied += 1
        logger.info("Applied schema migration to version %d", version)

    if not applied:
        logger.debug("Schema is up to date (version %d)", target_version)
    return applied


def validate_schema(conn: sqlite3.Connection) -> None:
    """Raise SchemaError when any required table is missing."""
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    present = {row[0] for row in rows}
    missing = [table for table in REQUIRED_TABLES if table not in present]
    if missing:
        raise SchemaError(f"Missing required table(s): {', '.join(missing)}")
