"""Domain records for the memory layer.

Rows coming out of SQLite are converted into these dataclasses in exactly one
place (the ``from_row`` constructors below); nothing else in the package reads
column names.
"""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from errormem.config import SEVERITIES, SOLUTION_SOURCES, TAG_CATEGORIES
from errormem.errors import SchemaError


def _require(row: sqlite3.Row, column: str) -> Any:
    try:
        return row[column]
    except (IndexError, KeyError) as exc:
        raise SchemaError(f"Row is missing required column '{column}'") from exc


@dataclass
class ErrorInput:
    message: str
    error_type: Optional[str] = None
    severity: Optional[str] = None
    stack_trace: Optional[str] = None
    file_path: Optional[str] = None
    project_name: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class ErrorRecord:
    id: int
    hash: str
    message: str
    normalized_message: str
    error_type: str
    severity: str
    stack_trace: Optional[str]
    file_path: Optional[str]
    project_name: Optional[str]
    occurrence_count: int
    first_seen_at: str
    last_seen_at: str
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: sqlite3.Row, tags: Optional[List[str]] = None) -> "ErrorRecord":
        severity = _require(row, "severity")
        if severity not in SEVERITIES:
            raise SchemaError(f"Stored severity '{severity}' is not a known severity")
        return cls(
            id=int(_require(row, "id")),
            hash=_require(row, "hash"),
            message=_require(row, "message"),
            normalized_message=_require(row, "normalized_message"),
            error_type=_require(row, "error_type"),
            severity=severity,
            stack_trace=_require(row, "stack_trace"),
            file_path=_require(row, "file_path"),
            project_name=_require(row, "project_name"),
            occurrence_count=int(_require(row, "occurrence_count")),
            first_seen_at=_require(row, "first_seen_at"),
            last_seen_at=_require(row, "last_seen_at"),
            tags=list(tags or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SolutionInput:
    error_id: int
    content: str
    source: str = "manual"
    code_snippet: Optional[str] = None
    project_name: Optional[str] = None


@dataclass
class SolutionRecord:
    id: int
    error_id: int
    content: str
    code_snippet: Optional[str]
    success_count: int
    failure_count: int
    source: str
    project_name: Optional[str]
    created_at: str

    @property
    def total_attempts(self) -> int:
        return self.success_count + self.failure_count

    @property
    def success_rate(self) -> float:
        # Always derived from the counters so the two can never drift apart.
        total = self.total_attempts
        if total == 0:
            return 0.0
        return self.success_count / total

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SolutionRecord":
        source = _require(row, "source")
        if source not in SOLUTION_SOURCES:
            raise SchemaError(f"Stored solution source '{source}' is not a known source")
        return cls(
            id=int(_require(row, "id")),
            error_id=int(_require(row, "error_id")),
            content=_require(row, "content"),
            code_snippet=_require(row, "code_snippet"),
            success_count=int(_require(row, "success_count")),
            failure_count=int(_require(row, "failure_count")),
            source=source,
            project_name=_require(row, "project_name"),
            created_at=_require(row, "created_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success_rate"] = self.success_rate
        return data


@dataclass
class TagRecord:
    id: int
    name: str
    category: Optional[str] = None
    usage_count: Optional[int] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "TagRecord":
        category = _require(row, "category")
        if category is not None and category not in TAG_CATEGORIES:
            raise SchemaError(f"Stored tag category '{category}' is not a known category")
        usage_count = row["usage_count"] if "usage_count" in row.keys() else None
        return cls(
            id=int(_require(row, "id")),
            name=_require(row, "name"),
            category=category,
            usage_count=int(usage_count) if usage_count is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["usage_count"] is None:
            data.pop("usage_count")
        return data


@dataclass
class EmbeddingRecord:
    id: int
    error_id: int
    embedding: bytes
    model: str
    dimensions: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "EmbeddingRecord":
        blob = bytes(_require(row, "embedding"))
        dimensions = int(_require(row, "dimensions"))
        if len(blob) != dimensions * 4:
            raise SchemaError(
                f"Embedding for error {row['error_id']} has {len(blob)} bytes, "
                f"expected {dimensions * 4} for {dimensions} dimensions"
            )
        return cls(
            id=int(_require(row, "id")),
            error_id=int(_require(row, "error_id")),
            embedding=blob,
            model=_require(row, "model"),
            dimensions=dimensions,
        )


@dataclass
class SearchOptions:
    limit: Optional[int] = None
    min_similarity: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    project_name: Optional[str] = None
    error_type: Optional[str] = None
    severity: Optional[str] = None
    include_embeddings: bool = True


@dataclass
class SearchResult:
    error: ErrorRecord
    solutions: List[SolutionRecord]
    match_type: str
    similarity: Optional[float] = None
    score: Optional[float] = None

    @property
    def best_solution(self) -> Optional[SolutionRecord]:
        if not self.solutions:
            return None
        return max(self.solutions, key=lambda s: (s.success_rate, s.success_count))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "error": self.error.to_dict(),
            "solutions": [s.to_dict() for s in self.solutions],
            "match_type": self.match_type,
            "similarity": self.similarity,
        }
        if self.score is not None:
            data["score"] = self.score
        return data


@dataclass
class TaskContext:
    feature_title: Optional[str] = None
    feature_description: Optional[str] = None
    error_message: Optional[str] = None
    file_path: Optional[str] = None
    project_name: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class MemoryContext:
    relevant_errors: List[SearchResult]
    formatted_prompt: str
    total_matches: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relevant_errors": [r.to_dict() for r in self.relevant_errors],
            "formatted_prompt": self.formatted_prompt,
            "total_matches": self.total_matches,
        }


@dataclass
class MemoryStats:
    total_errors: int
    total_solutions: int
    total_tags: int
    total_embeddings: int
    top_error_types: List[Dict[str, Any]]
    average_success_rate: float
    errors_with_solutions: int
    errors_by_project: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
