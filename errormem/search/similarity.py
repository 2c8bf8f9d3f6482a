"""Similarity metrics used by retrieval.

All functions are pure. Vectors are compared with numpy; embeddings are
persisted as packed little-endian float32 buffers.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from errormem.errors import DimensionMismatchError

_FLOAT32_LE = np.dtype("<f4")


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1].

    Raises DimensionMismatchError when the lengths differ. Empty or
    zero-magnitude vectors yield 0.0.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    if len(a) == 0:
        return 0.0
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    magnitude = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if magnitude == 0.0:
        return 0.0
    value = float(np.dot(vec_a, vec_b) / magnitude)
    # Guard against rounding just outside the valid range.
    return max(-1.0, min(1.0, value))


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Case-insensitive Jaccard index; two empty sets are identical (1.0)."""
    set_a = {item.lower() for item in a}
    set_b = {item.lower() for item in b}
    if not set_a and not set_b:
        return 1.0
    return len(set_a & set_b) / len(set_a | set_b)


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with unit insert/delete/substitute costs."""
    if not a:
        return len(b)
    if not b:
        return len(a)
    # Keep the shorter string on the inner loop.
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current[j] = previous[j - 1]
            else:
                current[j] = 1 + min(previous[j - 1], previous[j], current[j - 1])
        previous = current
    return previous[-1]


def edit_similarity(a: str, b: str) -> float:
    max_length = max(len(a), len(b))
    if max_length == 0:
        return 1.0
    return 1.0 - edit_distance(a, b) / max_length


def token_similarity(a: str, b: str) -> float:
    return jaccard(a.lower().split(), b.lower().split())


def combined_similarity(
    a: str,
    b: str,
    weight_token: float = 0.6,
    weight_edit: float = 0.4,
) -> float:
    """Weighted sum of token and edit similarity.

    Weights are not normalized; callers that need a [0, 1] result should pass
    weights summing to 1.
    """
    return weight_token * token_similarity(a, b) + weight_edit * edit_similarity(a, b)


def pack_vector(values: Sequence[float]) -> bytes:
    """Pack floats as contiguous little-endian IEEE-754 single precision."""
    return np.asarray(values, dtype=_FLOAT32_LE).tobytes()


def unpack_vector(buffer: bytes) -> List[float]:
    if len(buffer) % _FLOAT32_LE.itemsize:
        raise ValueError(f"Embedding buffer length {len(buffer)} is not a multiple of 4")
    return np.frombuffer(buffer, dtype=_FLOAT32_LE).astype(np.float64).tolist()


def top_cosine_matches(
    query: Sequence[float],
    candidates: Iterable[Tuple[int, Sequence[float]]],
    min_similarity: float,
    limit: Optional[int] = None,
) -> List[Tuple[int, float]]:
    """Rank ``(key, vector)`` candidates by cosine similarity to ``query``.

    Candidates whose dimensionality differs from the query are skipped.
    """
    matches: List[Tuple[int, float]] = []
    for key, vector in candidates:
        if len(vector) != len(query):
            continue
        score = cosine(query, vector)
        if score >= min_similarity:
            matches.append((key, score))
    matches.sort(key=lambda pair: (-pair[1], pair[0]))
    return matches if limit is None else matches[:limit]
