from __future__ import annotations


class MemoryLayerError(RuntimeError):
    """Base class for failures surfaced by the memory layer."""


class ValidationError(MemoryLayerError, ValueError):
    """Raised when caller input is malformed (missing field, unknown enum value)."""


class NotFoundError(MemoryLayerError, LookupError):
    """Raised when an operation references an error or solution id that does not exist."""

    def __init__(self, kind: str, identifier: object):
        super().__init__(f"{kind} with id {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class SchemaError(MemoryLayerError):
    """Raised at store initialization when the on-disk schema cannot be used."""


class DimensionMismatchError(ValueError):
    """Raised when two vectors of different length are compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vector length mismatch: {left} vs {right}")
        self.left = left
        self.right = right
