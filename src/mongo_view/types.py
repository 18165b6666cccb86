"""
Type definitions for mongo-view.

Provides the write result, map-reduce statistics and exception types
returned or raised by views, pipelines and map-reduce configurations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


@dataclass
class WriteResult:
    """
    Result of an insert, update, replace or remove.

    Attributes:
        count: Number of documents inserted, matched or removed.
        update_of_existing: Whether an update touched an existing document.
        upserted_id: The _id of the upserted document (if any).
        inserted_ids: The _ids of inserted documents, in request order.
        acknowledged: Whether the write was acknowledged.
    """

    count: int = 0
    update_of_existing: bool = False
    upserted_id: Any = None
    inserted_ids: list[Any] = field(default_factory=list)
    acknowledged: bool = True

    @property
    def raw_result(self) -> dict[str, Any]:
        """Return raw result dict for compatibility."""
        result: dict[str, Any] = {
            "n": self.count,
            "updatedExisting": self.update_of_existing,
            "ok": 1.0 if self.acknowledged else 0.0,
        }
        if self.upserted_id is not None:
            result["upserted"] = self.upserted_id
        return result


@dataclass
class MapReduceStatistics:
    """
    Statistics reported by a map-reduce that wrote to a collection.

    Attributes:
        input_count: Number of documents read from the source collection.
        emit_count: Number of emit() calls.
        output_count: Number of documents written to the output collection.
        duration: Server-side duration in milliseconds.
    """

    input_count: int = 0
    emit_count: int = 0
    output_count: int = 0
    duration: int = 0


# Type aliases for clarity
Document = Mapping[str, Any]
MutableDocument = dict[str, Any]
Filter = Mapping[str, Any]
Update = Mapping[str, Any]
Projection = Mapping[str, Any] | Sequence[str] | None
Sort = Mapping[str, int] | list[tuple[str, int]] | str | None


class MongoError(Exception):
    """Base exception for MongoDB operations."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(MongoError, ValueError):
    """Raised when a view or map-reduce is configured in a way that cannot run."""

    pass


class UnsupportedOperationError(MongoError, NotImplementedError):
    """Raised when an operation is not supported for the document type."""

    pass


class ConnectionError(MongoError):
    """Error raised when connection to MongoDB fails."""

    pass


class WriteError(MongoError):
    """Error raised when a write operation fails."""

    pass


class DuplicateKeyError(WriteError):
    """Error raised when inserting a document with a duplicate key."""

    pass


class OperationFailure(MongoError):
    """Error raised when an operation fails on the server."""

    pass
