"""
Command descriptors.

Every terminal call on a view, pipeline or map-reduce snapshots its state
into one of these frozen dataclasses before handing it to an
:class:`~mongo_view.executor.OperationExecutor`. A descriptor owns its own
copies of every document it carries and never refers back to the builder
that produced it, so it can be shared and reissued freely.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pymongo import ReturnDocument

if TYPE_CHECKING:
    from pymongo.read_concern import ReadConcern
    from pymongo.write_concern import WriteConcern

    from .codec import Codec

__all__ = [
    "MongoNamespace",
    "CursorFlag",
    "MapReduceAction",
    "FindOperation",
    "CountOperation",
    "AggregateOperation",
    "InsertRequest",
    "UpdateRequest",
    "ReplaceRequest",
    "RemoveRequest",
    "InsertOperation",
    "UpdateOperation",
    "ReplaceOperation",
    "RemoveOperation",
    "FindAndUpdateOperation",
    "FindAndReplaceOperation",
    "FindAndRemoveOperation",
    "MapReduceWithInlineResultsOperation",
    "MapReduceToCollectionOperation",
]


@dataclass(frozen=True)
class MongoNamespace:
    """A (database, collection) pair."""

    database_name: str
    collection_name: str

    @property
    def full_name(self) -> str:
        return f"{self.database_name}.{self.collection_name}"

    def __str__(self) -> str:
        return self.full_name


class CursorFlag(enum.Flag):
    """Behaviour flags for a find cursor."""

    TAILABLE = enum.auto()
    SLAVE_OK = enum.auto()
    NO_CURSOR_TIMEOUT = enum.auto()
    AWAIT_DATA = enum.auto()
    EXHAUST = enum.auto()
    PARTIAL = enum.auto()


NO_CURSOR_FLAGS = CursorFlag(0)


class MapReduceAction(str, enum.Enum):
    """What a map-reduce does with an existing output collection."""

    REPLACE = "replace"
    MERGE = "merge"
    REDUCE = "reduce"


# Reads


@dataclass(frozen=True, kw_only=True)
class FindOperation:
    namespace: MongoNamespace
    decoder: Codec
    criteria: dict[str, Any] | None = None
    projection: dict[str, Any] | None = None
    sort: dict[str, Any] | None = None
    skip: int = 0
    limit: int = 0
    # A negative batch size asks for a single batch and no open cursor.
    batch_size: int = 0
    max_time_ms: int = 0
    cursor_flags: CursorFlag = NO_CURSOR_FLAGS
    modifiers: dict[str, Any] | None = None
    read_concern: ReadConcern | None = None


@dataclass(frozen=True, kw_only=True)
class CountOperation:
    namespace: MongoNamespace
    criteria: dict[str, Any] | None = None
    skip: int = 0
    limit: int = 0
    max_time_ms: int = 0
    read_concern: ReadConcern | None = None


@dataclass(frozen=True, kw_only=True)
class AggregateOperation:
    namespace: MongoNamespace
    pipeline: tuple[dict[str, Any], ...]
    decoder: Codec
    read_concern: ReadConcern | None = None


# Write batches


@dataclass(frozen=True)
class InsertRequest:
    document: dict[str, Any]


@dataclass(frozen=True, kw_only=True)
class UpdateRequest:
    criteria: dict[str, Any]
    update: dict[str, Any]
    upsert: bool = False
    multi: bool = False


@dataclass(frozen=True, kw_only=True)
class ReplaceRequest:
    criteria: dict[str, Any]
    replacement: dict[str, Any]
    upsert: bool = False


@dataclass(frozen=True, kw_only=True)
class RemoveRequest:
    criteria: dict[str, Any]
    multi: bool = True


@dataclass(frozen=True, kw_only=True)
class _WriteOperation:
    namespace: MongoNamespace
    write_concern: WriteConcern
    ordered: bool = True


@dataclass(frozen=True, kw_only=True)
class InsertOperation(_WriteOperation):
    requests: tuple[InsertRequest, ...]


@dataclass(frozen=True, kw_only=True)
class UpdateOperation(_WriteOperation):
    requests: tuple[UpdateRequest, ...]


@dataclass(frozen=True, kw_only=True)
class ReplaceOperation(_WriteOperation):
    requests: tuple[ReplaceRequest, ...]


@dataclass(frozen=True, kw_only=True)
class RemoveOperation(_WriteOperation):
    requests: tuple[RemoveRequest, ...]


# Find and modify


@dataclass(frozen=True, kw_only=True)
class _FindAndModifyOperation:
    namespace: MongoNamespace
    decoder: Codec
    criteria: dict[str, Any] | None = None
    projection: dict[str, Any] | None = None
    sort: dict[str, Any] | None = None
    write_concern: WriteConcern | None = None


@dataclass(frozen=True, kw_only=True)
class FindAndUpdateOperation(_FindAndModifyOperation):
    update: dict[str, Any]
    upsert: bool = False
    return_document: bool = ReturnDocument.BEFORE


@dataclass(frozen=True, kw_only=True)
class FindAndReplaceOperation(_FindAndModifyOperation):
    replacement: dict[str, Any]
    upsert: bool = False
    return_document: bool = ReturnDocument.BEFORE


@dataclass(frozen=True, kw_only=True)
class FindAndRemoveOperation(_FindAndModifyOperation):
    pass


# Map-reduce


@dataclass(frozen=True, kw_only=True)
class _MapReduceOperation:
    namespace: MongoNamespace
    map_function: str
    reduce_function: str
    finalize_function: str | None = None
    filter: dict[str, Any] | None = None
    sort: dict[str, Any] | None = None
    limit: int = 0
    scope: dict[str, Any] | None = None
    js_mode: bool = False
    verbose: bool = True
    max_time_ms: int = 0


@dataclass(frozen=True, kw_only=True)
class MapReduceWithInlineResultsOperation(_MapReduceOperation):
    decoder: Codec
    read_concern: ReadConcern | None = None


@dataclass(frozen=True, kw_only=True)
class MapReduceToCollectionOperation(_MapReduceOperation):
    collection_name: str
    database_name: str | None = None
    action: MapReduceAction = MapReduceAction.REPLACE
    sharded: bool = False
    non_atomic: bool = False
    bypass_document_validation: bool | None = None
    write_concern: WriteConcern | None = None

    @property
    def output_namespace(self) -> MongoNamespace:
        return MongoNamespace(
            self.database_name or self.namespace.database_name,
            self.collection_name,
        )
