"""
MongoView - a mutable, chainable query over one collection.

A view accumulates filter, projection, sort, paging and flags, then
snapshots them into a command descriptor on every terminal call. The
same view can be reused: ``await view.count()`` followed by
``await view.get()`` issues two independent commands.

Example:
    users = db["users"]

    active = users.find({"status": "active"}).sort("name").limit(10)
    total = await active.count()
    async for user in active:
        print(user["name"])

    await users.find({"status": "inactive"}).remove()
    await users.find({"_id": user_id}).upsert().update_one({"$set": {"vip": True}})
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, TypeVar

from pymongo import ReturnDocument

from .cursor import closing
from .helpers import _copy_document, _fields_list_to_dict, _sort_document
from .iterable import MongoIterable
from .map_reduce import MapReduceIterable
from .operations import (
    NO_CURSOR_FLAGS,
    CountOperation,
    CursorFlag,
    FindAndRemoveOperation,
    FindAndReplaceOperation,
    FindAndUpdateOperation,
    FindOperation,
    InsertOperation,
    InsertRequest,
    RemoveOperation,
    RemoveRequest,
    ReplaceOperation,
    ReplaceRequest,
    UpdateOperation,
    UpdateRequest,
)
from .types import ConfigurationError, UnsupportedOperationError, WriteResult

if TYPE_CHECKING:
    from pymongo.read_concern import ReadConcern
    from pymongo.read_preferences import _ServerMode
    from pymongo.write_concern import WriteConcern

    from .collection import Collection
    from .cursor import MongoCursor
    from .types import Filter, Projection, Update

T = TypeVar("T")

__all__ = ["MongoView"]

# Batch size asking the server for one batch and no cursor left open.
_SINGLE_BATCH = -1


class MongoView(MongoIterable[T]):
    """
    Query context for one collection.

    Configuration methods mutate the view and return it for chaining.
    Views are meant to be built and used by a single caller; share the
    descriptors they produce, not the views.
    """

    __slots__ = (
        "_collection",
        "_criteria",
        "_projection",
        "_sort",
        "_skip",
        "_limit",
        "_limit_set",
        "_batch_size",
        "_max_time_ms",
        "_cursor_flags",
        "_modifiers",
        "_upsert",
        "_read_preference",
        "_read_concern",
        "_write_concern",
    )

    def __init__(self, collection: Collection[T]) -> None:
        """
        Initialize an empty view.

        Args:
            collection: The collection the view reads from and writes to.
                Its options supply the default concerns and preference.
        """
        options = collection.options
        self._collection = collection
        self._criteria: dict[str, Any] | None = None
        self._projection: dict[str, Any] | None = None
        self._sort: dict[str, Any] | None = None
        self._skip: int = 0
        self._limit: int = 0
        self._limit_set: bool = False
        self._batch_size: int = 0
        self._max_time_ms: int = 0
        self._cursor_flags: CursorFlag = NO_CURSOR_FLAGS
        self._modifiers: dict[str, Any] | None = None
        self._upsert: bool = False
        self._read_preference: _ServerMode = options.read_preference
        self._read_concern: ReadConcern = options.read_concern
        self._write_concern: WriteConcern = options.write_concern

    @property
    def collection(self) -> Collection[T]:
        return self._collection

    @property
    def read_preference(self) -> _ServerMode:
        return self._read_preference

    @property
    def write_concern(self) -> WriteConcern:
        return self._write_concern

    @property
    def read_concern(self) -> ReadConcern:
        return self._read_concern

    # Configuration

    def find(self, filter: Filter | None) -> MongoView[T]:
        """Set the query filter."""
        self._criteria = _copy_document(filter)
        return self

    def sort(self, key_or_list: Any, direction: int | None = None) -> MongoView[T]:
        """
        Sort the results.

        Args:
            key_or_list: Field name, mapping, or list of (field, direction) tuples.
            direction: Sort direction (1 for ascending, -1 for descending).
                       Only used if key_or_list is a string.
        """
        self._sort = _copy_document(_sort_document(key_or_list, direction))
        return self

    def fields(self, projection: Projection) -> MongoView[T]:
        """Set field projection, as a mapping or a list of field names."""
        self._projection = None if projection is None else _copy_document(
            _fields_list_to_dict(projection)
        )
        return self

    projection = fields

    def skip(self, skip: int) -> MongoView[T]:
        """Skip the first ``skip`` results."""
        if skip < 0:
            raise ConfigurationError(f"skip must be >= 0, not {skip}")
        self._skip = skip
        return self

    def limit(self, limit: int) -> MongoView[T]:
        """Limit the number of results; 0 means no limit."""
        self._limit = limit
        self._limit_set = True
        return self

    def batch_size(self, batch_size: int) -> MongoView[T]:
        self._batch_size = batch_size
        return self

    def max_time(self, max_time_ms: int) -> MongoView[T]:
        """Set the server-side time limit in milliseconds."""
        self._max_time_ms = max_time_ms
        return self

    def cursor_flags(self, flags: CursorFlag) -> MongoView[T]:
        self._cursor_flags = flags
        return self

    def modifiers(self, modifiers: Mapping[str, Any]) -> MongoView[T]:
        """Set query modifiers such as ``$comment`` or ``$hint``."""
        self._modifiers = _copy_document(modifiers)
        return self

    def upsert(self) -> MongoView[T]:
        """Insert a document when an update or replace matches nothing."""
        self._upsert = True
        return self

    def with_read_preference(self, read_preference: _ServerMode) -> MongoView[T]:
        self._read_preference = read_preference
        return self

    def with_read_concern(self, read_concern: ReadConcern) -> MongoView[T]:
        self._read_concern = read_concern
        return self

    def with_write_concern(self, write_concern: WriteConcern) -> MongoView[T]:
        self._write_concern = write_concern
        return self

    # Reads

    def _find_operation(self, batch_size: int | None = None) -> FindOperation:
        return FindOperation(
            namespace=self._collection.namespace,
            decoder=self._collection.codec,
            criteria=_copy_document(self._criteria),
            projection=_copy_document(self._projection),
            sort=_copy_document(self._sort),
            skip=self._skip,
            limit=self._limit,
            batch_size=self._batch_size if batch_size is None else batch_size,
            max_time_ms=self._max_time_ms,
            cursor_flags=self._cursor_flags,
            modifiers=_copy_document(self._modifiers),
            read_concern=self._read_concern,
        )

    async def get(self) -> MongoCursor[T]:
        """
        Run the query.

        Returns:
            A cursor over the matching documents; the caller must close it.
        """
        return await self._collection.execute_read(self._find_operation(), self._read_preference)

    async def iterator(self) -> MongoCursor[T]:
        return await self.get()

    async def get_one(self) -> T | None:
        """
        Return the first matching document, or None.

        Asks for a single batch, so no server cursor is left open.
        """
        cursor = await self._collection.execute_read(
            self._find_operation(batch_size=_SINGLE_BATCH), self._read_preference
        )
        async with closing(cursor):
            return await cursor.try_next()

    async def count(self) -> int:
        """Count matching documents, honouring skip and limit."""
        operation = CountOperation(
            namespace=self._collection.namespace,
            criteria=_copy_document(self._criteria),
            skip=self._skip,
            limit=self._limit,
            max_time_ms=self._max_time_ms,
            read_concern=self._read_concern,
        )
        return await self._collection.execute_read(operation, self._read_preference)

    # Writes

    def _encode(self, value: Any) -> dict[str, Any]:
        return _copy_document(self._collection.codec_registry.encode(value))

    def _insert_request(self, document: T) -> InsertRequest:
        codec = self._collection.codec
        collectible = codec.collectible
        if collectible is not None:
            collectible.generate_id_if_absent(document)
        return InsertRequest(_copy_document(codec.encode(document)))

    async def insert(self, document: T) -> WriteResult:
        """
        Insert a document.

        A missing ``_id`` is generated and set on ``document`` itself
        when the collection's codec supports identities.
        """
        return await self.insert_many([document])

    async def insert_many(self, documents: list[T]) -> WriteResult:
        """Insert documents in order, generating missing ids."""
        operation = InsertOperation(
            namespace=self._collection.namespace,
            write_concern=self._write_concern,
            requests=tuple(self._insert_request(document) for document in documents),
        )
        return await self._collection.execute_write(operation)

    async def save(self, document: T) -> WriteResult:
        """
        Insert ``document``, or replace the stored one with the same ``_id``.

        Raises:
            UnsupportedOperationError: If the document type has no identity.
        """
        codec = self._collection.codec
        collectible = codec.collectible
        if collectible is None:
            raise UnsupportedOperationError(
                f"save is not supported for {codec.document_class.__name__} documents"
            )
        if not collectible.document_has_id(document):
            return await self.insert(document)

        return await (
            MongoView(self._collection)
            .with_write_concern(self._write_concern)
            .find({"_id": collectible.get_document_id(document)})
            .upsert()
            .replace(document)
        )

    def _multi_from_limit(self) -> bool:
        if not self._limit_set:
            return True
        if self._limit == 1:
            return False
        if self._limit == 0:
            return True
        raise ConfigurationError("a removal or update limit must be absent, 0, or 1")

    async def remove(self) -> WriteResult:
        """Remove every match, or one if the limit is 1."""
        request = RemoveRequest(criteria=self._criteria_copy(), multi=self._multi_from_limit())
        return await self._remove(request)

    async def remove_one(self) -> WriteResult:
        """Remove at most one match."""
        return await self._remove(RemoveRequest(criteria=self._criteria_copy(), multi=False))

    async def _remove(self, request: RemoveRequest) -> WriteResult:
        operation = RemoveOperation(
            namespace=self._collection.namespace,
            write_concern=self._write_concern,
            requests=(request,),
        )
        return await self._collection.execute_write(operation)

    async def update(self, update: Update) -> WriteResult:
        """Apply update operators to every match, or one if the limit is 1."""
        return await self._update(update, multi=self._multi_from_limit())

    async def update_one(self, update: Update) -> WriteResult:
        """Apply update operators to at most one match."""
        return await self._update(update, multi=False)

    async def _update(self, update: Update, multi: bool) -> WriteResult:
        request = UpdateRequest(
            criteria=self._criteria_copy(),
            update=_copy_document(update),
            upsert=self._upsert,
            multi=multi,
        )
        operation = UpdateOperation(
            namespace=self._collection.namespace,
            write_concern=self._write_concern,
            requests=(request,),
        )
        return await self._collection.execute_write(operation)

    async def replace(self, replacement: T) -> WriteResult:
        """Replace one matching document with ``replacement``."""
        request = ReplaceRequest(
            criteria=self._criteria_copy(),
            replacement=self._encode(replacement),
            upsert=self._upsert,
        )
        operation = ReplaceOperation(
            namespace=self._collection.namespace,
            write_concern=self._write_concern,
            requests=(request,),
        )
        return await self._collection.execute_write(operation)

    def _criteria_copy(self) -> dict[str, Any]:
        return _copy_document(self._criteria) or {}

    # Find and modify

    async def find_one_and_update(
        self,
        update: Update,
        return_document: bool = ReturnDocument.BEFORE,
    ) -> T | None:
        """
        Update one match and return it.

        Args:
            update: Update operators to apply.
            return_document: ReturnDocument.BEFORE for the original image,
                ReturnDocument.AFTER for the updated one.

        Returns:
            The selected image, or None if nothing matched.
        """
        operation = FindAndUpdateOperation(
            namespace=self._collection.namespace,
            decoder=self._collection.codec,
            criteria=_copy_document(self._criteria),
            projection=_copy_document(self._projection),
            sort=_copy_document(self._sort),
            write_concern=self._write_concern,
            update=_copy_document(update),
            upsert=self._upsert,
            return_document=return_document,
        )
        return await self._collection.execute_write(operation)

    async def find_one_and_replace(
        self,
        replacement: T,
        return_document: bool = ReturnDocument.BEFORE,
    ) -> T | None:
        """Replace one match and return the selected image, or None."""
        operation = FindAndReplaceOperation(
            namespace=self._collection.namespace,
            decoder=self._collection.codec,
            criteria=_copy_document(self._criteria),
            projection=_copy_document(self._projection),
            sort=_copy_document(self._sort),
            write_concern=self._write_concern,
            replacement=self._encode(replacement),
            upsert=self._upsert,
            return_document=return_document,
        )
        return await self._collection.execute_write(operation)

    async def find_one_and_remove(self) -> T | None:
        """Remove one match and return it, or None."""
        operation = FindAndRemoveOperation(
            namespace=self._collection.namespace,
            decoder=self._collection.codec,
            criteria=_copy_document(self._criteria),
            projection=_copy_document(self._projection),
            sort=_copy_document(self._sort),
            write_concern=self._write_concern,
        )
        return await self._collection.execute_write(operation)

    async def update_one_and_get(self, update: Update) -> T | None:
        return await self.find_one_and_update(update, ReturnDocument.AFTER)

    async def get_one_and_update(self, update: Update) -> T | None:
        return await self.find_one_and_update(update, ReturnDocument.BEFORE)

    async def replace_one_and_get(self, replacement: T) -> T | None:
        return await self.find_one_and_replace(replacement, ReturnDocument.AFTER)

    async def get_one_and_replace(self, replacement: T) -> T | None:
        return await self.find_one_and_replace(replacement, ReturnDocument.BEFORE)

    async def get_one_and_remove(self) -> T | None:
        return await self.find_one_and_remove()

    # Map-reduce

    def map_reduce(self, map_function: str, reduce_function: str) -> MapReduceIterable[Any]:
        """
        Map-reduce over the documents this view matches.

        The view's filter and limit become the map-reduce filter and
        limit; further options are set on the returned configuration.
        """
        map_reduce: MapReduceIterable[Any] = MapReduceIterable(
            self._collection,
            map_function,
            reduce_function,
            read_preference=self._read_preference,
            read_concern=self._read_concern,
        )
        return map_reduce.filter(self._criteria).limit(self._limit)

    def __repr__(self) -> str:
        return f"MongoView({self._collection.full_name!r}, {self._criteria!r})"
