"""
Collection - entry point for views, pipelines and map-reduce.

A collection holds its namespace, options and codec, and hands out the
builders that describe reads and writes against it. All commands go
through the executor of the owning client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .map_reduce import MapReduceIterable
from .operations import MongoNamespace
from .pipeline import MongoPipeline
from .view import MongoView

if TYPE_CHECKING:
    from pymongo.read_preferences import _ServerMode
    from pymongo.write_concern import WriteConcern

    from .codec import Codec, CodecRegistry
    from .database import Database
    from .executor import OperationExecutor
    from .options import CollectionOptions
    from .types import Filter, WriteResult

T = TypeVar("T")

__all__ = ["Collection"]


class Collection(Generic[T]):
    """
    MongoDB collection.

    Example:
        users = db["users"]

        # Insert
        result = await users.insert({"name": "Alice"})

        # Find
        alice = await users.find({"name": "Alice"}).get_one()
        async for user in users.find({"status": "active"}).sort("name"):
            print(user)

        # Update
        await users.find({"name": "Alice"}).update_one({"$set": {"status": "vip"}})

        # Delete
        await users.find({"name": "Alice"}).remove_one()
    """

    __slots__ = ("_database", "_name", "_namespace", "_document_class", "_options", "_codec")

    def __init__(
        self,
        database: Database,
        name: str,
        document_class: type[T] = dict,  # type: ignore[assignment]
        options: CollectionOptions | None = None,
    ) -> None:
        """
        Initialize a collection.

        Args:
            database: Parent database instance.
            name: Collection name.
            document_class: Type documents are decoded to and encoded from.
            options: Overrides of the database's options.
        """
        self._database = database
        self._name = name
        self._namespace = MongoNamespace(database.name, name)
        self._document_class = document_class
        if options is None:
            self._options = database.options
        else:
            self._options = options.with_defaults(database.options)
        self._codec: Codec[T] = self._options.codec_registry.get(document_class)

    @property
    def name(self) -> str:
        """Get the collection name."""
        return self._name

    @property
    def full_name(self) -> str:
        """Get the full collection name (database.collection)."""
        return self._namespace.full_name

    @property
    def namespace(self) -> MongoNamespace:
        return self._namespace

    @property
    def database(self) -> Database:
        """Get the parent database."""
        return self._database

    @property
    def document_class(self) -> type[T]:
        return self._document_class

    @property
    def options(self) -> CollectionOptions:
        return self._options

    @property
    def codec(self) -> Codec[T]:
        return self._codec

    @property
    def codec_registry(self) -> CodecRegistry:
        return self._options.codec_registry

    @property
    def executor(self) -> OperationExecutor:
        return self._database.client.executor

    async def execute_read(self, operation: Any, read_preference: _ServerMode) -> Any:
        return await self.executor.execute_read(operation, read_preference)

    async def execute_write(self, operation: Any) -> Any:
        return await self.executor.execute_write(operation)

    def find(self, filter: Filter | None = None) -> MongoView[T]:
        """
        Start a view over the documents matching ``filter``.

        Example:
            async for doc in collection.find({"status": "active"}):
                print(doc)

            docs = await collection.find({}).sort("name").limit(10).to_list()
        """
        return MongoView(self).find(filter)

    async def find_one(self, filter: Filter | None = None) -> T | None:
        """Find a single document, or None."""
        return await self.find(filter).get_one()

    async def count(self, filter: Filter | None = None) -> int:
        return await self.find(filter).count()

    async def insert(self, document: T) -> WriteResult:
        """Insert a document, generating its _id if missing."""
        return await MongoView(self).insert(document)

    async def insert_many(self, documents: list[T]) -> WriteResult:
        return await MongoView(self).insert_many(documents)

    async def save(self, document: T) -> WriteResult:
        """Insert ``document`` or replace the stored document with its _id."""
        return await MongoView(self).save(document)

    def with_write_concern(self, write_concern: WriteConcern) -> MongoView[T]:
        return MongoView(self).with_write_concern(write_concern)

    def with_read_preference(self, read_preference: _ServerMode) -> MongoView[T]:
        return MongoView(self).with_read_preference(read_preference)

    def pipe(self) -> MongoPipeline[T]:
        """Start an empty aggregation pipeline."""
        return MongoPipeline(self)

    def map_reduce(
        self,
        map_function: str,
        reduce_function: str,
        result_class: type = dict,
    ) -> MapReduceIterable[Any]:
        """Start an inline map-reduce over the whole collection."""
        return MapReduceIterable(self, map_function, reduce_function, result_class=result_class)

    def __repr__(self) -> str:
        return f"Collection({self.full_name!r})"
