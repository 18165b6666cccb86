"""
Map-reduce - inline and output-to-collection execution.

A :class:`MapReduceIterable` starts inline: results come back from the
map-reduce command itself. Naming an output collection switches it, for
good, to writing the results there; reading them then takes a second
command, a find on the output collection, which is only issued once the
map-reduce has completed successfully.

Example:
    counts = orders.map_reduce(
        "function () { emit(this.status, 1); }",
        "function (key, values) { return Array.sum(values); }",
    )
    async for doc in counts:
        print(doc["_id"], doc["value"])

    stats = await (
        orders.map_reduce(map_js, reduce_js)
        .collection_name("order_totals")
        .action(MapReduceAction.MERGE)
        .to_collection()
    )
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Mapping, TypeVar

from pymongo.read_preferences import ReadPreference

from .helpers import _copy_document, _sort_document
from .iterable import MongoIterable, OperationIterable
from .operations import (
    FindOperation,
    MapReduceAction,
    MapReduceToCollectionOperation,
    MapReduceWithInlineResultsOperation,
)
from .types import ConfigurationError

if TYPE_CHECKING:
    from pymongo.read_concern import ReadConcern
    from pymongo.read_preferences import _ServerMode

    from .collection import Collection
    from .cursor import MongoCursor
    from .executor import OperationExecutor
    from .types import MapReduceStatistics

T = TypeVar("T")

__all__ = ["MapReduceIterable", "AwaitingWriteOperationIterable"]

_LOGGER = logging.getLogger(__name__)


class AwaitingWriteOperationIterable(MongoIterable[T]):
    """
    Reads ``delegate`` only after a write operation has succeeded.

    The write runs at most once, on first use. Accessors called while it
    is still running wait for that same run; if it fails, every accessor
    raises its error and the delegate is never read.
    """

    def __init__(
        self,
        operation: Any,
        executor: OperationExecutor,
        delegate: MongoIterable[T],
    ) -> None:
        self._operation = operation
        self._executor = executor
        self._delegate = delegate
        self._resolution: asyncio.Future[Any] | None = None

    @property
    def operation(self) -> Any:
        return self._operation

    @property
    def delegate(self) -> MongoIterable[T]:
        return self._delegate

    async def resolve(self) -> Any:
        """Run the write if it has not run yet and return its result."""
        if self._resolution is None:
            self._resolution = asyncio.ensure_future(
                self._executor.execute_write(self._operation)
            )
        return await asyncio.shield(self._resolution)

    async def iterator(self) -> MongoCursor[T]:
        statistics = await self.resolve()
        _LOGGER.debug(
            "Map-reduce output ready in %s (%s), reading results",
            self._operation.output_namespace,
            statistics,
        )
        return await self._delegate.iterator()


class MapReduceIterable(MongoIterable[T]):
    """
    Map-reduce configuration for one collection.

    Setters mutate the configuration and return it. Each result accessor
    (``first``, ``for_each``, ``into``, ``batch_cursor``, ``async for``)
    runs the map-reduce afresh.
    """

    def __init__(
        self,
        collection: Collection[Any],
        map_function: str,
        reduce_function: str,
        read_preference: _ServerMode | None = None,
        read_concern: ReadConcern | None = None,
        result_class: type = dict,
    ) -> None:
        """
        Initialize an inline map-reduce.

        Args:
            collection: Source collection.
            map_function: JavaScript map function source.
            reduce_function: JavaScript reduce function source.
            read_preference: Read preference for inline runs; defaults to
                the collection's.
            read_concern: Read concern for inline runs; defaults to the
                collection's.
            result_class: Type the results are decoded to.
        """
        self._collection = collection
        self._map_function = map_function
        self._reduce_function = reduce_function
        self._result_codec = collection.codec_registry.get(result_class)
        if read_preference is None:
            read_preference = collection.options.read_preference
        if read_concern is None:
            read_concern = collection.options.read_concern
        self._read_preference = read_preference
        self._read_concern = read_concern

        self._inline = True
        self._collection_name: str | None = None
        self._finalize_function: str | None = None
        self._scope: dict[str, Any] | None = None
        self._filter: dict[str, Any] | None = None
        self._sort: dict[str, Any] | None = None
        self._limit = 0
        self._js_mode = False
        self._verbose = True
        self._max_time_ms = 0
        self._action = MapReduceAction.REPLACE
        self._database_name: str | None = None
        self._sharded = False
        self._non_atomic = False
        self._batch_size = 0
        self._bypass_document_validation: bool | None = None

    @property
    def inline(self) -> bool:
        return self._inline

    def collection_name(self, collection_name: str) -> MapReduceIterable[T]:
        """Write results to ``collection_name`` instead of returning them inline."""
        if not collection_name:
            raise ConfigurationError("collection_name must be a non-empty string")
        self._collection_name = collection_name
        self._inline = False
        return self

    def finalize_function(self, finalize_function: str | None) -> MapReduceIterable[T]:
        self._finalize_function = finalize_function
        return self

    def scope(self, scope: Mapping[str, Any] | None) -> MapReduceIterable[T]:
        """Set global variables visible to the map, reduce and finalize functions."""
        self._scope = _copy_document(scope)
        return self

    def sort(self, key_or_list: Any, direction: int | None = None) -> MapReduceIterable[T]:
        self._sort = None if key_or_list is None else _sort_document(key_or_list, direction)
        return self

    def filter(self, filter: Mapping[str, Any] | None) -> MapReduceIterable[T]:
        self._filter = _copy_document(filter)
        return self

    def limit(self, limit: int) -> MapReduceIterable[T]:
        self._limit = limit
        return self

    def js_mode(self, js_mode: bool) -> MapReduceIterable[T]:
        self._js_mode = js_mode
        return self

    def verbose(self, verbose: bool) -> MapReduceIterable[T]:
        self._verbose = verbose
        return self

    def max_time(self, max_time_ms: int) -> MapReduceIterable[T]:
        """Set the server-side time limit in milliseconds."""
        self._max_time_ms = max_time_ms
        return self

    def action(self, action: MapReduceAction | str) -> MapReduceIterable[T]:
        """Set what happens to an existing output collection."""
        self._action = MapReduceAction(action)
        return self

    def database_name(self, database_name: str | None) -> MapReduceIterable[T]:
        """Write the output collection into another database."""
        self._database_name = database_name
        return self

    def sharded(self, sharded: bool) -> MapReduceIterable[T]:
        self._sharded = sharded
        return self

    def non_atomic(self, non_atomic: bool) -> MapReduceIterable[T]:
        self._non_atomic = non_atomic
        return self

    def batch_size(self, batch_size: int) -> MapReduceIterable[T]:
        """Batch size for reading back results from the output collection."""
        self._batch_size = batch_size
        return self

    def bypass_document_validation(self, bypass: bool | None) -> MapReduceIterable[T]:
        self._bypass_document_validation = bypass
        return self

    async def to_collection(self) -> MapReduceStatistics:
        """
        Run the map-reduce into the output collection without reading it back.

        Raises:
            ConfigurationError: If no output collection has been set.
        """
        operation = self._to_collection_operation()
        return await self._collection.execute_write(operation)

    def execute(self) -> MongoIterable[T]:
        """
        Plan one run of the map-reduce.

        Returns:
            An iterable issuing the inline command, or one that runs the
            map-reduce into its output collection and then reads that.
        """
        if self._inline:
            return OperationIterable(
                self._inline_operation(),
                self._read_preference,
                self._collection.executor,
            )

        operation = self._to_collection_operation()
        find = FindOperation(
            namespace=operation.output_namespace,
            decoder=self._result_codec,
            criteria={},
            batch_size=self._batch_size,
            read_concern=self._read_concern,
        )
        delegate: OperationIterable[T] = OperationIterable(
            find, ReadPreference.PRIMARY, self._collection.executor
        )
        return AwaitingWriteOperationIterable(operation, self._collection.executor, delegate)

    async def iterator(self) -> MongoCursor[T]:
        return await self.execute().iterator()

    def _common_options(self) -> dict[str, Any]:
        return dict(
            namespace=self._collection.namespace,
            map_function=self._map_function,
            reduce_function=self._reduce_function,
            finalize_function=self._finalize_function,
            filter=_copy_document(self._filter),
            sort=_copy_document(self._sort),
            limit=self._limit,
            scope=_copy_document(self._scope),
            js_mode=self._js_mode,
            verbose=self._verbose,
            max_time_ms=self._max_time_ms,
        )

    def _inline_operation(self) -> MapReduceWithInlineResultsOperation:
        return MapReduceWithInlineResultsOperation(
            decoder=self._result_codec,
            read_concern=self._read_concern,
            **self._common_options(),
        )

    def _to_collection_operation(self) -> MapReduceToCollectionOperation:
        if self._inline or self._collection_name is None:
            raise ConfigurationError("The options must specify a non-inline result")
        return MapReduceToCollectionOperation(
            collection_name=self._collection_name,
            database_name=self._database_name,
            action=self._action,
            sharded=self._sharded,
            non_atomic=self._non_atomic,
            bypass_document_validation=self._bypass_document_validation,
            write_concern=self._collection.options.write_concern,
            **self._common_options(),
        )

    def __repr__(self) -> str:
        target = "inline" if self._inline else repr(self._collection_name)
        return f"MapReduceIterable({self._collection.full_name!r}, {target})"
