"""
Executor - the bridge between command descriptors and an engine.

Views, pipelines and map-reduce configurations depend only on
:class:`OperationExecutor`: submit a descriptor, receive exactly one
outcome. :class:`RpcExecutor` runs descriptors over an ``rpc_do`` client;
:class:`CallbackExecutor` adapts engines that report completion through a
single-invocation callback.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import functools
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Protocol

from .cursor import MongoCursor
from .logger import _COMMAND_LOGGER, _CommandStatusMessage, _debug_log
from .operations import (
    AggregateOperation,
    CountOperation,
    CursorFlag,
    FindAndRemoveOperation,
    FindAndReplaceOperation,
    FindAndUpdateOperation,
    FindOperation,
    InsertOperation,
    MapReduceToCollectionOperation,
    MapReduceWithInlineResultsOperation,
    RemoveOperation,
    ReplaceOperation,
    UpdateOperation,
)
from .types import (
    DuplicateKeyError,
    MapReduceStatistics,
    MongoError,
    OperationFailure,
    WriteError,
    WriteResult,
)

if TYPE_CHECKING:
    from pymongo.read_concern import ReadConcern
    from pymongo.read_preferences import _ServerMode
    from pymongo.write_concern import WriteConcern
    from rpc_do import RpcClient

    from .operations import MongoNamespace

__all__ = [
    "OperationExecutor",
    "RpcExecutor",
    "CallbackEngine",
    "CallbackExecutor",
    "SingleResultCallback",
    "to_callback",
]

SingleResultCallback = Callable[[Any, Optional[BaseException]], None]

_CURSOR_FLAG_OPTIONS = {
    CursorFlag.TAILABLE: "tailable",
    CursorFlag.SLAVE_OK: "secondaryOk",
    CursorFlag.NO_CURSOR_TIMEOUT: "noCursorTimeout",
    CursorFlag.AWAIT_DATA: "awaitData",
    CursorFlag.EXHAUST: "exhaust",
    CursorFlag.PARTIAL: "allowPartialResults",
}


class OperationExecutor:
    """The read and write contracts every engine must provide."""

    async def execute_read(self, operation: Any, read_preference: _ServerMode) -> Any:
        """Run a read descriptor; returns a cursor or a scalar."""
        raise NotImplementedError

    async def execute_write(self, operation: Any) -> Any:
        """Run a write descriptor; returns its result."""
        raise NotImplementedError


def _is_duplicate_key(message: str) -> bool:
    return "duplicate" in message.lower() or "E11000" in message


def _check_write_reply(result: Any, default_message: str) -> None:
    if isinstance(result, dict) and result.get("error"):
        error_msg = result.get("message", default_message)
        code = result.get("code")
        if code == 11000 or _is_duplicate_key(error_msg):
            raise DuplicateKeyError(error_msg, code)
        raise WriteError(error_msg, code)


def _check_read_reply(result: Any, default_message: str) -> None:
    if isinstance(result, dict) and result.get("error"):
        raise OperationFailure(result.get("message", default_message), result.get("code"))


def _write_options(write_concern: WriteConcern | None, **options: Any) -> dict[str, Any]:
    if write_concern is not None and write_concern.document:
        options["writeConcern"] = write_concern.document
    return options


def _read_options(
    read_preference: _ServerMode | None,
    read_concern: ReadConcern | None,
    **options: Any,
) -> dict[str, Any]:
    if read_preference is not None:
        options["readPreference"] = read_preference.document
    if read_concern is not None and read_concern.document:
        options["readConcern"] = read_concern.document
    return options


def _sort_list(sort: dict[str, Any] | None) -> list[tuple[str, Any]] | None:
    return list(sort.items()) if sort else None


def _command_document(command_name: str, operation: Any) -> dict[str, Any]:
    """Describe ``operation`` as a command document for the log."""
    command: dict[str, Any] = {command_name: operation.namespace.collection_name}
    for field in dataclasses.fields(operation):
        if field.name in ("namespace", "decoder"):
            continue
        value = getattr(operation, field.name)
        if value is not None:
            command[field.name] = value
    return command


def _logged(command_name: str) -> Callable[..., Any]:
    """Log the start, success or failure of one engine call."""

    def decorator(method: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(method)
        async def wrapper(self: Any, operation: Any, *args: Any) -> Any:
            namespace: MongoNamespace = operation.namespace
            if _COMMAND_LOGGER.isEnabledFor(logging.DEBUG):
                _debug_log(
                    _COMMAND_LOGGER,
                    message=_CommandStatusMessage.STARTED,
                    command=_command_document(command_name, operation),
                    commandName=command_name,
                    databaseName=namespace.database_name,
                    collectionName=namespace.collection_name,
                )
            start = time.monotonic()
            try:
                result = await method(self, operation, *args)
            except Exception as exc:
                if _COMMAND_LOGGER.isEnabledFor(logging.DEBUG):
                    _debug_log(
                        _COMMAND_LOGGER,
                        message=_CommandStatusMessage.FAILED,
                        commandName=command_name,
                        databaseName=namespace.database_name,
                        collectionName=namespace.collection_name,
                        durationMS=datetime.timedelta(seconds=time.monotonic() - start),
                        failure=repr(exc),
                    )
                raise
            if _COMMAND_LOGGER.isEnabledFor(logging.DEBUG):
                _debug_log(
                    _COMMAND_LOGGER,
                    message=_CommandStatusMessage.SUCCEEDED,
                    commandName=command_name,
                    databaseName=namespace.database_name,
                    collectionName=namespace.collection_name,
                    durationMS=datetime.timedelta(seconds=time.monotonic() - start),
                )
            return result

        return wrapper

    return decorator


class RpcExecutor(OperationExecutor):
    """
    Executor backed by the ``rpc.mongo`` namespace of an ``rpc_do`` client.

    Example:
        rpc = await rpc_do.connect("https://mongo.do")
        executor = RpcExecutor(rpc)
        cursor = await executor.execute_read(find_operation, ReadPreference.PRIMARY)
    """

    __slots__ = ("_rpc",)

    def __init__(self, rpc: RpcClient) -> None:
        """
        Initialize an executor.

        Args:
            rpc: The RPC client for making calls.
        """
        self._rpc = rpc

    @property
    def rpc(self) -> RpcClient:
        return self._rpc

    async def execute_read(self, operation: Any, read_preference: _ServerMode) -> Any:
        return await self._read(operation, read_preference)

    async def execute_write(self, operation: Any) -> Any:
        return await self._write(operation)

    @functools.singledispatchmethod
    async def _read(self, operation: Any, read_preference: _ServerMode) -> Any:
        raise TypeError(f"Not a read operation: {type(operation).__name__}")

    @_read.register(FindOperation)
    @_logged("find")
    async def _find(self, operation: FindOperation, read_preference: _ServerMode) -> MongoCursor[Any]:
        options = _read_options(read_preference, operation.read_concern)
        if operation.projection:
            options["projection"] = operation.projection
        if operation.sort:
            options["sort"] = _sort_list(operation.sort)
        if operation.skip > 0:
            options["skip"] = operation.skip
        if operation.limit:
            options["limit"] = abs(operation.limit)
        if operation.batch_size < 0:
            options["limit"] = abs(operation.batch_size)
            options["singleBatch"] = True
        elif operation.batch_size > 0:
            options["batchSize"] = operation.batch_size
        if operation.max_time_ms:
            options["maxTimeMS"] = operation.max_time_ms
        if operation.modifiers:
            options["modifiers"] = operation.modifiers
        for flag, name in _CURSOR_FLAG_OPTIONS.items():
            if flag in operation.cursor_flags:
                options[name] = True

        ns = operation.namespace
        try:
            result = await self._rpc.mongo.find(
                ns.database_name,
                ns.collection_name,
                operation.criteria or {},
                options,
            )
        except MongoError:
            raise
        except Exception as e:
            raise OperationFailure(str(e)) from e

        _check_read_reply(result, "Find failed")
        documents = result if isinstance(result, list) else []
        return MongoCursor(
            (operation.decoder.decode(doc) for doc in documents),
            operation.batch_size,
        )

    @_read.register(CountOperation)
    @_logged("count")
    async def _count(self, operation: CountOperation, read_preference: _ServerMode) -> int:
        options = _read_options(read_preference, operation.read_concern)
        if operation.skip > 0:
            options["skip"] = operation.skip
        if operation.limit:
            options["limit"] = abs(operation.limit)
        if operation.max_time_ms:
            options["maxTimeMS"] = operation.max_time_ms

        ns = operation.namespace
        try:
            result = await self._rpc.mongo.countDocuments(
                ns.database_name,
                ns.collection_name,
                operation.criteria or {},
                options,
            )
        except MongoError:
            raise
        except Exception as e:
            raise OperationFailure(str(e)) from e

        _check_read_reply(result, "Count failed")
        return result if isinstance(result, int) else 0

    @_read.register(AggregateOperation)
    @_logged("aggregate")
    async def _aggregate(
        self, operation: AggregateOperation, read_preference: _ServerMode
    ) -> MongoCursor[Any]:
        ns = operation.namespace
        try:
            result = await self._rpc.mongo.aggregate(
                ns.database_name,
                ns.collection_name,
                list(operation.pipeline),
                _read_options(read_preference, operation.read_concern),
            )
        except MongoError:
            raise
        except Exception as e:
            raise OperationFailure(str(e)) from e

        _check_read_reply(result, "Aggregate failed")
        documents = result if isinstance(result, list) else []
        return MongoCursor(operation.decoder.decode(doc) for doc in documents)

    @_read.register(MapReduceWithInlineResultsOperation)
    @_logged("mapReduce")
    async def _map_reduce_inline(
        self, operation: MapReduceWithInlineResultsOperation, read_preference: _ServerMode
    ) -> MongoCursor[Any]:
        options = _read_options(read_preference, operation.read_concern)
        options.update(self._map_reduce_options(operation))
        options["out"] = {"inline": 1}

        ns = operation.namespace
        try:
            result = await self._rpc.mongo.mapReduce(
                ns.database_name,
                ns.collection_name,
                operation.map_function,
                operation.reduce_function,
                options,
            )
        except MongoError:
            raise
        except Exception as e:
            raise OperationFailure(str(e)) from e

        _check_read_reply(result, "Map-reduce failed")
        documents = result if isinstance(result, list) else []
        return MongoCursor(operation.decoder.decode(doc) for doc in documents)

    @staticmethod
    def _map_reduce_options(operation: Any) -> dict[str, Any]:
        options: dict[str, Any] = {"verbose": operation.verbose}
        if operation.finalize_function is not None:
            options["finalize"] = operation.finalize_function
        if operation.filter:
            options["query"] = operation.filter
        if operation.sort:
            options["sort"] = operation.sort
        if operation.limit:
            options["limit"] = operation.limit
        if operation.scope:
            options["scope"] = operation.scope
        if operation.js_mode:
            options["jsMode"] = True
        if operation.max_time_ms:
            options["maxTimeMS"] = operation.max_time_ms
        return options

    @functools.singledispatchmethod
    async def _write(self, operation: Any) -> Any:
        raise TypeError(f"Not a write operation: {type(operation).__name__}")

    @_write.register(InsertOperation)
    @_logged("insert")
    async def _insert(self, operation: InsertOperation) -> WriteResult:
        docs = [request.document for request in operation.requests]
        ns = operation.namespace
        try:
            result = await self._rpc.mongo.insertMany(
                ns.database_name,
                ns.collection_name,
                docs,
                _write_options(operation.write_concern, ordered=operation.ordered),
            )
        except MongoError:
            raise
        except Exception as e:
            raise WriteError(str(e)) from e

        _check_write_reply(result, "Insert failed")
        inserted_ids = [doc.get("_id") for doc in docs]
        acknowledged = operation.write_concern.acknowledged
        if isinstance(result, dict):
            inserted_ids = result.get("insertedIds", inserted_ids)
            acknowledged = result.get("acknowledged", acknowledged)
        return WriteResult(
            count=len(docs),
            inserted_ids=list(inserted_ids),
            acknowledged=acknowledged,
        )

    @_write.register(UpdateOperation)
    @_logged("update")
    async def _update(self, operation: UpdateOperation) -> WriteResult:
        total = WriteResult(acknowledged=operation.write_concern.acknowledged)
        ns = operation.namespace
        for request in operation.requests:
            method = self._rpc.mongo.updateMany if request.multi else self._rpc.mongo.updateOne
            try:
                result = await method(
                    ns.database_name,
                    ns.collection_name,
                    request.criteria,
                    request.update,
                    _write_options(operation.write_concern, upsert=request.upsert),
                )
            except MongoError:
                raise
            except Exception as e:
                raise WriteError(str(e)) from e

            _check_write_reply(result, "Update failed")
            self._merge_update_reply(total, result)
        return total

    @_write.register(ReplaceOperation)
    @_logged("update")
    async def _replace(self, operation: ReplaceOperation) -> WriteResult:
        total = WriteResult(acknowledged=operation.write_concern.acknowledged)
        ns = operation.namespace
        for request in operation.requests:
            try:
                result = await self._rpc.mongo.replaceOne(
                    ns.database_name,
                    ns.collection_name,
                    request.criteria,
                    request.replacement,
                    _write_options(operation.write_concern, upsert=request.upsert),
                )
            except MongoError:
                raise
            except Exception as e:
                raise WriteError(str(e)) from e

            _check_write_reply(result, "Replace failed")
            self._merge_update_reply(total, result)
        return total

    @staticmethod
    def _merge_update_reply(total: WriteResult, result: Any) -> None:
        if not isinstance(result, dict):
            return
        matched = result.get("matchedCount", 0)
        total.update_of_existing = total.update_of_existing or matched > 0
        if result.get("upsertedId") is not None:
            total.upserted_id = result["upsertedId"]
            matched += 1
        total.count += matched
        total.acknowledged = result.get("acknowledged", total.acknowledged)

    @_write.register(RemoveOperation)
    @_logged("delete")
    async def _remove(self, operation: RemoveOperation) -> WriteResult:
        total = WriteResult(acknowledged=operation.write_concern.acknowledged)
        ns = operation.namespace
        for request in operation.requests:
            method = self._rpc.mongo.deleteMany if request.multi else self._rpc.mongo.deleteOne
            try:
                result = await method(
                    ns.database_name,
                    ns.collection_name,
                    request.criteria,
                    _write_options(operation.write_concern),
                )
            except MongoError:
                raise
            except Exception as e:
                raise WriteError(str(e)) from e

            _check_write_reply(result, "Delete failed")
            if isinstance(result, dict):
                total.count += result.get("deletedCount", 0)
                total.acknowledged = result.get("acknowledged", total.acknowledged)
        return total

    @_write.register(FindAndUpdateOperation)
    @_logged("findAndModify")
    async def _find_and_update(self, operation: FindAndUpdateOperation) -> Any:
        options = self._find_and_modify_options(operation)
        options["upsert"] = operation.upsert
        options["returnDocument"] = "after" if operation.return_document else "before"

        ns = operation.namespace
        try:
            result = await self._rpc.mongo.findOneAndUpdate(
                ns.database_name,
                ns.collection_name,
                operation.criteria or {},
                operation.update,
                options,
            )
        except MongoError:
            raise
        except Exception as e:
            raise WriteError(str(e)) from e

        return self._decode_image(operation, result)

    @_write.register(FindAndReplaceOperation)
    @_logged("findAndModify")
    async def _find_and_replace(self, operation: FindAndReplaceOperation) -> Any:
        options = self._find_and_modify_options(operation)
        options["upsert"] = operation.upsert
        options["returnDocument"] = "after" if operation.return_document else "before"

        ns = operation.namespace
        try:
            result = await self._rpc.mongo.findOneAndReplace(
                ns.database_name,
                ns.collection_name,
                operation.criteria or {},
                operation.replacement,
                options,
            )
        except MongoError:
            raise
        except Exception as e:
            raise WriteError(str(e)) from e

        return self._decode_image(operation, result)

    @_write.register(FindAndRemoveOperation)
    @_logged("findAndModify")
    async def _find_and_remove(self, operation: FindAndRemoveOperation) -> Any:
        ns = operation.namespace
        try:
            result = await self._rpc.mongo.findOneAndDelete(
                ns.database_name,
                ns.collection_name,
                operation.criteria or {},
                self._find_and_modify_options(operation),
            )
        except MongoError:
            raise
        except Exception as e:
            raise WriteError(str(e)) from e

        return self._decode_image(operation, result)

    @staticmethod
    def _find_and_modify_options(operation: Any) -> dict[str, Any]:
        options = _write_options(operation.write_concern)
        if operation.projection:
            options["projection"] = operation.projection
        if operation.sort:
            options["sort"] = _sort_list(operation.sort)
        return options

    @staticmethod
    def _decode_image(operation: Any, result: Any) -> Any:
        _check_write_reply(result, "Find and modify failed")
        if result is None:
            return None
        return operation.decoder.decode(result)

    @_write.register(MapReduceToCollectionOperation)
    @_logged("mapReduce")
    async def _map_reduce_to_collection(
        self, operation: MapReduceToCollectionOperation
    ) -> MapReduceStatistics:
        out: dict[str, Any] = {operation.action.value: operation.collection_name}
        if operation.database_name is not None:
            out["db"] = operation.database_name
        if operation.sharded:
            out["sharded"] = True
        if operation.non_atomic:
            out["nonAtomic"] = True
        options = _write_options(operation.write_concern, **self._map_reduce_options(operation))
        options["out"] = out
        if operation.bypass_document_validation is not None:
            options["bypassDocumentValidation"] = operation.bypass_document_validation

        ns = operation.namespace
        try:
            result = await self._rpc.mongo.mapReduce(
                ns.database_name,
                ns.collection_name,
                operation.map_function,
                operation.reduce_function,
                options,
            )
        except MongoError:
            raise
        except Exception as e:
            raise WriteError(str(e)) from e

        _check_write_reply(result, "Map-reduce failed")
        if not isinstance(result, dict):
            return MapReduceStatistics()
        counts = result.get("counts", result)
        return MapReduceStatistics(
            input_count=counts.get("input", 0),
            emit_count=counts.get("emit", 0),
            output_count=counts.get("output", 0),
            duration=result.get("timeMillis", result.get("duration", 0)),
        )


class CallbackEngine(Protocol):
    def execute_read(
        self, operation: Any, read_preference: _ServerMode, callback: SingleResultCallback
    ) -> None: ...

    def execute_write(self, operation: Any, callback: SingleResultCallback) -> None: ...


def _settle(future: asyncio.Future[Any], result: Any, error: BaseException | None) -> None:
    # The awaiting task may have been cancelled before the engine answered.
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


def _completion(future: asyncio.Future[Any]) -> SingleResultCallback:
    loop = future.get_loop()

    def on_result(result: Any, error: BaseException | None) -> None:
        loop.call_soon_threadsafe(_settle, future, result, error)

    return on_result


class CallbackExecutor(OperationExecutor):
    """
    Adapts an engine that reports completion through ``callback(result, error)``.

    The engine may invoke the callback from any thread; the outcome is
    handed back to the awaiting task on its own event loop.
    """

    __slots__ = ("_engine",)

    def __init__(self, engine: CallbackEngine) -> None:
        self._engine = engine

    async def execute_read(self, operation: Any, read_preference: _ServerMode) -> Any:
        future = asyncio.get_running_loop().create_future()
        self._engine.execute_read(operation, read_preference, _completion(future))
        return await future

    async def execute_write(self, operation: Any) -> Any:
        future = asyncio.get_running_loop().create_future()
        self._engine.execute_write(operation, _completion(future))
        return await future


def to_callback(awaitable: Awaitable[Any], callback: SingleResultCallback) -> asyncio.Task[Any]:
    """
    Run ``awaitable`` as a task and report its outcome to ``callback``.

    The callback receives ``(result, None)`` on success or
    ``(None, error)`` on failure, exactly once.
    """

    async def run() -> Any:
        return await awaitable

    task = asyncio.get_running_loop().create_task(run())

    def done(finished: asyncio.Task[Any]) -> None:
        if finished.cancelled():
            callback(None, asyncio.CancelledError())
        elif finished.exception() is not None:
            callback(None, finished.exception())
        else:
            callback(finished.result(), None)

    task.add_done_callback(done)
    return task
