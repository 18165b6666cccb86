"""
Pytest fixtures for mongo-view tests.

Provides a mocked RPC client, a recording executor and MongoClient
fixtures for testing without actual network connections.
"""

from __future__ import annotations

import sys
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from mongo_view import MongoCursor, OperationExecutor, WriteResult
from mongo_view.operations import CountOperation


class MockRpcMongo:
    """Mock for the RPC mongo namespace."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        # Inline map-reduce results, also written out for output runs.
        self.map_reduce_results: list[dict[str, Any]] = []
        self.map_reduce_error: str | None = None

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def last_call(self, name: str) -> tuple[Any, ...]:
        for call_name, args in reversed(self.calls):
            if call_name == name:
                return args
        raise AssertionError(f"{name} was not called")

    def _get_collection_data(self, database: str, collection: str) -> list[dict[str, Any]]:
        """Get or create collection data."""
        if database not in self._data:
            self._data[database] = {}
        if collection not in self._data[database]:
            self._data[database][collection] = []
        return self._data[database][collection]

    async def insertMany(
        self,
        database: str,
        collection: str,
        documents: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """Mock insertMany."""
        self._record("insertMany", database, collection, documents, options)
        data = self._get_collection_data(database, collection)
        existing = {doc.get("_id") for doc in data}
        for doc in documents:
            if doc.get("_id") in existing:
                return {"error": True, "message": "E11000 duplicate key error"}
        inserted_ids = []
        for doc in documents:
            data.append(dict(doc))
            inserted_ids.append(doc.get("_id"))
        return {"insertedIds": inserted_ids, "acknowledged": True}

    async def find(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Mock find."""
        self._record("find", database, collection, filter, options)
        data = self._get_collection_data(database, collection)
        results = [dict(doc) for doc in data if self._matches(doc, filter)]

        # Apply sort
        results = self._sort(results, options.get("sort"))

        # Apply skip
        skip = options.get("skip", 0)
        if skip:
            results = results[skip:]

        # Apply limit
        limit = options.get("limit", 0)
        if limit:
            results = results[:limit]

        # Apply projection
        projection = options.get("projection")
        if projection:
            results = [self._project(doc, projection) for doc in results]

        return results

    async def countDocuments(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> int:
        """Mock countDocuments."""
        self._record("countDocuments", database, collection, filter, options)
        data = self._get_collection_data(database, collection)
        count = sum(1 for doc in data if self._matches(doc, filter))
        count = max(count - options.get("skip", 0), 0)
        if options.get("limit"):
            count = min(count, options["limit"])
        return count

    async def aggregate(
        self,
        database: str,
        collection: str,
        pipeline: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Mock aggregate (simplified)."""
        self._record("aggregate", database, collection, pipeline, options)
        results = [dict(doc) for doc in self._get_collection_data(database, collection)]
        for stage in pipeline:
            op, arg = next(iter(stage.items()))
            if op == "$match":
                results = [doc for doc in results if self._matches(doc, arg)]
            elif op == "$sort":
                results = self._sort(results, list(arg.items()))
            elif op == "$skip":
                results = results[arg:]
            elif op == "$limit":
                results = results[:arg]
            elif op == "$project":
                results = [self._project(doc, arg) for doc in results]
        return results

    async def mapReduce(
        self,
        database: str,
        collection: str,
        map_function: str,
        reduce_function: str,
        options: dict[str, Any],
    ) -> Any:
        """Mock mapReduce returning the configured results."""
        self._record("mapReduce", database, collection, map_function, reduce_function, options)
        if self.map_reduce_error is not None:
            return {"error": True, "message": self.map_reduce_error}

        out = options["out"]
        results = [dict(doc) for doc in self.map_reduce_results]
        if "inline" in out:
            return results

        action = next(key for key in out if key in ("replace", "merge", "reduce"))
        target = self._get_collection_data(out.get("db", database), out[action])
        if action == "replace":
            target.clear()
        target.extend(results)
        return {
            "counts": {
                "input": len(self._get_collection_data(database, collection)),
                "emit": len(results),
                "output": len(results),
            },
            "timeMillis": 5,
        }

    async def updateOne(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        update: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """Mock updateOne."""
        self._record("updateOne", database, collection, filter, update, options)
        return self._update(database, collection, filter, update, options, multi=False)

    async def updateMany(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        update: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """Mock updateMany."""
        self._record("updateMany", database, collection, filter, update, options)
        return self._update(database, collection, filter, update, options, multi=True)

    def _update(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        update: dict[str, Any],
        options: dict[str, Any],
        multi: bool,
    ) -> dict[str, Any]:
        data = self._get_collection_data(database, collection)
        matched = 0
        modified = 0
        upserted_id = None

        for doc in data:
            if self._matches(doc, filter):
                matched += 1
                if self._apply_update(doc, update):
                    modified += 1
                if not multi:
                    break

        if matched == 0 and options.get("upsert"):
            new_doc = {k: v for k, v in filter.items() if not k.startswith("$")}
            self._apply_update(new_doc, update)
            if "_id" not in new_doc:
                new_doc["_id"] = "upserted-id"
            data.append(new_doc)
            upserted_id = new_doc["_id"]

        return {
            "matchedCount": matched,
            "modifiedCount": modified,
            "upsertedId": upserted_id,
            "acknowledged": True,
        }

    async def replaceOne(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        replacement: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """Mock replaceOne."""
        self._record("replaceOne", database, collection, filter, replacement, options)
        data = self._get_collection_data(database, collection)
        matched = 0
        upserted_id = None

        for i, doc in enumerate(data):
            if self._matches(doc, filter):
                matched += 1
                old_id = doc.get("_id")
                data[i] = dict(replacement)
                if old_id and "_id" not in replacement:
                    data[i]["_id"] = old_id
                break

        if matched == 0 and options.get("upsert"):
            new_doc = dict(replacement)
            if "_id" not in new_doc:
                new_doc["_id"] = filter.get("_id", "upserted-id")
            data.append(new_doc)
            upserted_id = new_doc["_id"]

        return {
            "matchedCount": matched,
            "modifiedCount": matched,
            "upsertedId": upserted_id,
            "acknowledged": True,
        }

    async def deleteOne(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """Mock deleteOne."""
        self._record("deleteOne", database, collection, filter, options)
        data = self._get_collection_data(database, collection)
        deleted = 0

        for i, doc in enumerate(data):
            if self._matches(doc, filter):
                del data[i]
                deleted += 1
                break

        return {"deletedCount": deleted, "acknowledged": True}

    async def deleteMany(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """Mock deleteMany."""
        self._record("deleteMany", database, collection, filter, options)
        data = self._get_collection_data(database, collection)
        original_len = len(data)

        self._data[database][collection] = [
            doc for doc in data if not self._matches(doc, filter)
        ]
        deleted = original_len - len(self._data[database][collection])

        return {"deletedCount": deleted, "acknowledged": True}

    async def findOneAndUpdate(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        update: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Mock findOneAndUpdate."""
        self._record("findOneAndUpdate", database, collection, filter, update, options)
        doc = self._first(database, collection, filter, options.get("sort"))
        if doc is None:
            return None
        before = dict(doc)
        self._apply_update(doc, update)
        image = dict(doc) if options.get("returnDocument") == "after" else before
        return self._project(image, options.get("projection"))

    async def findOneAndReplace(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        replacement: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Mock findOneAndReplace."""
        self._record("findOneAndReplace", database, collection, filter, replacement, options)
        doc = self._first(database, collection, filter, options.get("sort"))
        if doc is None:
            return None
        before = dict(doc)
        doc.clear()
        doc.update(replacement)
        doc.setdefault("_id", before.get("_id"))
        image = dict(doc) if options.get("returnDocument") == "after" else before
        return self._project(image, options.get("projection"))

    async def findOneAndDelete(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Mock findOneAndDelete."""
        self._record("findOneAndDelete", database, collection, filter, options)
        doc = self._first(database, collection, filter, options.get("sort"))
        if doc is None:
            return None
        self._get_collection_data(database, collection).remove(doc)
        return self._project(dict(doc), options.get("projection"))

    def _first(
        self,
        database: str,
        collection: str,
        filter: dict[str, Any],
        sort: list[tuple[str, int]] | None,
    ) -> dict[str, Any] | None:
        data = self._get_collection_data(database, collection)
        matches = self._sort([doc for doc in data if self._matches(doc, filter)], sort)
        return matches[0] if matches else None

    @staticmethod
    def _sort(
        results: list[dict[str, Any]],
        sort: list[tuple[str, int]] | None,
    ) -> list[dict[str, Any]]:
        if sort:
            for field, direction in reversed(sort):
                results = sorted(results, key=lambda x: x.get(field, ""), reverse=(direction == -1))
        return results

    def _matches(self, doc: dict[str, Any], filter: dict[str, Any]) -> bool:
        """Check if document matches filter."""
        if not filter:
            return True

        for key, value in filter.items():
            if key.startswith("$"):
                # Handle operators
                if key == "$and":
                    if not all(self._matches(doc, f) for f in value):
                        return False
                elif key == "$or":
                    if not any(self._matches(doc, f) for f in value):
                        return False
                continue

            doc_value = doc.get(key)

            if isinstance(value, dict):
                # Handle comparison operators
                for op, op_value in value.items():
                    if op == "$eq":
                        if doc_value != op_value:
                            return False
                    elif op == "$ne":
                        if doc_value == op_value:
                            return False
                    elif op == "$gt":
                        if doc_value is None or doc_value <= op_value:
                            return False
                    elif op == "$gte":
                        if doc_value is None or doc_value < op_value:
                            return False
                    elif op == "$lt":
                        if doc_value is None or doc_value >= op_value:
                            return False
                    elif op == "$lte":
                        if doc_value is None or doc_value > op_value:
                            return False
                    elif op == "$in":
                        if doc_value not in op_value:
                            return False
            elif doc_value != value:
                return False

        return True

    def _apply_update(self, doc: dict[str, Any], update: dict[str, Any]) -> bool:
        """Apply update operators to document."""
        modified = False

        for op, fields in update.items():
            if op == "$set":
                for key, value in fields.items():
                    if doc.get(key) != value:
                        doc[key] = value
                        modified = True
            elif op == "$unset":
                for key in fields:
                    if key in doc:
                        del doc[key]
                        modified = True
            elif op == "$inc":
                for key, value in fields.items():
                    doc[key] = doc.get(key, 0) + value
                    modified = True

        return modified

    def _project(
        self,
        doc: dict[str, Any],
        projection: dict[str, int] | None,
    ) -> dict[str, Any]:
        """Apply projection to document."""
        if not projection:
            return doc

        # Check if projection is inclusion or exclusion
        include_mode = any(v == 1 for v in projection.values() if v != 0)

        if include_mode:
            # Include specified fields
            result = {}
            for key, include in projection.items():
                if include and key in doc:
                    result[key] = doc[key]
            # Always include _id unless explicitly excluded
            if "_id" in doc and projection.get("_id", 1) != 0:
                result["_id"] = doc["_id"]
            return result
        else:
            # Exclude specified fields
            return {k: v for k, v in doc.items() if projection.get(k, 1) != 0}


class MockRpcClient:
    """Mock RPC client for testing."""

    def __init__(self) -> None:
        self.mongo = MockRpcMongo()
        self._closed = False

    async def close(self) -> None:
        """Close the mock client."""
        self._closed = True


class RecordingExecutor(OperationExecutor):
    """
    Executor that records every descriptor it is given.

    Reads return a cursor over ``documents`` (or ``count`` for counts);
    writes return ``write_result`` or raise ``write_error``.
    """

    def __init__(self) -> None:
        self.reads: list[tuple[Any, Any]] = []
        self.writes: list[Any] = []
        self.cursors: list[MongoCursor[Any]] = []
        self.documents: list[Any] = []
        self.count = 0
        self.write_result: Any = WriteResult()
        self.write_error: BaseException | None = None

    @property
    def operations(self) -> list[Any]:
        return [operation for operation, _ in self.reads] + self.writes

    async def execute_read(self, operation: Any, read_preference: Any) -> Any:
        self.reads.append((operation, read_preference))
        if isinstance(operation, CountOperation):
            return self.count
        cursor: MongoCursor[Any] = MongoCursor(list(self.documents))
        self.cursors.append(cursor)
        return cursor

    async def execute_write(self, operation: Any) -> Any:
        self.writes.append(operation)
        if self.write_error is not None:
            raise self.write_error
        return self.write_result


@pytest.fixture
def mock_rpc() -> MockRpcClient:
    """Create a mock RPC client."""
    return MockRpcClient()


@pytest.fixture
def mock_connect(mock_rpc: MockRpcClient, monkeypatch: pytest.MonkeyPatch):
    """Mock the rpc_do.connect function."""
    # Create a mock module
    mock_rpc_do = MagicMock()
    mock_rpc_do.connect = AsyncMock(return_value=mock_rpc)

    # Add to sys.modules
    monkeypatch.setitem(sys.modules, "rpc_do", mock_rpc_do)

    return mock_rpc_do


@pytest.fixture
async def client(mock_connect, mock_rpc: MockRpcClient):
    """Create a connected MongoClient."""
    from mongo_view import MongoClient

    client = MongoClient("https://test.mongo.do")
    await client.connect()
    return client


@pytest.fixture
async def database(client):
    """Create a database."""
    return client["testdb"]


@pytest.fixture
async def collection(database):
    """Create a collection."""
    return database["testcollection"]


@pytest.fixture
def recorder() -> RecordingExecutor:
    """Create a recording executor."""
    return RecordingExecutor()


@pytest.fixture
def recorded_collection(recorder: RecordingExecutor):
    """Create a collection whose commands go to the recording executor."""
    from mongo_view import MongoClient

    client = MongoClient(executor=recorder)
    return client["testdb"]["testcollection"]
