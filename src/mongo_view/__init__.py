"""
mongo-view - chainable queries, aggregation pipelines and map-reduce over MongoDB.

This package builds MongoDB commands from fluent, async builders and
dispatches them through a pluggable executor:
- Mutable query views (filter, sort, paging, updates, find-and-modify)
- Immutable aggregation pipelines
- Map-reduce, inline or into an output collection
- Frozen command descriptors that can be inspected and reissued
- An RPC executor for .do services and a callback adapter for other engines

Example usage:
    from mongo_view import MongoClient

    async def main():
        async with MongoClient("https://mongo.do") as client:
            users = client["myapp"]["users"]

            # Insert documents; a missing _id is generated
            await users.insert({"name": "Alice", "status": "active"})

            # Query through a view
            view = users.find({"status": "active"}).sort("name").limit(10)
            print(await view.count())
            async for user in view:
                print(user["name"])

            # Update and remove through a view
            await users.find({"name": "Alice"}).update_one({"$set": {"vip": True}})
            await users.find({"status": "inactive"}).remove()

            # Aggregate
            by_status = users.pipe().group({"_id": "$status", "n": {"$sum": 1}})
            print(await by_status.to_list())

    import asyncio
    asyncio.run(main())
"""

from __future__ import annotations

__version__ = "0.1.0"

from .client import MongoClient
from .codec import (
    DEFAULT_CODEC_REGISTRY,
    Codec,
    CodecRegistry,
    CollectibleCodec,
    DocumentCodec,
    FunctionCodec,
)
from .collection import Collection
from .cursor import MongoCursor
from .database import Database
from .executor import CallbackExecutor, OperationExecutor, RpcExecutor, to_callback
from .iterable import MongoIterable
from .map_reduce import MapReduceIterable
from .operations import CursorFlag, MapReduceAction, MongoNamespace
from .options import CollectionOptions
from .pipeline import MongoPipeline
from .types import (
    ConfigurationError,
    ConnectionError,
    DuplicateKeyError,
    MapReduceStatistics,
    MongoError,
    OperationFailure,
    UnsupportedOperationError,
    WriteError,
    WriteResult,
)
from .view import MongoView

__all__ = [
    # Main classes
    "MongoClient",
    "Database",
    "Collection",
    "MongoView",
    "MongoPipeline",
    "MapReduceIterable",
    "MongoIterable",
    "MongoCursor",
    # Descriptors
    "MongoNamespace",
    "CursorFlag",
    "MapReduceAction",
    # Codecs and options
    "Codec",
    "CollectibleCodec",
    "DocumentCodec",
    "FunctionCodec",
    "CodecRegistry",
    "DEFAULT_CODEC_REGISTRY",
    "CollectionOptions",
    # Executors
    "OperationExecutor",
    "RpcExecutor",
    "CallbackExecutor",
    "to_callback",
    # Result types
    "WriteResult",
    "MapReduceStatistics",
    # Exceptions
    "MongoError",
    "ConfigurationError",
    "UnsupportedOperationError",
    "ConnectionError",
    "WriteError",
    "DuplicateKeyError",
    "OperationFailure",
    # Version
    "__version__",
]
