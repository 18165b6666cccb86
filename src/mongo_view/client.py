"""
MongoClient - MongoDB client for .do services.

Connects to a MongoDB service over RPC and owns the executor that every
database and collection obtained from it submits commands through.
"""

from __future__ import annotations

import logging
import os
from types import TracebackType
from typing import TYPE_CHECKING, Any

from .database import Database
from .executor import OperationExecutor, RpcExecutor
from .options import DEFAULT_OPTIONS, CollectionOptions
from .types import ConnectionError, MongoError

if TYPE_CHECKING:
    from pymongo.read_concern import ReadConcern
    from pymongo.read_preferences import _ServerMode
    from pymongo.write_concern import WriteConcern

    from .codec import CodecRegistry

__all__ = ["MongoClient"]

_LOGGER = logging.getLogger(__name__)


class MongoClient:
    """
    MongoDB client for .do services.

    Databases can be accessed using either attribute access or subscript
    notation.

    Example:
        # Create client
        client = MongoClient("https://mongo.do", write_concern=WriteConcern(w="majority"))
        await client.connect()

        # Access databases
        db = client["myapp"]
        db = client.myapp

        # Close connection
        await client.close()

        # Or use as async context manager
        async with MongoClient("https://mongo.do") as client:
            db = client["myapp"]
            ...

        # Or run commands through another engine
        client = MongoClient(executor=CallbackExecutor(engine))
    """

    __slots__ = ("_uri", "_rpc", "_executor", "_connected", "_databases", "_options", "_timeout")

    def __init__(
        self,
        uri: str | None = None,
        *,
        executor: OperationExecutor | None = None,
        timeout: float = 30.0,
        read_preference: _ServerMode | None = None,
        write_concern: WriteConcern | None = None,
        read_concern: ReadConcern | None = None,
        codec_registry: CodecRegistry | None = None,
    ) -> None:
        """
        Initialize the MongoDB client.

        Args:
            uri: Connection URI (e.g., "https://mongo.do" or "wss://mongo.do/rpc").
                 If not provided, uses MONGO_URL environment variable.
            executor: Engine to run commands with. A client given an
                executor is connected immediately and never opens RPC.
            timeout: Default timeout for RPC operations (default: 30.0).
            read_preference: Default read preference.
            write_concern: Default write concern.
            read_concern: Default read concern.
            codec_registry: Default codec registry.
        """
        self._uri = uri or os.environ.get("MONGO_URL", "https://mongo.do")
        self._rpc: Any = None
        self._executor = executor
        self._connected = executor is not None
        self._databases: dict[str, Database] = {}
        self._timeout = timeout
        self._options = CollectionOptions(
            write_concern=write_concern,
            read_preference=read_preference,
            read_concern=read_concern,
            codec_registry=codec_registry,
        ).with_defaults(DEFAULT_OPTIONS)

    @property
    def uri(self) -> str:
        """Get the connection URI."""
        return self._uri

    @property
    def is_connected(self) -> bool:
        """Check if the client is connected."""
        return self._connected

    @property
    def options(self) -> CollectionOptions:
        return self._options

    @property
    def executor(self) -> OperationExecutor:
        """The executor commands are submitted through."""
        if not self._connected or self._executor is None:
            raise MongoError("Client is not connected. Call connect() first.")
        return self._executor

    async def connect(self) -> MongoClient:
        """
        Connect to the MongoDB service.

        Returns:
            Self for chaining.

        Raises:
            ConnectionError: If connection fails.
        """
        if self._connected:
            return self

        try:
            from rpc_do import connect

            self._rpc = await connect(self._uri, timeout=self._timeout)
            self._executor = RpcExecutor(self._rpc)
            self._connected = True
            _LOGGER.debug("Connected to %s", self._uri)
            return self
        except ImportError as e:
            raise ConnectionError(
                "rpc-do package is required. Install with: pip install rpc-do"
            ) from e
        except Exception as e:
            raise ConnectionError(f"Failed to connect to {self._uri}: {e}") from e

    async def close(self) -> None:
        """Close the connection."""
        if self._rpc is not None:
            await self._rpc.close()
            self._rpc = None
            self._executor = None
        self._connected = self._executor is not None
        self._databases.clear()

    def _ensure_connected(self) -> None:
        """Ensure the client is connected."""
        if not self._connected or self._executor is None:
            raise MongoError("Client is not connected. Call connect() first.")

    def __getitem__(self, name: str) -> Database:
        """
        Get a database by name using subscript notation.

        Example:
            db = client["myapp"]
        """
        self._ensure_connected()

        if name not in self._databases:
            self._databases[name] = Database(self, name)
        return self._databases[name]

    def __getattr__(self, name: str) -> Database:
        """
        Get a database by name using attribute access.

        Example:
            db = client.myapp
        """
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

        return self[name]

    def get_database(self, name: str, options: CollectionOptions | None = None) -> Database:
        """
        Get a database by name.

        Args:
            name: Database name.
            options: Overrides of the client's options.
        """
        if options is None:
            return self[name]
        self._ensure_connected()
        return Database(self, name, options)

    async def __aenter__(self) -> MongoClient:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"MongoClient({self._uri!r}, {status})"
