"""
Database - access to collections.

Provides a PyMongo-compatible Database interface; collections inherit
the database's options unless they override them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from .collection import Collection

if TYPE_CHECKING:
    from .client import MongoClient
    from .options import CollectionOptions

T = TypeVar("T")

__all__ = ["Database"]


class Database:
    """
    MongoDB database.

    Collections can be accessed using either attribute access or
    subscript notation.

    Example:
        db = client["myapp"]

        users = db.users
        orders = db["orders"]
        events = db.get_collection("events", options=CollectionOptions(write_concern=WriteConcern(w=0)))
    """

    __slots__ = ("_client", "_name", "_options", "_collections")

    def __init__(
        self,
        client: MongoClient,
        name: str,
        options: CollectionOptions | None = None,
    ) -> None:
        """
        Initialize a database.

        Args:
            client: Parent MongoClient instance.
            name: Database name.
            options: Overrides of the client's options.
        """
        self._client = client
        self._name = name
        if options is None:
            self._options = client.options
        else:
            self._options = options.with_defaults(client.options)
        self._collections: dict[str, Collection[Any]] = {}

    @property
    def name(self) -> str:
        """Get the database name."""
        return self._name

    @property
    def client(self) -> MongoClient:
        """Get the parent client."""
        return self._client

    @property
    def options(self) -> CollectionOptions:
        return self._options

    def __getitem__(self, name: str) -> Collection[Any]:
        """
        Get a collection by name using subscript notation.

        Example:
            users = db["users"]
        """
        if name not in self._collections:
            self._collections[name] = Collection(self, name)
        return self._collections[name]

    def __getattr__(self, name: str) -> Collection[Any]:
        """
        Get a collection by name using attribute access.

        Example:
            users = db.users
        """
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

        return self[name]

    def get_collection(
        self,
        name: str,
        document_class: type[T] = dict,  # type: ignore[assignment]
        options: CollectionOptions | None = None,
    ) -> Collection[T]:
        """
        Get a typed collection.

        Args:
            name: Collection name.
            document_class: Type documents are decoded to; needs a codec
                in the codec registry.
            options: Overrides of this database's options.

        Example:
            registry = DEFAULT_CODEC_REGISTRY.with_codec(
                FunctionCodec(User, asdict, lambda doc: User(**doc))
            )
            users = db.get_collection("users", User, CollectionOptions(codec_registry=registry))
        """
        if document_class is dict and options is None:
            return self[name]  # type: ignore[return-value]
        return Collection(self, name, document_class, options)

    def __repr__(self) -> str:
        return f"Database({self._name!r})"
