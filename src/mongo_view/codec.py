"""
Codec - converting between application values and documents.

A codec turns a value into a wire-ready document and back. Codecs for
document types that carry an ``_id`` additionally expose the identity
capability through :attr:`Codec.collectible`; callers branch on that
attribute instead of inspecting value types.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Generic, TypeVar

__all__ = [
    "Codec",
    "CollectibleCodec",
    "DocumentCodec",
    "FunctionCodec",
    "CodecRegistry",
    "DEFAULT_CODEC_REGISTRY",
]

T = TypeVar("T")

ID_FIELD = "_id"


class Codec(Generic[T]):
    """Encodes values of ``document_class`` to documents and back."""

    document_class: type = dict

    def encode(self, value: T) -> dict[str, Any]:
        raise NotImplementedError

    def decode(self, document: dict[str, Any]) -> T:
        raise NotImplementedError

    @property
    def collectible(self) -> CollectibleCodec[T] | None:
        """The identity capability of this codec, or None if it has none."""
        return None


class CollectibleCodec(Codec[T]):
    """A codec whose values carry an identity."""

    @property
    def collectible(self) -> CollectibleCodec[T]:
        return self

    def document_has_id(self, value: T) -> bool:
        raise NotImplementedError

    def get_document_id(self, value: T) -> Any:
        raise NotImplementedError

    def generate_id_if_absent(self, value: T) -> None:
        raise NotImplementedError


class DocumentCodec(CollectibleCodec[dict[str, Any]]):
    """
    Codec for plain dict documents.

    Missing ``_id`` fields are filled in place by ``id_factory``.
    """

    document_class = dict

    def __init__(self, id_factory: Callable[[], Any] | None = None) -> None:
        self._id_factory = id_factory or self._generate_id

    @staticmethod
    def _generate_id() -> str:
        """Generate a unique document ID."""
        return str(uuid.uuid4())

    def encode(self, value: dict[str, Any]) -> dict[str, Any]:
        return dict(value)

    def decode(self, document: dict[str, Any]) -> dict[str, Any]:
        return dict(document)

    def document_has_id(self, value: dict[str, Any]) -> bool:
        return ID_FIELD in value

    def get_document_id(self, value: dict[str, Any]) -> Any:
        return value[ID_FIELD]

    def generate_id_if_absent(self, value: dict[str, Any]) -> None:
        if ID_FIELD not in value:
            value[ID_FIELD] = self._id_factory()


class FunctionCodec(Codec[T]):
    """
    Codec built from a pair of conversion functions.

    Values handled by a FunctionCodec have no identity capability, so
    ``save`` is not available for them.
    """

    def __init__(
        self,
        document_class: type[T],
        to_document: Callable[[T], dict[str, Any]],
        from_document: Callable[[dict[str, Any]], T],
    ) -> None:
        self.document_class = document_class
        self._to_document = to_document
        self._from_document = from_document

    def encode(self, value: T) -> dict[str, Any]:
        return self._to_document(value)

    def decode(self, document: dict[str, Any]) -> T:
        return self._from_document(document)


class CodecRegistry:
    """Looks up the codec for a document class."""

    __slots__ = ("_codecs",)

    def __init__(self, codecs: list[Codec[Any]] | None = None) -> None:
        self._codecs: dict[type, Codec[Any]] = {}
        for codec in codecs or []:
            self._codecs[codec.document_class] = codec

    def get(self, document_class: type[T]) -> Codec[T]:
        """
        Get the codec registered for ``document_class``.

        Raises:
            KeyError: If no codec handles the class.
        """
        for cls in getattr(document_class, "__mro__", (document_class,)):
            if cls in self._codecs:
                return self._codecs[cls]
        raise KeyError(f"No codec registered for {document_class!r}")

    def with_codec(self, codec: Codec[Any]) -> CodecRegistry:
        """Return a new registry that also knows ``codec``."""
        return CodecRegistry([*self._codecs.values(), codec])

    def encode(self, value: Any) -> dict[str, Any]:
        """Encode ``value`` with the codec registered for its type."""
        return self.get(type(value)).encode(value)

    def __repr__(self) -> str:
        names = ", ".join(cls.__name__ for cls in self._codecs)
        return f"CodecRegistry([{names}])"


DEFAULT_CODEC_REGISTRY = CodecRegistry([DocumentCodec()])
