"""
Options shared by clients, databases and collections.

Each level may override any option; unset options are inherited from the
level above through :meth:`CollectionOptions.with_defaults`.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING

from pymongo.read_concern import ReadConcern
from pymongo.read_preferences import ReadPreference
from pymongo.write_concern import WriteConcern

from .codec import DEFAULT_CODEC_REGISTRY

if TYPE_CHECKING:
    from pymongo.read_preferences import _ServerMode

    from .codec import CodecRegistry

__all__ = ["CollectionOptions", "DEFAULT_OPTIONS"]


@dataclass(frozen=True)
class CollectionOptions:
    """
    Immutable defaults applied to every view built from a collection.

    Attributes:
        write_concern: Write concern for inserts, updates and removes.
        read_preference: Read preference for finds, counts and aggregations.
        read_concern: Read concern sent with reads.
        codec_registry: Registry used to encode and decode documents.
    """

    write_concern: WriteConcern | None = None
    read_preference: _ServerMode | None = None
    read_concern: ReadConcern | None = None
    codec_registry: CodecRegistry | None = None

    def with_defaults(self, defaults: CollectionOptions) -> CollectionOptions:
        """Fill every unset option from ``defaults``."""
        changes = {
            f.name: getattr(defaults, f.name)
            for f in fields(self)
            if getattr(self, f.name) is None
        }
        return replace(self, **changes)


DEFAULT_OPTIONS = CollectionOptions(
    write_concern=WriteConcern(),
    read_preference=ReadPreference.PRIMARY,
    read_concern=ReadConcern(),
    codec_registry=DEFAULT_CODEC_REGISTRY,
)
