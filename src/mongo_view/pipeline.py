"""
MongoPipeline - an immutable aggregation pipeline.

Every stage method returns a new pipeline and leaves the receiver as it
was, so a common prefix can be branched into independent pipelines:

    recent = orders.pipe().match({"created": {"$gte": cutoff}})
    by_status = recent.group({"_id": "$status", "n": {"$sum": 1}})
    by_region = recent.group({"_id": "$region", "n": {"$sum": 1}})
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, TypeVar

from .helpers import _copy_document
from .iterable import MongoIterable
from .operations import AggregateOperation

if TYPE_CHECKING:
    from .collection import Collection
    from .cursor import MongoCursor

T = TypeVar("T")

__all__ = ["MongoPipeline"]


class MongoPipeline(MongoIterable[T]):
    """Aggregation stages over one collection."""

    __slots__ = ("_collection", "_pipeline")

    def __init__(
        self,
        collection: Collection[T],
        pipeline: tuple[dict[str, Any], ...] = (),
    ) -> None:
        self._collection = collection
        self._pipeline = pipeline

    @property
    def stages(self) -> list[dict[str, Any]]:
        """A copy of the stage documents, in order."""
        return [_copy_document(stage) for stage in self._pipeline]

    def stage(self, stage: Mapping[str, Any]) -> MongoPipeline[T]:
        """Return a new pipeline with ``stage`` appended."""
        return MongoPipeline(self._collection, self._pipeline + (_copy_document(stage),))

    def match(self, criteria: Mapping[str, Any]) -> MongoPipeline[T]:
        return self.stage({"$match": criteria})

    find = match

    def sort(self, sort: Mapping[str, Any]) -> MongoPipeline[T]:
        return self.stage({"$sort": sort})

    def skip(self, skip: int) -> MongoPipeline[T]:
        return self.stage({"$skip": skip})

    def limit(self, limit: int) -> MongoPipeline[T]:
        return self.stage({"$limit": limit})

    def project(self, projection: Mapping[str, Any]) -> MongoPipeline[T]:
        return self.stage({"$project": projection})

    def group(self, group: Mapping[str, Any]) -> MongoPipeline[T]:
        return self.stage({"$group": group})

    def unwind(self, field: str) -> MongoPipeline[T]:
        """Unwind an array field; ``field`` is a path such as ``"$tags"``."""
        return self.stage({"$unwind": field})

    async def iterator(self) -> MongoCursor[T]:
        operation = AggregateOperation(
            namespace=self._collection.namespace,
            pipeline=tuple(_copy_document(stage) for stage in self._pipeline),
            decoder=self._collection.codec,
            read_concern=self._collection.options.read_concern,
        )
        return await self._collection.execute_read(
            operation, self._collection.options.read_preference
        )

    def __repr__(self) -> str:
        return f"MongoPipeline({self._collection.full_name!r}, {list(self._pipeline)!r})"
