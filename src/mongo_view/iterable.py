"""
Iterable results.

:class:`MongoIterable` is the shared surface of views, pipelines and
map-reduce configurations: subclasses only say how to obtain a cursor,
and every accessor here guarantees that cursor is closed exactly once.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Generic, MutableSequence, TypeVar

from .cursor import closing

if TYPE_CHECKING:
    from pymongo.read_preferences import _ServerMode

    from .cursor import MongoCursor
    from .executor import OperationExecutor

T = TypeVar("T")
U = TypeVar("U")

__all__ = ["MongoIterable", "OperationIterable", "MappingIterable"]


class MongoIterable(Generic[T]):
    """Something that can be iterated by opening a cursor."""

    async def iterator(self) -> MongoCursor[T]:
        """Issue the read and return a cursor over its results."""
        raise NotImplementedError

    async def batch_cursor(self) -> MongoCursor[T]:
        """Return the underlying cursor; the caller must close it."""
        return await self.iterator()

    async def __aiter__(self) -> AsyncIterator[T]:
        """
        Iterate the results, closing the cursor once they run out.

        Leaving the loop early closes the cursor only when the generator is
        finalized; wrap the iteration in :func:`contextlib.aclosing` to close
        it as the loop exits:

            async with aclosing(aiter(view)) as results:
                async for doc in results:
                    if done(doc):
                        break
        """
        cursor = await self.iterator()
        async with closing(cursor):
            async for item in cursor:
                yield item

    async def first(self) -> T | None:
        """Return the first result, or None if there are none."""
        cursor = await self.iterator()
        async with closing(cursor):
            return await cursor.try_next()

    async def for_each(self, block: Callable[[T], Any]) -> None:
        """
        Apply ``block`` to every result.

        ``block`` may be a plain function or a coroutine function. The
        cursor is closed even if ``block`` raises.
        """
        cursor = await self.iterator()
        async with closing(cursor):
            async for item in cursor:
                result = block(item)
                if inspect.isawaitable(result):
                    await result

    async def into(self, target: MutableSequence[Any] | set[Any]) -> Any:
        """Add every result to ``target`` and return it."""
        add = target.append if hasattr(target, "append") else target.add
        await self.for_each(add)
        return target

    async def to_list(self, length: int | None = None) -> list[T]:
        """Collect up to ``length`` results into a new list."""
        cursor = await self.iterator()
        async with closing(cursor):
            return await cursor.to_list(length)

    def map(self, mapper: Callable[[T], U]) -> MappingIterable[U]:
        """Return an iterable that applies ``mapper`` to every result."""
        return MappingIterable(self, mapper)


class OperationIterable(MongoIterable[T]):
    """Runs one read descriptor per cursor."""

    __slots__ = ("_operation", "_read_preference", "_executor")

    def __init__(
        self,
        operation: Any,
        read_preference: _ServerMode,
        executor: OperationExecutor,
    ) -> None:
        self._operation = operation
        self._read_preference = read_preference
        self._executor = executor

    @property
    def operation(self) -> Any:
        return self._operation

    async def iterator(self) -> MongoCursor[T]:
        return await self._executor.execute_read(self._operation, self._read_preference)


class MappingIterable(MongoIterable[U]):
    __slots__ = ("_iterable", "_mapper")

    def __init__(self, iterable: MongoIterable[Any], mapper: Callable[[Any], U]) -> None:
        self._iterable = iterable
        self._mapper = mapper

    async def iterator(self) -> _MappingCursor[U]:
        return _MappingCursor(await self._iterable.iterator(), self._mapper)


class _MappingCursor(Generic[U]):
    __slots__ = ("_cursor", "_mapper")

    def __init__(self, cursor: MongoCursor[Any], mapper: Callable[[Any], U]) -> None:
        self._cursor = cursor
        self._mapper = mapper

    @property
    def alive(self) -> bool:
        return self._cursor.alive

    def __aiter__(self) -> _MappingCursor[U]:
        return self

    async def __anext__(self) -> U:
        return self._mapper(await self._cursor.__anext__())

    async def next(self) -> U:
        return await self.__anext__()

    async def try_next(self) -> U | None:
        try:
            return await self.__anext__()
        except StopAsyncIteration:
            return None

    async def next_batch(self) -> list[U] | None:
        batch = await self._cursor.next_batch()
        if batch is None:
            return None
        return [self._mapper(item) for item in batch]

    async def to_list(self, length: int | None = None) -> list[U]:
        results: list[U] = []
        async for item in self:
            results.append(item)
            if length is not None and len(results) >= length:
                break
        return results

    async def close(self) -> None:
        await self._cursor.close()
