"""
Cursor - Async cursor over command results.

Provides the cursor returned by the read side of an executor, and the
``closing`` helper that every bulk-consumption method uses to release
it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Iterable, TypeVar

T = TypeVar("T")

__all__ = ["MongoCursor", "closing"]

_LOGGER = logging.getLogger(__name__)


class MongoCursor(Generic[T]):
    """
    Async cursor for iterating over query results.

    The executor hands over the documents the server returned; the cursor
    yields them one at a time, or in batches of ``batch_size`` through
    :meth:`next_batch`, until exhausted or closed.

    Example:
        cursor = await collection.find({"status": "active"}).get()
        try:
            async for doc in cursor:
                print(doc)
        finally:
            await cursor.close()
    """

    __slots__ = (
        "_documents",
        "_position",
        "_batch_size",
        "_closed",
        "_on_close",
    )

    def __init__(
        self,
        documents: Iterable[T],
        batch_size: int = 0,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        """
        Initialize a cursor.

        Args:
            documents: Decoded result documents, in server order.
            batch_size: Documents per batch for :meth:`next_batch`;
                0 returns everything in one batch.
            on_close: Coroutine function run once when the cursor closes.
        """
        self._documents: list[T] = list(documents)
        self._position: int = 0
        self._batch_size: int = abs(batch_size)
        self._closed: bool = False
        self._on_close = on_close

    @property
    def alive(self) -> bool:
        """Check if the cursor can still yield documents."""
        return not self._closed and self._position < len(self._documents)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[T]:
        """Return async iterator."""
        return self

    async def __anext__(self) -> T:
        """
        Get the next document.

        Raises:
            StopAsyncIteration: When all documents have been iterated
                or the cursor is closed.
        """
        if not self.alive:
            raise StopAsyncIteration

        doc = self._documents[self._position]
        self._position += 1
        return doc

    async def next(self) -> T:
        """Get the next document."""
        return await self.__anext__()

    async def try_next(self) -> T | None:
        """Get the next document, or None if the cursor is exhausted."""
        try:
            return await self.__anext__()
        except StopAsyncIteration:
            return None

    async def next_batch(self) -> list[T] | None:
        """
        Get the next batch of documents.

        Returns:
            Up to ``batch_size`` documents, or None once exhausted.
        """
        if not self.alive:
            return None

        end = len(self._documents)
        if self._batch_size:
            end = min(end, self._position + self._batch_size)
        batch = self._documents[self._position:end]
        self._position = end
        return batch

    async def to_list(self, length: int | None = None) -> list[T]:
        """
        Drain the cursor into a list.

        Args:
            length: Maximum number of documents to return.
                    If None, returns all remaining documents.
        """
        results: list[T] = []
        async for doc in self:
            results.append(doc)
            if length is not None and len(results) >= length:
                break
        return results

    async def close(self) -> None:
        """Close the cursor. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._documents = []
        if self._on_close is not None:
            await self._on_close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"{len(self._documents) - self._position} remaining"
        return f"MongoCursor({state})"


@asynccontextmanager
async def closing(cursor: Any) -> AsyncIterator[Any]:
    """
    Close ``cursor`` when the block exits, however it exits.

    If the block raised, a failure while closing is logged and the
    block's error is the one that propagates.
    """
    try:
        yield cursor
    except BaseException:
        try:
            await cursor.close()
        except Exception:
            _LOGGER.warning("Error closing cursor after a failed consumer", exc_info=True)
        raise
    await cursor.close()
