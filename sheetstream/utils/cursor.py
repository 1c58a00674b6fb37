"""
Forward-only lookahead cursors over record sources.

A record source can be consumed exactly once, yet the export pipeline needs
to ask "is there another record?" before deciding whether to open a new
worksheet or file. The cursors here buffer at most one element so that
question can be answered without losing data.

Two polling primitives share one buffering state machine:
    - LookaheadCursor pulls from a plain iterable.
    - AsyncLookaheadCursor pulls from an async iterable, or from a plain
      iterable through an inner LookaheadCursor.

Example:
    cursor = LookaheadCursor(records)
    while cursor.has_next():
        record = cursor.take_next()

    cursor = AsyncLookaheadCursor(fetch_records())
    while await cursor.has_next():
        record = await cursor.take_next()
"""

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from typing import Generic, TypeVar

from sheetstream.exceptions.export_exceptions import (
    EndOfSequenceError,
    ExcelExportError,
    SourceConsumedError,
    UpstreamSourceError,
)

T = TypeVar("T")


class _LookaheadBuffer(Generic[T]):
    """
    One-element buffer shared by both cursor flavours.

    States: empty -> peeked -> consumed -> empty ... until the source is
    exhausted, after which the source is never polled again.
    """

    def __init__(self) -> None:
        self._item: T | None = None
        self._has_item = False
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        """True once the source has reported its end and nothing is buffered."""
        return self._exhausted and not self._has_item

    def _hold(self, item: T) -> None:
        self._item = item
        self._has_item = True

    def _release(self) -> T:
        item = self._item
        self._item = None
        self._has_item = False
        return item  # type: ignore[return-value]

    def _mark_exhausted(self) -> None:
        self._exhausted = True


class LookaheadCursor(_LookaheadBuffer[T]):
    """
    Single-use lookahead cursor over a synchronous iterable.

    Not safe for concurrent advancement from two call sites.
    """

    def __init__(self, source: Iterable[T]) -> None:
        super().__init__()
        self._iterator: Iterator[T] = iter(source)

    def _pull(self) -> bool:
        if self._exhausted:
            return False
        try:
            item = next(self._iterator)
        except StopIteration:
            self._mark_exhausted()
            return False
        except ExcelExportError:
            raise
        except Exception as e:
            raise UpstreamSourceError(reason=str(e) or type(e).__name__) from e
        self._hold(item)
        return True

    def has_next(self) -> bool:
        """
        Check whether another element exists without consuming it.

        Returns:
            True if take_next() will return an element.

        Raises:
            UpstreamSourceError: If the source fails while being polled.
        """
        if self._has_item:
            return True
        return self._pull()

    def take_next(self) -> T:
        """
        Return the next element, preferring the buffered one.

        Raises:
            EndOfSequenceError: If the source has no elements left.
            UpstreamSourceError: If the source fails while being polled.
        """
        if not self.has_next():
            raise EndOfSequenceError()
        return self._release()

    def __iter__(self) -> Iterator[T]:
        while self.has_next():
            yield self._release()


class AsyncLookaheadCursor(_LookaheadBuffer[T]):
    """
    Single-use lookahead cursor over an async iterable or a plain iterable.

    Plain iterables are polled through an inner LookaheadCursor, yielding to
    the event loop once per pull so that other tasks keep running during
    long exports.
    """

    def __init__(self, source: AsyncIterable[T] | Iterable[T]) -> None:
        super().__init__()
        self._async_iterator: AsyncIterator[T] | None = None
        self._sync_cursor: LookaheadCursor[T] | None = None

        if isinstance(source, AsyncIterable):
            self._async_iterator = aiter(source)
        else:
            self._sync_cursor = LookaheadCursor(source)

    async def _pull(self) -> bool:
        if self._exhausted:
            return False

        if self._sync_cursor is not None:
            await asyncio.sleep(0)
            if not self._sync_cursor.has_next():
                self._mark_exhausted()
                return False
            self._hold(self._sync_cursor.take_next())
            return True

        try:
            item = await anext(self._async_iterator)
        except StopAsyncIteration:
            self._mark_exhausted()
            return False
        except ExcelExportError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise UpstreamSourceError(reason=str(e) or type(e).__name__) from e
        self._hold(item)
        return True

    async def has_next(self) -> bool:
        """
        Check whether another element exists without consuming it.

        Returns:
            True if take_next() will return an element.

        Raises:
            UpstreamSourceError: If the source fails while being polled.
        """
        if self._has_item:
            return True
        return await self._pull()

    async def take_next(self) -> T:
        """
        Return the next element, preferring the buffered one.

        Raises:
            EndOfSequenceError: If the source has no elements left.
            UpstreamSourceError: If the source fails while being polled.
        """
        if not await self.has_next():
            raise EndOfSequenceError()
        return self._release()


class OneShotSource(Generic[T]):
    """
    Wraps a record source so that it can be iterated only once.

    Works for both plain and async iterables. A second iteration raises
    SourceConsumedError instead of silently re-reading or yielding nothing.

    Example:
        source = OneShotSource(cursor_rows())
        list(source)
        list(source)  # raises SourceConsumedError
    """

    def __init__(self, source: Iterable[T] | AsyncIterable[T]) -> None:
        self._source = source
        self._consumed = False

    @property
    def consumed(self) -> bool:
        """True once iteration has started."""
        return self._consumed

    def _claim(self) -> None:
        if self._consumed:
            raise SourceConsumedError()
        self._consumed = True

    def __iter__(self) -> Iterator[T]:
        if isinstance(self._source, AsyncIterable) and not isinstance(self._source, Iterable):
            raise TypeError("Async record source must be consumed with 'async for'")
        self._claim()
        return iter(self._source)

    def __aiter__(self) -> AsyncIterator[T]:
        self._claim()
        if isinstance(self._source, AsyncIterable):
            return aiter(self._source)
        return _iterate_async(self._source)


async def _iterate_async(source: Iterable[T]) -> AsyncIterator[T]:
    for item in source:
        yield item
