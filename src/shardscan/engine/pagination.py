# src/shardscan/engine/pagination.py
"""Lazy, forward-only iteration over a paged data source.

The source is a function (token) -> (items, next_token). Tokens are opaque
bytes owned by the source; an empty token means the source is exhausted.
Only one page is buffered at a time, so a shard with millions of
executions streams in constant memory.

The cursor is held by the iterator instance, never in module state, so any
number of iterators can run side by side.

Example:
    def fetch(token: bytes) -> tuple[list[ConcreteExecution], bytes]:
        page = store.list_concrete_executions(page_size=1000, page_token=token)
        return page.executions, page.next_page_token

    it = PagingIterator(fetch)
    while it.has_next():
        execution = it.next()  # raises the fetch error, if any
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from typing import Generic, TypeVar

from shardscan.contracts.errors import PagingExhaustedError

T = TypeVar("T")

PageFetcher = Callable[[bytes], tuple[Sequence[T], bytes | None]]


class PagingIterator(Generic[T]):
    """Single-pass iterator over a paged source.

    Not restartable. To continue after a failure, build a new iterator with
    initial_token set to the last token seen (see last_token).
    """

    def __init__(self, fetch_page: PageFetcher[T], *, initial_token: bytes = b"") -> None:
        self._fetch_page = fetch_page
        self._buffer: list[T] = []
        self._index = 0
        self._next_token: bytes = initial_token
        self._last_token: bytes = initial_token
        self._started = False
        self._exhausted = False
        self._pending_error: Exception | None = None
        self._pages_fetched = 0

    @property
    def last_token(self) -> bytes:
        """Token that requested the page currently being consumed."""
        return self._last_token

    @property
    def pages_fetched(self) -> int:
        return self._pages_fetched

    def _fill(self) -> None:
        # Empty pages with a continuation token are skipped, not treated as the end.
        while self._index >= len(self._buffer) and not self._exhausted and self._pending_error is None:
            if self._started and not self._next_token:
                self._exhausted = True
                return
            requested = self._next_token
            try:
                items, token = self._fetch_page(requested)
            except Exception as e:
                # Held for next(); the token is not advanced, so a later
                # has_next() re-requests the same page.
                self._pending_error = e
                return
            self._started = True
            self._pages_fetched += 1
            self._buffer = list(items)
            self._index = 0
            self._last_token = requested
            self._next_token = token or b""

    def has_next(self) -> bool:
        """Whether next() will return an item or raise a fetch error.

        Idempotent: calling it repeatedly never skips items.
        """
        self._fill()
        return self._pending_error is not None or self._index < len(self._buffer)

    def next(self) -> T:
        """Return the next item.

        Raises:
            Exception: The error raised by the page fetch, once
            PagingExhaustedError: If the source has no more items
        """
        if not self.has_next():
            raise PagingExhaustedError("paging iterator has no more items")
        if self._pending_error is not None:
            error = self._pending_error
            self._pending_error = None
            raise error
        item = self._buffer[self._index]
        self._index += 1
        return item

    def __iter__(self) -> Iterator[T]:
        return self

    def __next__(self) -> T:
        if not self.has_next():
            raise StopIteration
        return self.next()
