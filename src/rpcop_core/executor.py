"""Lazy, forward-only iteration over a paged remote query."""

from __future__ import annotations
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, List, Optional

from .errors import ProtocolError
from .paging import PageStreamingDescriptor
from .results import ResultType, ResultTypeResolver

logger = logging.getLogger(__name__)

PageCall = Callable[[Any], Awaitable[Any]]

_MISSING = object()
_PASSTHROUGH = ResultType("any", wildcard=True)


class State(enum.Enum):
    NEED_FETCH = "need_fetch"
    HAS_BUFFERED = "has_buffered"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass
class PagingState:
    continuation_token: Any = None
    exhausted: bool = False
    buffered_items: Deque[Any] = field(default_factory=deque)
    last_request: Any = None
    last_response: Any = None


class PagedQueryExecutor:
    """Pull items one at a time from a paged operation.

    `call` performs one page fetch and is expected to be retry-wrapped
    already (see `RetryEngine.wrap`). Each executor owns its paging state;
    it is iterated by one consumer and cannot be restarted.

    Usage::

        results = await PagedQueryExecutor.open(request, descriptor, call, expected)
        async for item in results:
            ...
        resume_from = results.cursor_after

    Any error raised while pulling moves the executor to `State.FAILED` and
    every later pull raises the same error again.
    """

    def __init__(
        self,
        request: Any,
        descriptor: PageStreamingDescriptor,
        call: PageCall,
        expected: Optional[ResultType] = None,
        *,
        resolver: Optional[ResultTypeResolver] = None,
        page_size: Optional[int] = None,
        max_results: Optional[int] = None,
        max_empty_pages: Optional[int] = None,
    ) -> None:
        if page_size is not None and page_size <= 0:
            raise ValueError("page_size must be positive")
        if max_results is not None and max_results < 0:
            raise ValueError("max_results must be non-negative")
        if page_size is not None:
            request = descriptor.inject_page_size(request, page_size)
        self._initial_request = request
        self._descriptor = descriptor
        self._call = call
        self._expected = expected or _PASSTHROUGH
        self._resolver = resolver or ResultTypeResolver()
        self._max_results = max_results
        self._max_empty_pages = max_empty_pages

        self._paging = PagingState(continuation_token=descriptor.empty_token)
        self._state = State.NEED_FETCH
        self._started = False
        self._failure: Optional[BaseException] = None
        self._cursor: Any = descriptor.start_cursor(request)
        self._page_cursor: Any = None
        self._page_type: ResultType = self._expected
        self._peeked: Any = _MISSING
        self.page_number = 0
        self.num_results = 0

    @classmethod
    async def open(cls, *args: Any, **kwargs: Any) -> "PagedQueryExecutor":
        """Build an executor and fetch its first page."""
        executor = cls(*args, **kwargs)
        await executor.start()
        return executor

    @property
    def state(self) -> State:
        return self._state

    @property
    def paging_state(self) -> PagingState:
        return self._paging

    @property
    def cursor_after(self) -> Any:
        """Resume marker: after the last emitted item, or the batch end once exhausted.

        Before the first fetch this is the request's own start cursor. `open()`
        (or `start()`) replaces it with the skipped-results cursor when the
        server skipped an offset, so use one of those when that matters.
        """
        return self._cursor

    @property
    def result_class(self) -> type:
        return self._page_type.result_class

    async def start(self) -> None:
        """Fetch the first page and seed `cursor_after`. Idempotent."""
        if self._started:
            return
        try:
            response = await self._fetch(self._initial_request)
            skipped, skipped_cursor = self._descriptor.skipped(response)
        except Exception as exc:
            self._fail(exc)
            raise
        self._started = True
        if skipped > 0:
            self._cursor = skipped_cursor
        else:
            self._cursor = self._descriptor.start_cursor(self._paging.last_request)

    async def _fetch(self, request: Any) -> Any:
        d = self._descriptor
        response = await self._call(request)
        tag = d.extract_result_type(response) if d.extract_result_type else None
        page_type = self._resolver.resolve(self._expected, tag)
        items = d.extract_items(response)
        request = d.effective_request(request, response)
        p = self._paging
        p.last_request = request
        p.last_response = response
        p.continuation_token = d.extract_next_token(response)
        if not d.more_results(response):
            p.exhausted = True
        p.buffered_items.extend(items)
        self._page_type = page_type
        self._page_cursor = d.start_cursor(request)
        self.page_number += 1
        self._state = State.HAS_BUFFERED if p.buffered_items else State.NEED_FETCH
        logger.debug(
            "page %d: %d items, exhausted=%s", self.page_number, len(items), p.exhausted
        )
        return response

    def _fail(self, exc: BaseException) -> None:
        self._state = State.FAILED
        self._failure = exc
        self._paging.buffered_items.clear()

    def _finish(self, cursor: Any = _MISSING) -> None:
        if cursor is not _MISSING:
            self._cursor = cursor
        self._state = State.EXHAUSTED
        self._paging.buffered_items.clear()

    async def _compute_next(self) -> Any:
        d = self._descriptor
        p = self._paging
        if self._max_results is not None and self.num_results >= self._max_results:
            self._finish()
            raise StopAsyncIteration

        empty_pages = 0
        while not p.buffered_items and not p.exhausted:
            await self._fetch(d.next_request(p.last_request, p.last_response))
            if not p.buffered_items and not p.exhausted:
                empty_pages += 1
                if self._max_empty_pages is not None and empty_pages > self._max_empty_pages:
                    raise ProtocolError(
                        f"{empty_pages} consecutive empty pages without end of results"
                    )

        if not p.buffered_items:
            self._finish(d.end_cursor(p.last_response))
            raise StopAsyncIteration

        raw = p.buffered_items.popleft()
        item = self._page_type.convert(d.item_payload(raw) if d.item_payload else raw)
        self._cursor = d.item_cursor(raw) if d.item_cursor else self._page_cursor
        self.num_results += 1
        self._state = State.HAS_BUFFERED if p.buffered_items else State.NEED_FETCH
        return item

    def __aiter__(self) -> "PagedQueryExecutor":
        return self

    async def __anext__(self) -> Any:
        if self._peeked is not _MISSING:
            item, self._peeked = self._peeked, _MISSING
            return item
        if self._state is State.FAILED:
            raise self._failure  # type: ignore[misc]
        if self._state is State.EXHAUSTED:
            raise StopAsyncIteration
        await self.start()
        try:
            return await self._compute_next()
        except StopAsyncIteration:
            raise
        except Exception as exc:
            self._fail(exc)
            raise

    async def next(self) -> Any:
        return await self.__anext__()

    async def has_next(self) -> bool:
        """Look ahead one item. May fetch, and moves `cursor_after` like a pull does."""
        if self._peeked is not _MISSING:
            return True
        try:
            self._peeked = await self.__anext__()
        except StopAsyncIteration:
            return False
        return True


async def list_all(
    request: Any,
    descriptor: PageStreamingDescriptor,
    call: PageCall,
    expected: Optional[ResultType] = None,
    **options: Any,
) -> List[Any]:
    """Drain a paged query into a list."""
    executor = await PagedQueryExecutor.open(request, descriptor, call, expected, **options)
    return [item async for item in executor]
