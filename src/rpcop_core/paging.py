"""Capability objects describing how one paged operation carries its paging fields."""

from __future__ import annotations
import copy
import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class PageStreamingDescriptor:
    """Accessors for the paging fields of one operation's request and response.

    The first five functions are required. The rest describe cursor and
    result-type information for query-style protocols and fall back to
    token semantics when left unset:

    - `has_more(resp)`: defaults to "next token differs from `empty_token`".
    - `extract_token(req)`: the token a request resumes from (its start cursor).
    - `extract_skipped(resp)`: `(skipped_count, skipped_cursor)`.
    - `extract_end_cursor(resp)`: defaults to the next token.
    - `item_cursor(item)`: cursor positioned right after `item`.
    - `extract_result_type(resp)`: result-type discriminator for the batch.
    - `item_payload(item)`: the part of an item handed to the decoder.
    - `extract_effective_request(resp)`: the request as the server echoes it
      back, if it does. Preferred over the sent request for the start cursor
      and for continuation requests.
    """

    empty_token: Any
    inject_token: Callable[[Any, Any], Any]
    inject_page_size: Callable[[Any, int], Any]
    extract_next_token: Callable[[Any], Any]
    extract_items: Callable[[Any], Sequence[Any]]
    extract_page_size: Optional[Callable[[Any], Optional[int]]] = None
    extract_token: Optional[Callable[[Any], Any]] = None
    has_more: Optional[Callable[[Any], bool]] = None
    extract_skipped: Optional[Callable[[Any], Tuple[int, Any]]] = None
    extract_end_cursor: Optional[Callable[[Any], Any]] = None
    item_cursor: Optional[Callable[[Any], Any]] = None
    extract_result_type: Optional[Callable[[Any], Any]] = None
    item_payload: Optional[Callable[[Any], Any]] = None
    extract_effective_request: Optional[Callable[[Any], Any]] = None

    def more_results(self, response: Any) -> bool:
        if self.has_more is not None:
            return bool(self.has_more(response))
        return self.extract_next_token(response) != self.empty_token

    def start_cursor(self, request: Any) -> Any:
        if self.extract_token is not None:
            return self.extract_token(request)
        return self.empty_token

    def effective_request(self, request: Any, response: Any) -> Any:
        if self.extract_effective_request is not None:
            echoed = self.extract_effective_request(response)
            if echoed is not None:
                return echoed
        return request

    def skipped(self, response: Any) -> Tuple[int, Any]:
        if self.extract_skipped is not None:
            return self.extract_skipped(response)
        return 0, None

    def end_cursor(self, response: Any) -> Any:
        if self.extract_end_cursor is not None:
            return self.extract_end_cursor(response)
        return self.extract_next_token(response)

    def next_request(self, request: Any, response: Any) -> Any:
        """Continuation request: `request` with `response`'s next token injected."""
        return self.inject_token(request, self.extract_next_token(response))


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _with(obj: Any, name: str, value: Any) -> Any:
    if isinstance(obj, Mapping):
        out = dict(obj)
        out[name] = value
        return out
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.replace(obj, **{name: value})
    out = copy.copy(obj)
    setattr(out, name, value)
    return out


def field_descriptor(
    *,
    items_field: str,
    request_token_field: str = "page_token",
    response_token_field: str = "next_page_token",
    page_size_field: str = "page_size",
    empty_token: Any = "",
    **extra: Any,
) -> PageStreamingDescriptor:
    """Descriptor for requests/responses that expose paging fields by name.

    Works with dicts, dataclasses and plain objects. Requests are copied,
    never mutated. `extra` forwards the optional accessors unchanged.
    """

    def inject_token(req: Any, token: Any) -> Any:
        return _with(req, request_token_field, token)

    def inject_page_size(req: Any, size: int) -> Any:
        return _with(req, page_size_field, size)

    def extract_next_token(resp: Any) -> Any:
        token = _get(resp, response_token_field, empty_token)
        return empty_token if token is None else token

    def extract_items(resp: Any) -> Sequence[Any]:
        return list(_get(resp, items_field, None) or ())

    extra.setdefault("extract_page_size", lambda req: _get(req, page_size_field))
    extra.setdefault(
        "extract_token", lambda req: _get(req, request_token_field, empty_token) or empty_token
    )
    return PageStreamingDescriptor(
        empty_token=empty_token,
        inject_token=inject_token,
        inject_page_size=inject_page_size,
        extract_next_token=extract_next_token,
        extract_items=extract_items,
        **extra,
    )
