from __future__ import annotations
import asyncio
import enum
from typing import Any, Optional


class Code(enum.IntEnum):
    """Canonical RPC status codes."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    @classmethod
    def from_http_status(cls, status: int) -> "Code":
        if 200 <= status < 300:
            return cls.OK
        mapped = _HTTP_TO_CODE.get(status)
        if mapped is not None:
            return mapped
        if 400 <= status < 500:
            return cls.FAILED_PRECONDITION
        return cls.UNKNOWN


_HTTP_TO_CODE = {
    400: Code.INVALID_ARGUMENT,
    401: Code.UNAUTHENTICATED,
    403: Code.PERMISSION_DENIED,
    404: Code.NOT_FOUND,
    408: Code.DEADLINE_EXCEEDED,
    409: Code.ABORTED,
    412: Code.FAILED_PRECONDITION,
    416: Code.OUT_OF_RANGE,
    429: Code.RESOURCE_EXHAUSTED,
    499: Code.CANCELLED,
    500: Code.INTERNAL,
    501: Code.UNIMPLEMENTED,
    502: Code.UNAVAILABLE,
    503: Code.UNAVAILABLE,
    504: Code.DEADLINE_EXCEEDED,
}


class Category(enum.Enum):
    TRANSIENT_SERVER = "transient-server"
    TRANSIENT_NETWORK = "transient-network"
    PERMANENT_CLIENT = "permanent-client-error"
    PERMANENT_SERVER = "permanent-server-error"

    @property
    def transient(self) -> bool:
        return self in (Category.TRANSIENT_SERVER, Category.TRANSIENT_NETWORK)


_CATEGORIES = {
    Code.CANCELLED: Category.TRANSIENT_NETWORK,
    Code.DEADLINE_EXCEEDED: Category.TRANSIENT_NETWORK,
    Code.UNAVAILABLE: Category.TRANSIENT_NETWORK,
    Code.RESOURCE_EXHAUSTED: Category.TRANSIENT_SERVER,
    Code.ABORTED: Category.TRANSIENT_SERVER,
    Code.INVALID_ARGUMENT: Category.PERMANENT_CLIENT,
    Code.NOT_FOUND: Category.PERMANENT_CLIENT,
    Code.ALREADY_EXISTS: Category.PERMANENT_CLIENT,
    Code.PERMISSION_DENIED: Category.PERMANENT_CLIENT,
    Code.FAILED_PRECONDITION: Category.PERMANENT_CLIENT,
    Code.OUT_OF_RANGE: Category.PERMANENT_CLIENT,
    Code.UNAUTHENTICATED: Category.PERMANENT_CLIENT,
    Code.UNKNOWN: Category.PERMANENT_SERVER,
    Code.UNIMPLEMENTED: Category.PERMANENT_SERVER,
    Code.INTERNAL: Category.PERMANENT_SERVER,
    Code.DATA_LOSS: Category.PERMANENT_SERVER,
}


def category_of(code: Code) -> Category:
    if code is Code.OK:
        raise ValueError("OK is not a failure code")
    return _CATEGORIES[code]


def coerce_code(raw: Any) -> Optional[Code]:
    """Best-effort conversion of a transport status value into a `Code`."""
    if raw is None:
        return None
    if isinstance(raw, Code):
        return raw
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        try:
            return Code(raw)
        except ValueError:
            return None
    if isinstance(raw, str):
        return Code.__members__.get(raw.upper())

    # grpc.StatusCode members: name matches ours, value is (int, str)
    name = getattr(raw, "name", None)
    if isinstance(name, str) and name in Code.__members__:
        return Code[name]
    value = getattr(raw, "value", None)
    if isinstance(value, tuple) and value:
        return coerce_code(value[0])
    return None


def status_classifier(exc: BaseException) -> Optional[Code]:
    """Read a status code off an exception. None means "unclassifiable"."""
    code = getattr(exc, "code", None)
    if callable(code):
        try:
            code = code()
        except Exception:
            code = None
    found = coerce_code(code)
    if found is not None:
        return found

    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return Code.from_http_status(status)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return Code.DEADLINE_EXCEEDED
    if isinstance(exc, ConnectionError):
        return Code.UNAVAILABLE
    return None
