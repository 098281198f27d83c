from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional, Protocol
from contextlib import AbstractContextManager

from .classify import Code


class AttemptScope(Protocol):
    def __call__(self, *, attempt: int) -> AbstractContextManager[None]: ...


# Called before each attempt with that attempt's timeout (e.g. set a transport deadline)
PreAttemptFn = Callable[[float], Awaitable[None]]

# Map an exception to a status code; None means it is not a classified call failure
FailureClassifier = Callable[[BaseException], Optional[Code]]

# Decode one raw server payload into the caller's item representation
ItemConverter = Callable[[Any], Any]

Sleeper = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]
