from __future__ import annotations
from typing import Any, Optional

from .classify import Code


class RpcopError(Exception):
    """Base class for every error raised by rpcop-core itself."""


class RpcError(RpcopError):
    """A classified failure of one remote call.

    Invokers and transport adapters raise this so the retry engine can read
    the status code without knowing the transport.
    """

    def __init__(self, code: Code, message: str = "", *, details: Any = None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{code.name}: {message}" if message else code.name)


class RetryBudgetExhausted(RpcopError):
    """Raised when a retryable failure keeps happening until the total timeout runs out."""

    def __init__(self, attempts: int, last_error: BaseException, elapsed: float):
        self.attempts = attempts
        self.last_error = last_error
        self.elapsed = elapsed
        super().__init__(
            f"retry budget exhausted after {attempts} attempts ({elapsed:.3f}s). "
            f"Last error: {last_error!r}"
        )

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)

    @property
    def last_code(self) -> Optional[Code]:
        return self.last_error.code if isinstance(self.last_error, RpcError) else None


class ProtocolError(RpcopError):
    """Fatal paging fault. Never retried; the iterator stays failed."""


class ResultTypeMismatch(ProtocolError):
    def __init__(self, expected: Any, actual: Any):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Unexpected result type {actual} vs {expected}")


class DecodeError(ProtocolError):
    def __init__(self, result_type: Any, cause: BaseException):
        self.result_type = result_type
        self.cause = cause
        super().__init__(f"could not decode {result_type} result: {cause!r}")
