from .classify import Category, Code, category_of, status_classifier
from .core import execute, retrying, RetryEngine, RetryPolicy
from .errors import (
    DecodeError,
    ProtocolError,
    ResultTypeMismatch,
    RetryBudgetExhausted,
    RpcError,
    RpcopError,
)
from .executor import PagedQueryExecutor, PagingState, State, list_all
from .paging import PageStreamingDescriptor, field_descriptor
from .results import ResultType, ResultTypeResolver, is_assignable_from

__all__ = [
    "Category",
    "Code",
    "category_of",
    "status_classifier",
    "execute",
    "retrying",
    "RetryEngine",
    "RetryPolicy",
    "DecodeError",
    "ProtocolError",
    "ResultTypeMismatch",
    "RetryBudgetExhausted",
    "RpcError",
    "RpcopError",
    "PagedQueryExecutor",
    "PagingState",
    "State",
    "list_all",
    "PageStreamingDescriptor",
    "field_descriptor",
    "ResultType",
    "ResultTypeResolver",
    "is_assignable_from",
]

# Optional: expose OTEL-integrated helper if available.
try:
    from .otel_runtime import execute_traced_optional  # noqa: F401

    __all__.append("execute_traced_optional")
except Exception:  # pragma: no cover - OTEL deps missing or broken
    pass

__version__ = "0.3.0"
