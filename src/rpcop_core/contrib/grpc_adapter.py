from __future__ import annotations
from typing import Any, Optional, Sequence, Tuple

import grpc

from ..classify import Code, coerce_code, status_classifier
from ..errors import RpcError


def grpc_classifier(exc: BaseException) -> Optional[Code]:
    """
    Classify grpc.RpcError (sync and aio) by its status code.
    Anything else goes through the generic status classifier.
    """
    if isinstance(exc, grpc.RpcError):
        code_fn = getattr(exc, "code", None)
        status = code_fn() if callable(code_fn) else None
        found = coerce_code(status)
        return found if found is not None else Code.UNKNOWN
    return status_classifier(exc)


def to_rpc_error(exc: BaseException) -> RpcError:
    details_fn = getattr(exc, "details", None)
    details = details_fn() if callable(details_fn) else None
    return RpcError(grpc_classifier(exc) or Code.UNKNOWN, details or str(exc), details=exc)


def unary_invoker(
    multicallable: Any,
    *,
    metadata: Optional[Sequence[Tuple[str, str]]] = None,
    wrap_errors: bool = False,
):
    """
    Turn a unary-unary multicallable (grpc or grpc.aio) into an invoker.

    The returned coroutine takes `(request, *, timeout=None)`; pair it with
    `timeout_kwarg="timeout"` so every attempt carries its own deadline.
    With `wrap_errors=True`, grpc.RpcError is re-raised as rpcop's RpcError.
    """

    async def invoke(request: Any, *, timeout: Optional[float] = None) -> Any:
        try:
            res = multicallable(request, timeout=timeout, metadata=metadata)
            if hasattr(res, "__await__"):
                res = await res
            return res
        except grpc.RpcError as exc:
            if wrap_errors:
                raise to_rpc_error(exc) from exc
            raise

    return invoke
