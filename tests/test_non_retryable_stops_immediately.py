from __future__ import annotations
import pytest
from rpcop_core.classify import Code
from rpcop_core.core import execute, RetryPolicy
from rpcop_core.errors import RpcError


class Boom(RuntimeError):
    pass


def _policy(codes) -> RetryPolicy:
    return RetryPolicy(initial_delay=0.001, max_delay=0.001, retryable_codes=codes)


@pytest.mark.asyncio
async def test_invalid_argument_fails_with_zero_retries():
    attempts = []

    async def op():
        attempts.append(1)
        raise RpcError(Code.INVALID_ARGUMENT, "bad filter")

    with pytest.raises(RpcError) as info:
        await execute(op, policy=_policy({Code.UNAVAILABLE}))
    assert info.value.code is Code.INVALID_ARGUMENT
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_non_idempotent_policy_never_retries_transient_codes():
    attempts = []

    async def create():
        attempts.append(1)
        raise RpcError(Code.UNAVAILABLE)

    with pytest.raises(RpcError):
        await execute(create, policy=_policy(frozenset()))
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_unclassified_exception_propagates_unchanged():
    attempts = []

    async def op():
        attempts.append(1)
        raise Boom("not a call failure")

    with pytest.raises(Boom):
        await execute(op, policy=_policy({Code.UNAVAILABLE}))
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_custom_classifier_decides():
    attempts = []

    async def op():
        attempts.append(1)
        if len(attempts) < 2:
            raise Boom("flaky")
        return "ok"

    out = await execute(
        op,
        policy=_policy({Code.ABORTED}),
        classifier=lambda e: Code.ABORTED if isinstance(e, Boom) else None,
    )
    assert out == "ok"
    assert len(attempts) == 2
