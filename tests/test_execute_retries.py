from __future__ import annotations
import itertools
import pytest
from rpcop_core.classify import Code
from rpcop_core.core import execute, retrying, RetryEngine, RetryPolicy
from rpcop_core.errors import RpcError


def _fast(**kw) -> RetryPolicy:
    base = dict(
        initial_delay=0.001,
        max_delay=0.002,
        initial_call_timeout=1.0,
        max_call_timeout=1.0,
        total_timeout=5.0,
        retryable_codes={Code.UNAVAILABLE},
    )
    base.update(kw)
    return RetryPolicy(**base)


@pytest.mark.asyncio
async def test_three_unavailable_then_success():
    calls = itertools.count()

    async def sometimes(x):
        if next(calls) < 3:
            raise RpcError(Code.UNAVAILABLE, "try again")
        return x * 2

    out = await execute(sometimes, args=(21,), policy=_fast())
    assert out == 42
    assert next(calls) == 4


@pytest.mark.asyncio
async def test_sleeps_follow_backoff_sequence():
    slept = []
    calls = itertools.count()

    async def fake_sleep(d):
        slept.append(d)

    async def op():
        if next(calls) < 4:
            raise RpcError(Code.UNAVAILABLE)
        return "ok"

    policy = _fast(initial_delay=0.1, delay_multiplier=2.0, max_delay=0.3, total_timeout=60.0)
    assert await execute(op, policy=policy, sleep=fake_sleep) == "ok"
    assert slept == pytest.approx([0.1, 0.2, 0.3, 0.3])


@pytest.mark.asyncio
async def test_sync_operation_is_accepted():
    calls = itertools.count()

    def op():
        if next(calls) == 0:
            raise RpcError(Code.UNAVAILABLE)
        return "sync-ok"

    assert await execute(op, policy=_fast()) == "sync-ok"


@pytest.mark.asyncio
async def test_retry_engine_wrap_keeps_signature_and_name():
    calls = itertools.count()

    async def get_group(name, *, view="basic"):
        if next(calls) == 0:
            raise RpcError(Code.UNAVAILABLE)
        return {"name": name, "view": view}

    wrapped = RetryEngine(_fast()).wrap(get_group)
    assert wrapped.__name__ == "get_group"
    assert await wrapped("g1", view="full") == {"name": "g1", "view": "full"}


@pytest.mark.asyncio
async def test_retrying_shortcut():
    async def ok(x):
        return x

    assert await retrying(ok, _fast())(5) == 5


@pytest.mark.asyncio
async def test_timeout_kwarg_passes_escalating_attempt_timeouts():
    seen = []

    async def op(request, *, timeout):
        seen.append(timeout)
        if len(seen) < 3:
            raise RpcError(Code.DEADLINE_EXCEEDED)
        return request

    policy = _fast(
        initial_call_timeout=0.5,
        call_timeout_multiplier=2.0,
        max_call_timeout=1.5,
        retryable_codes={Code.DEADLINE_EXCEEDED},
    )
    assert await execute(op, args=("req",), policy=policy, timeout_kwarg="timeout") == "req"
    assert seen == pytest.approx([0.5, 1.0, 1.5])
