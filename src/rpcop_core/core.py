from __future__ import annotations
import asyncio
import dataclasses
import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, Iterable, Iterator, Optional
from contextlib import nullcontext

from .classify import Code, status_classifier
from .errors import RetryBudgetExhausted, RpcError
from .types import AttemptScope, Clock, FailureClassifier, PreAttemptFn, Sleeper

logger = logging.getLogger(__name__)


class _OpTimeout(Exception):
    """Carries a timeout raised by the operation itself past `wait_for`."""

    def __init__(self, error: BaseException):
        super().__init__(error)
        self.error = error


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff, per-call timeout and total budget for one kind of operation.

    All durations are in seconds. `retryable_codes` decides which classified
    failures are retried at all; an empty set never retries.
    """

    initial_delay: float = 0.1
    delay_multiplier: float = 1.3
    max_delay: float = 60.0
    initial_call_timeout: float = 20.0
    call_timeout_multiplier: float = 1.0
    max_call_timeout: float = 20.0
    total_timeout: float = 600.0
    retryable_codes: FrozenSet[Code] = frozenset()
    jitter: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "retryable_codes", frozenset(self.retryable_codes))
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.initial_call_timeout <= 0 or self.max_call_timeout <= 0:
            raise ValueError("call timeouts must be positive")
        if self.total_timeout <= 0:
            raise ValueError("total_timeout must be positive")
        if self.delay_multiplier < 1.0 or self.call_timeout_multiplier < 1.0:
            raise ValueError("multipliers must be >= 1.0")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be within [0, 1]")

    def with_codes(self, codes: Iterable[Code]) -> "RetryPolicy":
        return dataclasses.replace(self, retryable_codes=frozenset(codes))

    def is_retryable(self, code: Optional[Code]) -> bool:
        return code is not None and code in self.retryable_codes

    def backoff(self) -> Iterator[float]:
        d = self.initial_delay
        while True:
            if self.jitter:
                j = d * self.jitter
                yield max(0.0, min(self.max_delay, d + random.uniform(-j, j)))
            else:
                yield min(self.max_delay, d)
            d = min(self.max_delay, d * self.delay_multiplier)

    def call_timeouts(self) -> Iterator[float]:
        t = self.initial_call_timeout
        while True:
            yield min(self.max_call_timeout, t)
            t = min(self.max_call_timeout, t * self.call_timeout_multiplier)


async def execute(
    op: Callable[..., Any],
    *,
    args: tuple = (),
    kwargs: dict[str, Any] | None = None,
    policy: Optional[RetryPolicy] = None,
    classifier: Optional[FailureClassifier] = None,
    pre_attempt: Optional[PreAttemptFn] = None,
    attempt_scope: Optional[AttemptScope] = None,
    timeout_kwarg: Optional[str] = None,
    sleep: Sleeper = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> Any:
    """Run `op` under `policy`: per-attempt timeout, backoff, total budget.

    Failures the classifier cannot map to a code, or whose code is not in
    `policy.retryable_codes`, propagate unchanged on the first occurrence.
    A retryable failure that would push the call past `total_timeout`
    raises `RetryBudgetExhausted` chained to the last failure.
    """
    policy = policy or RetryPolicy()
    kwargs = kwargs or {}
    classifier = classifier or status_classifier

    async def _call(timeout: float):
        kw = {**kwargs, timeout_kwarg: timeout} if timeout_kwarg else kwargs
        res = op(*args, **kw)
        return await res if asyncio.iscoroutine(res) else res

    async def _once(timeout: float):
        try:
            if pre_attempt:
                await pre_attempt(timeout)
            return await _call(timeout)
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise _OpTimeout(exc) from None

    async def _with_deadline(timeout: float):
        try:
            return await asyncio.wait_for(_once(timeout), timeout=timeout)
        except _OpTimeout as own:
            err = own.error
            raise err from err.__cause__
        except asyncio.TimeoutError as exc:
            raise RpcError(Code.DEADLINE_EXCEEDED, f"attempt exceeded {timeout:.3f}s") from exc

    start = clock()
    delays = policy.backoff()
    timeouts = policy.call_timeouts()
    attempt = 0
    while True:
        attempt += 1
        remaining = policy.total_timeout - (clock() - start)
        timeout = min(next(timeouts), remaining) if remaining > 0 else next(timeouts)
        try:
            with attempt_scope(attempt=attempt) if attempt_scope else nullcontext():
                return await _with_deadline(timeout)
        except Exception as exc:
            code = classifier(exc)
            if not policy.is_retryable(code):
                raise
            delay = next(delays)
            elapsed = clock() - start
            if elapsed + delay >= policy.total_timeout:
                logger.warning(
                    "giving up on %s after %d attempts (%.3fs): %s",
                    getattr(op, "__name__", op),
                    attempt,
                    elapsed,
                    exc,
                )
                raise RetryBudgetExhausted(attempt, exc, elapsed) from exc
            logger.debug(
                "attempt %d of %s failed with %s, retrying in %.3fs",
                attempt,
                getattr(op, "__name__", op),
                code.name if code is not None else "?",
                delay,
            )
            await sleep(delay)


class RetryEngine:
    """A retry policy bound to its classifier and hooks, reusable across calls."""

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        classifier: Optional[FailureClassifier] = None,
        pre_attempt: Optional[PreAttemptFn] = None,
        attempt_scope: Optional[AttemptScope] = None,
        timeout_kwarg: Optional[str] = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self.policy = policy
        self._options = dict(
            classifier=classifier,
            pre_attempt=pre_attempt,
            attempt_scope=attempt_scope,
            timeout_kwarg=timeout_kwarg,
            sleep=sleep,
            clock=clock,
        )

    async def call(self, op: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await execute(op, args=args, kwargs=kwargs, policy=self.policy, **self._options)

    def wrap(self, op: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(op)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await self.call(op, *args, **kwargs)

        return wrapper


def retrying(op: Callable[..., Any], policy: Optional[RetryPolicy] = None, **options: Any):
    """Shortcut for `RetryEngine(policy, **options).wrap(op)`."""
    return RetryEngine(policy or RetryPolicy(), **options).wrap(op)
