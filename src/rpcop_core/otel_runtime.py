from __future__ import annotations

import asyncio
import os
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .core import execute, RetryPolicy
from .types import AttemptScope, Clock, FailureClassifier, PreAttemptFn, Sleeper


# --- Helpers for env flags ----------------------------------------------------


def _otel_enabled(explicit: Optional[bool]) -> bool:
    if explicit is not None:
        return explicit
    return os.getenv("RPCOP_OTEL_ENABLED", "").lower() in {"1", "true", "yes", "on"}


def _metrics_enabled() -> bool:
    return os.getenv("RPCOP_OTEL_METRICS_ENABLED", "").lower() in {
        "1",
        "true",
        "yes",
        "on",
    }


# --- Metrics plumbing (lazy / optional) --------------------------------------

try:
    from opentelemetry import metrics as _otel_metrics  # type: ignore[attr-defined]
except Exception:  # pragma: no cover - OTEL not installed
    _otel_metrics = None  # type: ignore[assignment]

_calls_counter = None
_attempts_counter = None
_duration_histogram = None
_metrics_instruments_ready = False


def _ensure_metrics() -> None:
    """
    Lazily create metric instruments if metrics are enabled and OTEL is available.
    Safe to call multiple times.
    """
    global _calls_counter, _attempts_counter, _duration_histogram, _metrics_instruments_ready

    if _metrics_instruments_ready:
        return

    if not _metrics_enabled():
        return

    if _otel_metrics is None:
        return

    meter = _otel_metrics.get_meter(__name__)

    _calls_counter = meter.create_counter(
        "rpcop_calls_total",
        description="Total number of logical remote calls.",
    )
    _attempts_counter = meter.create_counter(
        "rpcop_attempts_total",
        description="Total number of call attempts (including retries).",
    )
    _duration_histogram = meter.create_histogram(
        "rpcop_call_duration_seconds",
        description="Latency of logical remote calls, retries and backoff included.",
        unit="s",
    )

    _metrics_instruments_ready = True


# --- Traced execution ---------------------------------------------------------


async def execute_traced_optional(
    op: Callable[..., Any],
    *,
    args: Tuple[Any, ...] = (),
    kwargs: Optional[Dict[str, Any]] = None,
    policy: Optional[RetryPolicy] = None,
    classifier: Optional[FailureClassifier] = None,
    pre_attempt: Optional[PreAttemptFn] = None,
    attempt_scope: Optional[AttemptScope] = None,
    timeout_kwarg: Optional[str] = None,
    sleep: Sleeper = asyncio.sleep,
    clock: Clock = time.monotonic,
    # tracing knobs (all optional)
    otel_enabled: Optional[bool] = None,  # None -> read env RPCOP_OTEL_ENABLED
    span_name: str = "rpcop.call",
    base_attrs: Optional[Dict[str, Any]] = None,
    rpc_system: Optional[str] = None,
    rpc_service: Optional[str] = None,
    rpc_method: Optional[str] = None,
) -> Any:
    """
    Execute with tracing *if* OpenTelemetry is installed and enabled.
    Otherwise, falls back to plain `execute()` with zero overhead.

    When RPCOP_OTEL_METRICS_ENABLED=1 (and OTEL metrics are available),
    this also emits:
      - rpcop_calls_total
      - rpcop_attempts_total
      - rpcop_call_duration_seconds
    """
    policy = policy or RetryPolicy()
    call_kwargs = dict(
        args=args,
        kwargs=kwargs,
        policy=policy,
        classifier=classifier,
        timeout_kwarg=timeout_kwarg,
        sleep=sleep,
        clock=clock,
    )

    # Fast path: OTEL disabled entirely -> no tracing, no metrics
    if not _otel_enabled(otel_enabled):
        return await execute(
            op, pre_attempt=pre_attempt, attempt_scope=attempt_scope, **call_kwargs
        )

    # Lazy import so this module stays importable without otel deps
    try:
        from opentelemetry import trace
        from opentelemetry.trace import SpanKind, Status, StatusCode
    except Exception:
        # Otel not installed -> silently fall back
        return await execute(
            op, pre_attempt=pre_attempt, attempt_scope=attempt_scope, **call_kwargs
        )

    tracer = trace.get_tracer(__name__)

    _ensure_metrics()
    metrics_active = _metrics_instruments_ready and _metrics_enabled()

    attrs = {
        "rpc.system": rpc_system,
        "rpc.service": rpc_service,
        "rpc.method": rpc_method or getattr(op, "__name__", None),
        "rpcop.initial_delay": policy.initial_delay,
        "rpcop.delay_multiplier": policy.delay_multiplier,
        "rpcop.max_delay": policy.max_delay,
        "rpcop.initial_call_timeout": policy.initial_call_timeout,
        "rpcop.max_call_timeout": policy.max_call_timeout,
        "rpcop.total_timeout": policy.total_timeout,
        "rpcop.retryable_codes": ",".join(sorted(c.name for c in policy.retryable_codes)),
    }
    if base_attrs:
        attrs.update({k: v for k, v in base_attrs.items() if v is not None})

    metric_attrs_base = {
        "rpc.system": attrs["rpc.system"] or "unknown",
        "rpc.service": attrs["rpc.service"] or "unknown",
        "rpc.method": attrs["rpc.method"] or "unknown",
    }

    from contextlib import contextmanager, nullcontext

    def set_attrs(span, d):
        for k, v in d.items():
            if v is not None:
                span.set_attribute(k, v)

    @contextmanager
    def traced_scope(*, attempt: int):
        with tracer.start_as_current_span(f"{span_name}.attempt", kind=SpanKind.CLIENT) as s:
            set_attrs(s, {**attrs, "rpcop.attempt.number": attempt})
            try:
                with attempt_scope(attempt=attempt) if attempt_scope else nullcontext():
                    yield
                s.set_attribute("rpcop.attempt.outcome", "success")
            except BaseException as exc:
                s.record_exception(exc)
                s.set_attribute("rpcop.attempt.outcome", "error")
                s.set_status(Status(StatusCode.ERROR))
                raise

    attempt_events = {"n": 0}

    # Operation-level timing + outcome for metrics
    start = time.perf_counter()

    def record(outcome: str) -> None:
        if metrics_active and _calls_counter is not None and _duration_histogram is not None:
            duration = time.perf_counter() - start
            metric_attrs = {**metric_attrs_base, "rpcop.outcome": outcome}
            _calls_counter.add(1, attributes=metric_attrs)
            _duration_histogram.record(duration, attributes=metric_attrs)

    with tracer.start_as_current_span(span_name, kind=SpanKind.CLIENT) as root:
        set_attrs(root, attrs)

        async def pre(timeout: float):
            attempt_events["n"] += 1
            if metrics_active and _attempts_counter is not None:
                _attempts_counter.add(1, attributes=metric_attrs_base)
            root.add_event(
                "rpcop.pre_attempt",
                {"rpcop.attempt.count": attempt_events["n"], "rpcop.attempt.timeout": timeout},
            )
            if pre_attempt:
                await pre_attempt(timeout)

        try:
            result = await execute(op, pre_attempt=pre, attempt_scope=traced_scope, **call_kwargs)
        except BaseException as exc:
            root.record_exception(exc)
            root.set_attribute("rpcop.outcome", "error")
            root.set_attribute("rpcop.attempts", attempt_events["n"])
            root.set_status(Status(StatusCode.ERROR))
            record("error")
            raise
        root.set_attribute("rpcop.outcome", "success")
        root.set_attribute("rpcop.attempts", attempt_events["n"])
        record("success")
        return result
