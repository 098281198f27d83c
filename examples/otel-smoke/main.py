import asyncio
import os
import random

from rpcop_core.classify import Code
from rpcop_core.core import RetryPolicy
from rpcop_core.errors import RpcError
from rpcop_core.otel_setup import init_tracer, init_metrics
from rpcop_core.otel_runtime import execute_traced_optional

# Enable tracing / metrics via env (can still be disabled by user)
os.environ.setdefault("RPCOP_OTEL_ENABLED", "1")
os.environ.setdefault("RPCOP_OTEL_METRICS_ENABLED", "1")

# Defaults for local collector
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "http://127.0.0.1:4317")


async def flaky_get(ctx: dict) -> str:
    """Fails with UNAVAILABLE at random, otherwise answers after a short delay."""
    if random.random() < ctx["fail_prob"]:
        raise RpcError(Code.UNAVAILABLE, "transient boom in rpcop-core smoke demo")
    await asyncio.sleep(random.uniform(0.02, 0.15))
    return "ok"


async def main() -> None:
    exporter = os.getenv("RPCOP_OTEL_EXPORTER", "http").lower()
    if exporter not in ("http", "grpc"):
        print(f"[rpcop-core] Unknown RPCOP_OTEL_EXPORTER={exporter!r}, falling back to 'http'")
        exporter = "http"

    service_name = "rpcop-core-otel-smoke"
    init_tracer(service_name=service_name, exporter=exporter)
    init_metrics(service_name=service_name, exporter=exporter)

    n_ops = int(os.getenv("RPCOP_SMOKE_OPS", "50"))
    fail_prob = float(os.getenv("RPCOP_SMOKE_FAIL_PROB", "0.5"))
    print(f"[rpcop-core] running smoke: n_ops={n_ops}, fail_prob={fail_prob}, exporter={exporter}")

    policy = RetryPolicy(
        initial_delay=0.05,
        delay_multiplier=2.0,
        max_delay=0.2,
        initial_call_timeout=1.0,
        max_call_timeout=1.0,
        total_timeout=1.5,
        retryable_codes={Code.UNAVAILABLE, Code.DEADLINE_EXCEEDED},
    )

    for i in range(n_ops):
        ctx = {"fail_prob": fail_prob}
        try:
            result = await execute_traced_optional(
                lambda: flaky_get(ctx),
                policy=policy,
                otel_enabled=True,
                span_name="rpcop.smoke",
                rpc_system="demo",
                rpc_service="SmokeService",
                rpc_method="FlakyGet",
                base_attrs={"rpcop.demo_op_index": i},
            )
            print(f"[rpcop-core] op #{i} -> {result}")
        except Exception as exc:
            print(f"[rpcop-core] op #{i} failed: {exc!r}")

    print("[rpcop-core] smoke run complete")


if __name__ == "__main__":
    asyncio.run(main())
