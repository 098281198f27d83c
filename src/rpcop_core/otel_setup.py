from __future__ import annotations

import os
from typing import Optional

# rpcop-core keeps working without opentelemetry installed; these helpers
# become no-ops in that case.
try:
    from opentelemetry import trace, metrics
except Exception:  # pragma: no cover - opentelemetry-api missing
    trace = metrics = None  # type: ignore[assignment]

try:
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
        OTLPSpanExporter as OTLPHttpSpanExporter,
    )
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as OTLPGrpcSpanExporter,
    )
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
        OTLPMetricExporter as OTLPHttpMetricExporter,
    )
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
        OTLPMetricExporter as OTLPGrpcMetricExporter,
    )

    _OTEL_AVAILABLE = True
except Exception:  # pragma: no cover - graceful fallback when OTEL is missing
    _OTEL_AVAILABLE = False
    TracerProvider = object  # type: ignore[assignment,misc]
    MeterProvider = object  # type: ignore[assignment,misc]


_tracer_provider: Optional[TracerProvider] = None
_meter_provider: Optional[MeterProvider] = None

DEFAULT_INSTRUMENTATION = "rpcop_core.otel_runtime"


def _build_resource(service_name: str) -> "Resource":
    """Resource shared by traces and metrics; version comes from RPCOP_SERVICE_VERSION."""
    return Resource.create(
        {
            "service.name": service_name,
            "service.version": os.getenv("RPCOP_SERVICE_VERSION", "dev"),
        }
    )


def init_tracer(service_name: str = "rpcop-core", exporter: str = "http") -> None:
    """
    Install a TracerProvider with an OTLP span exporter.

    :param service_name: logical service name reported on every span
    :param exporter: "http" (default) or "grpc"
    """
    global _tracer_provider

    if not _OTEL_AVAILABLE or _tracer_provider is not None:
        return

    span_exporter = (
        OTLPGrpcSpanExporter() if exporter.lower() == "grpc" else OTLPHttpSpanExporter()
    )
    provider = TracerProvider(resource=_build_resource(service_name))
    provider.add_span_processor(BatchSpanProcessor(span_exporter))

    trace.set_tracer_provider(provider)
    _tracer_provider = provider


def get_tracer(instrumentation_name: str = DEFAULT_INSTRUMENTATION):
    """
    Tracer from our provider if `init_tracer()` ran, else from the global one.
    Returns None when opentelemetry is not installed at all.
    """
    if _tracer_provider is not None:
        return _tracer_provider.get_tracer(instrumentation_name)
    if trace is None:
        return None
    return trace.get_tracer(instrumentation_name)


def init_metrics(service_name: str = "rpcop-core", exporter: str = "http") -> None:
    """
    Install a MeterProvider with a periodic OTLP metrics exporter.

    :param service_name: logical service name
    :param exporter: "http" (default) or "grpc"
    """
    global _meter_provider

    if not _OTEL_AVAILABLE or _meter_provider is not None:
        return

    metric_exporter = (
        OTLPGrpcMetricExporter() if exporter.lower() == "grpc" else OTLPHttpMetricExporter()
    )
    reader = PeriodicExportingMetricReader(metric_exporter)
    provider = MeterProvider(resource=_build_resource(service_name), metric_readers=[reader])

    metrics.set_meter_provider(provider)
    _meter_provider = provider


def get_meter(instrumentation_name: str = DEFAULT_INSTRUMENTATION):
    """Meter from our provider, or None when metrics were never initialized."""
    if _meter_provider is None:
        return None
    return _meter_provider.get_meter(instrumentation_name)
