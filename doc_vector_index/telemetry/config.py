"""Telemetry configuration read from OTEL_* environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from doc_vector_index import __version__

SERVICE_NAME = "doc-vector-index"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"
DEFAULT_METRIC_INTERVAL_MS = 5000


class ExporterType(str, Enum):
    """Where spans and metrics are exported to."""

    CONSOLE = "console"
    OTLP = "otlp"


def _flag(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


@dataclass
class TelemetryConfig:
    """Configuration for the TelemetryService.

    Attributes:
        enabled: Record spans and metrics; off by default.
        service_name: Resource service name.
        service_version: Resource service version.
        exporter_type: Console for local debugging, OTLP for a collector.
        otlp_endpoint: gRPC endpoint of the OTLP collector.
        otlp_insecure: Use a plaintext gRPC channel.
        metric_interval_ms: Metric export interval.
    """

    enabled: bool = False
    service_name: str = SERVICE_NAME
    service_version: str = field(default_factory=lambda: __version__)
    exporter_type: ExporterType = ExporterType.CONSOLE
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT
    otlp_insecure: bool = True
    metric_interval_ms: int = DEFAULT_METRIC_INTERVAL_MS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TelemetryConfig:
        """Build a configuration from the environment.

        Unparseable values fall back to their defaults.

        Environment Variables:
            OTEL_ENABLED: true/1/yes to enable (default: false)
            OTEL_SERVICE_NAME: Service name (default: doc-vector-index)
            OTEL_EXPORTER_TYPE: console or otlp (default: console)
            OTEL_EXPORTER_OTLP_ENDPOINT: Collector endpoint (default: http://localhost:4317)
            OTEL_EXPORTER_OTLP_INSECURE: Plaintext channel (default: true)
            OTEL_METRIC_EXPORT_INTERVAL: Metric export interval in ms (default: 5000)
        """
        env = os.environ if environ is None else environ

        try:
            exporter_type = ExporterType(env.get("OTEL_EXPORTER_TYPE", "console").strip().lower())
        except ValueError:
            exporter_type = ExporterType.CONSOLE

        try:
            interval = int(env.get("OTEL_METRIC_EXPORT_INTERVAL", DEFAULT_METRIC_INTERVAL_MS))
        except ValueError:
            interval = DEFAULT_METRIC_INTERVAL_MS

        return cls(
            enabled=_flag(env.get("OTEL_ENABLED"), False),
            service_name=env.get("OTEL_SERVICE_NAME") or SERVICE_NAME,
            exporter_type=exporter_type,
            otlp_endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT") or DEFAULT_OTLP_ENDPOINT,
            otlp_insecure=_flag(env.get("OTEL_EXPORTER_OTLP_INSECURE"), True),
            metric_interval_ms=interval if interval > 0 else DEFAULT_METRIC_INTERVAL_MS,
        )
