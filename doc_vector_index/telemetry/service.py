"""TelemetryService singleton for OpenTelemetry.

Owns the tracer and meter providers and the handful of instruments the
index records: committed updates, scanned items and embedding calls.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from doc_vector_index.telemetry.config import ExporterType, TelemetryConfig

if TYPE_CHECKING:
    from opentelemetry.metrics import Meter
    from opentelemetry.trace import Tracer

logger = logging.getLogger(__name__)


class TelemetryService:
    """Singleton service for OpenTelemetry instrumentation.

    Disabled until initialize() is called with an enabled config; while
    disabled every recording call is a no-op.

    Example:
        >>> TelemetryService.get_instance().initialize(TelemetryConfig.from_env())
        >>> TelemetryService.get_instance().count("index.updates.committed")
        >>> TelemetryService.get_instance().shutdown()
    """

    _instance: TelemetryService | None = None

    def __init__(self) -> None:
        self._config: TelemetryConfig | None = None
        self._initialized = False
        self._tracer_provider: Any = None
        self._meter_provider: Any = None
        self._counters: dict[str, Any] = {}

    @classmethod
    def get_instance(cls) -> TelemetryService:
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def initialize(self, config: TelemetryConfig) -> None:
        """Initialize telemetry with configuration.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        if self._initialized:
            logger.debug("Telemetry already initialized, skipping")
            return

        self._config = config
        self._initialized = True
        if not config.enabled:
            logger.debug("Telemetry disabled")
            return

        self._setup_providers(config)
        logger.info(
            "Telemetry initialized: service=%s, exporter=%s",
            config.service_name,
            config.exporter_type.value,
        )

    def _setup_providers(self, config: TelemetryConfig) -> None:
        from opentelemetry import metrics, trace
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        resource = Resource.create(
            {"service.name": config.service_name, "service.version": config.service_version}
        )

        if config.exporter_type == ExporterType.OTLP:
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

            span_exporter: Any = OTLPSpanExporter(
                endpoint=config.otlp_endpoint, insecure=config.otlp_insecure
            )
            metric_exporter: Any = OTLPMetricExporter(
                endpoint=config.otlp_endpoint, insecure=config.otlp_insecure
            )
        else:
            from opentelemetry.sdk.metrics.export import ConsoleMetricExporter
            from opentelemetry.sdk.trace.export import ConsoleSpanExporter

            span_exporter = ConsoleSpanExporter()
            metric_exporter = ConsoleMetricExporter()

        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        trace.set_tracer_provider(tracer_provider)
        self._tracer_provider = tracer_provider

        reader = PeriodicExportingMetricReader(
            metric_exporter, export_interval_millis=config.metric_interval_ms
        )
        meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
        metrics.set_meter_provider(meter_provider)
        self._meter_provider = meter_provider

    @property
    def is_enabled(self) -> bool:
        """True if telemetry is initialized and enabled."""
        return self._initialized and self._config is not None and self._config.enabled

    @property
    def tracer(self) -> Tracer:
        """Tracer for the configured service."""
        from opentelemetry import trace

        if self._config is None:
            return trace.get_tracer(__name__)
        return trace.get_tracer(self._config.service_name, self._config.service_version)

    @property
    def meter(self) -> Meter:
        """Meter for the configured service."""
        from opentelemetry import metrics

        if self._config is None:
            return metrics.get_meter(__name__)
        return metrics.get_meter(self._config.service_name, self._config.service_version)

    def count(self, name: str, amount: int = 1, attributes: dict[str, Any] | None = None) -> None:
        """Add ``amount`` to the counter ``name`` (no-op when disabled)."""
        if not self.is_enabled:
            return
        counter = self._counters.get(name)
        if counter is None:
            counter = self.meter.create_counter(name)
            self._counters[name] = counter
        counter.add(amount, attributes=attributes)

    def shutdown(self) -> None:
        """Flush and shut down providers."""
        for label, provider in (("tracer", self._tracer_provider), ("meter", self._meter_provider)):
            if provider is None:
                continue
            try:
                provider.force_flush()
                provider.shutdown()
                logger.debug("%s provider shut down", label.capitalize())
            except Exception as e:
                logger.warning("Error shutting down %s provider: %s", label, e)
        self._tracer_provider = None
        self._meter_provider = None

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (used by tests)."""
        if cls._instance is not None:
            cls._instance.shutdown()
        cls._instance = None
