"""OpenTelemetry integration for doc-vector-index.

Enable with the CLI --telemetry flag or OTEL_ENABLED=true.
"""

from doc_vector_index.telemetry.config import ExporterType, TelemetryConfig
from doc_vector_index.telemetry.decorators import trace_span, traced
from doc_vector_index.telemetry.service import TelemetryService

__all__ = [
    "ExporterType",
    "TelemetryConfig",
    "TelemetryService",
    "trace_span",
    "traced",
]
