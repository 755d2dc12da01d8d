"""Export OpenTelemetry spans to New Relic.

This package exposes an OpenTelemetry span exporter that converts finished SDK
spans into New Relic span batches and delivers them through the New Relic
telemetry SDK without blocking the calling span processor.
"""

from .adapter import NewRelicSpan, SpanBatch, SpanBatchAdapter
from .config import ExporterSettings
from .errors import AdaptationError, ConfigurationError, NewRelicExporterError, SendError
from .exporter import NewRelicSpanExporter, SpanAdapter
from .result import CompletionSignal, SignalState
from .sender import Sender, TelemetryClientSender

__all__ = [
    "AdaptationError",
    "CompletionSignal",
    "ConfigurationError",
    "ExporterSettings",
    "NewRelicExporterError",
    "NewRelicSpan",
    "NewRelicSpanExporter",
    "SendError",
    "Sender",
    "SignalState",
    "SpanAdapter",
    "SpanBatch",
    "SpanBatchAdapter",
    "TelemetryClientSender",
]
