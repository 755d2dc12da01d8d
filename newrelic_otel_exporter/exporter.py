"""OpenTelemetry span exporter that ships spans to New Relic.

:class:`NewRelicSpanExporter` plugs into any OpenTelemetry span processor. It
does three things per export call:

* Adapt the finished spans into New Relic span batches.
* Hand every non-empty batch to a :class:`~newrelic_otel_exporter.sender.Sender`.
* Return a :class:`~newrelic_otel_exporter.result.CompletionSignal` that
  resolves once every batch has been delivered, or as soon as one fails.

``export`` never blocks on the network and never raises; failures are
reported through the returned signal.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from newrelic_telemetry_sdk import SpanClient
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter

from .adapter import SpanBatch, SpanBatchAdapter, count_spans
from .config import ExporterSettings, debug_log_enabled
from .errors import AdaptationError, SendError
from .result import CompletionSignal
from .sender import Sender, TelemetryClientSender

logger = logging.getLogger(__name__)


class SpanAdapter(Protocol):
    """Pure conversion from OpenTelemetry spans to New Relic batches."""

    def adapt_to_span_batches(self, spans: Sequence[ReadableSpan]) -> Sequence[SpanBatch]:
        ...


class NewRelicSpanExporter(SpanExporter):
    """Export OpenTelemetry spans to New Relic as span batches.

    Parameters
    ----------
    adapter:
        Converts spans into batches. Usually a :class:`SpanBatchAdapter`.
    sender:
        Delivers batches. Usually a :class:`TelemetryClientSender`.

    Use :meth:`create` to build an exporter from an API key or the
    environment.
    """

    def __init__(self, adapter: SpanAdapter, sender: Sender) -> None:
        self._adapter = adapter
        self._sender = sender
        self._is_shutdown = False

    @classmethod
    def create(
        cls, settings: ExporterSettings | None = None, **overrides: Any
    ) -> NewRelicSpanExporter:
        """Build an exporter backed by ``newrelic_telemetry_sdk.SpanClient``.

        Without ``settings`` the ``NEW_RELIC_*`` environment variables are
        read. Keyword ``overrides`` replace individual settings.

        Raises
        ------
        ConfigurationError
            If no API key is available.
        """
        if settings is None:
            settings = ExporterSettings.from_env(**overrides)
        elif overrides:
            settings = replace(settings, **overrides)
        settings.validate()

        client_kwargs: dict[str, Any] = {"port": settings.port}
        if settings.host:
            client_kwargs["host"] = settings.host
        client = SpanClient(settings.api_key, **client_kwargs)

        sender = TelemetryClientSender(
            client, max_workers=settings.max_workers, send_timeout=settings.send_timeout
        )
        adapter = SpanBatchAdapter(common_attributes=settings.batch_attributes())
        return cls(adapter, sender)

    def export(self, spans: Sequence[ReadableSpan]) -> CompletionSignal:  # type: ignore[override]
        """Start exporting ``spans`` and return a signal for the outcome.

        The signal resolves to success when every derived batch has been
        delivered, or to failure with the first error observed.
        """
        if self._is_shutdown:
            logger.warning("Exporter already shut down, ignoring %d spans", len(spans))
            return CompletionSignal.failed(SendError("exporter has been shut down"))

        try:
            batches = list(self._adapter.adapt_to_span_batches(spans))
        except AdaptationError as exc:
            logger.warning("Dropping %d spans that could not be adapted: %s", len(spans), exc)
            return CompletionSignal.failed(exc)
        except Exception as exc:
            logger.exception("Unexpected error adapting %d spans", len(spans))
            return CompletionSignal.failed(AdaptationError(f"adapter raised {exc!r}"))

        batches = [batch for batch in batches if not batch.is_empty]
        _debug_log_batches(len(spans), batches)
        if not batches:
            return CompletionSignal.succeeded()

        logger.debug("Exporting %d spans in %d batches", count_spans(batches), len(batches))
        return CompletionSignal.all_of(self._send(batch) for batch in batches)

    def shutdown(self) -> None:
        if self._is_shutdown:
            logger.debug("Exporter shutdown called more than once")
            return
        self._is_shutdown = True
        self._sender.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._sender.flush(timeout_millis / 1000.0)

    def _send(self, batch: SpanBatch) -> CompletionSignal:
        try:
            return self._sender.send(batch)
        except Exception as exc:
            logger.warning("Sender raised while accepting a batch of %d spans: %s", len(batch), exc)
            error = exc if isinstance(exc, SendError) else SendError(f"sender raised {exc!r}")
            return CompletionSignal.failed(error)


def _debug_log_batches(span_count: int, batches: Sequence[SpanBatch]) -> None:
    """Dump adapted batches to stderr when NEWRELIC_OTEL_EXPORTER_DEBUG_LOG=1."""
    if not debug_log_enabled():
        return

    timestamp = datetime.now(timezone.utc).isoformat()
    lines = [
        "=" * 80,
        f"[NEWRELIC OTEL DEBUG] {timestamp}",
        f"Input spans: {span_count}",
        f"Batches: {len(batches)}",
    ]
    for index, batch in enumerate(batches):
        lines.append("")
        lines.append(f"Batch {index}: {len(batch)} spans")
        lines.append("  Common attributes:")
        for key in sorted(batch.common_attributes):
            lines.append(f"    - {key}: {batch.common_attributes[key]}")
        for span in batch.spans:
            lines.append(
                f"  {span.name} trace={span.trace_id} id={span.guid} "
                f"parent={span.parent_id or '-'} duration_ms={span.duration_ms}"
            )
    lines.append("=" * 80)
    lines.append("")

    print("\n".join(lines), file=sys.stderr, flush=True)
