"""Deliver span batches to New Relic without blocking the caller."""

from __future__ import annotations

import logging
import threading
from concurrent import futures
from typing import Any, Protocol

from newrelic_telemetry_sdk import Span, SpanClient

from .adapter import NewRelicSpan, SpanBatch
from .errors import SendError
from .result import CompletionSignal

logger = logging.getLogger(__name__)


class Sender(Protocol):
    """Transport collaborator used by :class:`NewRelicSpanExporter`.

    Implementations must not block in :meth:`send` and must accept
    concurrent calls with distinct batches.
    """

    def send(self, batch: SpanBatch) -> CompletionSignal:
        """Start delivering ``batch`` and return a signal for its outcome."""
        ...

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for in-flight sends. Returns ``False`` on timeout."""
        ...

    def shutdown(self) -> None:
        """Release transport resources. Later sends fail."""
        ...


class TelemetryClientSender:
    """:class:`Sender` backed by ``newrelic_telemetry_sdk.SpanClient``.

    ``SpanClient.send_batch`` performs a blocking HTTP request, so each batch
    is sent on a worker thread. A batch succeeds when the ingest endpoint
    answers with a 2xx status; anything else resolves its signal with
    :class:`SendError`. Nothing is retried here.

    Parameters
    ----------
    client:
        The New Relic span client used for delivery.
    max_workers:
        Size of the worker pool.
    send_timeout:
        Optional per-request timeout in seconds, forwarded to the client.
    """

    def __init__(
        self,
        client: SpanClient,
        *,
        max_workers: int = 2,
        send_timeout: float | None = None,
    ) -> None:
        self._client = client
        self._send_timeout = send_timeout
        self._executor = futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="newrelic-span-sender"
        )
        self._in_flight: set[CompletionSignal] = set()
        self._lock = threading.Lock()
        self._is_shutdown = False

    def send(self, batch: SpanBatch) -> CompletionSignal:
        signal = CompletionSignal()
        with self._lock:
            if self._is_shutdown:
                signal.fail(SendError("sender has been shut down"))
                return signal
            self._in_flight.add(signal)
        signal.add_done_callback(self._forget)

        try:
            self._executor.submit(self._deliver, batch, signal)
        except RuntimeError as exc:
            # Raced with shutdown; the pool no longer accepts work.
            signal.fail(SendError(f"could not schedule send: {exc}"))
        return signal

    def flush(self, timeout: float | None = None) -> bool:
        with self._lock:
            pending = list(self._in_flight)
        if not pending:
            return True
        _, not_done = futures.wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        with self._lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
        self._executor.shutdown(wait=True)
        self._client.close()

    def _deliver(self, batch: SpanBatch, signal: CompletionSignal) -> None:
        common = {"attributes": dict(batch.common_attributes)} if batch.common_attributes else None
        kwargs: dict[str, Any] = {"common": common}
        if self._send_timeout is not None:
            kwargs["timeout"] = self._send_timeout

        try:
            spans = [to_telemetry_span(span) for span in batch.spans]
            response = self._client.send_batch(spans, **kwargs)
        except Exception as exc:
            logger.warning("Sending %d spans to New Relic failed: %s", len(batch), exc)
            signal.fail(SendError(f"sending span batch failed: {exc}"))
            return

        status = getattr(response, "status", None)
        if status is not None and 200 <= status < 300:
            logger.debug("Sent %d spans to New Relic (status %s)", len(spans), status)
            signal.succeed()
            return

        logger.warning("New Relic rejected %d spans with status %s", len(spans), status)
        signal.fail(SendError(f"span batch rejected with status {status}", status=status))

    def _forget(self, signal: CompletionSignal) -> None:
        with self._lock:
            self._in_flight.discard(signal)


def to_telemetry_span(span: NewRelicSpan) -> Span:
    """Build the ``newrelic_telemetry_sdk`` payload object for ``span``."""
    payload = Span(
        span.name,
        tags=dict(span.attributes) or None,
        guid=span.guid,
        trace_id=span.trace_id,
        parent_id=span.parent_id,
        start_time_ms=span.start_time_ms,
    )
    # Span() truncates durations to whole ms and treats a 0 start as "now".
    payload["timestamp"] = span.start_time_ms
    payload["attributes"]["duration.ms"] = span.duration_ms
    return payload
