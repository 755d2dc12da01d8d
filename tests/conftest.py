import threading

import pytest
from opentelemetry.trace import SpanKind, Status, StatusCode

from newrelic_otel_exporter.result import CompletionSignal
from newrelic_otel_exporter.testing import SpanRecordBuilder

TRACE_ID = "000000000063d76f0000000037fe0393"
SPAN_ID = "000000000012d685"


def minimal_span_builder() -> SpanRecordBuilder:
    return (
        SpanRecordBuilder()
        .set_trace_id(TRACE_ID)
        .set_span_id(SPAN_ID)
        .set_name("spanName")
        .set_kind(SpanKind.SERVER)
        .set_status(Status(StatusCode.OK))
        .set_start_epoch_nanos(456_001_000)
        .set_end_epoch_nanos(456_001_100)
        .set_has_ended(True)
    )


class DeferredSender:
    """Sender double whose signals stay pending until the test resolves them."""

    def __init__(self):
        self.batches = []
        self.signals = []
        self.flush_timeouts = []
        self.shutdown_calls = 0
        self._lock = threading.Lock()

    def send(self, batch):
        signal = CompletionSignal()
        with self._lock:
            self.batches.append(batch)
            self.signals.append(signal)
        return signal

    def flush(self, timeout=None):
        self.flush_timeouts.append(timeout)
        return True

    def shutdown(self):
        self.shutdown_calls += 1


class ImmediateSender(DeferredSender):
    """Sender double that succeeds every batch straight away."""

    def send(self, batch):
        signal = super().send(batch)
        signal.succeed()
        return signal


@pytest.fixture()
def minimal_span():
    return minimal_span_builder().build()


@pytest.fixture()
def deferred_sender():
    return DeferredSender()


@pytest.fixture()
def immediate_sender():
    return ImmediateSender()
