import threading
from unittest.mock import Mock, patch

import pytest

from newrelic_otel_exporter.adapter import NewRelicSpan, SpanBatch, SpanBatchAdapter
from newrelic_otel_exporter.errors import SendError
from newrelic_otel_exporter.result import SignalState
from newrelic_otel_exporter.sender import TelemetryClientSender, to_telemetry_span

from conftest import SPAN_ID, TRACE_ID, minimal_span_builder


def _batch():
    span = NewRelicSpan(
        guid="000000000012d685",
        trace_id="000000000063d76f0000000037fe0393",
        name="spanName",
        start_time_ms=456,
        duration_ms=0.0001,
        parent_id="00000000000000aa",
        attributes={"span.kind": "server"},
    )
    return SpanBatch(spans=(span,), common_attributes={"service.name": "checkout"})


@pytest.fixture()
def client():
    client = Mock()
    client.send_batch.return_value = Mock(status=202)
    return client


@pytest.fixture()
def sender(client):
    sender = TelemetryClientSender(client, max_workers=1)
    yield sender
    sender.shutdown()


def test_successful_send(sender, client):
    signal = sender.send(_batch())

    assert signal.join(timeout=5).state is SignalState.SUCCEEDED
    client.send_batch.assert_called_once()
    spans, = client.send_batch.call_args.args
    assert len(spans) == 1
    assert client.send_batch.call_args.kwargs == {"common": {"attributes": {"service.name": "checkout"}}}


def test_timeout_is_forwarded_to_client(client):
    sender = TelemetryClientSender(client, send_timeout=2.5)
    try:
        sender.send(_batch()).join(timeout=5)
    finally:
        sender.shutdown()

    assert client.send_batch.call_args.kwargs["timeout"] == 2.5


def test_batch_without_common_attributes_sends_none(sender, client):
    batch = SpanBatch(spans=_batch().spans)

    sender.send(batch).join(timeout=5)

    assert client.send_batch.call_args.kwargs == {"common": None}


def test_rejected_status_fails_with_send_error(sender, client):
    client.send_batch.return_value = Mock(status=403)

    signal = sender.send(_batch()).join(timeout=5)

    assert signal.state is SignalState.FAILED
    assert isinstance(signal.error, SendError)
    assert signal.error.status == 403


def test_client_exception_fails_with_send_error(sender, client):
    client.send_batch.side_effect = ConnectionError("connection refused")

    signal = sender.send(_batch()).join(timeout=5)

    assert signal.state is SignalState.FAILED
    assert isinstance(signal.error, SendError)
    assert signal.error.status is None
    assert "connection refused" in str(signal.error)


def test_send_does_not_block_on_the_client(client):
    release = threading.Event()

    def slow_send(*args, **kwargs):
        release.wait(timeout=5)
        return Mock(status=202)

    client.send_batch.side_effect = slow_send
    sender = TelemetryClientSender(client)
    try:
        signal = sender.send(_batch())
        assert signal.state is SignalState.PENDING
        assert sender.flush(timeout=0.01) is False

        release.set()
        assert sender.flush(timeout=5) is True
        assert signal.state is SignalState.SUCCEEDED
    finally:
        release.set()
        sender.shutdown()


def test_flush_with_nothing_in_flight(sender):
    assert sender.flush(timeout=0) is True


def test_send_after_shutdown_fails(client):
    sender = TelemetryClientSender(client)
    sender.shutdown()
    sender.shutdown()

    signal = sender.send(_batch())

    assert signal.state is SignalState.FAILED
    client.send_batch.assert_not_called()
    client.close.assert_called_once()


def test_to_telemetry_span_passes_identifiers():
    span = _batch().spans[0]

    with patch("newrelic_otel_exporter.sender.Span") as span_cls:
        to_telemetry_span(span)

    span_cls.assert_called_once_with(
        "spanName",
        tags={"span.kind": "server"},
        guid="000000000012d685",
        trace_id="000000000063d76f0000000037fe0393",
        parent_id="00000000000000aa",
        start_time_ms=456,
    )


def test_payload_keeps_sub_millisecond_duration(minimal_span):
    adapted = SpanBatchAdapter().adapt_span(minimal_span)

    payload = to_telemetry_span(adapted)

    assert payload["id"] == SPAN_ID
    assert payload["trace.id"] == TRACE_ID
    assert payload["timestamp"] == adapted.start_time_ms == 456
    assert payload["attributes"]["duration.ms"] == adapted.duration_ms == 0.0001
    assert payload["attributes"]["span.kind"] == "server"
    assert "parent.id" not in payload["attributes"]


def test_payload_keeps_fractional_duration_and_parent():
    span = (
        minimal_span_builder()
        .set_parent_span_id("00000000000000aa")
        .set_start_epoch_nanos(1_000_000_000)
        .set_end_epoch_nanos(1_002_500_000)
        .build()
    )
    adapted = SpanBatchAdapter().adapt_span(span)

    payload = to_telemetry_span(adapted)

    assert payload["timestamp"] == 1000
    assert payload["attributes"]["duration.ms"] == pytest.approx(2.5)
    assert payload["attributes"]["parent.id"] == "00000000000000aa"


def test_payload_keeps_epoch_start():
    span = minimal_span_builder().set_start_epoch_nanos(100).set_end_epoch_nanos(200).build()
    adapted = SpanBatchAdapter().adapt_span(span)

    payload = to_telemetry_span(adapted)

    assert adapted.start_time_ms == 0
    assert payload["timestamp"] == 0
