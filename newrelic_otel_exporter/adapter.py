"""Translate OpenTelemetry spans into New Relic span batches.

The adapter is a pure function of its input: it keeps no state between calls
and never touches the network. Spans are grouped by the resource that produced
them, one :class:`SpanBatch` per distinct resource, in order of first
appearance. Resource attributes become the batch's common attributes so that
they are sent once per batch rather than once per span.

A malformed span aborts the whole call with :class:`AdaptationError`; no span
is dropped silently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.trace import (
    SpanContext,
    SpanKind,
    StatusCode,
    format_span_id,
    format_trace_id,
)

from .errors import AdaptationError

INSTRUMENTATION_PROVIDER = "opentelemetry"
COLLECTOR_NAME = "newrelic-opentelemetry-exporter"

_NANOS_PER_MILLI = 1_000_000

AttributeMap = Mapping[str, Any]


@dataclass(frozen=True)
class NewRelicSpan:
    """A span in the shape New Relic's span ingest API expects."""

    guid: str  # 16 hex chars
    trace_id: str  # 32 hex chars
    name: str
    start_time_ms: int
    duration_ms: float
    parent_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SpanBatch:
    """Spans sharing one set of common attributes.

    A batch with no spans is valid and means there is nothing to send.
    """

    spans: tuple[NewRelicSpan, ...] = ()
    common_attributes: dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.spans)

    @property
    def is_empty(self) -> bool:
        return not self.spans


class SpanBatchAdapter:
    """Convert finished OpenTelemetry spans into :class:`SpanBatch` objects.

    Parameters
    ----------
    common_attributes:
        Attributes added to every batch, such as ``service.name``. They take
        precedence over resource attributes of the same name.
    """

    def __init__(self, common_attributes: AttributeMap | None = None) -> None:
        self._common_attributes = dict(common_attributes or {})

    @property
    def common_attributes(self) -> dict[str, Any]:
        return dict(self._common_attributes)

    def adapt_to_span_batches(self, spans: Sequence[ReadableSpan]) -> list[SpanBatch]:
        """Group ``spans`` by resource and convert each group into a batch.

        Every input span ends up in exactly one returned batch. An empty
        input produces an empty list.

        Raises
        ------
        AdaptationError
            If any span is missing identifiers or timestamps, has not ended,
            or ends before it starts.
        """
        groups: dict[tuple, tuple[Resource | None, list[NewRelicSpan]]] = {}
        for span in spans:
            converted = self.adapt_span(span)
            key = _resource_key(span.resource)
            if key not in groups:
                groups[key] = (span.resource, [])
            groups[key][1].append(converted)

        return [
            SpanBatch(spans=tuple(members), common_attributes=self._batch_attributes(resource))
            for resource, members in groups.values()
        ]

    def adapt_span(self, span: ReadableSpan) -> NewRelicSpan:
        """Convert a single span. See :meth:`adapt_to_span_batches`."""
        span_context, start_time, end_time = _validate(span)

        attributes = {key: _coerce_value(value) for key, value in (span.attributes or {}).items()}

        if span.kind is not None and span.kind is not SpanKind.INTERNAL:
            attributes["span.kind"] = span.kind.name.lower()

        scope = span.instrumentation_scope
        if scope is not None:
            attributes["instrumentation.name"] = scope.name
            if scope.version:
                attributes["instrumentation.version"] = scope.version

        status = span.status
        if status is not None and status.status_code is StatusCode.ERROR:
            attributes["error"] = True
            attributes["error.message"] = status.description or ""

        parent_id = None
        if span.parent is not None and span.parent.is_valid:
            parent_id = format_span_id(span.parent.span_id)

        return NewRelicSpan(
            guid=format_span_id(span_context.span_id),
            trace_id=format_trace_id(span_context.trace_id),
            name=span.name,
            start_time_ms=start_time // _NANOS_PER_MILLI,
            duration_ms=(end_time - start_time) / _NANOS_PER_MILLI,
            parent_id=parent_id,
            attributes=attributes,
        )

    def _batch_attributes(self, resource: Resource | None) -> dict[str, Any]:
        attributes: dict[str, Any] = {
            "instrumentation.provider": INSTRUMENTATION_PROVIDER,
            "collector.name": COLLECTOR_NAME,
        }
        if resource is not None:
            attributes.update(
                (key, _coerce_value(value)) for key, value in resource.attributes.items()
            )
        attributes.update(self._common_attributes)
        return attributes


def _validate(span: ReadableSpan) -> tuple[SpanContext, int, int]:
    """Check ``span`` can be adapted and return its context, start and end."""
    name = getattr(span, "name", None)
    if not name:
        raise AdaptationError("span has no name", span_name=name)

    span_context = span.context
    if span_context is None or not span_context.is_valid:
        raise AdaptationError(f"span {name!r} has no valid trace id and span id", span_name=name)

    start_time, end_time = span.start_time, span.end_time
    if start_time is None:
        raise AdaptationError(f"span {name!r} has no start time", span_name=name)
    if end_time is None:
        raise AdaptationError(f"span {name!r} has not ended", span_name=name)
    if end_time < start_time:
        raise AdaptationError(
            f"span {name!r} ends before it starts ({end_time} < {start_time})",
            span_name=name,
        )
    return span_context, start_time, end_time


def _resource_key(resource: Resource | None) -> tuple:
    if resource is None:
        return ()
    items = tuple(sorted((key, _freeze(value)) for key, value in resource.attributes.items()))
    return (resource.schema_url, items)


def _freeze(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return value


def _coerce_value(value: Any) -> Any:
    # New Relic accepts JSON arrays; OpenTelemetry stores sequences as tuples.
    if isinstance(value, (list, tuple)):
        return list(value)
    return value


def count_spans(batches: Iterable[SpanBatch]) -> int:
    """Total number of spans across ``batches``."""
    return sum(len(batch) for batch in batches)
