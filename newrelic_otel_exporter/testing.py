"""Helpers for building finished spans without running a tracer.

:class:`SpanRecordBuilder` assembles an immutable OpenTelemetry
:class:`~opentelemetry.sdk.trace.ReadableSpan` from hex identifiers and
nanosecond timestamps, rejecting combinations a real tracer could never
produce::

    span = (
        SpanRecordBuilder()
        .set_trace_id("000000000063d76f0000000037fe0393")
        .set_span_id("000000000012d685")
        .set_name("spanName")
        .set_kind(SpanKind.SERVER)
        .set_status(Status(StatusCode.OK))
        .set_start_epoch_nanos(456_001_000)
        .set_end_epoch_nanos(456_001_100)
        .set_has_ended(True)
        .build()
    )
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.util.instrumentation import InstrumentationScope
from opentelemetry.trace import (
    INVALID_SPAN_ID,
    INVALID_TRACE_ID,
    SpanContext,
    SpanKind,
    Status,
    StatusCode,
    TraceFlags,
)

TRACE_ID_WIDTH = 32
SPAN_ID_WIDTH = 16


def _parse_id(value: str, width: int, invalid: int, label: str) -> int:
    if not re.fullmatch(f"[0-9a-f]{{{width}}}", value):
        raise ValueError(f"{label} must be {width} lowercase hex characters: {value!r}")
    parsed = int(value, 16)
    if parsed == invalid:
        raise ValueError(f"{label} must not be all zeros")
    return parsed


class SpanRecordBuilder:
    """Fluent builder for finished :class:`ReadableSpan` records."""

    def __init__(self) -> None:
        self._trace_id: str | None = None
        self._span_id: str | None = None
        self._parent_span_id: str | None = None
        self._name: str | None = None
        self._kind = SpanKind.INTERNAL
        self._status = Status(StatusCode.UNSET)
        self._start: int | None = None
        self._end: int | None = None
        self._has_ended = False
        self._resource = Resource({})
        self._attributes: dict[str, Any] = {}
        self._scope: InstrumentationScope | None = None

    def set_trace_id(self, trace_id: str) -> SpanRecordBuilder:
        self._trace_id = trace_id
        return self

    def set_span_id(self, span_id: str) -> SpanRecordBuilder:
        self._span_id = span_id
        return self

    def set_parent_span_id(self, span_id: str | None) -> SpanRecordBuilder:
        self._parent_span_id = span_id
        return self

    def set_name(self, name: str) -> SpanRecordBuilder:
        self._name = name
        return self

    def set_kind(self, kind: SpanKind) -> SpanRecordBuilder:
        self._kind = kind
        return self

    def set_status(self, status: Status) -> SpanRecordBuilder:
        self._status = status
        return self

    def set_start_epoch_nanos(self, nanos: int) -> SpanRecordBuilder:
        self._start = nanos
        return self

    def set_end_epoch_nanos(self, nanos: int) -> SpanRecordBuilder:
        self._end = nanos
        return self

    def set_has_ended(self, has_ended: bool) -> SpanRecordBuilder:
        self._has_ended = has_ended
        return self

    def set_resource(self, resource: Resource) -> SpanRecordBuilder:
        self._resource = resource
        return self

    def set_attributes(self, attributes: Mapping[str, Any]) -> SpanRecordBuilder:
        self._attributes = dict(attributes)
        return self

    def set_instrumentation_scope(
        self, name: str, version: str | None = None
    ) -> SpanRecordBuilder:
        self._scope = InstrumentationScope(name, version)
        return self

    def build(self) -> ReadableSpan:
        """Validate the collected fields and return the span.

        Raises
        ------
        ValueError
            If an identifier is missing or malformed, the name is empty, the
            start time is missing, or an ended span ends before it starts.
        """
        if self._trace_id is None or self._span_id is None:
            raise ValueError("trace id and span id are required")
        trace_id = _parse_id(self._trace_id, TRACE_ID_WIDTH, INVALID_TRACE_ID, "trace id")
        span_id = _parse_id(self._span_id, SPAN_ID_WIDTH, INVALID_SPAN_ID, "span id")
        if not self._name:
            raise ValueError("span name is required")
        if self._start is None:
            raise ValueError("start time is required")

        end_time = None
        if self._has_ended:
            if self._end is None:
                raise ValueError("an ended span needs an end time")
            if self._end < self._start:
                raise ValueError(
                    f"end time {self._end} is before start time {self._start}"
                )
            end_time = self._end

        parent = None
        if self._parent_span_id is not None:
            parent = SpanContext(
                trace_id=trace_id,
                span_id=_parse_id(self._parent_span_id, SPAN_ID_WIDTH, INVALID_SPAN_ID, "parent span id"),
                is_remote=False,
                trace_flags=TraceFlags(TraceFlags.SAMPLED),
            )

        return ReadableSpan(
            name=self._name,
            context=SpanContext(
                trace_id=trace_id,
                span_id=span_id,
                is_remote=False,
                trace_flags=TraceFlags(TraceFlags.SAMPLED),
            ),
            parent=parent,
            resource=self._resource,
            attributes=dict(self._attributes),
            kind=self._kind,
            status=self._status,
            start_time=self._start,
            end_time=end_time,
            instrumentation_scope=self._scope,
        )
