"""Exception types raised by the New Relic span exporter."""

from __future__ import annotations


class NewRelicExporterError(Exception):
    """Base class for all exporter errors."""


class AdaptationError(NewRelicExporterError):
    """A span record could not be mapped onto a New Relic span batch."""

    def __init__(self, message: str, span_name: str | None = None) -> None:
        super().__init__(message)
        self.span_name = span_name


class SendError(NewRelicExporterError):
    """A batch could not be delivered to the New Relic ingest endpoint.

    ``status`` holds the HTTP status code when the endpoint answered, and is
    ``None`` when the request never completed.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ConfigurationError(NewRelicExporterError):
    """Exporter settings are incomplete or invalid."""
