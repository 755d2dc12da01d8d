"""Settings for building a :class:`NewRelicSpanExporter`."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from .errors import ConfigurationError

API_KEY_ENV_VARS = ("NEW_RELIC_API_KEY", "NEW_RELIC_INSERT_KEY")
SERVICE_NAME_ENV_VAR = "NEW_RELIC_SERVICE_NAME"
HOST_ENV_VAR = "NEW_RELIC_HOST"
PORT_ENV_VAR = "NEW_RELIC_PORT"

DEBUG_LOG_ENV_VAR = "NEWRELIC_OTEL_EXPORTER_DEBUG_LOG"


@dataclass(frozen=True)
class ExporterSettings:
    """Connection and tagging options for the exporter.

    Parameters
    ----------
    api_key:
        New Relic insert key used to authenticate with the span ingest API.
    service_name:
        Reported as the ``service.name`` common attribute when set.
    host:
        Ingest host override, e.g. the EU endpoint. ``None`` keeps the
        client's default.
    port:
        Ingest port.
    common_attributes:
        Extra attributes attached to every batch.
    max_workers:
        Number of threads delivering batches concurrently.
    send_timeout:
        Per-request timeout in seconds. ``None`` keeps the client's default.
    """

    api_key: str | None = None
    service_name: str | None = None
    host: str | None = None
    port: int = 443
    common_attributes: Mapping[str, Any] = field(default_factory=dict)
    max_workers: int = 2
    send_timeout: float | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> ExporterSettings:
        """Read settings from ``NEW_RELIC_*`` environment variables.

        Keyword ``overrides`` win over the environment.
        """
        environ = os.environ if environ is None else environ

        api_key = next((environ[name] for name in API_KEY_ENV_VARS if environ.get(name)), None)
        port_text = environ.get(PORT_ENV_VAR)
        try:
            port = int(port_text) if port_text else 443
        except ValueError as exc:
            raise ConfigurationError(f"{PORT_ENV_VAR} must be an integer, got {port_text!r}") from exc

        settings = cls(
            api_key=api_key,
            service_name=environ.get(SERVICE_NAME_ENV_VAR) or None,
            host=environ.get(HOST_ENV_VAR) or None,
            port=port,
        )
        return replace(settings, **overrides) if overrides else settings

    def validate(self) -> ExporterSettings:
        if not self.api_key:
            raise ConfigurationError(
                "A New Relic API key is required; pass api_key or set "
                + " or ".join(API_KEY_ENV_VARS)
            )
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")
        return self

    def batch_attributes(self) -> dict[str, Any]:
        """Common attributes the adapter should add to every batch."""
        attributes = dict(self.common_attributes)
        if self.service_name:
            attributes["service.name"] = self.service_name
        return attributes


def debug_log_enabled() -> bool:
    return os.environ.get(DEBUG_LOG_ENV_VAR) == "1"
