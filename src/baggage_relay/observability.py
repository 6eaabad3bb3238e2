"""Stage logging and optional OpenTelemetry spans (optional [opentelemetry] extra)."""

from __future__ import annotations

import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any, cast

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .context import Context

_log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for a CLI process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def log_stage(
    logger: logging.Logger,
    stage: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Emit one JSON log entry for a pipeline stage transition."""
    try:
        entry = {"stage": stage, **fields}
        logger.log(level, json.dumps(entry, default=str, sort_keys=True))
    except Exception:  # noqa: BLE001
        _log.debug("Failed to emit structured log entry", exc_info=True)


def context_fields(context: Context) -> dict[str, Any]:
    """Loggable view of a context: baggage plus trace ids when present."""
    fields: dict[str, Any] = {"baggage": dict(context.baggage)}
    if context.trace is not None:
        fields["trace_id"] = context.trace.trace_id
        fields["span_id"] = context.trace.span_id
    return fields


class _Tracer:
    """Lazily resolved OpenTelemetry tracer; None when the API is missing."""

    def __init__(self) -> None:
        self._tracer: Any | None = None
        self._resolved = False

    def get(self) -> Any | None:
        if not self._resolved:
            self._resolved = True
            try:
                trace_api = cast(
                    "Any", __import__("opentelemetry.trace", fromlist=["trace"])
                )
                self._tracer = trace_api.get_tracer("baggage-relay", "0.1.0")
            except ImportError:
                self._tracer = None
        return self._tracer


_tracer = _Tracer()


@contextlib.contextmanager
def stage_span(name: str, context: Context, **attributes: Any) -> Iterator[Any]:
    """Open a span around a pipeline stage when OpenTelemetry is installed.

    Baggage entries become ``baggage.<key>`` attributes and the propagated
    trace reference is recorded as ``relay.trace_id``/``relay.span_id``.
    Yields the span, or None when tracing is unavailable.
    """
    tracer = _tracer.get()
    if tracer is None:
        yield None
        return
    with tracer.start_as_current_span(
        name, record_exception=False, set_status_on_exception=True
    ) as span:
        try:
            for key, value in context.baggage.items():
                span.set_attribute(f"baggage.{key}", value)
            if context.trace is not None:
                span.set_attribute("relay.trace_id", context.trace.trace_id)
                span.set_attribute("relay.span_id", context.trace.span_id)
            for key, value in attributes.items():
                span.set_attribute(key, str(value))
        except Exception:  # noqa: BLE001
            _log.debug("Failed to set span attributes", exc_info=True)
        try:
            yield span
            span.set_attribute("relay.outcome", "success")
        except Exception as e:
            span.set_attribute("relay.outcome", "error")
            with contextlib.suppress(Exception):
                span.record_exception(e)
            raise
