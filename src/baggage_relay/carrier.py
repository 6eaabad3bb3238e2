"""Carrier codec - flatten a Context into string headers and back.

Layout of a carrier::

    baggage-<escaped key>  -> percent-encoded value   (one per entry)
    trace-id               -> percent-encoded trace id
    span-id                -> percent-encoded span id

Keys only ever contain ``[a-z0-9._~%-]`` so they survive transports that
lower-case header names (HTTP/1.1, HTTP/2, most AMQP clients). Decoding is
best-effort: anything it does not recognise is skipped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote

from .context import Context, TraceReference

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

BAGGAGE_PREFIX = "baggage-"
TRACE_ID_KEY = "trace-id"
SPAN_ID_KEY = "span-id"

_KEY_SAFE = frozenset("abcdefghijklmnopqrstuvwxyz0123456789._~-")


def _escape_key(key: str) -> str:
    out: list[str] = []
    for char in key:
        if char in _KEY_SAFE:
            out.append(char)
        else:
            out.extend(f"%{byte:02X}" for byte in char.encode("utf-8"))
    return "".join(out)


def _escape_value(value: str) -> str:
    return quote(value, safe="")


def _unescape(raw: str) -> str:
    # errors="strict" so invalid UTF-8 sequences are reported, not replaced.
    return unquote(raw, encoding="utf-8", errors="strict")


def _as_text(value: object) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return None
    return None


def encode(context: Context) -> dict[str, str]:
    """Serialize *context* into a flat carrier. Pure and deterministic."""
    carrier: dict[str, str] = {}
    for key in sorted(context.baggage):
        carrier[BAGGAGE_PREFIX + _escape_key(key)] = _escape_value(
            context.baggage[key]
        )
    if context.trace is not None:
        carrier[TRACE_ID_KEY] = _escape_value(context.trace.trace_id)
        carrier[SPAN_ID_KEY] = _escape_value(context.trace.span_id)
    return carrier


def decode(carrier: Mapping[str, object] | None) -> Context:
    """Rebuild a Context from *carrier*; never raises.

    Header names are compared case-insensitively. Unknown keys and malformed
    entries are ignored.
    """
    if not carrier:
        return Context.empty()

    baggage: dict[str, str] = {}
    trace_id: str | None = None
    span_id: str | None = None

    for raw_key, raw_value in carrier.items():
        if not isinstance(raw_key, str):
            continue
        name = raw_key.lower()
        text = _as_text(raw_value)
        if text is None:
            if name.startswith(BAGGAGE_PREFIX) or name in (TRACE_ID_KEY, SPAN_ID_KEY):
                logger.debug("Ignoring carrier entry %r: unsupported value", raw_key)
            continue
        try:
            if name.startswith(BAGGAGE_PREFIX):
                escaped = name[len(BAGGAGE_PREFIX) :]
                if not escaped:
                    logger.debug("Ignoring carrier entry %r: empty key", raw_key)
                    continue
                baggage[_unescape(escaped)] = _unescape(text)
            elif name == TRACE_ID_KEY:
                trace_id = _unescape(text)
            elif name == SPAN_ID_KEY:
                span_id = _unescape(text)
        except UnicodeDecodeError:
            logger.debug("Ignoring carrier entry %r: bad escape", raw_key)

    trace = None
    if trace_id and span_id:
        trace = TraceReference(trace_id=trace_id, span_id=span_id)
    return Context(baggage=baggage, trace=trace)


def baggage_header(context: Context) -> str:
    """Render baggage as a W3C ``baggage`` header value (informational)."""
    return ",".join(
        f"{quote(key, safe='')}={quote(context.baggage[key], safe='')}"
        for key in sorted(context.baggage)
    )
