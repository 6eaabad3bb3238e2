"""Context - immutable baggage plus trace reference, passed explicitly."""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class TraceReference(BaseModel):
    """Opaque trace and span identifiers correlating one operation."""

    model_config = ConfigDict(frozen=True)

    trace_id: str = Field(..., min_length=1)
    span_id: str = Field(..., min_length=1)

    @classmethod
    def generate(cls) -> TraceReference:
        """New root reference with W3C-sized random identifiers."""
        return cls(trace_id=secrets.token_hex(16), span_id=secrets.token_hex(8))

    def child(self) -> TraceReference:
        """Same trace, fresh span id."""
        return TraceReference(trace_id=self.trace_id, span_id=secrets.token_hex(8))


class Context(BaseModel):
    """Immutable snapshot of baggage entries and an optional trace reference.

    Setters return a new Context; the receiver is never changed. Contexts are
    handed from function to function, never stored in ambient state.
    """

    model_config = ConfigDict(frozen=True)

    baggage: Mapping[str, str] = Field(default_factory=dict)
    trace: TraceReference | None = None

    @field_validator("baggage")
    @classmethod
    def freeze_baggage(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        if "" in value:
            raise ValueError("baggage keys must be non-empty")
        return MappingProxyType(dict(value))

    @field_serializer("baggage")
    def serialize_baggage(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    def __hash__(self) -> int:
        return hash((frozenset(self.baggage.items()), self.trace))

    @classmethod
    def empty(cls) -> Context:
        return cls()

    def with_baggage(self, entries: Mapping[str, str]) -> Context:
        """Return a copy whose baggage is merged with *entries* (entries win)."""
        merged = dict(self.baggage)
        merged.update(entries)
        return Context(baggage=merged, trace=self.trace)

    def set_baggage(self, key: str, value: str) -> Context:
        return self.with_baggage({key: value})

    def with_trace(self, trace: TraceReference | None) -> Context:
        return Context(baggage=dict(self.baggage), trace=trace)

    def get_baggage(self, key: str) -> str | None:
        return self.baggage.get(key)

    @property
    def is_empty(self) -> bool:
        return not self.baggage and self.trace is None
