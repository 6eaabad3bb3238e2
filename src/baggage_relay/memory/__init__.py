"""In-memory transport for testing."""

from __future__ import annotations

from .queue import InMemoryDelivery, InMemoryQueue

__all__ = [
    "InMemoryDelivery",
    "InMemoryQueue",
]
