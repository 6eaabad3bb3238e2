"""Pytest fixtures for baggage-relay tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the package is importable when running pytest from the repo root
# without an editable install.
_src = Path(__file__).resolve().parent.parent / "src"
if _src.is_dir() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from baggage_relay.context import Context, TraceReference  # noqa: E402


@pytest.fixture
def sample_context() -> Context:
    return Context(
        baggage={"user.id": "user-1001", "message.number": "1"},
        trace=TraceReference(
            trace_id="4bf92f3577b34da6a3ce929d0e0e4736", span_id="00f067aa0ba902b7"
        ),
    )
