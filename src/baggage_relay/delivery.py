"""Delivery port, per-message states, and the single-resolution guard."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .exceptions import DeliveryAlreadyResolvedError

if TYPE_CHECKING:
    from collections.abc import Mapping


class DeliveryState(str, enum.Enum):
    RECEIVED = "received"
    CONTEXT_DECODED = "context_decoded"
    DOWNSTREAM_CALLED = "downstream_called"
    ACKED = "acked"
    NACKED = "nacked"


class DeliveryOutcome(str, enum.Enum):
    ACKED = "acked"
    NACKED = "nacked"


@runtime_checkable
class Delivery(Protocol):
    """
    Port for one received, not-yet-resolved queue message.

    Transport packages provide concrete adapters.
    """

    @property
    def body(self) -> bytes: ...

    @property
    def headers(self) -> Mapping[str, object]: ...

    @property
    def delivery_tag(self) -> object: ...

    async def ack(self) -> None:
        """Remove the message from the queue permanently."""
        ...

    async def nack(self, requeue: bool = True) -> None:
        """Reject the message; with *requeue* it returns to the queue."""
        ...


class ResolutionGuard:
    """Wraps a Delivery so that it is resolved at most once.

    The first ack/nack is forwarded; any later one raises
    DeliveryAlreadyResolvedError without touching the transport.
    """

    def __init__(self, delivery: Delivery) -> None:
        self._delivery = delivery
        self._resolution: DeliveryOutcome | None = None

    @property
    def delivery(self) -> Delivery:
        return self._delivery

    @property
    def resolution(self) -> DeliveryOutcome | None:
        return self._resolution

    @property
    def resolved(self) -> bool:
        return self._resolution is not None

    def _claim(self, outcome: DeliveryOutcome) -> None:
        if self._resolution is not None:
            raise DeliveryAlreadyResolvedError(
                self._delivery.delivery_tag, self._resolution.value
            )
        self._resolution = outcome

    async def ack(self) -> None:
        self._claim(DeliveryOutcome.ACKED)
        await self._delivery.ack()

    async def nack(self, requeue: bool = True) -> None:
        self._claim(DeliveryOutcome.NACKED)
        await self._delivery.nack(requeue=requeue)
