"""In-memory queue for testing - connects publisher and processor."""

from __future__ import annotations

import itertools
from collections import deque
from typing import TYPE_CHECKING

from ..carrier import encode
from ..serialization import MessageSerializer

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..consumer import MessageProcessor
    from ..context import Context
    from ..delivery import DeliveryOutcome
    from ..messages import Message


class InMemoryDelivery:
    """Delivery over a queued (body, headers) pair; records its resolutions."""

    def __init__(
        self,
        queue: InMemoryQueue,
        queue_name: str,
        body: bytes,
        headers: Mapping[str, object],
        delivery_tag: int,
        redelivered: bool = False,
    ) -> None:
        self._queue = queue
        self.queue_name = queue_name
        self._body = body
        self._headers = dict(headers)
        self._delivery_tag = delivery_tag
        self.redelivered = redelivered
        self.acks = 0
        self.nacks: list[bool] = []

    @property
    def body(self) -> bytes:
        return self._body

    @property
    def headers(self) -> Mapping[str, object]:
        return self._headers

    @property
    def delivery_tag(self) -> object:
        return self._delivery_tag

    @property
    def resolution_count(self) -> int:
        return self.acks + len(self.nacks)

    async def ack(self) -> None:
        self.acks += 1

    async def nack(self, requeue: bool = True) -> None:
        self.nacks.append(requeue)
        if requeue:
            self._queue.put_raw(
                self.queue_name, self._body, self._headers, redelivered=True
            )


class InMemoryQueue:
    """Named FIFO queues with at-least-once redelivery on nack.

    publish() has the same signature as RabbitMQPublisher.publish, so it can
    stand in as a ProducerPipeline publisher.
    """

    def __init__(self, serializer: MessageSerializer | None = None) -> None:
        self._serializer = serializer or MessageSerializer()
        self._queues: dict[str, deque[tuple[bytes, dict[str, object], bool]]] = {}
        self._tags = itertools.count(1)
        self.deliveries: list[InMemoryDelivery] = []

    def declare(self, queue_name: str) -> None:
        self._queues.setdefault(queue_name, deque())

    def put_raw(
        self,
        queue_name: str,
        body: bytes,
        headers: Mapping[str, object] | None = None,
        *,
        redelivered: bool = False,
    ) -> None:
        self.declare(queue_name)
        self._queues[queue_name].append((body, dict(headers or {}), redelivered))

    async def publish(
        self, queue_name: str, message: Message, context: Context
    ) -> None:
        self.put_raw(queue_name, self._serializer.serialize(message), encode(context))

    def size(self, queue_name: str) -> int:
        return len(self._queues.get(queue_name, ()))

    def get(self, queue_name: str) -> InMemoryDelivery | None:
        """Pop the next message as a delivery, or None if the queue is empty."""
        pending = self._queues.get(queue_name)
        if not pending:
            return None
        body, headers, redelivered = pending.popleft()
        delivery = InMemoryDelivery(
            self, queue_name, body, headers, next(self._tags), redelivered
        )
        self.deliveries.append(delivery)
        return delivery

    async def drain(
        self,
        queue_name: str,
        processor: MessageProcessor,
        *,
        max_deliveries: int | None = None,
    ) -> list[DeliveryOutcome]:
        """Feed deliveries to *processor* until empty or *max_deliveries* reached.

        Requeued messages are delivered again, so a bound is needed whenever
        the processor can keep failing.
        """
        outcomes: list[DeliveryOutcome] = []
        while max_deliveries is None or len(outcomes) < max_deliveries:
            delivery = self.get(queue_name)
            if delivery is None:
                break
            outcomes.append(await processor.process(delivery))
        return outcomes
