"""RabbitMQConsumer - feeds AMQP deliveries into a MessageProcessor."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from aio_pika.abc import AbstractIncomingMessage, AbstractQueue

    from ..consumer import MessageProcessor
    from .connection import RabbitMQConnectionManager

logger = logging.getLogger(__name__)


class AmqpDelivery:
    """Delivery adapter over an aio-pika incoming message."""

    def __init__(self, message: AbstractIncomingMessage) -> None:
        self._message = message

    @property
    def body(self) -> bytes:
        return self._message.body

    @property
    def headers(self) -> Mapping[str, object]:
        return self._message.headers or {}

    @property
    def delivery_tag(self) -> object:
        return self._message.delivery_tag

    async def ack(self) -> None:
        await self._message.ack()

    async def nack(self, requeue: bool = True) -> None:
        await self._message.nack(requeue=requeue)


class RabbitMQConsumer:
    """Consumes a named queue with manual acknowledgement.

    Every delivery is wrapped in an AmqpDelivery and handed to the processor,
    which owns its ack/nack.
    """

    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        processor: MessageProcessor,
        *,
        prefetch_count: int = 10,
    ) -> None:
        """Configure consumer.

        Args:
            connection: Shared connection manager.
            processor: Resolves each delivery.
            prefetch_count: QoS prefetch.
        """
        self._connection = connection
        self._processor = processor
        self._prefetch_count = prefetch_count
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

    async def start(self, queue_name: str) -> None:
        """Declare *queue_name* (non-durable) and begin consuming it."""
        await self._connection.connect()
        channel = self._connection.channel
        await channel.set_qos(prefetch_count=self._prefetch_count)
        self._queue = await self._connection.declare_queue(queue_name)
        self._consumer_tag = await self._queue.consume(self._on_message, no_ack=False)
        logger.info("Waiting for messages on %r", queue_name)

    async def _on_message(self, raw: AbstractIncomingMessage) -> None:
        await self._processor.process(AmqpDelivery(raw))

    async def stop(self) -> None:
        """Cancel consumption; unresolved deliveries are redelivered by the broker."""
        if self._queue is not None and self._consumer_tag is not None:
            await self._queue.cancel(self._consumer_tag)
        self._queue = None
        self._consumer_tag = None

    async def health_check(self) -> bool:
        """Return True if the connection is healthy."""
        return await self._connection.health_check()
