"""RabbitMQPublisher - publish a Message with its carrier in AMQP headers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aio_pika

from ..carrier import encode
from ..serialization import MessageSerializer

if TYPE_CHECKING:
    from ..context import Context
    from ..messages import Message
    from .connection import RabbitMQConnectionManager


class RabbitMQPublisher:
    """Publishes to a named queue through the default exchange.

    The routing key is the queue name; the context travels as AMQP message
    headers produced by the carrier codec.
    """

    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        *,
        serializer: MessageSerializer | None = None,
    ) -> None:
        """Configure publisher.

        Args:
            connection: Shared connection manager.
            serializer: Used to serialize messages; default MessageSerializer().
        """
        self._connection = connection
        self._serializer = serializer or MessageSerializer()

    async def publish(
        self, queue_name: str, message: Message, context: Context
    ) -> None:
        """Publish *message* to *queue_name* carrying *context*."""
        await self._connection.connect()
        await self._connection.declare_queue(queue_name)
        await self._connection.channel.default_exchange.publish(
            aio_pika.Message(
                body=self._serializer.serialize(message),
                content_type="application/json",
                headers=dict(encode(context)),
            ),
            routing_key=queue_name,
        )

    async def health_check(self) -> bool:
        """Return True if the connection is healthy."""
        return await self._connection.health_check()
