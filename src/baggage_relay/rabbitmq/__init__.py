"""RabbitMQ transport adapter."""

from __future__ import annotations

from .connection import RabbitMQConnectionManager
from .consumer import AmqpDelivery, RabbitMQConsumer
from .publisher import RabbitMQPublisher

__all__ = [
    "AmqpDelivery",
    "RabbitMQConnectionManager",
    "RabbitMQConsumer",
    "RabbitMQPublisher",
]
