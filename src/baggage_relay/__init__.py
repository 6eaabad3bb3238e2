"""Baggage propagation across a RabbitMQ hop and an HTTP hop."""

from __future__ import annotations

from .carrier import baggage_header, decode, encode
from .consumer import MessageProcessor
from .context import Context, TraceReference
from .delivery import Delivery, DeliveryOutcome, DeliveryState, ResolutionGuard
from .downstream import DownstreamClient
from .exceptions import (
    ConnectionExhaustedError,
    DeliveryAlreadyResolvedError,
    DownstreamError,
    InfrastructureError,
    MalformedPayloadError,
    MessagingConnectionError,
    MessagingError,
    PublishError,
    QueueDeclarationError,
    RelayError,
)
from .messages import Message, ProcessRequest, ProcessResponse
from .producer import ProducerPipeline
from .serialization import MessageSerializer

__all__ = [
    "ConnectionExhaustedError",
    "Context",
    "Delivery",
    "DeliveryAlreadyResolvedError",
    "DeliveryOutcome",
    "DeliveryState",
    "DownstreamClient",
    "DownstreamError",
    "InfrastructureError",
    "MalformedPayloadError",
    "Message",
    "MessageProcessor",
    "MessageSerializer",
    "MessagingConnectionError",
    "MessagingError",
    "ProcessRequest",
    "ProcessResponse",
    "ProducerPipeline",
    "PublishError",
    "QueueDeclarationError",
    "RelayError",
    "ResolutionGuard",
    "TraceReference",
    "baggage_header",
    "decode",
    "encode",
]
