"""Exceptions for baggage-relay."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .messages import Message


class RelayError(Exception):
    """Root exception for the entire baggage-relay package."""


class InfrastructureError(RelayError):
    """Base class for all infrastructure-related errors."""


class MessagingError(InfrastructureError):
    """Base class for all messaging-related infrastructure errors."""


class MessagingConnectionError(MessagingError):
    """Raised when connectivity to the message broker fails."""


class ConnectionExhaustedError(MessagingConnectionError):
    """Raised when every connection attempt to the broker has failed.

    Fatal at startup: the CLI exits with status 1.
    """

    def __init__(self, url: str, attempts: int) -> None:
        self.url = url
        self.attempts = attempts
        super().__init__(f"Failed to connect to {url} after {attempts} attempt(s)")


class QueueDeclarationError(MessagingError):
    """Raised when a queue is re-declared with conflicting parameters."""


class PublishError(MessagingError):
    """Raised when publishing aborts a producer run.

    ``published`` holds the messages that reached the broker before the
    failure; they are not rolled back.
    """

    def __init__(self, message: str, published: list[Message] | None = None) -> None:
        self.published = list(published or [])
        super().__init__(message)


class DeliveryAlreadyResolvedError(MessagingError):
    """Raised when a delivery is acked or nacked a second time."""

    def __init__(self, delivery_tag: object, resolution: str) -> None:
        self.delivery_tag = delivery_tag
        self.resolution = resolution
        super().__init__(
            f"Delivery {delivery_tag!r} was already resolved ({resolution})"
        )


class MalformedPayloadError(RelayError):
    """Raised when a message body is not valid JSON or lacks required fields."""


class DownstreamError(RelayError):
    """Raised for any failure of the downstream HTTP call.

    Network errors, non-2xx statuses and unparseable bodies are not
    distinguished: every one of them results in a requeue.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
