"""RabbitMQ connection supervision: bounded retry, channel, queue declaration."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import aio_pika
from aio_pika.exceptions import AMQPError

from ..exceptions import (
    ConnectionExhaustedError,
    MessagingConnectionError,
    QueueDeclarationError,
)

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractQueue

logger = logging.getLogger(__name__)


class RabbitMQConnectionManager:
    """Manages a single robust connection and channel for RabbitMQ.

    connect() retries sequentially with a constant delay and gives up with
    ConnectionExhaustedError after ``max_attempts`` attempts. Call close() on
    shutdown and health_check() for probes.
    """

    def __init__(
        self,
        url: str = "amqp://localhost:5672",
        *,
        max_attempts: int = 10,
        retry_delay: float = 2.0,
        **connect_kwargs: Any,
    ) -> None:
        """Configure connection URL, retry bounds and aio_pika connect kwargs."""
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")
        self._url = url
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._connect_kwargs = connect_kwargs
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queues: dict[str, tuple[AbstractQueue, dict[str, Any]]] = {}

    @property
    def url(self) -> str:
        return self._url

    async def connect(self) -> None:
        """Establish connection and channel. Idempotent if already connected."""
        if self._connection is not None and not self._connection.is_closed:
            return
        last_error: BaseException | None = None
        for attempt in range(1, self._max_attempts + 1):
            logger.info(
                "Connecting to RabbitMQ at %s (attempt %d/%d)",
                self._url,
                attempt,
                self._max_attempts,
            )
            try:
                self._connection = await aio_pika.connect_robust(
                    self._url,
                    **self._connect_kwargs,
                )
                self._channel = await self._connection.channel()
            except (
                AMQPError,
                ConnectionError,
                OSError,
                ValueError,
                asyncio.TimeoutError,
            ) as e:
                last_error = e
                await self._discard_connection()
                if attempt == self._max_attempts:
                    break
                logger.warning(
                    "Connection attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt,
                    self._max_attempts,
                    e,
                    self._retry_delay,
                )
                await _sleep(self._retry_delay)
            else:
                logger.info("Connected to RabbitMQ on attempt %d", attempt)
                return
        logger.error(
            "Giving up on RabbitMQ at %s after %d attempt(s)",
            self._url,
            self._max_attempts,
        )
        raise ConnectionExhaustedError(self._url, self._max_attempts) from last_error

    async def _discard_connection(self) -> None:
        """Close a half-open connection left behind by a failed attempt."""
        connection = self._connection
        self._connection = None
        self._channel = None
        if connection is None:
            return
        try:
            await connection.close()
        except Exception:  # noqa: BLE001
            logger.debug("Failed to close half-open connection", exc_info=True)

    async def declare_queue(
        self, name: str, *, durable: bool = False, **arguments: Any
    ) -> AbstractQueue:
        """Declare *name*; identical re-declarations reuse the first result."""
        params: dict[str, Any] = {"durable": durable, **arguments}
        cached = self._queues.get(name)
        if cached is not None:
            queue, existing = cached
            if existing != params:
                raise QueueDeclarationError(
                    f"Queue {name!r} already declared with {existing}, got {params}"
                )
            return queue
        queue = await self.channel.declare_queue(name, **params)
        self._queues[name] = (queue, params)
        logger.info("Queue %r is ready", name)
        return queue

    async def close(self) -> None:
        """Close channel and connection."""
        self._queues.clear()
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    @property
    def channel(self) -> AbstractChannel:
        """Return the channel; raises if not connected."""
        if self._channel is None:
            raise MessagingConnectionError("Not connected; call connect() first")
        return self._channel

    async def health_check(self) -> bool:
        """Return True if connection and channel are open."""
        if self._connection is None or self._channel is None:
            return False
        return not self._connection.is_closed


async def _sleep(seconds: float) -> None:
    """Async sleep (overridable for tests)."""
    await asyncio.sleep(seconds)
