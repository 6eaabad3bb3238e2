"""ProducerPipeline - publish a numbered sequence of messages with baggage."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Protocol

from .context import Context, TraceReference
from .exceptions import PublishError
from .messages import Message, utc_now_iso
from .observability import context_fields, log_stage, stage_span

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def publish(
        self, queue_name: str, message: Message, context: Context
    ) -> None: ...


def new_session_id() -> str:
    """Session id for one producer run (millisecond wall clock)."""
    return f"session-{int(time.time() * 1000)}"


class ProducerPipeline:
    """Publishes messages ``1..message_count`` one at a time, in order.

    Each message gets its own Context: user, source, session and sequence
    number as baggage plus a new trace reference. A failed publish stops the
    run; messages already sent stay on the queue.
    """

    def __init__(
        self,
        publisher: Publisher,
        queue_name: str,
        *,
        message_count: int = 5,
        publish_delay: float = 2.0,
        source: str = "api-gateway",
        session_id: str | None = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        if message_count < 0:
            raise ValueError("message_count must be >= 0")
        if publish_delay < 0:
            raise ValueError("publish_delay must be >= 0")
        self._publisher = publisher
        self._queue_name = queue_name
        self._message_count = message_count
        self._publish_delay = publish_delay
        self._source = source
        self.session_id = session_id or new_session_id()
        self._clock = clock

    def build_context(self, number: int) -> Context:
        return Context.empty().with_baggage(
            {
                "user.id": f"user-{1000 + number}",
                "request.source": self._source,
                "session.id": self.session_id,
                "message.number": str(number),
            }
        ).with_trace(TraceReference.generate())

    def build_message(self, number: int) -> Message:
        return Message(id=number, timestamp=self._clock(), data=f"Message {number}")

    async def publish_one(self, number: int) -> Message:
        context = self.build_context(number)
        message = self.build_message(number)
        log_stage(
            logger,
            "publishing",
            message_id=number,
            content=message.model_dump(),
            **context_fields(context),
        )
        with stage_span("producer.publish", context, message_id=number):
            await self._publisher.publish(self._queue_name, message, context)
        log_stage(logger, "published", message_id=number)
        return message

    async def run(self) -> list[Message]:
        """Publish the whole sequence; raise PublishError on the first failure."""
        published: list[Message] = []
        for number in range(1, self._message_count + 1):
            try:
                published.append(await self.publish_one(number))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error publishing message %d: %s", number, e)
                raise PublishError(
                    f"Publishing message {number} failed: {e}", published=published
                ) from e
            if number < self._message_count and self._publish_delay > 0:
                await asyncio.sleep(self._publish_delay)
        logger.info("All %d messages published successfully", len(published))
        return published
