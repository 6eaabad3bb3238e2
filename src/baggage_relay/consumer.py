"""MessageProcessor - per-delivery state machine ending in ack or nack.

RECEIVED -> CONTEXT_DECODED -> DOWNSTREAM_CALLED -> ACKED
any failure along the way                        -> NACKED (requeue)

Redelivery is unbounded: a message that always fails is requeued forever.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from .carrier import decode
from .delivery import DeliveryOutcome, DeliveryState, ResolutionGuard
from .exceptions import DownstreamError, MalformedPayloadError
from .observability import context_fields, log_stage, stage_span
from .serialization import MessageSerializer

if TYPE_CHECKING:
    from .context import Context
    from .delivery import Delivery
    from .messages import Message, ProcessResponse

logger = logging.getLogger(__name__)

# Baggage keys that are called out individually in the receipt log.
HIGHLIGHTED_BAGGAGE = ("user.id", "request.source", "session.id")


class Downstream(Protocol):
    async def call(self, message: Message, context: Context) -> ProcessResponse: ...


class MessageProcessor:
    """Drives one delivery through decode, downstream call and resolution.

    process() never raises for per-message failures; they are logged and the
    delivery is nacked with requeue.
    """

    def __init__(
        self,
        downstream: Downstream,
        *,
        serializer: MessageSerializer | None = None,
    ) -> None:
        self._downstream = downstream
        self._serializer = serializer or MessageSerializer()

    async def process(self, delivery: Delivery) -> DeliveryOutcome:
        guard = ResolutionGuard(delivery)
        tag = delivery.delivery_tag
        log_stage(logger, DeliveryState.RECEIVED.value, delivery_tag=tag)
        try:
            await self._run(delivery, tag)
        except asyncio.CancelledError:
            raise
        except MalformedPayloadError as e:
            log_stage(
                logger,
                "malformed_payload",
                logging.WARNING,
                delivery_tag=tag,
                error=str(e),
            )
            return await self._resolve(guard, DeliveryOutcome.NACKED)
        except DownstreamError as e:
            log_stage(
                logger,
                "downstream_failed",
                logging.WARNING,
                delivery_tag=tag,
                error=str(e),
                status_code=e.status_code,
            )
            return await self._resolve(guard, DeliveryOutcome.NACKED)
        except Exception as e:  # noqa: BLE001
            logger.exception("Error processing message %r", tag)
            log_stage(
                logger,
                "processing_failed",
                logging.ERROR,
                delivery_tag=tag,
                error=str(e),
            )
            return await self._resolve(guard, DeliveryOutcome.NACKED)
        return await self._resolve(guard, DeliveryOutcome.ACKED)

    async def _run(self, delivery: Delivery, tag: object) -> None:
        message = self._serializer.deserialize(delivery.body)
        logger.info("Received message: %s", message.model_dump_json())

        context = decode(delivery.headers)
        log_stage(
            logger,
            DeliveryState.CONTEXT_DECODED.value,
            delivery_tag=tag,
            message_id=message.id,
            **context_fields(context),
        )
        self._log_baggage(context)

        # Explicit hop: queue-side context re-encoded for the HTTP call,
        # under a child span of the propagated trace.
        outbound = context.with_trace(context.trace.child() if context.trace else None)
        with stage_span("consumer.downstream_call", outbound, message_id=message.id):
            response = await self._downstream.call(message, outbound)
        log_stage(
            logger,
            DeliveryState.DOWNSTREAM_CALLED.value,
            delivery_tag=tag,
            message_id=message.id,
            baggage_received=response.baggage_received,
        )

    def _log_baggage(self, context: Context) -> None:
        if not context.baggage:
            logger.info("No baggage found")
        for key, value in context.baggage.items():
            logger.info("Baggage %s: %s", key, value)
        for key in HIGHLIGHTED_BAGGAGE:
            value = context.get_baggage(key)
            if value is not None:
                logger.info("%s from baggage: %s", key, value)
        if context.trace is not None:
            logger.info(
                "Trace ID: %s, Span ID: %s",
                context.trace.trace_id,
                context.trace.span_id,
            )

    async def _resolve(
        self, guard: ResolutionGuard, outcome: DeliveryOutcome
    ) -> DeliveryOutcome:
        tag = guard.delivery.delivery_tag
        try:
            if outcome is DeliveryOutcome.ACKED:
                await guard.ack()
            else:
                await guard.nack(requeue=True)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001
            # The broker redelivers unresolved messages once the channel closes.
            logger.exception("Failed to %s delivery %r", outcome.value, tag)
            log_stage(
                logger,
                "resolution_failed",
                logging.ERROR,
                delivery_tag=tag,
                intended=outcome.value,
                error=str(e),
            )
            return outcome
        log_stage(
            logger,
            DeliveryState(outcome.value).value,
            delivery_tag=tag,
            requeue=outcome is DeliveryOutcome.NACKED,
        )
        return outcome
