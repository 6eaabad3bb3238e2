"""Tests for MessageProcessor: ack/nack policy and exactly-once resolution."""

from __future__ import annotations

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from baggage_relay.carrier import encode
from baggage_relay.consumer import MessageProcessor
from baggage_relay.context import Context
from baggage_relay.delivery import DeliveryOutcome
from baggage_relay.exceptions import DownstreamError
from baggage_relay.memory import InMemoryQueue
from baggage_relay.messages import Message, ProcessResponse

QUEUE = "otel-baggage-demo"
BODY = json.dumps(
    {"id": 1, "timestamp": "2024-01-01T00:00:00Z", "data": "Message 1"}
).encode()


def _echo_downstream() -> MagicMock:
    downstream = MagicMock()

    async def call(message: Message, context: Context) -> ProcessResponse:
        return ProcessResponse(
            success=True,
            message_id=message.id,
            processed_at="2024-01-01T00:00:01.000Z",
            baggage_received=dict(context.baggage),
        )

    downstream.call = AsyncMock(side_effect=call)
    return downstream


@pytest.mark.asyncio
async def test_success_acks(sample_context: Context) -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, BODY, encode(sample_context))
    downstream = _echo_downstream()
    outcomes = await queue.drain(QUEUE, MessageProcessor(downstream))

    assert outcomes == [DeliveryOutcome.ACKED]
    delivery = queue.deliveries[0]
    assert delivery.acks == 1
    assert delivery.nacks == []
    assert queue.size(QUEUE) == 0


@pytest.mark.asyncio
async def test_downstream_receives_decoded_context(sample_context: Context) -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, BODY, encode(sample_context))
    downstream = _echo_downstream()
    await queue.drain(QUEUE, MessageProcessor(downstream))

    message, context = downstream.call.call_args.args
    assert message == Message(id=1, timestamp="2024-01-01T00:00:00Z", data="Message 1")
    assert context.baggage == sample_context.baggage
    assert sample_context.trace is not None
    assert context.trace is not None
    assert context.trace.trace_id == sample_context.trace.trace_id
    assert context.trace.span_id != sample_context.trace.span_id


@pytest.mark.asyncio
async def test_missing_carrier_still_processed() -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, BODY)
    downstream = _echo_downstream()
    outcomes = await queue.drain(QUEUE, MessageProcessor(downstream))
    assert outcomes == [DeliveryOutcome.ACKED]
    _, context = downstream.call.call_args.args
    assert context == Context.empty()


@pytest.mark.asyncio
async def test_malformed_body_nacks_without_downstream_call() -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, b"not json at all")
    downstream = _echo_downstream()
    outcomes = await queue.drain(QUEUE, MessageProcessor(downstream), max_deliveries=1)

    assert outcomes == [DeliveryOutcome.NACKED]
    assert queue.deliveries[0].nacks == [True]
    assert queue.deliveries[0].acks == 0
    downstream.call.assert_not_awaited()
    assert queue.size(QUEUE) == 1


@pytest.mark.asyncio
async def test_missing_fields_nacks() -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, b'{"id": 1}')
    downstream = _echo_downstream()
    outcomes = await queue.drain(QUEUE, MessageProcessor(downstream), max_deliveries=1)
    assert outcomes == [DeliveryOutcome.NACKED]
    downstream.call.assert_not_awaited()


@pytest.mark.asyncio
async def test_downstream_http_500_nacks_with_requeue() -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, BODY)
    downstream = MagicMock()
    downstream.call = AsyncMock(
        side_effect=DownstreamError("API service returned HTTP 500", status_code=500)
    )
    outcomes = await queue.drain(QUEUE, MessageProcessor(downstream), max_deliveries=1)
    assert outcomes == [DeliveryOutcome.NACKED]
    assert queue.deliveries[0].nacks == [True]
    assert queue.size(QUEUE) == 1


@pytest.mark.asyncio
async def test_always_failing_downstream_requeues_every_message() -> None:
    queue = InMemoryQueue()
    for n in range(1, 4):
        body = json.dumps({"id": n, "timestamp": "t", "data": f"Message {n}"})
        queue.put_raw(QUEUE, body.encode())
    downstream = MagicMock()
    downstream.call = AsyncMock(side_effect=DownstreamError("down"))
    processor = MessageProcessor(downstream)

    outcomes = await queue.drain(QUEUE, processor, max_deliveries=9)

    assert outcomes == [DeliveryOutcome.NACKED] * 9
    assert all(d.nacks == [True] and d.acks == 0 for d in queue.deliveries)
    assert queue.size(QUEUE) == 3
    assert all(d.redelivered for d in queue.deliveries[3:])

    # Still usable afterwards.
    downstream.call.side_effect = None
    downstream.call.return_value = ProcessResponse(
        success=True, message_id=1, processed_at="t", baggage_received={}
    )
    assert await queue.drain(QUEUE, processor) == [DeliveryOutcome.ACKED] * 3


@pytest.mark.asyncio
async def test_unexpected_exception_nacks() -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, BODY)
    downstream = MagicMock()
    downstream.call = AsyncMock(side_effect=KeyError("boom"))
    outcomes = await queue.drain(QUEUE, MessageProcessor(downstream), max_deliveries=1)
    assert outcomes == [DeliveryOutcome.NACKED]
    assert queue.deliveries[0].resolution_count == 1


@pytest.mark.asyncio
async def test_resolution_failure_is_contained() -> None:
    delivery = MagicMock()
    delivery.body = BODY
    delivery.headers = {}
    delivery.delivery_tag = 5
    delivery.ack = AsyncMock(side_effect=RuntimeError("channel closed"))
    delivery.nack = AsyncMock()
    outcome = await MessageProcessor(_echo_downstream()).process(delivery)
    assert outcome is DeliveryOutcome.ACKED
    delivery.ack.assert_awaited_once()
    delivery.nack.assert_not_awaited()


def _stages(caplog: pytest.LogCaptureFixture) -> list[str]:
    stages: list[str] = []
    for record in caplog.records:
        message = record.getMessage()
        if message.startswith("{"):
            stages.append(json.loads(message)["stage"])
    return stages


@pytest.mark.asyncio
async def test_failed_resolution_is_not_logged_as_resolved(
    caplog: pytest.LogCaptureFixture,
) -> None:
    delivery = MagicMock()
    delivery.body = BODY
    delivery.headers = {}
    delivery.delivery_tag = 6
    delivery.ack = AsyncMock(side_effect=RuntimeError("channel closed"))
    delivery.nack = AsyncMock()
    with caplog.at_level(logging.INFO, logger="baggage_relay.consumer"):
        await MessageProcessor(_echo_downstream()).process(delivery)
    stages = _stages(caplog)
    assert stages[-1] == "resolution_failed"
    assert "acked" not in stages
    failed = json.loads(caplog.records[-1].getMessage())
    assert failed["intended"] == "acked"
    assert failed["error"] == "channel closed"


@pytest.mark.asyncio
async def test_successful_resolution_logs_final_stage(
    caplog: pytest.LogCaptureFixture,
) -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, BODY)
    with caplog.at_level(logging.INFO, logger="baggage_relay.consumer"):
        await queue.drain(QUEUE, MessageProcessor(_echo_downstream()))
    assert _stages(caplog)[-1] == "acked"


@pytest.mark.asyncio
async def test_cancellation_propagates() -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, BODY)
    downstream = MagicMock()
    downstream.call = AsyncMock(side_effect=asyncio.CancelledError())
    with pytest.raises(asyncio.CancelledError):
        await queue.drain(QUEUE, MessageProcessor(downstream))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("body", "error"),
    [
        (BODY, None),
        (b"garbage", None),
        (BODY, DownstreamError("500", status_code=500)),
        (BODY, RuntimeError("unexpected")),
    ],
)
async def test_exactly_one_resolution_on_every_path(
    body: bytes, error: Exception | None
) -> None:
    queue = InMemoryQueue()
    queue.put_raw(QUEUE, body)
    downstream = _echo_downstream()
    if error is not None:
        downstream.call = AsyncMock(side_effect=error)
    await queue.drain(QUEUE, MessageProcessor(downstream), max_deliveries=1)
    assert queue.deliveries[0].resolution_count == 1


@pytest.mark.asyncio
async def test_concurrent_deliveries_resolve_independently() -> None:
    queue = InMemoryQueue()
    for n in (1, 2):
        body = json.dumps({"id": n, "timestamp": "t", "data": "d"}).encode()
        queue.put_raw(QUEUE, body, encode(Context(baggage={"n": str(n)})))
    release = asyncio.Event()

    async def call(message: Message, context: Context) -> ProcessResponse:
        if message.id == 1:
            await release.wait()
            raise DownstreamError("slow and failing")
        release.set()
        return ProcessResponse(
            success=True,
            message_id=message.id,
            processed_at="t",
            baggage_received=dict(context.baggage),
        )

    downstream = MagicMock()
    downstream.call = AsyncMock(side_effect=call)
    processor = MessageProcessor(downstream)
    first, second = queue.get(QUEUE), queue.get(QUEUE)
    assert first is not None and second is not None
    outcomes = await asyncio.gather(processor.process(first), processor.process(second))

    assert outcomes == [DeliveryOutcome.NACKED, DeliveryOutcome.ACKED]
    assert first.nacks == [True] and first.acks == 0
    assert second.acks == 1 and second.nacks == []
