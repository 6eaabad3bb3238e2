"""baggage-relay CLI - producer, consumer and HTTP receiver entry points."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Optional

import typer

from .config import Settings, get_settings
from .consumer import MessageProcessor
from .downstream import DownstreamClient
from .exceptions import ConnectionExhaustedError, PublishError
from .observability import configure_logging
from .producer import ProducerPipeline
from .rabbitmq import RabbitMQConnectionManager, RabbitMQConsumer, RabbitMQPublisher

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="baggage-relay",
    help="Propagate baggage across a RabbitMQ hop and an HTTP hop.",
    add_completion=False,
    no_args_is_help=True,
)


def _connection(settings: Settings) -> RabbitMQConnectionManager:
    return RabbitMQConnectionManager(
        settings.rabbitmq_url,
        max_attempts=settings.connect_max_attempts,
        retry_delay=settings.connect_retry_delay,
    )


async def run_producer(settings: Settings) -> int:
    """Publish the configured sequence; return the process exit code."""
    connection = _connection(settings)
    try:
        await connection.connect()
        await connection.declare_queue(settings.queue_name)
        pipeline = ProducerPipeline(
            RabbitMQPublisher(connection),
            settings.queue_name,
            message_count=settings.message_count,
            publish_delay=settings.publish_delay,
            source=settings.request_source,
        )
        await pipeline.run()
    except (ConnectionExhaustedError, PublishError) as e:
        logger.error("Error in publisher: %s", e)
        return 1
    finally:
        await connection.close()
    logger.info("Connection closed")
    return 0


async def run_consumer(settings: Settings, stop: asyncio.Event | None = None) -> int:
    """Consume until *stop* is set (or forever); return the process exit code."""
    connection = _connection(settings)
    stop = stop or asyncio.Event()
    async with DownstreamClient(
        settings.api_service_url, timeout=settings.downstream_timeout
    ) as downstream:
        consumer = RabbitMQConsumer(
            connection,
            MessageProcessor(downstream),
            prefetch_count=settings.prefetch_count,
        )
        try:
            await consumer.start(settings.queue_name)
        except ConnectionExhaustedError as e:
            logger.error("Error in consumer: %s", e)
            await connection.close()
            return 1
        try:
            await stop.wait()
        finally:
            await consumer.stop()
            await connection.close()
    return 0


def _settings(**overrides: object) -> Settings:
    base = get_settings()
    updates = {k: v for k, v in overrides.items() if v is not None}
    settings = base.model_copy(update=updates) if updates else base
    configure_logging(settings.log_level)
    return settings


@app.command()
def produce(
    count: Annotated[
        Optional[int], typer.Option("--count", "-n", help="Messages to publish.")
    ] = None,
    delay: Annotated[
        Optional[float], typer.Option("--delay", help="Seconds between publishes.")
    ] = None,
    queue: Annotated[Optional[str], typer.Option("--queue", help="Queue name.")] = None,
) -> None:
    """Publish numbered messages carrying baggage, then exit."""
    settings = _settings(message_count=count, publish_delay=delay, queue_name=queue)
    raise typer.Exit(code=asyncio.run(run_producer(settings)))


@app.command()
def consume(
    queue: Annotated[Optional[str], typer.Option("--queue", help="Queue name.")] = None,
    api_url: Annotated[
        Optional[str], typer.Option("--api-url", help="Downstream base URL.")
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", help="Downstream timeout in seconds."),
    ] = None,
) -> None:
    """Consume messages and relay their baggage to the API service."""
    settings = _settings(
        queue_name=queue, api_service_url=api_url, downstream_timeout=timeout
    )
    try:
        code = asyncio.run(run_consumer(settings))
    except KeyboardInterrupt:
        logger.info("Shutting down consumer")
        code = 0
    raise typer.Exit(code=code)


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p")] = None,
) -> None:
    """Run the HTTP receiver."""
    from .receiver import serve as serve_receiver

    settings = _settings(host=host, port=port)
    serve_receiver(settings.host, settings.port, settings.log_level)
