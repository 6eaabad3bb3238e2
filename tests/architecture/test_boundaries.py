from pytest_archon import archrule


def test_codec_independence() -> None:
    """
    Context and carrier codec are the foundation and must not depend on any
    queue transport.
    """
    (
        archrule("codec_is_transport_free")
        .match("baggage_relay.context", "baggage_relay.carrier")
        .should_not_import("aio_pika*")
        .should_not_import("baggage_relay.rabbitmq*")
        .check("baggage_relay")
    )


def test_pipeline_does_not_depend_on_rabbitmq() -> None:
    """
    The per-message processor and producer pipeline work against ports, not
    against the RabbitMQ adapter.
    """
    (
        archrule("pipeline_is_transport_agnostic")
        .match("baggage_relay.consumer", "baggage_relay.producer")
        .should_not_import("aio_pika*")
        .should_not_import("baggage_relay.rabbitmq*")
        .check("baggage_relay")
    )


def test_receiver_is_independent_of_queue() -> None:
    """The HTTP receiver must not import the queue transport."""
    (
        archrule("receiver_independence")
        .match("baggage_relay.receiver")
        .should_not_import("aio_pika*")
        .should_not_import("baggage_relay.rabbitmq*")
        .check("baggage_relay")
    )
