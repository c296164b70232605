"""RabbitMQ relay for change feed events."""

import json
import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional, Union
from uuid import UUID

if TYPE_CHECKING:
    from pika.adapters.blocking_connection import BlockingChannel
    from pika.channel import Channel

import pika
from pika.exceptions import AMQPChannelError, AMQPConnectionError
from pika.exchange_type import ExchangeType
from pydantic import ValidationError as PydanticValidationError

from huddle.core.config import Settings, get_settings
from huddle.core.messaging.feed import ChangeEvent
from huddle.core.observability.metrics import (
    log_connection_event,
    log_counter_increment,
)

logger = logging.getLogger(__name__)


class MessageBroker:
    """Publishes committed changes to a topic exchange for other processes.

    Routing keys follow ``<table>.<room_id>.<op>`` so consumers can bind to a
    single room (``message.<room_id>.*``) or to everything (``#``).
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.exchange = self.settings.FEED_EXCHANGE
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel: Optional[Union["Channel", "BlockingChannel"]] = None
        # pika connections are not thread-safe; feed sinks run on worker threads
        self._lock = threading.RLock()
        self._connect()

    def _connect(self) -> None:
        """Establish connection to RabbitMQ."""
        try:
            self.connection = pika.BlockingConnection(
                pika.ConnectionParameters(
                    host=self.settings.RABBITMQ_HOST,
                    port=self.settings.RABBITMQ_PORT,
                    virtual_host=self.settings.RABBITMQ_VHOST,
                    credentials=pika.PlainCredentials(
                        self.settings.RABBITMQ_USER, self.settings.RABBITMQ_PASSWORD
                    ),
                    heartbeat=600,
                    blocked_connection_timeout=300,
                )
            )
            self.channel = self.connection.channel()
            self._setup_infrastructure()
            logger.info("Connected to RabbitMQ successfully")
            log_connection_event(
                "connected", "rabbitmq", host=self.settings.RABBITMQ_HOST
            )
        except AMQPConnectionError as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}")
            log_connection_event("connection_failed", "rabbitmq", error=str(e))
            raise

    def _setup_infrastructure(self) -> None:
        """Declare the change exchange."""
        try:
            if self.channel:
                self.channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type=ExchangeType.topic,
                    durable=True,
                )
            logger.info("RabbitMQ infrastructure setup completed")
        except AMQPChannelError as e:
            logger.error(f"Failed to setup RabbitMQ infrastructure: {e}")
            raise

    @staticmethod
    def routing_key_for(event: ChangeEvent) -> str:
        room_id = event.row.get("room_id") or "none"
        return f"{event.table}.{room_id}.{event.op.value.lower()}"

    def publish_change(self, event: ChangeEvent) -> None:
        """Publish one change event, persistent, keyed by its commit sequence."""
        routing_key = self.routing_key_for(event)
        try:
            if self.channel:
                self.channel.basic_publish(
                    exchange=self.exchange,
                    routing_key=routing_key,
                    body=json.dumps(event.model_dump(mode="json")),
                    properties=pika.BasicProperties(
                        message_id=f"{event.table}:{event.row_id}:{event.commit_seq}",
                        delivery_mode=2,  # Make message persistent
                        content_type="application/json",
                    ),
                )

            log_counter_increment(
                "changes_relayed_total",
                labels={"table": event.table, "op": event.op.value},
            )
            logger.debug(f"Relayed change {event.commit_seq} on {routing_key}")
        except AMQPChannelError as e:
            logger.error(f"Failed to relay change {event.commit_seq}: {e}")
            log_counter_increment(
                "relay_errors_total", labels={"error_type": "channel_error"}
            )
            raise

    def setup_consumer_queue(self, binding_key: str = "#") -> str:
        """Declare an exclusive queue bound to the exchange and return its name."""
        try:
            if not self.channel:
                raise AMQPChannelError("Channel not open")
            result = self.channel.queue_declare(queue="", exclusive=True)
            queue_name = result.method.queue
            self.channel.queue_bind(
                exchange=self.exchange, queue=queue_name, routing_key=binding_key
            )
            logger.info(f"Bound consumer queue {queue_name} to {binding_key}")
            return queue_name
        except AMQPChannelError as e:
            logger.error(f"Failed to setup consumer queue for {binding_key}: {e}")
            raise

    @staticmethod
    def binding_key_for_room(room_id: Union[UUID, str], table: str = "message") -> str:
        """Binding key matching every op on one room's rows."""
        return f"{table}.{room_id}.*"

    @staticmethod
    def decode_change(body: bytes) -> ChangeEvent:
        """Parse a relayed message body back into a ChangeEvent."""
        return ChangeEvent.model_validate_json(body)

    def consume_changes(
        self, queue_name: str, handler: Callable[[ChangeEvent], None]
    ) -> None:
        """Feed relayed changes to ``handler``, acknowledging each one it accepts.

        Bodies that do not parse are rejected without requeue. A handler
        exception leaves the delivery unacknowledged for redelivery.
        """
        if not self.channel:
            raise AMQPChannelError("Channel not open")

        def on_message(channel, method, properties, body) -> None:
            try:
                event = self.decode_change(body)
            except PydanticValidationError as e:
                logger.warning(f"Dropping malformed change {properties.message_id}: {e}")
                log_counter_increment(
                    "relay_errors_total", labels={"error_type": "malformed"}
                )
                channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
                return
            handler(event)
            channel.basic_ack(delivery_tag=method.delivery_tag)

        self.channel.basic_consume(
            queue=queue_name, on_message_callback=on_message, auto_ack=False
        )
        logger.info(f"Started consuming changes from {queue_name}")

    def follow(
        self, binding_key: str, handler: Callable[[ChangeEvent], None]
    ) -> None:
        """Bind a fresh queue and block delivering relayed changes to ``handler``."""
        queue_name = self.setup_consumer_queue(binding_key)
        self.consume_changes(queue_name, handler)
        try:
            self.channel.start_consuming()
        finally:
            logger.info(f"Stopped consuming changes from {queue_name}")

    def is_connected(self) -> bool:
        """Check if broker is connected."""
        return (
            self.connection is not None
            and not self.connection.is_closed
            and self.channel is not None
            and not self.channel.is_closed
        )

    def reconnect(self) -> None:
        """Reconnect to RabbitMQ."""
        logger.info("Reconnecting to RabbitMQ...")
        with self._lock:
            self.close()
            self._connect()

    def relay(self, event: ChangeEvent) -> None:
        """Change feed sink: publish, reconnecting once if the link dropped."""
        with self._lock:
            if not self.is_connected():
                self.reconnect()
            self.publish_change(event)

    def close(self) -> None:
        """Close connection."""
        with self._lock:
            try:
                if self.connection and not self.connection.is_closed:
                    self.connection.close()
                    logger.info("RabbitMQ connection closed")
            except AMQPConnectionError as e:
                logger.error(f"Error closing RabbitMQ connection: {e}")


# Global message broker instance (lazy initialization)
_message_broker_instance: Optional[MessageBroker] = None


def get_message_broker() -> MessageBroker:
    """Get the global message broker instance (lazy initialization)."""
    global _message_broker_instance
    if _message_broker_instance is None:
        _message_broker_instance = MessageBroker()
    return _message_broker_instance
