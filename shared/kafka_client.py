"""
kafka_client.py - Kafka Producer and Consumer Client Wrappers

PURPOSE:
    Reusable Kafka producer and consumer classes with JSON serialization,
    delivery callbacks, retry logic and dead-letter handling.

CLASSES:
    1. BaseKafkaProducer: Publishes events to Kafka topics
       - JSON serialization of pydantic events (or plain dicts)
       - acks=all, 3 retries, snappy compression

    2. BaseKafkaConsumer: Consumes events from Kafka topics
       - Deserialization through EVENT_TYPE_MAP
       - In-memory idempotency on event_id
       - 3 attempts with exponential backoff (1s, 2s, 4s)
       - Failed events are wrapped in a DLQEvent and sent to "dlq.events"

USAGE:
    producer = BaseKafkaProducer("localhost:9092", client_id="inventory-producer")
    producer.publish("inventory.alert", event)

    consumer = BaseKafkaConsumer("localhost:9092", "inventory-service-group", ORDER_TOPICS)
    consumer.consume(handler)
"""

import json
import logging
import time
from typing import Callable, List, Optional, Set

from confluent_kafka import Consumer, Producer
from confluent_kafka.error import KafkaError

from shared.events import EVENT_TYPE_MAP, BaseEvent, DLQEvent

logger = logging.getLogger(__name__)

DLQ_TOPIC = "dlq.events"


class BaseKafkaProducer:
    """Kafka producer with JSON serialization and delivery callbacks."""

    def __init__(self, bootstrap_servers: str, client_id: str = "producer"):
        """
        Initialize Kafka producer.

        Args:
            bootstrap_servers: Comma-separated Kafka broker addresses
            client_id: Unique identifier for this producer instance
        """
        self.config = {
            "bootstrap.servers": bootstrap_servers,
            "client.id": client_id,
            "acks": "all",
            "retries": 3,
            "compression.type": "snappy",
        }
        self.producer = Producer(self.config)

    def _delivery_report(self, err: Optional[KafkaError], msg) -> None:
        """Delivery report handler called by producer on message delivery."""
        if err is not None:
            logger.error(f"Message delivery failed: {err}")
        else:
            logger.debug(
                f"Message delivered to topic={msg.topic()}, "
                f"partition={msg.partition()}, offset={msg.offset()}"
            )

    def publish(self, topic: str, event: BaseEvent) -> None:
        """Publish event to Kafka topic."""
        try:
            if isinstance(event, dict):
                message = json.dumps(event, default=str)
                event_type = event.get("event_type", "unknown")
                correlation_id = event.get("correlation_id", "unknown")
            else:
                message = event.model_dump_json()
                event_type = event.event_type
                correlation_id = event.correlation_id

            self.producer.produce(
                topic=topic,
                value=message.encode("utf-8"),
                callback=self._delivery_report,
            )
            self.producer.flush()
            logger.info(
                f"Published event to {topic}",
                extra={"event_type": event_type, "correlation_id": correlation_id},
            )
        except Exception as e:
            logger.error(f"Error publishing event to {topic}: {e}")
            raise

    def flush(self) -> None:
        """Flush any pending messages."""
        self.producer.flush()


class BaseKafkaConsumer:
    """Kafka consumer with retry logic and DLQ handling."""

    MAX_RETRIES = 3
    RETRY_DELAYS = [1, 2, 4]

    def __init__(self, bootstrap_servers: str, group_id: str, topics: List[str]):
        """Initialize Kafka consumer."""
        self.config = {
            "bootstrap.servers": bootstrap_servers,
            "group.id": group_id,
            "auto.offset.reset": "earliest",
            "enable.auto.commit": True,
            "session.timeout.ms": 30000,
        }
        self.consumer = Consumer(self.config)
        self.topics = topics
        self.consumer.subscribe(topics)
        self.processed_events: Set[str] = set()
        self.producer = BaseKafkaProducer(bootstrap_servers, client_id=f"{group_id}-dlq-producer")
        self._running = True

    def consume(self, handler_fn: Callable[[BaseEvent], None], timeout: float = 1.0) -> None:
        """Consume messages from subscribed topics until close() is called."""
        while self._running:
            msg = self.consumer.poll(timeout)

            if msg is None:
                continue

            if msg.error():
                logger.error(f"Consumer error: {msg.error()}")
                continue

            try:
                event_data = json.loads(msg.value().decode("utf-8"))
            except json.JSONDecodeError as e:
                logger.error(f"Failed to deserialize message: {e}")
                continue

            event_type = event_data.get("event_type")
            event_id = event_data.get("event_id")

            if event_id in self.processed_events:
                logger.info(
                    f"Event {event_id} already processed, skipping",
                    extra={"event_type": event_type, "correlation_id": event_data.get("correlation_id")},
                )
                continue

            try:
                event = EVENT_TYPE_MAP.get(event_type, BaseEvent).model_validate(event_data)
            except Exception as e:
                logger.error(f"Invalid {event_type} event {event_id}: {e}")
                self._send_to_dlq(msg.topic(), event_data, str(e), retry_count=0)
                continue

            self._handle_with_retry(handler_fn, event, msg.topic(), event_data)

    def _handle_with_retry(self, handler_fn, event: BaseEvent, topic: str, event_data: dict) -> None:
        context = {"event_type": event.event_type, "correlation_id": event.correlation_id}
        for attempt in range(self.MAX_RETRIES):
            try:
                handler_fn(event)
                self.processed_events.add(event.event_id)
                logger.info(f"Event {event.event_id} processed successfully", extra=context)
                return
            except Exception as e:
                if attempt < self.MAX_RETRIES - 1:
                    wait_time = self.RETRY_DELAYS[attempt]
                    logger.warning(
                        f"Error processing event (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. "
                        f"Retrying in {wait_time}s...",
                        extra=context,
                    )
                    time.sleep(wait_time)
                else:
                    logger.error(
                        f"Event failed after {self.MAX_RETRIES} retries: {e}. Sending to DLQ.",
                        extra=context,
                    )
                    self._send_to_dlq(topic, event_data, str(e), retry_count=self.MAX_RETRIES)
                    self.processed_events.add(event.event_id)

    def _send_to_dlq(self, topic: str, event_data: dict, reason: str, retry_count: int) -> None:
        dlq_event = DLQEvent(
            correlation_id=str(event_data.get("correlation_id") or "unknown"),
            original_topic=topic,
            original_event_type=str(event_data.get("event_type") or "unknown"),
            error_reason=reason,
            retry_count=retry_count,
            payload=event_data,
        )
        try:
            self.producer.publish(DLQ_TOPIC, dlq_event)
        except Exception as e:
            logger.error(f"Failed to publish to DLQ: {e}")

    def close(self) -> None:
        """Stop the poll loop and close the consumer."""
        self._running = False
        self.consumer.close()
