import json

import pytest

from shared import kafka_client, topic_initializer
from shared.events import OrderCancelledEvent


class FakeMessage:
    def __init__(self, topic, payload):
        self._topic = topic
        self._value = payload.encode("utf-8") if isinstance(payload, str) else payload

    def topic(self):
        return self._topic

    def value(self):
        return self._value

    def error(self):
        return None


class FakeConfluentProducer:
    def __init__(self, config):
        self.config = config
        self.produced = []

    def produce(self, topic, value, callback=None):
        self.produced.append((topic, json.loads(value)))

    def flush(self):
        pass


class FakeConfluentConsumer:
    def __init__(self, config):
        self.config = config
        self.messages = []
        self.owner = None
        self.closed = False

    def subscribe(self, topics):
        self.topics = topics

    def poll(self, timeout):
        if not self.messages:
            self.owner._running = False
            return None
        return self.messages.pop(0)

    def close(self):
        self.closed = True


@pytest.fixture
def consumer(monkeypatch):
    monkeypatch.setattr(kafka_client, "Producer", FakeConfluentProducer)
    monkeypatch.setattr(kafka_client, "Consumer", FakeConfluentConsumer)
    monkeypatch.setattr(kafka_client.time, "sleep", lambda seconds: None)

    consumer = kafka_client.BaseKafkaConsumer("kafka:9092", "inventory-test", ["order.cancelled"])
    consumer.consumer.owner = consumer
    return consumer


def _feed(consumer, *payloads):
    consumer.consumer.messages = [FakeMessage("order.cancelled", p) for p in payloads]


def _dlq(consumer):
    return [payload for topic, payload in consumer.producer.producer.produced if topic == "dlq.events"]


def test_producer_serializes_events(monkeypatch):
    monkeypatch.setattr(kafka_client, "Producer", FakeConfluentProducer)
    producer = kafka_client.BaseKafkaProducer("kafka:9092", client_id="inventory-producer")

    producer.publish("order.cancelled", OrderCancelledEvent(correlation_id="ORD-1", order_id="ORD-1"))
    producer.publish("inventory.alert", {"event_type": "inventory.alert", "product_id": "P"})

    [(topic, payload), (_, raw)] = producer.producer.produced
    assert topic == "order.cancelled"
    assert payload["event_type"] == "order.cancelled"
    assert payload["order_id"] == "ORD-1"
    assert raw == {"event_type": "inventory.alert", "product_id": "P"}


def test_events_are_typed_and_deduplicated(consumer):
    event = OrderCancelledEvent(correlation_id="ORD-1", order_id="ORD-1")
    _feed(consumer, event.model_dump_json(), event.model_dump_json())
    seen = []

    consumer.consume(seen.append)

    assert len(seen) == 1
    assert isinstance(seen[0], OrderCancelledEvent)
    assert seen[0].order_id == "ORD-1"


def test_failing_handler_is_retried_then_dead_lettered(consumer):
    event = OrderCancelledEvent(correlation_id="ORD-1", order_id="ORD-1")
    _feed(consumer, event.model_dump_json())
    calls = []

    def handler(e):
        calls.append(e)
        raise RuntimeError("database unavailable")

    consumer.consume(handler)

    assert len(calls) == consumer.MAX_RETRIES
    [dead] = _dlq(consumer)
    assert dead["original_topic"] == "order.cancelled"
    assert dead["original_event_type"] == "order.cancelled"
    assert dead["retry_count"] == consumer.MAX_RETRIES
    assert "database unavailable" in dead["error_reason"]


def test_invalid_event_goes_straight_to_dlq(consumer):
    _feed(consumer, json.dumps({"event_type": "order.cancelled", "correlation_id": "ORD-2"}))
    calls = []

    consumer.consume(calls.append)

    assert calls == []
    [dead] = _dlq(consumer)
    assert dead["retry_count"] == 0


def test_undecodable_message_is_skipped(consumer):
    _feed(consumer, b"not json")
    calls = []

    consumer.consume(calls.append)

    assert calls == []
    assert _dlq(consumer) == []


def test_close_stops_the_consumer(consumer):
    consumer.close()

    assert consumer._running is False
    assert consumer.consumer.closed is True


class FakeFuture:
    def __init__(self, error=None):
        self.error = error

    def result(self, timeout=None):
        if self.error:
            raise self.error


class FakeAdminClient:
    existing = {"order.created"}

    def __init__(self, config):
        self.requested = []

    def list_topics(self, timeout=None):
        return type("Metadata", (), {"topics": {name: object() for name in self.existing}})()

    def create_topics(self, new_topics):
        self.requested.extend(t.topic for t in new_topics)
        return {
            t.topic: FakeFuture(Exception("TOPIC_ALREADY_EXISTS") if t.topic == "order.cancelled" else None)
            for t in new_topics
        }


def test_create_topics_only_requests_missing_topics(monkeypatch):
    monkeypatch.setattr(topic_initializer, "AdminClient", FakeAdminClient)

    created = topic_initializer.create_topics(
        "kafka:9092", topics=["order.created", "order.cancelled", "inventory.alert"]
    )

    assert created == ["inventory.alert"]


def test_create_topics_is_a_no_op_when_everything_exists(monkeypatch):
    monkeypatch.setattr(topic_initializer, "AdminClient", FakeAdminClient)

    assert topic_initializer.create_topics("kafka:9092", topics=["order.created"]) == []
