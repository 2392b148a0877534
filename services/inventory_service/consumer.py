"""
Order event handling for the inventory service.

CONSUMED:
    - order.created:   reserve every item; publish inventory.reserved per item
                       or inventory.depleted for an item that cannot be held
    - order.cancelled: release the order's active reservations; publish inventory.released
    - order.fulfilled: close the order's active reservations

Items of an order that were reserved before a depleted item stay ACTIVE; the
order workflow cancels the order on inventory.depleted and the resulting
order.cancelled releases them.
"""

import logging
from typing import Optional

from shared.events import (
    BaseEvent,
    InventoryDepletedEvent,
    InventoryReleasedEvent,
    InventoryReservedEvent,
    OrderCancelledEvent,
    OrderCreatedEvent,
    OrderFulfilledEvent,
)
from shared.kafka_client import BaseKafkaProducer

from .reservations import ReservationManager

logger = logging.getLogger(__name__)


class OrderEventHandler:
    """Callable handed to BaseKafkaConsumer.consume()."""

    def __init__(self, reservations: ReservationManager, producer: Optional[BaseKafkaProducer] = None):
        self.reservations = reservations
        self.producer = producer

    def __call__(self, event: BaseEvent) -> None:
        if isinstance(event, OrderCreatedEvent):
            self.on_order_created(event)
        elif isinstance(event, OrderCancelledEvent):
            self.on_order_cancelled(event)
        elif isinstance(event, OrderFulfilledEvent):
            self.on_order_fulfilled(event)
        else:
            logger.info(f"Ignoring event {event.event_type}", extra={"event_type": event.event_type})

    def on_order_created(self, event: OrderCreatedEvent) -> None:
        # A redelivered event must not hold an item again, even after the order was cancelled or fulfilled
        held = {r.product_id for r in self.reservations.list_reservations(event.order_id)}

        for item in event.items:
            product_id = item.get("product_id")
            quantity = item.get("quantity")

            if product_id in held:
                logger.info(f"Order {event.order_id} already has a reservation for {product_id}, skipping")
                continue

            if product_id and self.reservations.reserve(product_id, quantity, event.order_id):
                self._publish(
                    "inventory.reserved",
                    InventoryReservedEvent(
                        correlation_id=event.correlation_id,
                        order_id=event.order_id,
                        product_id=product_id,
                        quantity=quantity,
                    ),
                )
                continue

            logger.error(
                f"Failed to reserve {quantity!r} units of {product_id} for order {event.order_id}",
                extra={"correlation_id": event.correlation_id, "order_id": event.order_id},
            )
            self._publish(
                "inventory.depleted",
                InventoryDepletedEvent(
                    correlation_id=event.correlation_id,
                    order_id=event.order_id,
                    product_id=str(product_id),
                    requested_quantity=quantity if isinstance(quantity, int) else 0,
                ),
            )

    def on_order_cancelled(self, event: OrderCancelledEvent) -> None:
        released = self.reservations.release(event.order_id)
        logger.info(
            f"Order {event.order_id} cancelled ({event.reason or 'no reason'}), released {released} reservations",
            extra={"correlation_id": event.correlation_id, "order_id": event.order_id},
        )
        self._publish(
            "inventory.released",
            InventoryReleasedEvent(
                correlation_id=event.correlation_id,
                order_id=event.order_id,
                released_count=released,
            ),
        )

    def on_order_fulfilled(self, event: OrderFulfilledEvent) -> None:
        fulfilled = self.reservations.fulfill(event.order_id)
        logger.info(
            f"Order {event.order_id} fulfilled, closed {fulfilled} reservations",
            extra={"correlation_id": event.correlation_id, "order_id": event.order_id},
        )

    def _publish(self, topic: str, event: BaseEvent) -> None:
        if self.producer is not None:
            self.producer.publish(topic, event)
