"""
events.py - Kafka Event Schema Definitions

PURPOSE:
    Defines the event schemas the inventory service consumes and publishes.
    Uses Pydantic for data validation and serialization.

EVENT CATEGORIES:
    1. Order Events (consumed): order workflow driving reservations
       - order.created
       - order.cancelled
       - order.fulfilled

    2. Inventory Events (published): reservation outcomes and stock alerts
       - inventory.reserved
       - inventory.depleted
       - inventory.released
       - inventory.alert

    3. System Events: Dead Letter Queue
       - dlq.events (failed message processing)

COMMON FIELDS (BaseEvent):
    - event_id: Unique identifier (UUID)
    - event_type: Event category and action
    - timestamp: Timezone-aware creation time
    - correlation_id: Links related events of one order

USAGE:
    event = InventoryReservedEvent(
        correlation_id="ORD-456",
        order_id="ORD-456",
        product_id="PROD-1",
        quantity=2,
    )
    json_data = event.model_dump_json()
    event = EVENT_TYPE_MAP["inventory.reserved"].model_validate_json(json_data)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

EVENT_TIMEZONE = ZoneInfo("Asia/Karachi")


class BaseEvent(BaseModel):
    """
    Base event model for all Kafka events.

    All events inherit from this class and include:
    - Unique event ID
    - Event type identifier
    - Timezone-aware timestamp
    - Correlation ID (the order id for order-driven flows)
    """

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(EVENT_TIMEZONE))
    correlation_id: str


# ============================================================================
# ORDER EVENTS - consumed from the order workflow
# ============================================================================

class OrderCreatedEvent(BaseEvent):
    """
    Event published when an order is created.
    Consumers: Inventory Service (reserve every item of the order)
    Items carry at least {"product_id": str, "quantity": int}.
    """

    event_type: str = "order.created"
    order_id: str
    user_id: Optional[str] = None
    items: List[Dict[str, Any]]


class OrderCancelledEvent(BaseEvent):
    """
    Event published when an order is cancelled.
    Consumers: Inventory Service (release the order's active reservations)
    """

    event_type: str = "order.cancelled"
    order_id: str
    reason: Optional[str] = None


class OrderFulfilledEvent(BaseEvent):
    """
    Order has been shipped/delivered.
    Consumers: Inventory Service (close the order's active reservations)
    """

    event_type: str = "order.fulfilled"
    order_id: str
    tracking_number: Optional[str] = None


# ============================================================================
# INVENTORY EVENTS - published by the inventory service
# ============================================================================

class InventoryReservedEvent(BaseEvent):
    """
    Event published when stock is reserved for one order item.
    Consumers: Order workflow (proceed to payment)
    """

    event_type: str = "inventory.reserved"
    order_id: str
    product_id: str
    quantity: int


class InventoryDepletedEvent(BaseEvent):
    """
    Event published when an order item cannot be reserved.
    Consumers: Order workflow (cancel the order; nothing to refund)
    """

    event_type: str = "inventory.depleted"
    order_id: str
    product_id: str
    requested_quantity: int


class InventoryReleasedEvent(BaseEvent):
    """
    Event published after an order's reservations were released.
    Consumers: Analytics (cancellation tracking)
    """

    event_type: str = "inventory.released"
    order_id: str
    released_count: int


class InventoryAlertEvent(BaseEvent):
    """
    Event published for every stock alert found after a ledger write.
    Consumers: Notification pipeline (restock / overstock notices)
    """

    event_type: str = "inventory.alert"
    product_id: str
    alert_type: str  # LOW_STOCK, OUT_OF_STOCK, OVERSTOCK, EXPIRING
    message: str
    threshold: Optional[int] = None
    current_stock: Optional[int] = None


# ============================================================================
# DLQ EVENTS - Dead Letter Queue (failed message processing)
# ============================================================================

class DLQEvent(BaseEvent):
    """
    Event published when message processing fails after retries.
    Consumers: DLQ Handler (manual review and replay)
    """

    event_type: str = "dlq.events"
    original_topic: str
    original_event_type: str
    error_reason: str
    retry_count: int
    payload: Dict[str, Any]


# Event mapping for deserialization
EVENT_TYPE_MAP = {
    "order.created": OrderCreatedEvent,
    "order.cancelled": OrderCancelledEvent,
    "order.fulfilled": OrderFulfilledEvent,
    "inventory.reserved": InventoryReservedEvent,
    "inventory.depleted": InventoryDepletedEvent,
    "inventory.released": InventoryReleasedEvent,
    "inventory.alert": InventoryAlertEvent,
    "dlq.events": DLQEvent,
}

ORDER_TOPICS = ["order.created", "order.cancelled", "order.fulfilled"]

ALL_TOPICS = list(EVENT_TYPE_MAP)
