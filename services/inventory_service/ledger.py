"""
Stock ledger: the only writer of ``products.inventory``.

Every stock change is an immutable StockMovement row written in the same
transaction as the inventory update it causes. The update itself is a
compare-and-swap on the product's version column (see
InventoryRepository.update_inventory).
"""

import logging
import math
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.database import session_scope
from shared.events import InventoryAlertEvent
from shared.kafka_client import BaseKafkaProducer

from .alerts import AlertEvaluator
from .errors import InventoryTransactionError, ProductNotFoundError, TrackingDisabledError, ValidationError
from .models import MovementType
from .repository import InventoryRepository
from .schemas import (
    BulkAdjustmentItem,
    BulkReceiptItem,
    InventoryAlert,
    MovementFilters,
    MovementPage,
    Pagination,
    StockMovementOut,
)

logger = logging.getLogger(__name__)

ALERT_TOPIC = "inventory.alert"

INCREASING = {MovementType.IN, MovementType.RETURN}
DECREASING = {MovementType.OUT, MovementType.DAMAGE, MovementType.LOSS}

ItemT = TypeVar("ItemT", bound=BaseModel)


def apply_movement_rule(current: int, movement_type: MovementType, quantity: int) -> int:
    """Inventory after applying one movement to ``current``."""
    if movement_type in INCREASING:
        return current + quantity
    if movement_type in DECREASING:
        return max(0, current - quantity)
    if movement_type is MovementType.ADJUSTMENT:
        return max(0, quantity)
    raise ValidationError(f"Unknown movement type {movement_type}")


def validate_movement(movement_type: Union[MovementType, str], quantity: int) -> MovementType:
    """Normalize the type and check the quantity; ADJUSTMENT alone may be zero."""
    try:
        movement_type = MovementType(movement_type)
    except ValueError:
        raise ValidationError(f"Unknown movement type {movement_type!r}")

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"Quantity must be an integer, got {quantity!r}")
    if quantity < 0:
        raise ValidationError("Quantity must not be negative")
    if quantity == 0 and movement_type is not MovementType.ADJUSTMENT:
        raise ValidationError(f"Quantity must be positive for {movement_type.value} movements")
    return movement_type


def _coerce(items: Iterable[Union[ItemT, dict]], model: Type[ItemT]) -> List[ItemT]:
    return [item if isinstance(item, model) else model.model_validate(item) for item in items]


class StockLedger:
    """Record movements, apply them to stock, and surface the resulting alerts."""

    DEFAULT_MOVEMENT_LIMIT = 50
    MAX_MOVEMENT_LIMIT = 500

    def __init__(
        self,
        session_factory: sessionmaker,
        alert_evaluator: Optional[AlertEvaluator] = None,
        producer: Optional[BaseKafkaProducer] = None,
    ):
        self.session_factory = session_factory
        self.alert_evaluator = alert_evaluator or AlertEvaluator(session_factory)
        self.producer = producer

    def post_movement(
        self,
        db: Session,
        product_id: str,
        movement_type: Union[MovementType, str],
        quantity: int,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        cost: Optional[Decimal] = None,
        require_available: bool = False,
    ) -> StockMovementOut:
        """
        Write a movement and apply it inside the caller's transaction.

        Alerts are not evaluated here; the caller does that after commit.
        With ``require_available`` the stock write fails with
        InsufficientStockError unless ``quantity`` units are on hand at the
        moment of the write.
        """
        movement_type = validate_movement(movement_type, quantity)

        repo = InventoryRepository(db)
        product = repo.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if not product.track_inventory:
            raise TrackingDisabledError(product_id)

        try:
            movement = repo.add_movement(
                product_id,
                movement_type,
                quantity,
                reason=reason or None,
                reference=reference or None,
                notes=notes or None,
                cost=cost or None,
            )
            new_inventory = repo.update_inventory(
                product_id,
                lambda current: apply_movement_rule(current, movement_type, quantity),
                required=quantity if require_available else None,
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to record {movement_type.value} movement for {product_id}: {e}")
            raise InventoryTransactionError("Failed to record inventory transaction") from e

        logger.info(
            f"Recorded {movement_type.value} x{quantity} for {product_id}, inventory now {new_inventory}",
            extra={"product_id": product_id},
        )
        return StockMovementOut.model_validate(movement)

    def record_movement(
        self,
        product_id: str,
        movement_type: Union[MovementType, str],
        quantity: int,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        cost: Optional[Decimal] = None,
    ) -> StockMovementOut:
        """Record one movement in its own transaction, then re-evaluate alerts."""
        try:
            with session_scope(self.session_factory) as db:
                movement = self.post_movement(
                    db, product_id, movement_type, quantity,
                    reason=reason, reference=reference, notes=notes, cost=cost,
                )
        except SQLAlchemyError as e:
            logger.error(f"Commit failed for movement on {product_id}: {e}")
            raise InventoryTransactionError("Failed to record inventory transaction") from e

        self.raise_alerts([product_id])
        return movement

    def bulk_adjust(self, adjustments: Sequence[Union[BulkAdjustmentItem, dict]]) -> List[StockMovementOut]:
        """Set absolute stock for many products; all entries commit or none do."""
        items = _coerce(adjustments, BulkAdjustmentItem)
        return self._post_batch(
            [
                (item.product_id, MovementType.ADJUSTMENT, item.quantity,
                 {"reason": item.reason or "BULK_ADJUSTMENT"})
                for item in items
            ]
        )

    def bulk_receive(self, receipts: Sequence[Union[BulkReceiptItem, dict]]) -> List[StockMovementOut]:
        """Book incoming stock for many products; all entries commit or none do."""
        items = _coerce(receipts, BulkReceiptItem)
        return self._post_batch(
            [
                (item.product_id, MovementType.IN, item.quantity,
                 {"reason": "STOCK_RECEIPT", "cost": item.cost, "reference": item.reference})
                for item in items
            ]
        )

    def _post_batch(self, entries) -> List[StockMovementOut]:
        movements: List[StockMovementOut] = []
        try:
            with session_scope(self.session_factory) as db:
                for product_id, movement_type, quantity, kwargs in entries:
                    movements.append(self.post_movement(db, product_id, movement_type, quantity, **kwargs))
        except SQLAlchemyError as e:
            logger.error(f"Bulk inventory batch rolled back: {e}")
            raise InventoryTransactionError("Failed to record inventory batch") from e

        logger.info(f"Committed bulk batch of {len(movements)} movements")
        self.raise_alerts([movement.product_id for movement in movements])
        return movements

    def list_movements(self, product_id: str, limit: int = DEFAULT_MOVEMENT_LIMIT) -> List[StockMovementOut]:
        """The product's most recent movements, newest first."""
        if limit < 1 or limit > self.MAX_MOVEMENT_LIMIT:
            raise ValidationError(f"limit must be between 1 and {self.MAX_MOVEMENT_LIMIT}")
        with session_scope(self.session_factory) as db:
            rows = InventoryRepository(db).list_movements(product_id, limit)
            return [StockMovementOut.model_validate(row) for row in rows]

    def find_movements(self, filters: MovementFilters, page: int = 1, limit: int = 20) -> MovementPage:
        if page < 1:
            raise ValidationError("page must be at least 1")
        if limit < 1 or limit > self.MAX_MOVEMENT_LIMIT:
            raise ValidationError(f"limit must be between 1 and {self.MAX_MOVEMENT_LIMIT}")

        with session_scope(self.session_factory) as db:
            rows, total = InventoryRepository(db).find_movements(filters, (page - 1) * limit, limit)
            transactions = [StockMovementOut.model_validate(row) for row in rows]

        return MovementPage(
            transactions=transactions,
            pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
        )

    def get_movement(self, movement_id: str) -> Optional[StockMovementOut]:
        with session_scope(self.session_factory) as db:
            movement = InventoryRepository(db).get_movement(movement_id)
            return StockMovementOut.model_validate(movement) if movement else None

    def raise_alerts(self, product_ids: Iterable[str]) -> List[InventoryAlert]:
        """
        Re-evaluate alerts after a committed write and publish them.

        Best-effort: failures are logged and never reach the caller.
        """
        raised: List[InventoryAlert] = []
        for product_id in dict.fromkeys(product_ids):
            try:
                alerts = self.alert_evaluator.evaluate(product_id)
            except Exception as e:
                logger.error(f"Alert evaluation failed for {product_id}: {e}", extra={"product_id": product_id})
                continue

            for alert in alerts:
                logger.info(f"{alert.type.value}: {alert.message}", extra={"product_id": product_id})
                self._publish_alert(alert)
            raised.extend(alerts)
        return raised

    def _publish_alert(self, alert: InventoryAlert) -> None:
        if self.producer is None:
            return
        event = InventoryAlertEvent(
            correlation_id=alert.product_id,
            product_id=alert.product_id,
            alert_type=alert.type.value,
            message=alert.message,
            threshold=alert.threshold,
            current_stock=alert.current_stock,
        )
        try:
            self.producer.publish(ALERT_TOPIC, event)
        except Exception as e:
            logger.error(f"Failed to publish {alert.type.value} alert for {alert.product_id}: {e}")
