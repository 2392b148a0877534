"""
Reservation manager: holds stock for in-flight orders.

    (none) --reserve--> ACTIVE --fulfill--> FULFILLED
                          \\----release--> RELEASED

RELEASED and FULFILLED are terminal. Stock is taken at reserve time through an
OUT movement; release gives it back with a RETURN movement; fulfill only
closes the hold.
"""

import logging
from typing import Callable, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.database import session_scope

from .errors import ConcurrentUpdateError, InsufficientStockError, InventoryError, InventoryTransactionError
from .ledger import StockLedger
from .models import MovementType, ReservationStatus, StockReservation
from .repository import InventoryRepository
from .schemas import ReservationOut

logger = logging.getLogger(__name__)


class ReservationManager:
    """Reserve, release and fulfill stock holds for orders."""

    def __init__(self, session_factory: sessionmaker, ledger: StockLedger):
        self.session_factory = session_factory
        self.ledger = ledger

    def reserve(self, product_id: str, quantity: int, order_id: str) -> bool:
        """
        Hold ``quantity`` units of a product for an order.

        Returns False, leaving nothing behind, when the quantity is not
        positive, the product is unknown or untracked, or stock is short
        (including stock taken by a concurrent reservation). The reservation
        row and its OUT movement commit together.
        """
        context = {"product_id": product_id, "order_id": order_id}

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            logger.warning(f"Rejected reservation of {quantity!r} units of {product_id}", extra=context)
            return False

        try:
            with session_scope(self.session_factory) as db:
                repo = InventoryRepository(db)
                product = repo.get_product(product_id)

                if not product or not product.track_inventory:
                    logger.warning(f"Product {product_id} not found or not tracked", extra=context)
                    return False

                if product.inventory < quantity:
                    logger.warning(
                        f"Insufficient stock for product {product_id}: need {quantity}, have {product.inventory}",
                        extra=context,
                    )
                    return False

                repo.add_reservation(order_id, product_id, quantity)
                self.ledger.post_movement(
                    db,
                    product_id,
                    MovementType.OUT,
                    quantity,
                    reason="ORDER_RESERVATION",
                    reference=order_id,
                    notes=f"Reserved for order {order_id}",
                    require_available=True,
                )
        except (InsufficientStockError, ConcurrentUpdateError) as e:
            logger.warning(f"Reservation for order {order_id} lost a race: {e.message}", extra=context)
            return False
        except SQLAlchemyError as e:
            logger.error(f"Failed to reserve {product_id} for order {order_id}: {e}", extra=context)
            raise InventoryTransactionError("Failed to reserve inventory") from e

        logger.info(f"Reserved {quantity} units of {product_id} for order {order_id}", extra=context)
        self.ledger.raise_alerts([product_id])
        return True

    def release(self, order_id: str) -> int:
        """
        Give back the stock of every ACTIVE reservation of the order.

        Returns how many reservations were released. Terminal reservations are
        skipped, so calling this twice is harmless.
        """
        released = self._resolve(order_id, ReservationStatus.RELEASED, self._release_one)
        if released:
            logger.info(f"Released {len(released)} reservations for order {order_id}", extra={"order_id": order_id})
            self.ledger.raise_alerts(reservation.product_id for reservation in released)
        return len(released)

    def fulfill(self, order_id: str) -> int:
        """Close every ACTIVE reservation of the order; stock was already taken at reserve time."""
        fulfilled = self._resolve(order_id, ReservationStatus.FULFILLED, lambda db, reservation: None)
        if fulfilled:
            logger.info(f"Fulfilled {len(fulfilled)} reservations for order {order_id}", extra={"order_id": order_id})
        return len(fulfilled)

    def list_reservations(self, order_id: str) -> List[ReservationOut]:
        with session_scope(self.session_factory) as db:
            return [ReservationOut.model_validate(r) for r in InventoryRepository(db).get_reservations(order_id)]

    def _release_one(self, db: Session, reservation: StockReservation) -> None:
        self.ledger.post_movement(
            db,
            reservation.product_id,
            MovementType.RETURN,
            reservation.quantity,
            reason="ORDER_CANCELLATION",
            reference=reservation.order_id,
            notes=f"Released reservation for cancelled order {reservation.order_id}",
        )

    def _resolve(
        self,
        order_id: str,
        new_status: ReservationStatus,
        side_effect: Callable[[Session, StockReservation], None],
    ) -> List[StockReservation]:
        """
        Transition each ACTIVE reservation of the order in its own transaction.

        A reservation that fails is logged and left ACTIVE; the rest of the
        order is still processed.
        """
        with session_scope(self.session_factory) as db:
            active = InventoryRepository(db).get_reservations(order_id, ReservationStatus.ACTIVE)

        done: List[StockReservation] = []
        for reservation in active:
            context = {"product_id": reservation.product_id, "order_id": order_id}
            try:
                with session_scope(self.session_factory) as db:
                    if not InventoryRepository(db).transition_reservation(reservation.reservation_id, new_status):
                        logger.info(f"Reservation {reservation.reservation_id} already resolved, skipping", extra=context)
                        continue
                    side_effect(db, reservation)
            except (InventoryError, SQLAlchemyError) as e:
                logger.error(
                    f"Failed to mark reservation {reservation.reservation_id} {new_status.value}: {e}",
                    extra=context,
                )
                continue
            done.append(reservation)
        return done
