import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Query, Session

from .errors import ConcurrentUpdateError, InsufficientStockError, ProductNotFoundError
from .models import MovementType, Product, ReservationStatus, StockMovement, StockReservation, utc_now
from .schemas import MovementFilters

logger = logging.getLogger(__name__)


class InventoryRepository:
    """Repository for inventory operations with optimistic locking."""

    MAX_RETRIES = 3

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def create_product(
        self,
        name: str,
        price: float,
        inventory: int = 0,
        low_stock_threshold: int = 5,
        track_inventory: bool = True,
        website_id: Optional[str] = None,
        sku: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> Product:
        """Create a new product."""
        product = Product(
            product_id=product_id or f"PROD-{uuid4().hex[:12].upper()}",
            website_id=website_id,
            name=name,
            sku=sku,
            price=price,
            track_inventory=track_inventory,
            inventory=inventory,
            low_stock_threshold=low_stock_threshold,
        )
        self.db.add(product)
        self.db.flush()
        logger.info(f"Created product {product.product_id}: {name}, stock: {inventory}")
        return product

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID."""
        return self.db.query(Product).filter(Product.product_id == product_id).first()

    def get_product_by_name(self, name: str, website_id: Optional[str] = None) -> Optional[Product]:
        return (
            self.db.query(Product)
            .filter(Product.name == name, Product.website_id == website_id)
            .first()
        )

    def list_tracked_products(self, website_id: Optional[str] = None) -> List[Product]:
        """Tracked products in a stable order (by product_id)."""
        query = self.db.query(Product).filter(Product.track_inventory.is_(True))
        if website_id:
            query = query.filter(Product.website_id == website_id)
        return query.order_by(Product.product_id).all()

    def update_inventory(
        self,
        product_id: str,
        compute: Callable[[int], int],
        required: Optional[int] = None,
    ) -> int:
        """
        Compare-and-swap the product's inventory.

        Reads (inventory, version), computes the new value and writes it only if
        the version is unchanged. Returns the new inventory. With ``required``
        set, the write only happens while at least that much stock is on hand.
        """
        for attempt in range(self.MAX_RETRIES):
            row = self.db.execute(
                select(Product.inventory, Product.version).where(Product.product_id == product_id)
            ).one_or_none()

            if row is None:
                raise ProductNotFoundError(product_id)

            current, current_version = row
            if required is not None and current < required:
                raise InsufficientStockError(product_id, required, current)

            new_inventory = compute(current)
            updated = self.db.query(Product).filter(
                and_(
                    Product.product_id == product_id,
                    Product.version == current_version,
                )
            ).update(
                {
                    Product.inventory: new_inventory,
                    Product.version: current_version + 1,
                    Product.updated_at: utc_now(),
                },
                synchronize_session=False,
            )

            if updated == 1:
                logger.debug(f"Inventory of {product_id}: {current} -> {new_inventory}")
                return new_inventory

            logger.warning(f"Concurrent conflict for product {product_id}, retry {attempt + 1}/{self.MAX_RETRIES}")

        logger.error(f"Failed to update inventory of {product_id} after {self.MAX_RETRIES} retries")
        raise ConcurrentUpdateError(f"Product {product_id} is being updated concurrently, try again")

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def add_movement(
        self,
        product_id: str,
        movement_type: MovementType,
        quantity: int,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        cost: Optional[Decimal] = None,
    ) -> StockMovement:
        movement = StockMovement(
            movement_id=f"MOV-{uuid4().hex[:12].upper()}",
            product_id=product_id,
            type=movement_type.value,
            quantity=quantity,
            reason=reason,
            reference=reference,
            notes=notes,
            cost=cost,
        )
        self.db.add(movement)
        self.db.flush()
        return movement

    def get_movement(self, movement_id: str) -> Optional[StockMovement]:
        return self.db.query(StockMovement).filter(StockMovement.movement_id == movement_id).first()

    def list_movements(self, product_id: str, limit: int) -> List[StockMovement]:
        """Newest first."""
        return (
            self.db.query(StockMovement)
            .filter(StockMovement.product_id == product_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .limit(limit)
            .all()
        )

    def _filtered_movements(self, filters: MovementFilters) -> Query:
        query = self.db.query(StockMovement)
        if filters.product_id:
            query = query.filter(StockMovement.product_id == filters.product_id)
        if filters.type:
            query = query.filter(StockMovement.type == filters.type.value)
        if filters.date_from:
            query = query.filter(StockMovement.created_at >= filters.date_from)
        if filters.date_to:
            query = query.filter(StockMovement.created_at <= filters.date_to)
        if filters.website_id:
            query = query.join(Product, Product.product_id == StockMovement.product_id).filter(
                Product.website_id == filters.website_id
            )
        return query

    def find_movements(self, filters: MovementFilters, offset: int, limit: int) -> Tuple[List[StockMovement], int]:
        """One page of matching movements (newest first) and the total match count."""
        query = self._filtered_movements(filters)
        total = query.count()
        rows = (
            query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    def movement_stats(self, product_ids: List[str]) -> Dict[str, Tuple[int, Optional[datetime]]]:
        """product_id -> (movement count, newest movement time)."""
        if not product_ids:
            return {}
        rows = self.db.execute(
            select(StockMovement.product_id, func.count(StockMovement.id), func.max(StockMovement.created_at))
            .where(StockMovement.product_id.in_(product_ids))
            .group_by(StockMovement.product_id)
        ).all()
        return {product_id: (count, last) for product_id, count, last in rows}

    def movement_counts(
        self,
        product_ids: List[str],
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Tuple[Dict[str, int], Dict[str, int]]:
        """Movement counts in the date range, grouped by type and by product."""
        if not product_ids:
            return {}, {}

        conditions = [StockMovement.product_id.in_(product_ids)]
        if date_from:
            conditions.append(StockMovement.created_at >= date_from)
        if date_to:
            conditions.append(StockMovement.created_at <= date_to)

        by_type = self.db.execute(
            select(StockMovement.type, func.count(StockMovement.id)).where(*conditions).group_by(StockMovement.type)
        ).all()
        by_product = self.db.execute(
            select(StockMovement.product_id, func.count(StockMovement.id))
            .where(*conditions)
            .group_by(StockMovement.product_id)
        ).all()
        return dict(by_type), dict(by_product)

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def add_reservation(self, order_id: str, product_id: str, quantity: int) -> StockReservation:
        reservation = StockReservation(
            reservation_id=f"RES-{uuid4().hex[:12].upper()}",
            order_id=order_id,
            product_id=product_id,
            quantity=quantity,
            status=ReservationStatus.ACTIVE.value,
        )
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def get_reservations(self, order_id: str, status: Optional[ReservationStatus] = None) -> List[StockReservation]:
        """Reservations of an order, oldest first."""
        query = self.db.query(StockReservation).filter(StockReservation.order_id == order_id)
        if status is not None:
            query = query.filter(StockReservation.status == status.value)
        return query.order_by(StockReservation.id).all()

    def transition_reservation(self, reservation_id: str, new_status: ReservationStatus) -> bool:
        """
        Move an ACTIVE reservation to ``new_status``.

        Returns False when the reservation is no longer ACTIVE, so a terminal
        reservation is never reopened or processed twice.
        """
        updated = self.db.query(StockReservation).filter(
            and_(
                StockReservation.reservation_id == reservation_id,
                StockReservation.status == ReservationStatus.ACTIVE.value,
            )
        ).update(
            {StockReservation.status: new_status.value, StockReservation.updated_at: utc_now()},
            synchronize_session=False,
        )
        return updated == 1

    def reserved_quantities(self, product_ids: List[str]) -> Dict[str, int]:
        """product_id -> sum of ACTIVE reservation quantities."""
        if not product_ids:
            return {}
        rows = self.db.execute(
            select(StockReservation.product_id, func.sum(StockReservation.quantity))
            .where(
                StockReservation.product_id.in_(product_ids),
                StockReservation.status == ReservationStatus.ACTIVE.value,
            )
            .group_by(StockReservation.product_id)
        ).all()
        return {product_id: int(total or 0) for product_id, total in rows}
