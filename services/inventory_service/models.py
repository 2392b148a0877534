from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)

from shared.database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MovementType(str, Enum):
    """Kind of stock movement; the direction of the quantity follows from the type."""

    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"
    DAMAGE = "DAMAGE"
    LOSS = "LOSS"


class ReservationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"
    FULFILLED = "FULFILLED"


class Product(Base):
    """Catalog product as seen by inventory; version is the optimistic lock for stock writes."""

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("inventory >= 0", name="ck_products_inventory_non_negative"),
        CheckConstraint("low_stock_threshold >= 0", name="ck_products_threshold_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String(255), unique=True, nullable=False, index=True)
    website_id = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    price = Column(Float, nullable=False, default=0.0)
    track_inventory = Column(Boolean, nullable=False, default=True)
    inventory = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=5)
    version = Column(Integer, default=0, nullable=False)  # Optimistic lock
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class StockMovement(Base):
    """Append-only ledger entry. Never updated after insert."""

    __tablename__ = "stock_movements"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_stock_movements_quantity_non_negative"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    movement_id = Column(String(255), unique=True, nullable=False, index=True)
    product_id = Column(String(255), ForeignKey("products.product_id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # MovementType value
    quantity = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=True)
    reference = Column(String(255), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    cost = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)


class StockReservation(Base):
    """Hold of stock for one product of an order."""

    __tablename__ = "stock_reservations"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_stock_reservations_quantity_positive"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_id = Column(String(255), unique=True, nullable=False, index=True)
    order_id = Column(String(255), nullable=False, index=True)
    product_id = Column(String(255), ForeignKey("products.product_id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), default=ReservationStatus.ACTIVE.value, nullable=False)  # ACTIVE, RELEASED, FULFILLED
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
