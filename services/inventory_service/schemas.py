from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import MovementType, ReservationStatus, as_utc


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(frozen=True)


# ============================================================================
# Requests
# ============================================================================

class RecordMovementRequest(CamelModel):
    """Request model for recording a stock movement."""

    product_id: str = Field(min_length=1)
    type: MovementType
    quantity: int
    reason: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    cost: Optional[Decimal] = Field(default=None, gt=0)


class ReserveRequest(CamelModel):
    """Request model for reserving stock for an order."""

    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    order_id: str = Field(min_length=1)


class OrderRequest(CamelModel):
    """Request model for release / fulfill."""

    order_id: str = Field(min_length=1)


class BulkAdjustmentItem(CamelModel):
    product_id: str = Field(min_length=1)
    quantity: int
    reason: Optional[str] = None


class BulkAdjustRequest(CamelModel):
    adjustments: List[BulkAdjustmentItem]


class BulkReceiptItem(CamelModel):
    product_id: str = Field(min_length=1)
    quantity: int
    cost: Optional[Decimal] = Field(default=None, gt=0)
    reference: Optional[str] = None


class BulkReceiveRequest(CamelModel):
    receipts: List[BulkReceiptItem]


# ============================================================================
# Ledger / reservation records
# ============================================================================

class StockMovementOut(FrozenCamelModel):
    """Snapshot of a ledger entry."""

    movement_id: str
    product_id: str
    type: MovementType
    quantity: int
    reason: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    cost: Optional[Decimal] = None
    created_at: datetime


class ReservationOut(FrozenCamelModel):
    reservation_id: str
    order_id: str
    product_id: str
    quantity: int
    status: ReservationStatus
    created_at: datetime
    updated_at: datetime


class MovementFilters(CamelModel):
    product_id: Optional[str] = None
    website_id: Optional[str] = None
    type: Optional[MovementType] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class Pagination(FrozenCamelModel):
    page: int
    limit: int
    total: int
    pages: int


class MovementPage(FrozenCamelModel):
    transactions: List[StockMovementOut]
    pagination: Pagination


# ============================================================================
# Derived values
# ============================================================================

class AlertType(str, Enum):
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    OVERSTOCK = "OVERSTOCK"
    EXPIRING = "EXPIRING"


class InventoryAlert(FrozenCamelModel):
    """Point-in-time stock alert; recomputed on demand, never stored."""

    product_id: str
    type: AlertType
    message: str
    threshold: Optional[int] = None
    current_stock: Optional[int] = None


class InventoryReportRow(FrozenCamelModel):
    product_id: str
    product_name: str
    current_stock: int
    reserved_stock: int
    available_stock: int
    low_stock_threshold: int
    total_value: float
    last_movement: datetime
    movements_count: int


class TopMovingProduct(FrozenCamelModel):
    product_id: str
    product_name: str
    movements: int


class InventoryAnalytics(FrozenCamelModel):
    total_products: int
    total_value: float
    low_stock_products: int
    out_of_stock_products: int
    total_movements: int
    movements_by_type: Dict[str, int]
    top_moving_products: List[TopMovingProduct]


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    service: str
    version: str
