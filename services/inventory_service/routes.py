"""
REST endpoints for the inventory service.

Every response uses the envelope
    {"success": true,  "data": {...},                          "timestamp": "..."}
    {"success": false, "error": {"message", "code", "details"?}, "timestamp": "..."}
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .dependencies import InventoryServices, get_services
from .errors import InventoryError
from .models import MovementType
from .schemas import (
    BulkAdjustRequest,
    BulkReceiveRequest,
    MovementFilters,
    OrderRequest,
    RecordMovementRequest,
    ReserveRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def ok(data: Any, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(data), "timestamp": _timestamp()},
    )


def fail(message: str, code: str, status_code: int, details: Any = None) -> JSONResponse:
    error = {"message": message, "code": code}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "timestamp": _timestamp()},
    )


def from_error(e: InventoryError, failure_message: str, failure_code: str) -> JSONResponse:
    """Client errors keep their own code; server-side failures get the endpoint's code."""
    if e.status_code >= 500:
        return fail(failure_message, failure_code, e.status_code)
    return fail(e.message, e.code, e.status_code, e.details)


def from_unexpected(e: Exception, failure_message: str, failure_code: str) -> JSONResponse:
    logger.error(f"{failure_message}: {e}", exc_info=True)
    return fail(failure_message, failure_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
def record_transaction(body: RecordMovementRequest, services: InventoryServices = Depends(get_services)):
    """Record a stock movement."""
    failure = ("Failed to record inventory transaction", "INVENTORY_TRANSACTION_FAILED")
    try:
        movement = services.ledger.record_movement(
            body.product_id,
            body.type,
            body.quantity,
            reason=body.reason,
            reference=body.reference,
            notes=body.notes,
            cost=body.cost,
        )
        return ok({"transaction": movement.to_json()}, status.HTTP_201_CREATED)
    except InventoryError as e:
        return from_error(e, *failure)
    except Exception as e:
        return from_unexpected(e, *failure)


@router.get("/transactions")
def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=500),
    product_id: Optional[str] = Query(None, alias="productId"),
    website_id: Optional[str] = Query(None, alias="websiteId"),
    type: Optional[MovementType] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    services: InventoryServices = Depends(get_services),
):
    """List movements, newest first, with filters and pagination."""
    failure = ("Failed to retrieve inventory transactions", "INVENTORY_TRANSACTIONS_RETRIEVAL_FAILED")
    try:
        filters = MovementFilters(
            product_id=product_id,
            website_id=website_id,
            type=type,
            date_from=date_from,
            date_to=date_to,
        )
        return ok(services.ledger.find_movements(filters, page=page, limit=limit).to_json())
    except InventoryError as e:
        return from_error(e, *failure)
    except Exception as e:
        return from_unexpected(e, *failure)


@router.get("/transactions/{movement_id}")
def get_transaction(movement_id: str, services: InventoryServices = Depends(get_services)):
    failure = ("Failed to retrieve inventory transaction", "INVENTORY_TRANSACTION_RETRIEVAL_FAILED")
    try:
        movement = services.ledger.get_movement(movement_id)
        if movement is None:
            return fail("Inventory transaction not found", "INVENTORY_TRANSACTION_NOT_FOUND", status.HTTP_404_NOT_FOUND)
        return ok({"transaction": movement.to_json()})
    except Exception as e:
        return from_unexpected(e, *failure)


@router.post("/reserve")
def reserve(body: ReserveRequest, services: InventoryServices = Depends(get_services)):
    """Reserve stock for an order; 400 when it cannot be held."""
    failure = ("Failed to reserve inventory", "INVENTORY_RESERVE_FAILED")
    try:
        reserved = services.reservations.reserve(body.product_id, body.quantity, body.order_id)
        if not reserved:
            return fail(
                "Insufficient inventory or product not found",
                "INVENTORY_RESERVE_FAILED",
                status.HTTP_400_BAD_REQUEST,
            )
        return ok({"message": "Inventory reserved successfully"})
    except InventoryError as e:
        return from_error(e, *failure)
    except Exception as e:
        return from_unexpected(e, *failure)


@router.post("/release")
def release(body: OrderRequest, services: InventoryServices = Depends(get_services)):
    try:
        released = services.reservations.release(body.order_id)
        return ok({"message": "Inventory reservation released successfully", "released": released})
    except Exception as e:
        return from_unexpected(e, "Failed to release inventory reservation", "INVENTORY_RELEASE_FAILED")


@router.post("/fulfill")
def fulfill(body: OrderRequest, services: InventoryServices = Depends(get_services)):
    try:
        fulfilled = services.reservations.fulfill(body.order_id)
        return ok({"message": "Inventory reservation fulfilled successfully", "fulfilled": fulfilled})
    except Exception as e:
        return from_unexpected(e, "Failed to fulfill inventory reservation", "INVENTORY_FULFILL_FAILED")


@router.get("/reservations/{order_id}")
def list_reservations(order_id: str, services: InventoryServices = Depends(get_services)):
    try:
        reservations = services.reservations.list_reservations(order_id)
        return ok({"reservations": [r.to_json() for r in reservations]})
    except Exception as e:
        return from_unexpected(e, "Failed to retrieve reservations", "INVENTORY_RESERVATIONS_RETRIEVAL_FAILED")


@router.get("/alerts")
def get_alerts(
    website_id: Optional[str] = Query(None, alias="websiteId"),
    services: InventoryServices = Depends(get_services),
):
    try:
        alerts = services.alerts.evaluate_all(website_id)
        return ok({"alerts": [alert.to_json() for alert in alerts]})
    except Exception as e:
        return from_unexpected(e, "Failed to retrieve inventory alerts", "INVENTORY_ALERTS_RETRIEVAL_FAILED")


@router.get("/report")
def get_report(
    website_id: Optional[str] = Query(None, alias="websiteId"),
    services: InventoryServices = Depends(get_services),
):
    try:
        rows = services.reporter.report(website_id)
        return ok({"report": [row.to_json() for row in rows]})
    except Exception as e:
        return from_unexpected(e, "Failed to retrieve inventory report", "INVENTORY_REPORT_RETRIEVAL_FAILED")


@router.get("/analytics")
def get_analytics(
    website_id: Optional[str] = Query(None, alias="websiteId"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    services: InventoryServices = Depends(get_services),
):
    failure = ("Failed to retrieve inventory analytics", "INVENTORY_ANALYTICS_FAILED")
    try:
        analytics = services.reporter.analytics(website_id, date_from, date_to)
        return ok({"analytics": analytics.to_json()})
    except InventoryError as e:
        return from_error(e, *failure)
    except Exception as e:
        return from_unexpected(e, *failure)


@router.get("/movements/{product_id}")
def get_movements(
    product_id: str,
    limit: int = Query(50, ge=1, le=500),
    services: InventoryServices = Depends(get_services),
):
    failure = ("Failed to retrieve inventory movements", "INVENTORY_MOVEMENTS_RETRIEVAL_FAILED")
    try:
        movements = services.ledger.list_movements(product_id, limit)
        return ok({"movements": [m.to_json() for m in movements]})
    except InventoryError as e:
        return from_error(e, *failure)
    except Exception as e:
        return from_unexpected(e, *failure)


@router.post("/bulk-adjust")
def bulk_adjust(body: BulkAdjustRequest, services: InventoryServices = Depends(get_services)):
    failure = ("Failed to bulk adjust inventory", "BULK_INVENTORY_ADJUST_FAILED")
    try:
        movements = services.ledger.bulk_adjust(body.adjustments)
        return ok({"message": "Bulk inventory adjustment completed successfully", "count": len(movements)})
    except InventoryError as e:
        return from_error(e, *failure)
    except Exception as e:
        return from_unexpected(e, *failure)


@router.post("/bulk-receive")
def bulk_receive(body: BulkReceiveRequest, services: InventoryServices = Depends(get_services)):
    failure = ("Failed to bulk receive inventory", "BULK_INVENTORY_RECEIPT_FAILED")
    try:
        movements = services.ledger.bulk_receive(body.receipts)
        return ok({"message": "Bulk inventory receipt completed successfully", "count": len(movements)})
    except InventoryError as e:
        return from_error(e, *failure)
    except Exception as e:
        return from_unexpected(e, *failure)
