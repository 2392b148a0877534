"""Read-only inventory reports and analytics."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from shared.database import session_scope

from .errors import ValidationError
from .models import as_utc
from .repository import InventoryRepository
from .schemas import InventoryAnalytics, InventoryReportRow, TopMovingProduct

logger = logging.getLogger(__name__)

TOP_MOVING_LIMIT = 10


class InventoryReporter:
    """Aggregates products, reservations and movements; never writes."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def report(self, website_id: Optional[str] = None) -> List[InventoryReportRow]:
        """One row per tracked product, ordered by product id."""
        with session_scope(self.session_factory) as db:
            repo = InventoryRepository(db)
            products = repo.list_tracked_products(website_id)
            product_ids = [p.product_id for p in products]
            reserved = repo.reserved_quantities(product_ids)
            stats = repo.movement_stats(product_ids)

            rows = []
            for product in products:
                reserved_stock = reserved.get(product.product_id, 0)
                movements_count, last_movement = stats.get(product.product_id, (0, None))
                rows.append(
                    InventoryReportRow(
                        product_id=product.product_id,
                        product_name=product.name,
                        current_stock=product.inventory,
                        reserved_stock=reserved_stock,
                        available_stock=product.inventory - reserved_stock,
                        low_stock_threshold=product.low_stock_threshold,
                        total_value=product.inventory * (product.price or 0.0),
                        last_movement=last_movement or product.updated_at,
                        movements_count=movements_count,
                    )
                )
        return rows

    def analytics(
        self,
        website_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> InventoryAnalytics:
        """Stock totals for the tracked products plus movement counts inside the date range."""
        date_from, date_to = as_utc(date_from), as_utc(date_to)
        if date_from and date_to and date_from > date_to:
            raise ValidationError("dateFrom must not be after dateTo")

        with session_scope(self.session_factory) as db:
            repo = InventoryRepository(db)
            products = repo.list_tracked_products(website_id)
            names = {p.product_id: p.name for p in products}
            by_type, by_product = repo.movement_counts(list(names), date_from, date_to)

            total_value = sum(p.inventory * (p.price or 0.0) for p in products)
            low_stock = sum(1 for p in products if 0 < p.inventory <= p.low_stock_threshold)
            out_of_stock = sum(1 for p in products if p.inventory == 0)

        ranked = sorted(by_product.items(), key=lambda item: (-item[1], item[0]))[:TOP_MOVING_LIMIT]
        analytics = InventoryAnalytics(
            total_products=len(products),
            total_value=total_value,
            low_stock_products=low_stock,
            out_of_stock_products=out_of_stock,
            total_movements=sum(by_type.values()),
            movements_by_type=by_type,
            top_moving_products=[
                TopMovingProduct(product_id=product_id, product_name=names.get(product_id, "Unknown Product"), movements=count)
                for product_id, count in ranked
            ],
        )
        logger.debug(f"Analytics computed for {analytics.total_products} products (website={website_id or 'all'})")
        return analytics
