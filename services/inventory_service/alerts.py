"""Stock alerts derived from the current state of a product."""

import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from shared.database import session_scope

from .models import Product
from .repository import InventoryRepository
from .schemas import AlertType, InventoryAlert

logger = logging.getLogger(__name__)

# Stock above threshold * OVERSTOCK_FACTOR counts as overstocked
OVERSTOCK_FACTOR = 3


def alerts_for_product(product: Product) -> List[InventoryAlert]:
    """
    Evaluate the alert rules for one product.

    The rules are independent, so OVERSTOCK can fire next to OUT_OF_STOCK when
    the threshold is zero. Untracked products never alert.
    """
    if not product.track_inventory:
        return []

    inventory = product.inventory
    threshold = product.low_stock_threshold
    alerts: List[InventoryAlert] = []

    if inventory == 0:
        alerts.append(
            InventoryAlert(
                product_id=product.product_id,
                type=AlertType.OUT_OF_STOCK,
                message=f'Product "{product.name}" is out of stock',
                threshold=threshold,
                current_stock=inventory,
            )
        )
    elif inventory <= threshold:
        alerts.append(
            InventoryAlert(
                product_id=product.product_id,
                type=AlertType.LOW_STOCK,
                message=f'Product "{product.name}" is low on stock ({inventory} remaining)',
                threshold=threshold,
                current_stock=inventory,
            )
        )

    if inventory > threshold * OVERSTOCK_FACTOR:
        alerts.append(
            InventoryAlert(
                product_id=product.product_id,
                type=AlertType.OVERSTOCK,
                message=f'Product "{product.name}" is overstocked ({inventory} units)',
                threshold=threshold * OVERSTOCK_FACTOR,
                current_stock=inventory,
            )
        )

    return alerts


class AlertEvaluator:
    """Read-only alert computation over the products table."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def evaluate(self, product_id: str) -> List[InventoryAlert]:
        """Alerts for one product; empty when it is unknown or untracked."""
        with session_scope(self.session_factory) as db:
            product = InventoryRepository(db).get_product(product_id)
            if product is None:
                return []
            return alerts_for_product(product)

    def evaluate_all(self, website_id: Optional[str] = None) -> List[InventoryAlert]:
        """Alerts for every tracked product (optionally one website), ordered by product id."""
        with session_scope(self.session_factory) as db:
            alerts: List[InventoryAlert] = []
            for product in InventoryRepository(db).list_tracked_products(website_id):
                alerts.extend(alerts_for_product(product))
        logger.debug(f"Evaluated {len(alerts)} alerts (website={website_id or 'all'})")
        return alerts
