import logging
import random
from typing import Optional

from sqlalchemy.orm import Session

from .ledger import StockLedger
from .models import MovementType
from .repository import InventoryRepository

logger = logging.getLogger(__name__)

DEMO_WEBSITE_ID = "demo-store"

# (name, sku, price in PKR, low stock threshold)
SAMPLE_PRODUCTS = [
    ("Embroidered Lawn Suit", "LAWN-001", 6499.0, 5),
    ("Khaddar Shawl", "SHWL-002", 3299.0, 4),
    ("Peshawari Chappal", "CHPL-003", 4999.0, 3),
    ("Basmati Rice 5kg", "RICE-004", 2150.0, 20),
    ("Himalayan Pink Salt Lamp", "LAMP-005", 1899.0, 6),
    ("Multani Blue Pottery Vase", "VASE-006", 2750.0, 2),
    ("Ajrak Bedsheet Set", "AJRK-007", 4200.0, 5),
    ("Kashmiri Chai Mix", "CHAI-008", 650.0, 25),
    ("Hand-knotted Rug 4x6", "RUG-009", 38500.0, 1),
    ("Truck Art Kettle", "KETL-010", 2350.0, 4),
]


def seed_products(db: Session, ledger: StockLedger, website_id: Optional[str] = DEMO_WEBSITE_ID) -> int:
    """
    Seed database with sample products; returns how many were created.

    Opening stock is booked as an IN movement so it shows up in the ledger.
    """
    logger.info("Seeding products...")
    repo = InventoryRepository(db)
    created = 0

    for name, sku, price, threshold in SAMPLE_PRODUCTS:
        if repo.get_product_by_name(name, website_id):
            logger.info(f"Product {name} already exists, skipping")
            continue

        product = repo.create_product(name, price, low_stock_threshold=threshold, website_id=website_id, sku=sku)
        ledger.post_movement(
            db,
            product.product_id,
            MovementType.IN,
            random.randint(10, 100),
            reason="OPENING_BALANCE",
        )
        created += 1

    db.commit()
    logger.info(f"Seeded {created} products")
    return created
