# Shared fixtures: an in-memory SQLite database per test and the inventory services wired to it
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.pool import StaticPool

from shared.database import build_session_factory, init_db, session_scope
from services.inventory_service.models import Product
from services.inventory_service.dependencies import build_services
from services.inventory_service.repository import InventoryRepository


class FakeProducer:
    """Records published events instead of talking to Kafka."""

    def __init__(self):
        self.published = []

    def publish(self, topic, event):
        self.published.append((topic, event))

    def flush(self):
        pass

    def topics(self):
        return [topic for topic, _ in self.published]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def producer():
    return FakeProducer()


@pytest.fixture
def services(session_factory, producer):
    return build_services(session_factory, producer)


@pytest.fixture
def make_product(session_factory):
    def _make(
        product_id="P",
        inventory=10,
        low_stock_threshold=5,
        price=100.0,
        track_inventory=True,
        website_id="site-1",
        name=None,
    ):
        with session_scope(session_factory) as db:
            InventoryRepository(db).create_product(
                name or f"Product {product_id}",
                price,
                inventory=inventory,
                low_stock_threshold=low_stock_threshold,
                track_inventory=track_inventory,
                website_id=website_id,
                product_id=product_id,
            )
        return product_id

    return _make


@pytest.fixture
def stock(session_factory):
    def _stock(product_id):
        with session_scope(session_factory) as db:
            return db.execute(select(Product.inventory).where(Product.product_id == product_id)).scalar_one_or_none()

    return _stock


@pytest.fixture
def movements(session_factory):
    """All movements of a product, oldest first."""

    def _movements(product_id):
        with session_scope(session_factory) as db:
            rows = InventoryRepository(db).list_movements(product_id, 1000)
            return [(row.type, row.quantity, row.reason) for row in reversed(rows)]

    return _movements
