"""
inventory_service/main.py - Inventory Ledger Microservice

PURPOSE:
    Owns stock levels for storefront products. Every stock change is written
    to an append-only ledger; orders hold stock through reservations that are
    later fulfilled or released; stock alerts are derived after each write.

INVENTORY WORKFLOW:
    1. Order workflow reserves stock (HTTP POST /inventory/reserve or the
       order.created Kafka event) -> ACTIVE reservation + OUT movement
    2. Order ships -> fulfill closes the reservation (stock already taken)
    3. Order cancelled -> release writes a RETURN movement and closes the
       reservation
    4. After every ledger write the product's alerts are re-evaluated and,
       with Kafka enabled, published to inventory.alert

KEY FEATURES:
    - Optimistic Locking: inventory is compare-and-swapped on products.version
    - Stock Reservation: availability is re-checked inside the guarded write
    - Atomic Bulk Operations: bulk adjust/receive commit all entries or none
    - Alerts: LOW_STOCK, OUT_OF_STOCK, OVERSTOCK

API ENDPOINTS:
    POST   /inventory/transactions            - Record a stock movement
    GET    /inventory/transactions            - List movements (filters, pagination)
    GET    /inventory/transactions/{id}       - Movement details
    POST   /inventory/reserve                 - Reserve stock for an order
    POST   /inventory/release                 - Release an order's reservations
    POST   /inventory/fulfill                 - Fulfill an order's reservations
    GET    /inventory/reservations/{orderId}  - Reservations of an order
    GET    /inventory/alerts                  - Current stock alerts
    GET    /inventory/report                  - Per-product stock report
    GET    /inventory/analytics               - Stock and movement analytics
    GET    /inventory/movements/{productId}   - Recent movements of a product
    POST   /inventory/bulk-adjust             - Set stock for many products
    POST   /inventory/bulk-receive            - Receive stock for many products
    GET    /health                            - Health check

KAFKA EVENTS (only when KAFKA_ENABLED=true):
    CONSUMED: order.created, order.cancelled, order.fulfilled
    PUBLISHED: inventory.reserved, inventory.depleted, inventory.released, inventory.alert

DATABASE:
    - products: product_id, website_id, name, price, track_inventory, inventory,
      low_stock_threshold, version
    - stock_movements: movement_id, product_id, type, quantity, reason, reference, notes, cost
    - stock_reservations: reservation_id, order_id, product_id, quantity, status

USAGE:
    uvicorn services.inventory_service.main:app --port 8004
"""

import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError

from shared.database import build_engine, build_session_factory, init_db
from shared.events import ORDER_TOPICS
from shared.kafka_client import BaseKafkaConsumer, BaseKafkaProducer
from shared.logging_config import setup_logging
from shared.topic_initializer import create_topics

from .config import Settings
from .consumer import OrderEventHandler
from .dependencies import InventoryServices, build_services
from .routes import fail, router
from .schemas import HealthResponse

SERVICE_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def start_order_consumer(settings: Settings, services: InventoryServices, producer: BaseKafkaProducer) -> BaseKafkaConsumer:
    """Consume order events on a daemon thread."""
    consumer = BaseKafkaConsumer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        topics=ORDER_TOPICS,
    )
    handler = OrderEventHandler(services.reservations, producer)

    def run():
        try:
            consumer.consume(handler)
        except Exception as e:
            logger.error(f"Error in order event consumer: {e}")

    threading.Thread(target=run, name="order-event-consumer", daemon=True).start()
    logger.info("Order event consumer thread started")
    return consumer


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire database, Kafka and services unless they were injected (tests), then seed if asked."""
    settings: Settings = app.state.settings
    consumer: Optional[BaseKafkaConsumer] = None
    producer: Optional[BaseKafkaProducer] = None

    logger.info("Starting Inventory Service...")

    if getattr(app.state, "services", None) is None:
        engine = build_engine(settings.sqlalchemy_url)
        init_db(engine)
        session_factory = build_session_factory(engine)

        if settings.kafka_enabled:
            create_topics(settings.kafka_bootstrap_servers)
            producer = BaseKafkaProducer(settings.kafka_bootstrap_servers, client_id="inventory-producer")
            logger.info("Kafka producer initialized")

        app.state.services = build_services(session_factory, producer)

        if producer is not None:
            consumer = start_order_consumer(settings, app.state.services, producer)

    services: InventoryServices = app.state.services
    if settings.seed_products:
        from .seed_data import seed_products

        db = services.session_factory()
        try:
            seed_products(db, services.ledger)
        except Exception as e:
            logger.error(f"Failed to seed products: {e}")
        finally:
            db.close()

    yield

    logger.info("Shutting down Inventory Service...")
    if consumer:
        consumer.close()
    if producer:
        producer.flush()


def create_app(settings: Optional[Settings] = None, services: Optional[InventoryServices] = None) -> FastAPI:
    """Build the FastAPI app; pass ``services`` to skip database/Kafka wiring."""
    settings = settings or Settings()
    app = FastAPI(title="Inventory Service", version=SERVICE_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return fail("Validation error", "VALIDATION_ERROR", status.HTTP_400_BAD_REQUEST, exc.errors())

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return HealthResponse(status="ok", service=settings.service_name, version=SERVICE_VERSION)

    app.include_router(router)
    return app


settings = Settings()
setup_logging(settings.service_name, level=settings.log_level, tz_name=settings.log_timezone)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.inventory_service_port)
