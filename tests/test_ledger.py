"""Tests for the stock ledger: quantity rule, validation, bulk atomicity, listings."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from shared.database import session_scope
from services.inventory_service.errors import (
    InsufficientStockError,
    InventoryTransactionError,
    ProductNotFoundError,
    TrackingDisabledError,
    ValidationError,
)
from services.inventory_service.ledger import apply_movement_rule
from services.inventory_service.models import MovementType
from services.inventory_service.repository import InventoryRepository
from services.inventory_service.schemas import AlertType, MovementFilters


class TestQuantityRule:

    @pytest.mark.parametrize(
        "movement_type, before, quantity, after",
        [
            (MovementType.IN, 10, 5, 15),
            (MovementType.RETURN, 0, 3, 3),
            (MovementType.OUT, 10, 4, 6),
            (MovementType.OUT, 3, 5, 0),
            (MovementType.DAMAGE, 2, 2, 0),
            (MovementType.LOSS, 1, 7, 0),
            (MovementType.ADJUSTMENT, 10, 0, 0),
            (MovementType.ADJUSTMENT, 0, 42, 42),
        ],
    )
    def test_rule_table(self, movement_type, before, quantity, after):
        assert apply_movement_rule(before, movement_type, quantity) == after

    def test_adjustment_is_absolute_and_clamped(self):
        assert apply_movement_rule(99, MovementType.ADJUSTMENT, -4) == 0


class TestRecordMovement:

    def test_in_increases_stock(self, services, make_product, stock):
        make_product("P", inventory=10)

        movement = services.ledger.record_movement("P", MovementType.IN, 5, reason="RESTOCK", cost=Decimal("12.50"))

        assert movement.type is MovementType.IN
        assert movement.quantity == 5
        assert movement.cost == Decimal("12.50")
        assert movement.movement_id.startswith("MOV-")
        assert stock("P") == 15

    def test_out_clamps_at_zero(self, services, make_product, stock):
        make_product("P", inventory=3)

        services.ledger.record_movement("P", "OUT", 5)

        assert stock("P") == 0

    def test_adjustment_zero_sets_stock_and_fires_out_of_stock(self, services, make_product, stock, producer):
        make_product("P", inventory=25, low_stock_threshold=5)

        services.ledger.record_movement("P", MovementType.ADJUSTMENT, 0)

        assert stock("P") == 0
        alert_types = [event.alert_type for topic, event in producer.published if topic == "inventory.alert"]
        assert alert_types == [AlertType.OUT_OF_STOCK.value]
        assert [a.type for a in services.alerts.evaluate("P")] == [AlertType.OUT_OF_STOCK]

    def test_unknown_product(self, services, movements):
        with pytest.raises(ProductNotFoundError):
            services.ledger.record_movement("missing", MovementType.IN, 1)
        assert movements("missing") == []

    def test_tracking_disabled(self, services, make_product, movements, stock):
        make_product("P", inventory=4, track_inventory=False)

        with pytest.raises(TrackingDisabledError):
            services.ledger.record_movement("P", MovementType.IN, 1)

        assert movements("P") == []
        assert stock("P") == 4

    @pytest.mark.parametrize(
        "movement_type, quantity",
        [("IN", 0), ("OUT", -1), ("SHRINKAGE", 1), ("IN", 2.5), ("IN", True)],
    )
    def test_invalid_input_rejected(self, services, make_product, movements, movement_type, quantity):
        make_product("P")

        with pytest.raises(ValidationError):
            services.ledger.record_movement("P", movement_type, quantity)

        assert movements("P") == []

    def test_alert_failure_does_not_fail_the_write(self, services, make_product, stock, monkeypatch):
        make_product("P", inventory=1)

        def broken(product_id):
            raise RuntimeError("alert store down")

        monkeypatch.setattr(services.alerts, "evaluate", broken)

        services.ledger.record_movement("P", MovementType.IN, 2)

        assert stock("P") == 3

    def test_persistence_failure_surfaces_as_transaction_error(self, services, make_product, stock, monkeypatch):
        make_product("P", inventory=1)

        def failing(self, *args, **kwargs):
            raise OperationalError("INSERT INTO stock_movements", {}, Exception("disk I/O error"))

        monkeypatch.setattr(InventoryRepository, "add_movement", failing)

        with pytest.raises(InventoryTransactionError) as excinfo:
            services.ledger.record_movement("P", MovementType.IN, 2)

        assert excinfo.value.code == "INVENTORY_TRANSACTION_FAILED"
        assert stock("P") == 1

    def test_guarded_write_refuses_short_stock(self, services, session_factory, make_product, stock):
        make_product("P", inventory=2)

        with pytest.raises(InsufficientStockError):
            with session_scope(session_factory) as db:
                services.ledger.post_movement(db, "P", MovementType.OUT, 3, require_available=True)

        assert stock("P") == 2

    def test_version_bumps_on_every_write(self, services, session_factory, make_product):
        make_product("P", inventory=2)

        services.ledger.record_movement("P", MovementType.IN, 1)
        services.ledger.record_movement("P", MovementType.OUT, 1)

        with session_scope(session_factory) as db:
            assert InventoryRepository(db).get_product("P").version == 2


class TestBulkOperations:

    def test_bulk_receive_commits_every_entry(self, services, make_product, stock, movements):
        make_product("A", inventory=1)
        make_product("B", inventory=0)

        result = services.ledger.bulk_receive(
            [
                {"product_id": "A", "quantity": 4, "cost": "3.25", "reference": "PO-1"},
                {"product_id": "B", "quantity": 6},
            ]
        )

        assert len(result) == 2
        assert stock("A") == 5
        assert stock("B") == 6
        assert movements("A") == [("IN", 4, "STOCK_RECEIPT")]

    def test_bulk_receive_rolls_back_when_an_entry_fails(self, services, make_product, stock, movements, monkeypatch):
        for pid in "ABCDE":
            make_product(pid, inventory=1)

        original = InventoryRepository.add_movement
        calls = {"n": 0}

        def flaky(self, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 3:
                raise OperationalError("INSERT INTO stock_movements", {}, Exception("connection reset"))
            return original(self, *args, **kwargs)

        monkeypatch.setattr(InventoryRepository, "add_movement", flaky)

        with pytest.raises(InventoryTransactionError):
            services.ledger.bulk_receive([{"product_id": pid, "quantity": 10} for pid in "ABCDE"])

        for pid in "ABCDE":
            assert stock(pid) == 1
            assert movements(pid) == []

    def test_bulk_adjust_rolls_back_on_unknown_product(self, services, make_product, stock):
        make_product("A", inventory=7)

        with pytest.raises(ProductNotFoundError):
            services.ledger.bulk_adjust(
                [{"product_id": "A", "quantity": 2}, {"product_id": "missing", "quantity": 3}]
            )

        assert stock("A") == 7

    def test_bulk_adjust_sets_absolute_stock(self, services, make_product, stock, movements):
        make_product("A", inventory=7)
        make_product("B", inventory=0)

        services.ledger.bulk_adjust(
            [{"product_id": "A", "quantity": 2}, {"product_id": "B", "quantity": 9, "reason": "STOCKTAKE"}]
        )

        assert stock("A") == 2
        assert stock("B") == 9
        assert movements("A") == [("ADJUSTMENT", 2, "BULK_ADJUSTMENT")]
        assert movements("B") == [("ADJUSTMENT", 9, "STOCKTAKE")]


class TestListings:

    def test_list_movements_newest_first_with_limit(self, services, make_product):
        make_product("P", inventory=0)
        for quantity in (1, 2, 3):
            services.ledger.record_movement("P", MovementType.IN, quantity)

        recent = services.ledger.list_movements("P", limit=2)

        assert [m.quantity for m in recent] == [3, 2]

    def test_list_movements_rejects_bad_limit(self, services):
        with pytest.raises(ValidationError):
            services.ledger.list_movements("P", limit=0)

    def test_find_movements_filters_and_paginates(self, services, make_product):
        make_product("A", inventory=0, website_id="site-1")
        make_product("B", inventory=0, website_id="site-2")
        for _ in range(3):
            services.ledger.record_movement("A", MovementType.IN, 1)
        services.ledger.record_movement("A", MovementType.OUT, 1)
        services.ledger.record_movement("B", MovementType.IN, 5)

        page = services.ledger.find_movements(MovementFilters(website_id="site-1"), page=2, limit=3)
        assert page.pagination.total == 4
        assert page.pagination.pages == 2
        assert len(page.transactions) == 1

        outs = services.ledger.find_movements(MovementFilters(type=MovementType.OUT))
        assert [m.product_id for m in outs.transactions] == ["A"]

        future = datetime.now(timezone.utc) + timedelta(days=1)
        assert services.ledger.find_movements(MovementFilters(date_from=future)).pagination.total == 0

    def test_get_movement(self, services, make_product):
        make_product("P", inventory=0)
        recorded = services.ledger.record_movement("P", MovementType.IN, 3, notes="first delivery")

        fetched = services.ledger.get_movement(recorded.movement_id)

        assert fetched.notes == "first delivery"
        assert services.ledger.get_movement("MOV-NOPE") is None
