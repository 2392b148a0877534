from datetime import datetime, timedelta, timezone

import pytest

from services.inventory_service.errors import ValidationError
from services.inventory_service.models import MovementType


class TestReport:

    def test_report_rows(self, services, make_product):
        make_product("A", inventory=10, price=250.0, website_id="site-1", name="Khaddar Shawl")
        make_product("B", inventory=5, price=100.0, website_id="site-2")
        services.reservations.reserve("A", 3, "order-1")
        services.ledger.record_movement("A", MovementType.IN, 1)

        rows = {row.product_id: row for row in services.reporter.report()}

        a = rows["A"]
        assert a.product_name == "Khaddar Shawl"
        assert a.current_stock == 8
        assert a.reserved_stock == 3
        assert a.available_stock == 5
        assert a.total_value == 2000.0
        assert a.movements_count == 2
        assert a.last_movement is not None

        b = rows["B"]
        assert b.reserved_stock == 0
        assert b.movements_count == 0
        assert b.available_stock == 5

    def test_released_reservations_are_not_counted(self, services, make_product):
        make_product("A", inventory=10)
        services.reservations.reserve("A", 3, "order-1")
        services.reservations.release("order-1")

        [row] = services.reporter.report()

        assert row.reserved_stock == 0
        assert row.current_stock == 10

    def test_report_scoped_to_website(self, services, make_product):
        make_product("A", website_id="site-1")
        make_product("B", website_id="site-2")

        assert [row.product_id for row in services.reporter.report("site-2")] == ["B"]

    def test_report_skips_untracked_products(self, services, make_product):
        make_product("A")
        make_product("U", track_inventory=False)

        assert [row.product_id for row in services.reporter.report()] == ["A"]


class TestAnalytics:

    def test_analytics_totals(self, services, make_product):
        make_product("A", inventory=10, price=2.0, low_stock_threshold=5)
        make_product("B", inventory=4, price=10.0, low_stock_threshold=5)
        make_product("C", inventory=0, price=99.0, low_stock_threshold=5)
        services.ledger.record_movement("A", MovementType.IN, 1)
        services.ledger.record_movement("A", MovementType.OUT, 1)
        services.ledger.record_movement("A", MovementType.DAMAGE, 1)
        services.ledger.record_movement("B", MovementType.IN, 1)

        analytics = services.reporter.analytics()

        assert analytics.total_products == 3
        assert analytics.total_value == 9 * 2.0 + 5 * 10.0
        assert analytics.low_stock_products == 1
        assert analytics.out_of_stock_products == 1
        assert analytics.total_movements == 4
        assert analytics.movements_by_type == {"IN": 2, "OUT": 1, "DAMAGE": 1}
        assert [(p.product_id, p.movements) for p in analytics.top_moving_products] == [("A", 3), ("B", 1)]
        assert analytics.top_moving_products[0].product_name == "Product A"

    def test_date_range_limits_movement_counts(self, services, make_product):
        make_product("A", inventory=1)
        services.ledger.record_movement("A", MovementType.IN, 1)

        later = datetime.now(timezone.utc) + timedelta(hours=1)
        analytics = services.reporter.analytics(date_from=later)

        assert analytics.total_products == 1
        assert analytics.total_movements == 0
        assert analytics.movements_by_type == {}
        assert analytics.top_moving_products == []

    def test_inverted_date_range_rejected(self, services):
        now = datetime.now(timezone.utc)

        with pytest.raises(ValidationError):
            services.reporter.analytics(date_from=now, date_to=now - timedelta(days=1))

    def test_naive_and_aware_bounds_can_be_mixed(self, services, make_product):
        make_product("A", inventory=1)
        services.ledger.record_movement("A", MovementType.IN, 1)

        analytics = services.reporter.analytics(
            date_from=datetime(2020, 1, 1, tzinfo=timezone.utc),
            date_to=datetime(2100, 1, 1),
        )

        assert analytics.total_movements == 1

    def test_bounds_in_other_zones_compare_in_utc(self, services):
        karachi = timezone(timedelta(hours=5))

        with pytest.raises(ValidationError):
            services.reporter.analytics(
                date_from=datetime(2026, 1, 1, 4, 0, tzinfo=karachi),
                date_to=datetime(2025, 12, 31, 22, 0),
            )
