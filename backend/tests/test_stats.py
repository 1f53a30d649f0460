"""
Dashboard statistics and their cache.
"""

from decimal import Decimal

from bakery.models import Unit
from bakery.services import ledger_service, stats_service, transfer_service


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestStockStatsCache:

    def test_value_expires_after_ttl(self):
        clock = FakeClock()
        cache = stats_service.StockStatsCache(ttl_seconds=60, clock=clock)
        cache.set({"total_products": 1})

        clock.now = 59
        assert cache.get() == {"total_products": 1}
        clock.now = 61
        assert cache.get() is None

    def test_invalidate(self):
        cache = stats_service.StockStatsCache()
        cache.set({"total_products": 1})

        cache.invalidate()

        assert not cache.is_warm


class TestDashboardStats:

    def test_counts(self, db_session, make_ingredient, stock_workshop):
        farine = make_ingredient("Farine", 25, Decimal("12500"))
        make_ingredient("Sel", 2, Decimal("100"))
        stock_workshop(farine, 4)

        stats = stats_service.compute_stats()

        assert stats["total_products"] == 2
        assert stats["raw_critical"] == 1
        assert stats["workshop_critical"] == 1
        assert stats["shop_out_of_stock"] == 0
        assert stats["productions_today"] == 0
        assert stats["workshop_value"] == 2000.0

    def test_second_read_is_cached(self, app, db_session, make_ingredient):
        make_ingredient("Farine", 25)
        cache = app.extensions["stock_stats_cache"]

        assert stats_service.dashboard_stats(cache=cache)["cached"] is False
        assert stats_service.dashboard_stats(cache=cache)["cached"] is True

    def test_committed_ledger_change_drops_cache(self, app, db_session, make_ingredient, admin_user):
        farine = make_ingredient("Farine", 25)
        cache = app.extensions["stock_stats_cache"]
        stats_service.dashboard_stats(cache=cache)

        transfer_service.transfer(farine.id, "raw", "workshop", 4, actor_id=admin_user.id)

        assert not cache.is_warm
        assert stats_service.dashboard_stats(cache=cache)["workshop_critical"] == 1

    def test_rolled_back_change_keeps_cache(self, app, db_session, make_ingredient):
        farine = make_ingredient("Farine", 25)
        cache = app.extensions["stock_stats_cache"]
        stats_service.dashboard_stats(cache=cache)

        ledger_service.adjust(farine.id, "raw", Decimal("-5"))
        db_session.rollback()
        db_session.add(Unit(value="l", label="Litre"))
        db_session.commit()

        assert cache.is_warm
