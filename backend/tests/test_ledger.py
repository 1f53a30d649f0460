"""
Quantity ledger: point updates, non-negativity and entry creation rules.
"""

from decimal import Decimal

import pytest

from bakery.errors import InsufficientStock, NotFound, ValidationError
from bakery.services import ledger_service


class TestBalances:

    def test_raw_balance_is_remaining_quantity(self, make_ingredient):
        farine = make_ingredient("Farine", 25, Decimal("12500"))

        balance = ledger_service.get_balance(farine.id, "raw")

        assert balance.available == Decimal("25")

    def test_missing_entry_reads_as_zero(self, make_ingredient):
        farine = make_ingredient("Farine", 25)

        balance = ledger_service.get_balance(farine.id, "kitchen")

        assert balance == ledger_service.Balance()

    def test_unknown_pool_is_rejected(self, make_ingredient):
        farine = make_ingredient("Farine", 1)

        with pytest.raises(ValidationError):
            ledger_service.get_balance(farine.id, "cellar")


class TestAdjust:

    def test_decrement_below_zero_raises_and_leaves_balance(self, db_session, make_ingredient):
        sucre = make_ingredient("Sucre", 3)

        with pytest.raises(InsufficientStock) as exc:
            ledger_service.adjust(sucre.id, "raw", Decimal("-5"))

        assert "disponible: 3" in str(exc.value)
        db_session.rollback()
        assert ledger_service.get_balance(sucre.id, "raw").available == Decimal("3")

    def test_returns_before_and_after(self, db_session, make_ingredient):
        sucre = make_ingredient("Sucre", 10)

        change = ledger_service.adjust(sucre.id, "raw", Decimal("-4"))
        db_session.commit()

        assert change.before == Decimal("10")
        assert change.after == Decimal("6")

    def test_workshop_without_entry_is_not_found(self, make_ingredient):
        beurre = make_ingredient("Beurre", 5)

        with pytest.raises(NotFound):
            ledger_service.adjust(beurre.id, "workshop", Decimal("1"))

    def test_shop_entry_is_created_on_first_touch(self, db_session, make_ingredient):
        pain = make_ingredient("Pain", 1)

        change = ledger_service.adjust(pain.id, "shop", Decimal("4"))
        db_session.commit()

        assert change.before == Decimal("0")
        assert ledger_service.get_balance(pain.id, "shop").available == Decimal("4")

    def test_unknown_product_is_not_found(self, db_session):
        with pytest.raises(NotFound):
            ledger_service.adjust(999, "raw", Decimal("1"))


class TestCredit:

    def test_credit_creates_workshop_entry(self, db_session, make_ingredient):
        levure = make_ingredient("Levure", 2)

        ledger_service.credit(levure.id, "workshop", Decimal("0.5"))
        ledger_service.credit(levure.id, "workshop", Decimal("0.25"))
        db_session.commit()

        assert ledger_service.get_balance(levure.id, "workshop").available == Decimal("0.75")

    def test_credit_rejects_non_positive_quantity(self, make_ingredient):
        levure = make_ingredient("Levure", 2)

        with pytest.raises(ValidationError):
            ledger_service.credit(levure.id, "workshop", 0)


class TestCounters:

    def test_sold_counter_floors_at_zero(self, db_session, make_ingredient):
        pain = make_ingredient("Pain", 1)
        ledger_service.bump_counter(pain.id, "shop", "sold", Decimal("2"))

        value = ledger_service.bump_counter(pain.id, "shop", "sold", Decimal("-5"))
        db_session.commit()

        assert value == Decimal("0")
        assert ledger_service.get_balance(pain.id, "shop").sold == Decimal("0")

    def test_counters_do_not_touch_available(self, db_session, make_ingredient):
        pain = make_ingredient("Pain", 1)
        ledger_service.credit(pain.id, "shop", 3)
        ledger_service.bump_counter(pain.id, "shop", "sold", 2)
        db_session.commit()

        balance = ledger_service.get_balance(pain.id, "shop")
        assert balance.available == Decimal("3")
        assert balance.sold == Decimal("2")


class TestFractionalQuantities:

    def test_repeated_tenths_drain_raw_to_exactly_zero(self, db_session, make_ingredient):
        sel = make_ingredient("Sel", Decimal("0.3"))

        changes = [ledger_service.adjust(sel.id, "raw", Decimal("-0.1")) for _ in range(3)]
        db_session.commit()

        assert [c.after for c in changes] == [Decimal("0.2"), Decimal("0.1"), Decimal("0")]
        assert ledger_service.get_balance(sel.id, "raw").available == Decimal("0")

    def test_repeated_tenths_drain_entry_to_exactly_zero(self, db_session, make_ingredient):
        levure = make_ingredient("Levure", 1)
        ledger_service.credit(levure.id, "workshop", Decimal("0.3"))

        for _ in range(3):
            ledger_service.adjust(levure.id, "workshop", Decimal("-0.1"))
        db_session.commit()

        assert ledger_service.get_balance(levure.id, "workshop").available == Decimal("0")
        with pytest.raises(InsufficientStock):
            ledger_service.adjust(levure.id, "workshop", Decimal("-0.001"))

    def test_used_counter_accumulates_tenths_exactly(self, db_session, make_ingredient):
        levure = make_ingredient("Levure", 1)

        for _ in range(3):
            ledger_service.bump_counter(levure.id, "workshop", "used", Decimal("0.1"))
        value = ledger_service.bump_counter(levure.id, "workshop", "used", Decimal("-0.3"))
        db_session.commit()

        assert value == Decimal("0")


@pytest.mark.parametrize(
    "available,status",
    [
        (0, "rupture"),
        (-1, "rupture"),
        (5, "critique"),
        (Decimal("5.5"), "faible"),
        (10, "faible"),
        (11, "normal"),
    ],
)
def test_stock_status_thresholds(available, status):
    assert ledger_service.stock_status(available) == status


def test_to_quantity_rejects_garbage():
    with pytest.raises(ValidationError):
        ledger_service.to_quantity("beaucoup")
    with pytest.raises(ValidationError):
        ledger_service.to_quantity(True)
