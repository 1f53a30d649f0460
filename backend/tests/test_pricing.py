"""
Selling prices and margins.
"""

from decimal import Decimal

import pytest

from bakery.errors import NotFound, PermissionDenied, ValidationError
from bakery.services import pricing_service, recipe_service


class TestComputeMargin:

    def test_margin_and_percent(self):
        info = pricing_service.compute_margin(Decimal("750"), Decimal("500"))

        assert info.margin == Decimal("250")
        assert info.margin_percent == Decimal("50.00")

    def test_percent_is_rounded_to_two_places(self):
        info = pricing_service.compute_margin(Decimal("1000"), Decimal("750"))

        assert info.margin_percent == Decimal("33.33")

    def test_zero_cost_gives_zero_percent(self):
        info = pricing_service.compute_margin(Decimal("300"), Decimal("0"))

        assert info.margin == Decimal("300")
        assert info.margin_percent == Decimal("0")


class TestProductPrices:

    def test_admin_sets_price(self, db_session, make_ingredient, admin_user):
        beurre = make_ingredient("Beurre", 4, Decimal("2000"))

        row = pricing_service.set_product_price(beurre.id, 750, admin_user)

        assert row.price == Decimal("750")
        info = pricing_service.get_product_price(beurre.id)
        assert info.purchase_cost == Decimal("500")
        assert info.margin_percent == Decimal("50.00")

    def test_second_call_updates_existing_row(self, db_session, make_ingredient, admin_user):
        beurre = make_ingredient("Beurre", 4, Decimal("2000"))
        pricing_service.set_product_price(beurre.id, 750, admin_user)

        pricing_service.set_product_price(beurre.id, 1000, admin_user)

        assert len(pricing_service.list_prices()) == 1
        assert pricing_service.get_product_price(beurre.id).price == Decimal("1000")

    def test_non_admin_is_refused(self, db_session, make_ingredient, chef_user):
        beurre = make_ingredient("Beurre", 4, Decimal("2000"))

        with pytest.raises(PermissionDenied):
            pricing_service.set_product_price(beurre.id, 750, chef_user)

        assert pricing_service.get_product_price(beurre.id) is None

    def test_negative_price_is_rejected(self, db_session, make_ingredient, admin_user):
        beurre = make_ingredient("Beurre", 4, Decimal("2000"))

        with pytest.raises(ValidationError):
            pricing_service.set_product_price(beurre.id, -1, admin_user)

    def test_unknown_product(self, db_session, admin_user):
        with pytest.raises(NotFound):
            pricing_service.set_product_price(777, 100, admin_user)


class TestRecipePrices:

    def test_recipe_price_uses_recipe_cost(self, db_session, make_ingredient, admin_user):
        farine = make_ingredient("Farine", 10, Decimal("5000"))
        recipe_service.add_lines(
            "Pain", [{"ingredient_product_id": farine.id, "quantity_per_unit": "0.5"}],
            actor_id=admin_user.id,
        )

        pricing_service.set_recipe_price("Pain", 500, admin_user)

        info = pricing_service.get_recipe_price("Pain")
        assert info.purchase_cost == Decimal("250")
        assert info.margin == Decimal("250")
        assert info.margin_percent == Decimal("100.00")

    def test_missing_recipe_price(self, db_session):
        assert pricing_service.get_recipe_price("Brioche") is None
