"""
Production runs consume workshop ingredients and credit finished goods.
"""

from decimal import Decimal

import pytest

from bakery.errors import (
    ImmutableRecordError,
    InsufficientIngredient,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from bakery.models import Movement, ProductionRun, SalePrice
from bakery.services import ledger_service, production_service, recipe_service


@pytest.fixture
def pain_recipe(make_ingredient, stock_workshop, admin_user):
    """
    Pain = 0.5 kg farine + 0.25 kg levure.

    Farine costs 500 per kg, levure 2000 per kg, so one pain costs 750.
    """
    def _make(farine_in_workshop, levure_in_workshop):
        farine = make_ingredient("Farine", 25, Decimal("12500"))
        levure = make_ingredient("Levure", 2, Decimal("4000"))
        stock_workshop(farine, farine_in_workshop)
        stock_workshop(levure, levure_in_workshop)
        recipe_service.add_lines(
            "Pain",
            [
                {"ingredient_product_id": farine.id, "quantity_per_unit": "0.5"},
                {"ingredient_product_id": levure.id, "quantity_per_unit": "0.25"},
            ],
            actor_id=admin_user.id,
        )
        return farine, levure
    return _make


class TestRequirements:

    def test_requirements_list_each_ingredient(self, pain_recipe):
        pain_recipe(10, 1)

        requirements = recipe_service.compute_requirements("Pain", 2)

        assert requirements.feasible
        assert [item.name for item in requirements.items] == ["Farine", "Levure"]
        assert requirements.items[0].required == Decimal("1")
        assert requirements.total_cost == Decimal("1500")

    def test_unknown_recipe_is_not_found(self, db_session):
        with pytest.raises(NotFound):
            recipe_service.compute_requirements("Croissant", 1)

    def test_duplicate_ingredient_is_rejected(self, pain_recipe, admin_user):
        farine, _ = pain_recipe(10, 1)

        with pytest.raises(ValidationError):
            recipe_service.add_lines(
                "Pain",
                [{"ingredient_product_id": farine.id, "quantity_per_unit": 1}],
                actor_id=admin_user.id,
            )

    def test_unit_cost_sums_lines(self, pain_recipe):
        pain_recipe(10, 1)

        assert recipe_service.unit_cost("Pain") == Decimal("750")
        assert recipe_service.unit_cost("Brioche") == Decimal("0")


class TestProduce:

    def test_shortfall_lists_only_short_ingredients_and_writes_nothing(
        self, db_session, pain_recipe, chef_user
    ):
        farine, levure = pain_recipe(10, Decimal("0.25"))

        with pytest.raises(InsufficientIngredient) as exc:
            production_service.produce("Pain", 2, actor=chef_user)

        shortfalls = exc.value.details["shortfalls"]
        assert [s["name"] for s in shortfalls] == ["Levure"]
        assert shortfalls[0]["missing"] == 0.25
        assert "Levure" in exc.value.message
        assert ledger_service.get_balance(farine.id, "workshop").available == Decimal("10")
        assert ledger_service.get_balance(levure.id, "workshop").available == Decimal("0.25")
        assert db_session.query(ProductionRun).count() == 0
        assert db_session.query(Movement).filter_by(movement_type="sortie").count() == 0

    def test_successful_run_moves_stock(self, db_session, pain_recipe, chef_user):
        farine, levure = pain_recipe(10, 1)

        run = production_service.produce("Pain", 2, actor=chef_user)

        assert run.status == "termine"
        assert run.ingredient_cost == Decimal("1500")
        assert run.producer_user_id == chef_user.id

        farine_balance = ledger_service.get_balance(farine.id, "workshop")
        assert farine_balance.available == Decimal("9")
        assert farine_balance.used == Decimal("1")
        assert ledger_service.get_balance(levure.id, "workshop").available == Decimal("0.5")

        shop = ledger_service.get_balance(run.finished_product_id, "shop")
        assert shop.available == Decimal("2")

    def test_run_writes_sortie_and_entree_movements(self, db_session, pain_recipe, chef_user):
        pain_recipe(10, 1)

        run = production_service.produce("Pain", 2, actor=chef_user)

        movements = db_session.query(Movement).filter_by(production_id=run.id).all()
        kinds = sorted(m.movement_type for m in movements)
        assert kinds == ["entree", "sortie", "sortie"]
        assert all(m.reference == f"Production #{run.id} Pain" for m in movements)

    def test_second_run_reuses_finished_product(self, db_session, pain_recipe, chef_user):
        pain_recipe(10, 1)

        first = production_service.produce("Pain", 1, actor=chef_user)
        second = production_service.produce("Pain", 1, actor=chef_user)

        assert first.finished_product_id == second.finished_product_id
        assert ledger_service.get_balance(first.finished_product_id, "shop").available == Decimal("2")

    def test_kitchen_destination(self, db_session, pain_recipe, chef_user):
        pain_recipe(10, 1)

        run = production_service.produce("Pain", 1, destination="kitchen", actor=chef_user)

        assert ledger_service.get_balance(run.finished_product_id, "kitchen").available == Decimal("1")
        assert ledger_service.get_balance(run.finished_product_id, "shop").available == Decimal("0")

    def test_unknown_destination_is_rejected(self, pain_recipe, chef_user):
        pain_recipe(10, 1)

        with pytest.raises(ValidationError):
            production_service.produce("Pain", 1, destination="raw", actor=chef_user)


class TestProduceWithPrice:

    def test_admin_price_reaches_till_and_price_table(self, db_session, pain_recipe, admin_user):
        pain_recipe(10, 1)

        run = production_service.produce("Pain", 2, selling_price=1000, actor=admin_user)

        entry = ledger_service.get_entry(run.finished_product_id, "shop")
        assert entry.sale_price == Decimal("1000")
        price = db_session.query(SalePrice).filter_by(recipe_name="Pain").one()
        assert price.price == Decimal("1000")
        assert price.margin_percent == Decimal("33.33")

    def test_non_admin_cannot_set_price(self, db_session, pain_recipe, chef_user):
        farine, _ = pain_recipe(10, 1)

        with pytest.raises(PermissionDenied):
            production_service.produce("Pain", 2, selling_price=1000, actor=chef_user)

        assert ledger_service.get_balance(farine.id, "workshop").available == Decimal("10")

    def test_price_requires_shop_destination(self, pain_recipe, admin_user):
        pain_recipe(10, 1)

        with pytest.raises(ValidationError):
            production_service.produce("Pain", 1, destination="kitchen", selling_price=1000, actor=admin_user)


class TestProductionRecordImmutability:

    def test_quantity_cannot_change(self, db_session, pain_recipe, chef_user):
        pain_recipe(10, 1)
        run = production_service.produce("Pain", 1, actor=chef_user)
        assert run.id is not None

        run.quantity = Decimal("5")
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_status_can_change(self, db_session, pain_recipe, chef_user):
        pain_recipe(10, 1)
        run = production_service.produce("Pain", 1, actor=chef_user)

        run.status = "annule"
        db_session.commit()

        assert db_session.get(ProductionRun, run.id).status == "annule"


class TestFractionalRecipes:

    def test_farine_t45_scenario(self, db_session, make_ingredient, stock_workshop, admin_user, chef_user):
        farine = make_ingredient("Farine T45", 45, Decimal("22500"))
        levure = make_ingredient("Levure", 1, Decimal("2000"))

        stock_workshop(farine, 10)
        assert ledger_service.get_balance(farine.id, "raw").available == Decimal("35")
        assert ledger_service.get_balance(farine.id, "workshop").available == Decimal("10")

        stock_workshop(levure, Decimal("0.5"))
        recipe_service.add_lines(
            "Pain",
            [
                {"ingredient_product_id": farine.id, "quantity_per_unit": 2},
                {"ingredient_product_id": levure.id, "quantity_per_unit": "0.1"},
            ],
            actor_id=admin_user.id,
        )

        requirements = recipe_service.compute_requirements("Pain", 5)
        assert [item.required for item in requirements.items] == [Decimal("10"), Decimal("0.5")]

        run = production_service.produce("Pain", 5, actor=chef_user)

        assert ledger_service.get_balance(farine.id, "workshop").available == Decimal("0")
        assert ledger_service.get_balance(levure.id, "workshop").available == Decimal("0")
        assert ledger_service.get_balance(run.finished_product_id, "shop").available == Decimal("5")
        assert run.ingredient_cost == Decimal("6000")

    def test_tenth_per_unit_runs_until_the_workshop_is_empty(
        self, db_session, make_ingredient, stock_workshop, admin_user, chef_user
    ):
        levure = make_ingredient("Levure", 1)
        stock_workshop(levure, Decimal("0.3"))
        recipe_service.add_lines(
            "Brioche",
            [{"ingredient_product_id": levure.id, "quantity_per_unit": "0.1"}],
            actor_id=admin_user.id,
        )

        runs = [production_service.produce("Brioche", 1, actor=chef_user) for _ in range(3)]

        assert ledger_service.get_balance(levure.id, "workshop").available == Decimal("0")
        assert ledger_service.get_balance(levure.id, "workshop").used == Decimal("0.3")
        assert ledger_service.get_balance(runs[0].finished_product_id, "shop").available == Decimal("3")
        with pytest.raises(InsufficientIngredient):
            production_service.produce("Brioche", 1, actor=chef_user)

    def test_requirement_is_rounded_once_for_check_stock_and_cost(
        self, db_session, make_ingredient, stock_workshop, admin_user, chef_user
    ):
        beurre = make_ingredient("Beurre", 1, Decimal("1000"))
        stock_workshop(beurre, Decimal("0.062"))
        recipe_service.add_lines(
            "Sablé",
            [{"ingredient_product_id": beurre.id, "quantity_per_unit": "0.208"}],
            actor_id=admin_user.id,
        )

        requirements = recipe_service.compute_requirements("Sablé", "0.3")
        assert requirements.items[0].required == Decimal("0.062")
        assert requirements.feasible

        run = production_service.produce("Sablé", "0.3", actor=chef_user)

        assert ledger_service.get_balance(beurre.id, "workshop").available == Decimal("0")
        movement = db_session.query(Movement).filter_by(
            production_id=run.id, movement_type="sortie"
        ).one()
        assert movement.quantity == Decimal("0.062")
        assert run.ingredient_cost == Decimal("62")


class TestCancelRun:

    def test_admin_marks_run_cancelled_without_touching_stock(
        self, db_session, pain_recipe, chef_user, admin_user
    ):
        farine, _ = pain_recipe(10, 1)
        run = production_service.produce("Pain", 2, actor=chef_user)

        cancelled = production_service.cancel_run(run.id, admin_user)

        assert cancelled.status == "annule"
        assert db_session.get(ProductionRun, run.id).status == "annule"
        assert ledger_service.get_balance(farine.id, "workshop").available == Decimal("9")
        assert ledger_service.get_balance(run.finished_product_id, "shop").available == Decimal("2")

    def test_second_cancel_is_rejected(self, db_session, pain_recipe, chef_user, admin_user):
        pain_recipe(10, 1)
        run = production_service.produce("Pain", 1, actor=chef_user)
        production_service.cancel_run(run.id, admin_user)

        with pytest.raises(ValidationError):
            production_service.cancel_run(run.id, admin_user)

    def test_non_admin_cannot_cancel(self, db_session, pain_recipe, chef_user):
        pain_recipe(10, 1)
        run = production_service.produce("Pain", 1, actor=chef_user)

        with pytest.raises(PermissionDenied):
            production_service.cancel_run(run.id, chef_user)

        assert db_session.get(ProductionRun, run.id).status == "termine"

    def test_unknown_run(self, db_session, admin_user):
        with pytest.raises(NotFound):
            production_service.cancel_run(4242, admin_user)
