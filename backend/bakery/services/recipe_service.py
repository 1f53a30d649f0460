# Overview: Bill of materials per finished good, ingredient needs and cost.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Product, Recipe, StockEntry
from ..models.stock import POOL_WORKSHOP
from .concurrency import run_in_transaction
from .ledger_service import ZERO, positive_quantity, to_quantity


@dataclass
class Requirement:
    product_id: int
    name: str
    unit: str
    required: Decimal
    available: Decimal
    unit_cost: Decimal = ZERO

    @property
    def missing(self) -> Decimal:
        return max(ZERO, self.required - self.available)

    @property
    def sufficient(self) -> bool:
        return self.available >= self.required

    @property
    def cost(self) -> Decimal:
        return self.required * self.unit_cost

    def shortfall(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "required": float(self.required),
            "available": float(self.available),
            "missing": float(self.missing),
        }

    def to_dict(self) -> dict:
        data = self.shortfall()
        data.update({
            "unit": self.unit,
            "sufficient": self.sufficient,
            "cost": round(float(self.cost), 2),
        })
        return data


@dataclass
class RecipeRequirements:
    product_name: str
    quantity: Decimal
    items: list = field(default_factory=list)

    @property
    def feasible(self) -> bool:
        return all(item.sufficient for item in self.items)

    @property
    def shortfalls(self) -> list[dict]:
        return [item.shortfall() for item in self.items if not item.sufficient]

    @property
    def total_cost(self) -> Decimal:
        return sum((item.cost for item in self.items), ZERO)

    def to_dict(self) -> dict:
        return {
            "product_name": self.product_name,
            "quantity": float(self.quantity),
            "feasible": self.feasible,
            "total_cost": round(float(self.total_cost), 2),
            "items": [item.to_dict() for item in self.items],
        }


def _normalize_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Le nom du produit est obligatoire", details={"field": "product_name"})
    return name


def get_lines(product_name: str) -> list[Recipe]:
    return (
        db.session.query(Recipe)
        .filter(Recipe.product_name == product_name)
        .order_by(Recipe.id)
        .all()
    )


def list_recipes() -> dict[str, list[Recipe]]:
    """Recipe lines grouped by finished-good name."""
    grouped: dict[str, list[Recipe]] = {}
    for line in db.session.query(Recipe).order_by(Recipe.product_name, Recipe.id).all():
        grouped.setdefault(line.product_name, []).append(line)
    return grouped


def add_lines(product_name: str, ingredients: list[dict], *, actor_id: int | None = None) -> list[Recipe]:
    """
    Add ingredient lines to a recipe.

    `ingredients` is a list of {"ingredient_product_id", "quantity_per_unit"}.
    A line for an ingredient already in the recipe is rejected.
    """
    product_name = _normalize_name(product_name)
    if not ingredients:
        raise ValidationError("La recette doit contenir au moins un ingrédient",
                              details={"field": "ingredients"})

    parsed = []
    for item in ingredients:
        try:
            ingredient_id = int(item["ingredient_product_id"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Ingrédient invalide", details={"item": item})
        parsed.append((ingredient_id, positive_quantity(item.get("quantity_per_unit"), "quantite_necessaire")))

    def _op():
        lines = []
        for ingredient_id, qpu in parsed:
            if db.session.get(Product, ingredient_id) is None:
                raise NotFound(f"Ingrédient {ingredient_id} introuvable",
                               details={"ingredient_product_id": ingredient_id})
            line = Recipe(
                product_name=product_name,
                ingredient_product_id=ingredient_id,
                quantity_per_unit=qpu,
                created_by_user_id=actor_id,
            )
            db.session.add(line)
            lines.append(line)
        try:
            db.session.flush()
        except IntegrityError:
            raise ValidationError(
                "Cet ingrédient figure déjà dans la recette",
                details={"product_name": product_name},
            )
        return lines

    return run_in_transaction(_op)


def update_line(recipe_id: int, quantity_per_unit) -> Recipe:
    qpu = positive_quantity(quantity_per_unit, "quantite_necessaire")

    def _op():
        line = db.session.get(Recipe, recipe_id)
        if line is None:
            raise NotFound(f"Ligne de recette {recipe_id} introuvable", details={"recipe_id": recipe_id})
        line.quantity_per_unit = qpu
        return line

    return run_in_transaction(_op)


def delete_line(recipe_id: int) -> None:
    def _op():
        line = db.session.get(Recipe, recipe_id)
        if line is None:
            raise NotFound(f"Ligne de recette {recipe_id} introuvable", details={"recipe_id": recipe_id})
        db.session.delete(line)

    run_in_transaction(_op)


def compute_requirements(product_name: str, quantity) -> RecipeRequirements:
    """
    What producing `quantity` units would consume, against workshop stock.

    Each requirement is rounded to the ledger step once here, so the check,
    the decrement, the movement and the cost all see the same amount.

    Raises NotFound when the recipe has no lines.
    """
    product_name = _normalize_name(product_name)
    quantity = positive_quantity(quantity)

    lines = get_lines(product_name)
    if not lines:
        raise NotFound(f"Aucune recette trouvée pour {product_name}",
                       details={"product_name": product_name})

    ingredient_ids = [line.ingredient_product_id for line in lines]
    workshop = dict(
        db.session.query(StockEntry.product_id, StockEntry.available_quantity)
        .filter(StockEntry.pool == POOL_WORKSHOP, StockEntry.product_id.in_(ingredient_ids))
        .all()
    )

    requirements = RecipeRequirements(product_name=product_name, quantity=quantity)
    for line in lines:
        ingredient = line.ingredient
        requirements.items.append(Requirement(
            product_id=ingredient.id,
            name=ingredient.name,
            unit=ingredient.unit.label if ingredient.unit else "",
            required=to_quantity(Decimal(line.quantity_per_unit) * quantity),
            available=Decimal(workshop.get(ingredient.id) or 0),
            unit_cost=ingredient.unit_cost,
        ))
    return requirements


def unit_cost(product_name: str) -> Decimal:
    """Ingredient cost of one unit of a finished good; 0 without a recipe."""
    cost = ZERO
    for line in get_lines(product_name):
        cost += Decimal(line.quantity_per_unit) * line.ingredient.unit_cost
    return cost
