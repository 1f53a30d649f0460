# Overview: Selling prices for products and recipes, with margins.

"""
Prices are stored per product or per recipe name. Setting a price does not
touch stock: callers that want the till to see it call
ledger_service.set_sale_price themselves.

margin         = price - purchase_cost
margin_percent = margin / purchase_cost * 100, or 0 when the cost is 0
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..errors import NotFound, PermissionDenied, ValidationError
from ..extensions import db
from ..models import Product, SalePrice
from ..models.auth import ROLE_ADMIN
from ..permissions import has_role
from . import recipe_service
from .concurrency import run_in_transaction
from .ledger_service import ZERO, to_money


PERCENT_STEP = Decimal("0.01")


@dataclass(frozen=True)
class PriceInfo:
    price: Decimal
    purchase_cost: Decimal
    margin: Decimal
    margin_percent: Decimal

    def to_dict(self) -> dict:
        return {
            "price": float(self.price),
            "purchase_cost": round(float(self.purchase_cost), 2),
            "margin": round(float(self.margin), 2),
            "margin_percent": float(self.margin_percent),
        }


def compute_margin(price, purchase_cost) -> PriceInfo:
    price = Decimal(price)
    purchase_cost = Decimal(purchase_cost)
    margin = price - purchase_cost
    if purchase_cost > 0:
        percent = (margin / purchase_cost * 100).quantize(PERCENT_STEP, rounding=ROUND_HALF_UP)
    else:
        percent = ZERO
    return PriceInfo(price=price, purchase_cost=purchase_cost, margin=margin, margin_percent=percent)


def _require_admin(actor) -> None:
    if not has_role(actor, (ROLE_ADMIN,)):
        raise PermissionDenied(
            "Seul un administrateur peut définir les prix de vente",
            details={"required_role": ROLE_ADMIN},
        )


def _validated_price(price) -> Decimal:
    if price is None:
        raise ValidationError("Le prix est obligatoire", details={"field": "price"})
    price = to_money(price)
    if price < 0:
        raise ValidationError("Le prix doit être positif", details={"price": float(price)})
    return price


def _upsert(price_row: SalePrice | None, *, price: Decimal, info: PriceInfo, actor_id: int | None, **key):
    if price_row is None:
        price_row = SalePrice(**key)
        db.session.add(price_row)
    price_row.price = price
    price_row.margin_percent = info.margin_percent
    price_row.is_active = True
    price_row.set_by_user_id = actor_id
    db.session.flush()
    return price_row


def set_product_price(product_id: int, price, actor) -> SalePrice:
    _require_admin(actor)
    price = _validated_price(price)

    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound(f"Produit {product_id} introuvable", details={"product_id": product_id})
        info = compute_margin(price, product.unit_cost)
        row = db.session.query(SalePrice).filter_by(product_id=product_id).first()
        return _upsert(row, price=price, info=info, actor_id=actor.id, product_id=product_id)

    return run_in_transaction(_op)


def upsert_recipe_price(recipe_name: str, price, *, actor_id: int | None) -> SalePrice:
    """Write a recipe price inside the caller's transaction."""
    info = compute_margin(price, recipe_service.unit_cost(recipe_name))
    row = db.session.query(SalePrice).filter_by(recipe_name=recipe_name).first()
    return _upsert(row, price=price, info=info, actor_id=actor_id, recipe_name=recipe_name)


def set_recipe_price(recipe_name: str, price, actor) -> SalePrice:
    _require_admin(actor)
    price = _validated_price(price)
    recipe_name = (recipe_name or "").strip()
    if not recipe_name:
        raise ValidationError("Le nom de la recette est obligatoire", details={"field": "recipe_name"})

    def _op():
        return upsert_recipe_price(recipe_name, price, actor_id=actor.id)

    return run_in_transaction(_op)


def get_product_price(product_id: int) -> PriceInfo | None:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Produit {product_id} introuvable", details={"product_id": product_id})
    row = db.session.query(SalePrice).filter_by(product_id=product_id, is_active=True).first()
    if row is None:
        return None
    return compute_margin(row.price, product.unit_cost)


def get_recipe_price(recipe_name: str) -> PriceInfo | None:
    row = db.session.query(SalePrice).filter_by(recipe_name=recipe_name, is_active=True).first()
    if row is None:
        return None
    return compute_margin(row.price, recipe_service.unit_cost(recipe_name))


def list_prices() -> list[SalePrice]:
    return (
        db.session.query(SalePrice)
        .filter(SalePrice.is_active.is_(True))
        .order_by(SalePrice.recipe_name, SalePrice.product_id)
        .all()
    )
