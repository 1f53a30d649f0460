# Overview: Purchase intake into the raw stock pool.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Product, Unit
from ..models.catalog import PRODUCT_KIND_INGREDIENT
from ..models.stock import MOVEMENT_IN, POOL_RAW
from . import ledger_service, movement_service
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import ZERO, positive_quantity, to_money


def weighted_average(old_qty, old_price, added_qty, added_price) -> Decimal:
    """
    Blend two unit prices by quantity.

    (old_qty * old_price + added_qty * added_price) / (old_qty + added_qty)

    With nothing on hand the incoming price wins outright.
    """
    old_qty = Decimal(old_qty)
    added_qty = Decimal(added_qty)
    old_price = Decimal(old_price)
    added_price = Decimal(added_price)

    total_qty = old_qty + added_qty
    if old_qty <= 0 or total_qty <= 0:
        return added_price
    return (old_qty * old_price + added_qty * added_price) / total_qty


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if not product:
        raise NotFound(f"Produit {product_id} introuvable", details={"product_id": product_id})
    return product


def create_purchase(
    *,
    name: str,
    purchase_price,
    quantity,
    unit_id: int | None = None,
    purchase_date: date | None = None,
    actor_id: int | None = None,
) -> Product:
    """
    Record a new ingredient purchase. The whole quantity lands in raw stock.

    purchase_price is the total paid for `quantity`.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Le nom du produit est obligatoire", details={"field": "name"})
    quantity = positive_quantity(quantity)
    purchase_price = to_money(purchase_price, "prix_achat")
    if purchase_price < 0:
        raise ValidationError("Le prix d'achat doit être positif", details={"field": "purchase_price"})

    def _op():
        if unit_id is not None and db.session.get(Unit, unit_id) is None:
            raise NotFound(f"Unité {unit_id} introuvable", details={"unit_id": unit_id})

        product = Product(
            name=name,
            kind=PRODUCT_KIND_INGREDIENT,
            unit_id=unit_id,
            purchase_price=purchase_price,
            purchased_quantity=quantity,
            remaining_quantity=ZERO,
            purchase_date=purchase_date or date.today(),
            created_by_user_id=actor_id,
        )
        db.session.add(product)
        db.session.flush()

        change = ledger_service.adjust(product.id, POOL_RAW, quantity)
        movement_service.record(
            product_id=product.id,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            before=change.before,
            after=change.after,
            actor_id=actor_id,
            reference=f"Achat {name}",
            pool=POOL_RAW,
        )
        return product

    return run_in_transaction(_op)


def replenish(product_id: int, quantity, unit_price, *, actor_id: int | None = None) -> Product:
    """
    Add a new purchase of an existing product to raw stock.

    The unit cost is blended with weighted_average against what is still on
    hand; purchase_price is then restated for the enlarged purchased_quantity.
    """
    quantity = positive_quantity(quantity)
    unit_price = to_money(unit_price, "prix_unitaire")
    if unit_price < 0:
        raise ValidationError("Le prix d'achat doit être positif", details={"field": "unit_price"})

    def _op():
        product = _get_product(product_id, lock=True)
        if not product.is_active:
            raise ValidationError("Produit désactivé", details={"product_id": product_id})

        old_unit_cost = product.unit_cost
        on_hand = Decimal(product.remaining_quantity or 0)
        new_unit_cost = weighted_average(on_hand, old_unit_cost, quantity, unit_price)

        change = ledger_service.adjust(product.id, POOL_RAW, quantity)

        product.purchased_quantity = Decimal(product.purchased_quantity or 0) + quantity
        product.purchase_price = to_money(new_unit_cost * product.purchased_quantity)
        product.purchase_date = date.today()
        db.session.flush()

        movement_service.record(
            product_id=product.id,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            before=change.before,
            after=change.after,
            actor_id=actor_id,
            reference=f"Réapprovisionnement {product.name}",
            pool=POOL_RAW,
        )
        return product

    return run_in_transaction(_op)


def deactivate(product_id: int) -> Product:
    """Products are never deleted; they are hidden from listings instead."""
    def _op():
        product = _get_product(product_id, lock=True)
        product.is_active = False
        return product

    return run_in_transaction(_op)


def list_products(*, include_inactive: bool = False, kind: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if kind:
        query = query.filter(Product.kind == kind)
    return query.order_by(Product.created_at.desc(), Product.id.desc()).all()


def list_units() -> list[Unit]:
    return db.session.query(Unit).order_by(Unit.label).all()
