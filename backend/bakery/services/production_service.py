# Overview: Production runs: workshop ingredients in, finished goods out.

"""
A production run either happens completely or not at all:

1. Every ingredient requirement is checked against workshop stock first.
   If anything is short, InsufficientIngredient lists ALL shortfalls and
   nothing is written.
2. Each ingredient is decremented in the workshop (guarded update; a
   concurrent consumer makes it fail and the whole run rolls back), its
   'used' aggregate grows, and a 'sortie' movement is written.
3. The finished good is credited to the destination pool with an 'entree'
   movement.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import InsufficientIngredient, NotFound, PermissionDenied, ValidationError
from ..extensions import db
from ..models import Product, ProductionRun
from ..models.auth import ROLE_ADMIN
from ..models.catalog import PRODUCT_KIND_FINISHED
from ..models.stock import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    POOL_KITCHEN,
    POOL_SHOP,
    POOL_WORKSHOP,
    PRODUCTION_CANCELLED,
    PRODUCTION_DONE,
)
from ..permissions import has_role
from . import ledger_service, movement_service, pricing_service, recipe_service
from .concurrency import run_in_transaction
from .ledger_service import ZERO, positive_quantity, to_money


PRODUCTION_DESTINATIONS = (POOL_SHOP, POOL_KITCHEN, POOL_WORKSHOP)


def _get_or_create_finished(name: str, actor_id: int | None) -> Product:
    product = (
        db.session.query(Product)
        .filter(Product.name == name, Product.kind == PRODUCT_KIND_FINISHED)
        .order_by(Product.id)
        .first()
    )
    if product is not None:
        return product

    product = Product(
        name=name,
        kind=PRODUCT_KIND_FINISHED,
        purchase_price=ZERO,
        purchased_quantity=ZERO,
        remaining_quantity=ZERO,
        created_by_user_id=actor_id,
    )
    db.session.add(product)
    db.session.flush()
    return product


def produce(
    recipe_name: str,
    quantity,
    *,
    destination: str = POOL_SHOP,
    selling_price=None,
    actor=None,
) -> ProductionRun:
    """
    Run one production batch of `quantity` units of `recipe_name`.

    Raises:
        ValidationError: bad quantity or destination
        NotFound: recipe has no lines
        InsufficientIngredient: workshop stock cannot cover the batch
        PermissionDenied: a selling price was given by a non-admin
    """
    quantity = positive_quantity(quantity)
    if destination not in PRODUCTION_DESTINATIONS:
        raise ValidationError(
            f"Destination invalide: {destination}",
            details={"destination": destination, "allowed": list(PRODUCTION_DESTINATIONS)},
        )
    if selling_price is not None:
        if destination != POOL_SHOP:
            raise ValidationError(
                "Un prix de vente ne s'applique qu'à une production pour la boutique",
                details={"destination": destination},
            )
        if not has_role(actor, (ROLE_ADMIN,)):
            raise PermissionDenied(
                "Seul un administrateur peut définir les prix de vente",
                details={"required_role": ROLE_ADMIN},
            )
        selling_price = to_money(selling_price)
        if selling_price < 0:
            raise ValidationError("Le prix doit être positif", details={"price": float(selling_price)})

    actor_id = actor.id if actor is not None else None

    def _op():
        requirements = recipe_service.compute_requirements(recipe_name, quantity)
        if not requirements.feasible:
            raise InsufficientIngredient(requirements.shortfalls)

        name = requirements.product_name
        finished = _get_or_create_finished(name, actor_id)

        run = ProductionRun(
            product_name=name,
            finished_product_id=finished.id,
            quantity=quantity,
            destination=destination,
            production_date=date.today(),
            ingredient_cost=to_money(requirements.total_cost),
            status=PRODUCTION_DONE,
            producer_user_id=actor_id,
        )
        db.session.add(run)
        db.session.flush()

        reference = f"Production #{run.id} {name}"
        for item in requirements.items:
            change = ledger_service.adjust(item.product_id, POOL_WORKSHOP, -item.required)
            ledger_service.bump_counter(item.product_id, POOL_WORKSHOP, "used", item.required)
            movement_service.record(
                product_id=item.product_id,
                movement_type=MOVEMENT_OUT,
                quantity=item.required,
                before=change.before,
                after=change.after,
                actor_id=actor_id,
                reference=reference,
                pool=POOL_WORKSHOP,
                production_id=run.id,
            )

        change = ledger_service.credit(finished.id, destination, quantity, actor_id=actor_id)
        movement_service.record(
            product_id=finished.id,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            before=change.before,
            after=change.after,
            actor_id=actor_id,
            reference=reference,
            pool=destination,
            counterpart_pool=POOL_WORKSHOP,
            production_id=run.id,
        )

        if selling_price is not None:
            pricing_service.upsert_recipe_price(name, selling_price, actor_id=actor_id)
            ledger_service.set_sale_price(finished.id, selling_price)

        return run

    return run_in_transaction(_op)


def get_run(run_id: int) -> ProductionRun:
    run = db.session.get(ProductionRun, run_id)
    if run is None:
        raise NotFound(f"Production {run_id} introuvable", details={"production_id": run_id})
    return run


def list_runs(day: date | None = None, limit: int = 200) -> list[ProductionRun]:
    query = db.session.query(ProductionRun)
    if day is not None:
        query = query.filter(ProductionRun.production_date == day)
    return query.order_by(ProductionRun.created_at.desc(), ProductionRun.id.desc()).limit(limit).all()


def cancel_run(run_id: int, actor) -> ProductionRun:
    """
    Mark a run 'annule'. Admin only, and only from 'termine'.

    Only the status changes: consumed ingredients and the credited finished
    good stay where they are. Stock is put right with a counted adjustment.
    """
    if not has_role(actor, (ROLE_ADMIN,)):
        raise PermissionDenied(
            "Seul un administrateur peut annuler une production",
            details={"required_role": ROLE_ADMIN},
        )

    def _op():
        run = get_run(run_id)
        if run.status != PRODUCTION_DONE:
            raise ValidationError(
                f"Production #{run.id} déjà annulée",
                details={"production_id": run.id, "status": run.status},
            )
        run.status = PRODUCTION_CANCELLED
        db.session.flush()
        current_app.logger.info("Production #%s marked cancelled by user %s", run.id, actor.id)
        return run

    return run_in_transaction(_op)
