# Overview: Moves quantity between stock pools as one all-or-nothing unit.

"""
A transfer takes quantity out of one pool and puts the same quantity into
another, in a single transaction:

    raw -> workshop -> shop / kitchen   (and any reverse direction)

The source balance is checked first; a short source fails with nothing
written. On success both sides get a 'transfert' movement.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..errors import InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import Product
from ..models.stock import MOVEMENT_TRANSFER, SALE_POOLS
from . import ledger_service, movement_service
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import Change, positive_quantity


POOL_LABELS = {
    "raw": "stock principal",
    "workshop": "atelier",
    "shop": "boutique",
    "kitchen": "cuisine",
}


@dataclass
class TransferResult:
    product_id: int
    from_pool: str
    to_pool: str
    quantity: Decimal
    source: Change
    destination: Change
    movement_ids: list

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "from_pool": self.from_pool,
            "to_pool": self.to_pool,
            "quantity": float(self.quantity),
            "source_before": float(self.source.before),
            "source_after": float(self.source.after),
            "destination_before": float(self.destination.before),
            "destination_after": float(self.destination.after),
            "movement_ids": [m for m in self.movement_ids if m is not None],
        }


def transfer(
    product_id: int,
    from_pool: str,
    to_pool: str,
    quantity,
    *,
    actor_id: int | None = None,
    reference: str | None = None,
    sale_price=None,
) -> TransferResult:
    """
    Move `quantity` of a product from one pool to another.

    Raises:
        ValidationError: non-positive quantity, unknown or identical pools
        NotFound: unknown product
        InsufficientStock: source holds less than `quantity`
    """
    ledger_service.check_pool(from_pool)
    ledger_service.check_pool(to_pool)
    if from_pool == to_pool:
        raise ValidationError(
            "Les stocks source et destination doivent être différents",
            details={"from_pool": from_pool, "to_pool": to_pool},
        )
    quantity = positive_quantity(quantity)
    if sale_price is not None and to_pool not in SALE_POOLS:
        raise ValidationError("Un prix de vente ne s'applique qu'au stock boutique ou cuisine",
                              details={"to_pool": to_pool})

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFound(f"Produit {product_id} introuvable", details={"product_id": product_id})

        available = ledger_service.get_balance(product_id, from_pool).available
        if available < quantity:
            raise InsufficientStock(
                f"Stock insuffisant, disponible: {available.normalize():f}",
                details={
                    "product_id": product_id,
                    "pool": from_pool,
                    "available": float(available),
                    "requested": float(quantity),
                },
            )

        source = ledger_service.adjust(product_id, from_pool, -quantity)
        destination = ledger_service.credit(product_id, to_pool, quantity, actor_id=actor_id)
        if sale_price is not None:
            ledger_service.set_sale_price(product_id, sale_price, pool=to_pool)

        label = reference or (
            f"Transfert {POOL_LABELS[from_pool]} vers {POOL_LABELS[to_pool]}: {product.name}"
        )
        movement_ids = [
            movement_service.record(
                product_id=product_id,
                movement_type=MOVEMENT_TRANSFER,
                quantity=quantity,
                before=source.before,
                after=source.after,
                actor_id=actor_id,
                reference=label,
                pool=from_pool,
                counterpart_pool=to_pool,
            ),
            movement_service.record(
                product_id=product_id,
                movement_type=MOVEMENT_TRANSFER,
                quantity=quantity,
                before=destination.before,
                after=destination.after,
                actor_id=actor_id,
                reference=label,
                pool=to_pool,
                counterpart_pool=from_pool,
            ),
        ]

        return TransferResult(
            product_id=product_id,
            from_pool=from_pool,
            to_pool=to_pool,
            quantity=quantity,
            source=source,
            destination=destination,
            movement_ids=movement_ids,
        )

    return run_in_transaction(_op)
