# Overview: Counted stock corrections written as 'ajustement' movements.

from __future__ import annotations

from decimal import Decimal

from ..errors import ValidationError
from ..extensions import db
from ..models import StockEntry
from ..models.stock import ENTRY_POOLS, MOVEMENT_ADJUSTMENT, POOL_RAW
from . import ledger_service, movement_service
from .concurrency import run_in_transaction
from .ledger_service import ZERO, to_quantity


def adjust_pool(
    product_id: int,
    pool: str,
    counted_quantity,
    *,
    actor_id: int | None = None,
    reason: str | None = None,
) -> ledger_service.Change:
    """
    Set a balance to a physically counted value.

    The difference goes through the ledger as a delta, so a concurrent
    decrement between read and write cannot push the balance negative.
    """
    ledger_service.check_pool(pool)
    counted = to_quantity(counted_quantity, "quantite_comptee")
    if counted < 0:
        raise ValidationError("La quantité comptée doit être positive ou nulle",
                              details={"counted_quantity": float(counted)})

    def _op():
        current = ledger_service.get_balance(product_id, pool).available
        delta = counted - current
        if delta == 0:
            return ledger_service.Change(before=current, after=current)

        if pool == POOL_RAW or delta < 0:
            change = ledger_service.adjust(product_id, pool, delta)
        else:
            change = ledger_service.credit(product_id, pool, delta, actor_id=actor_id)

        movement_service.record(
            product_id=product_id,
            movement_type=MOVEMENT_ADJUSTMENT,
            quantity=abs(delta),
            before=change.before,
            after=change.after,
            actor_id=actor_id,
            reference=reason or "Inventaire",
            pool=pool,
        )
        return change

    return run_in_transaction(_op)


def empty_pool(pool: str, *, actor_id: int | None = None, reason: str | None = None) -> int:
    """
    Zero every positive balance of a workshop/shop/kitchen pool, for
    example at the end of the day. Returns the number of entries emptied.
    """
    if pool not in ENTRY_POOLS:
        raise ValidationError(f"Stock inconnu: {pool}", details={"pool": pool, "allowed": list(ENTRY_POOLS)})

    def _op():
        entries = (
            db.session.query(StockEntry)
            .filter(StockEntry.pool == pool, StockEntry.available_quantity > 0)
            .all()
        )
        emptied = 0
        for entry in entries:
            current = Decimal(entry.available_quantity or 0)
            if current <= ZERO:
                continue
            change = ledger_service.adjust(entry.product_id, pool, -current)
            movement_service.record(
                product_id=entry.product_id,
                movement_type=MOVEMENT_ADJUSTMENT,
                quantity=current,
                before=change.before,
                after=change.after,
                actor_id=actor_id,
                reference=reason or f"Vidage stock {pool}",
                pool=pool,
            )
            emptied += 1
        return emptied

    return run_in_transaction(_op)
