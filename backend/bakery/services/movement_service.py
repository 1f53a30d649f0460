# Overview: Append-only stock movement audit trail.

"""
Movements are written after the ledger mutation they describe, inside a
SAVEPOINT. If the insert fails, only the savepoint is rolled back: the
mutation stands, the failure is logged as a warning, and nothing retries.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ValidationError
from ..extensions import db
from ..models import Movement
from ..models.stock import MOVEMENT_TYPES
from bakery.time_utils import utcnow


def record(
    *,
    product_id: int,
    movement_type: str,
    quantity,
    before=None,
    after=None,
    actor_id: int | None = None,
    reference: str | None = None,
    pool: str | None = None,
    counterpart_pool: str | None = None,
    sale_id: int | None = None,
    production_id: int | None = None,
) -> int | None:
    """
    Append one movement. Returns its id, or None if it could not be stored.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"Type de mouvement inconnu: {movement_type}",
            details={"movement_type": movement_type},
        )

    try:
        with db.session.begin_nested():
            movement = Movement(
                product_id=product_id,
                movement_type=movement_type,
                pool=pool,
                counterpart_pool=counterpart_pool,
                quantity=Decimal(quantity),
                quantity_before=Decimal(before) if before is not None else None,
                quantity_after=Decimal(after) if after is not None else None,
                actor_user_id=actor_id,
                reference=reference,
                sale_id=sale_id,
                production_id=production_id,
                created_at=utcnow(),
            )
            db.session.add(movement)
            db.session.flush()
            return movement.id
    except SQLAlchemyError:
        current_app.logger.warning(
            "Failed to record %s movement for product %s (%s)",
            movement_type, product_id, reference, exc_info=True,
        )
        return None


def history(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    sale_id: int | None = None,
    pool: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
) -> list[Movement]:
    """Movements, newest first."""
    query = db.session.query(Movement)
    if product_id is not None:
        query = query.filter(Movement.product_id == product_id)
    if movement_type:
        query = query.filter(Movement.movement_type == movement_type)
    if sale_id is not None:
        query = query.filter(Movement.sale_id == sale_id)
    if pool:
        query = query.filter(Movement.pool == pool)
    if date_from:
        query = query.filter(Movement.created_at >= date_from)
    if date_to:
        query = query.filter(Movement.created_at <= date_to)
    return (
        query.order_by(Movement.created_at.desc(), Movement.id.desc())
        .limit(max(1, min(limit, 1000)))
        .all()
    )
