# Overview: Admin-only cancellation of validated tickets within a time window.

"""
Cancellation rules

- Only an admin may cancel.
- Only a sale in status 'validee' may be cancelled, and only once.
- Whole days elapsed since the sale (rounded down) must not exceed
  CANCELLATION_WINDOW_DAYS.
- The reason, once stripped, must be at least CANCELLATION_REASON_MIN_LENGTH
  characters.

Every failed rule raises NotEligibleForCancellation, with details["error"]
naming the rule; only an unknown sale raises NotFound.

Cancelling puts every line's quantity back into the pool the ticket was
sold from (shop or kitchen), lowers the 'sold' aggregate (never below zero),
writes one 'annulation_vente' movement per line, flips the sale to 'annulee'
and writes exactly one SaleCancellation record. All of it commits together
or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import NotEligibleForCancellation, NotFound, PermissionDenied
from ..extensions import db
from ..models import Sale, SaleCancellation
from ..models.auth import ROLE_ADMIN
from ..models.sales import SALE_STATUS_CANCELLED, SALE_STATUS_VALIDATED
from ..models.stock import MOVEMENT_SALE_CANCEL
from ..permissions import has_role
from bakery.time_utils import utcnow, whole_days_between
from . import ledger_service, movement_service
from .concurrency import lock_for_update, run_in_transaction


@dataclass
class CancellationCheck:
    allowed: bool
    error: str | None = None
    reason: str | None = None
    sale: Sale | None = None

    def to_dict(self) -> dict:
        return {
            "can_cancel": self.allowed,
            "error": self.error,
            "reason": self.reason,
            "sale": self.sale.to_dict() if self.sale is not None else None,
        }


@dataclass
class CancellationResult:
    sale: Sale
    cancellation: SaleCancellation
    movement_ids: list

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(include_lines=True),
            "cancellation": self.cancellation.to_dict(),
            "movement_ids": [m for m in self.movement_ids if m is not None],
        }


def _window_days() -> int:
    return current_app.config.get("CANCELLATION_WINDOW_DAYS", 7)


def _min_reason_length() -> int:
    return current_app.config.get("CANCELLATION_REASON_MIN_LENGTH", 10)


def _evaluate(sale: Sale | None, actor, now: datetime) -> CancellationCheck:
    if not has_role(actor, (ROLE_ADMIN,)):
        return CancellationCheck(
            False,
            "Permission refusée",
            "Seuls les administrateurs peuvent annuler des ventes",
        )
    if sale is None:
        return CancellationCheck(False, "Vente introuvable", "Cette vente n'existe pas")
    if sale.status == SALE_STATUS_CANCELLED:
        return CancellationCheck(False, "Vente déjà annulée", "Cette vente a déjà été annulée", sale)
    if sale.status != SALE_STATUS_VALIDATED:
        return CancellationCheck(
            False,
            "Statut invalide",
            f"Impossible d'annuler une vente avec le statut: {sale.status}",
            sale,
        )

    elapsed = whole_days_between(sale.created_at, now)
    window = _window_days()
    if elapsed > window:
        return CancellationCheck(
            False,
            "Délai dépassé",
            f"Cette vente date de {elapsed} jours. Le délai maximum d'annulation est de {window} jours",
            sale,
        )
    return CancellationCheck(True, sale=sale)


def can_cancel(sale_id: int, actor, *, now: datetime | None = None) -> CancellationCheck:
    """Eligibility check. Never raises for an ineligible sale."""
    sale = db.session.get(Sale, sale_id)
    return _evaluate(sale, actor, now or utcnow())


def _validated_reason(sale_id: int, reason: str | None) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise NotEligibleForCancellation(
            "Le motif d'annulation est obligatoire",
            details={"sale_id": sale_id, "error": "Motif manquant", "field": "reason"},
        )
    minimum = _min_reason_length()
    if len(reason) < minimum:
        raise NotEligibleForCancellation(
            f"Le motif doit contenir au moins {minimum} caractères",
            details={"sale_id": sale_id, "error": "Motif trop court", "field": "reason",
                     "min_length": minimum},
        )
    return reason


def cancel(sale_id: int, reason: str | None, actor, *, now: datetime | None = None) -> CancellationResult:
    """
    Cancel a ticket and put its stock back.

    Raises:
        NotEligibleForCancellation: missing or short reason, actor is not an
            admin, sale already cancelled, wrong status, or too old.
            details["error"] names which rule failed.
        NotFound: unknown sale
    """
    reason = _validated_reason(sale_id, reason)

    def _op():
        moment = now or utcnow()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).populate_existing().first()
        check = _evaluate(sale, actor, moment)
        if not check.allowed:
            if sale is None and has_role(actor, (ROLE_ADMIN,)):
                raise NotFound(f"Vente {sale_id} introuvable", details={"sale_id": sale_id})
            details = {"sale_id": sale_id, "error": check.error}
            if sale is not None:
                details["status"] = sale.status
            if not has_role(actor, (ROLE_ADMIN,)):
                details["required_role"] = ROLE_ADMIN
            raise NotEligibleForCancellation(check.reason, details=details)

        reference = f"Annulation vente {sale.ticket_number}"
        movement_ids = []
        for line in sale.lines:
            quantity = Decimal(line.quantity)
            change = ledger_service.adjust(line.product_id, sale.pool, quantity)
            ledger_service.bump_counter(line.product_id, sale.pool, "sold", -quantity)
            movement_ids.append(movement_service.record(
                product_id=line.product_id,
                movement_type=MOVEMENT_SALE_CANCEL,
                quantity=quantity,
                before=change.before,
                after=change.after,
                actor_id=actor.id,
                reference=reference,
                pool=sale.pool,
                sale_id=sale.id,
            ))

        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_at = moment

        cancellation = SaleCancellation(
            sale_id=sale.id,
            ticket_number=sale.ticket_number,
            amount_cancelled=sale.total,
            reason=reason,
            cancelled_by_user_id=actor.id,
            cancelled_at=moment,
        )
        db.session.add(cancellation)
        try:
            db.session.flush()
        except IntegrityError:
            raise NotEligibleForCancellation(
                "Cette vente a déjà été annulée",
                details={"sale_id": sale_id, "error": "Vente déjà annulée"},
            )

        current_app.logger.info(
            "Sale %s cancelled by user %s", sale.ticket_number, actor.id
        )
        return CancellationResult(sale=sale, cancellation=cancellation, movement_ids=movement_ids)

    return run_in_transaction(_op)


def list_cancellations(
    actor,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[SaleCancellation]:
    if not has_role(actor, (ROLE_ADMIN,)):
        raise PermissionDenied(
            "Seuls les administrateurs peuvent consulter les annulations",
            details={"required_role": ROLE_ADMIN},
        )
    query = db.session.query(SaleCancellation)
    if date_from:
        query = query.filter(SaleCancellation.cancelled_at >= date_from)
    if date_to:
        query = query.filter(SaleCancellation.cancelled_at <= date_to)
    return query.order_by(SaleCancellation.cancelled_at.desc()).all()
