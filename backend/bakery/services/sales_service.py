"""
Point-of-sale: turn a cart into a validated ticket.

The cart is built on the till; the server only sees it at checkout, so a
sale is created directly in status 'validee'. Everything that can reject a
cart (empty cart, short stock, missing price, short payment) is checked
before the first write. Then, in one transaction: header, lines, pool
decrements, 'sold' aggregates and 'vente' movements.

There are two tills. The shop till sells shop stock on 'V-' tickets; the
kitchen till sells kitchen stock on 'CUIS-' tickets. Both share every rule
above and the sale remembers its pool so a cancellation restores the right
balance.
"""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStock, InvalidPayment, NotFound, PersistenceFailure, ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleLine, StockEntry
from ..models.sales import SALE_STATUS_VALIDATED
from ..models.stock import MOVEMENT_SALE, POOL_KITCHEN, POOL_SHOP, SALE_POOLS
from bakery.time_utils import utcnow
from . import ledger_service, movement_service
from .concurrency import run_in_transaction
from .ledger_service import ZERO, positive_quantity, to_money


TICKET_ALPHABET = string.digits + string.ascii_lowercase
TICKET_PREFIXES = {POOL_SHOP: "V", POOL_KITCHEN: "CUIS"}


def generate_ticket_number(pool: str = POOL_SHOP) -> str:
    """<prefix>-<epoch milliseconds>-<5 random base36 chars>"""
    suffix = "".join(secrets.choice(TICKET_ALPHABET) for _ in range(5))
    return f"{TICKET_PREFIXES[pool]}-{int(time.time() * 1000)}-{suffix}"


def check_sale_pool(pool: str) -> str:
    if pool not in SALE_POOLS:
        raise ValidationError(
            f"Aucune caisse pour le stock {pool}",
            details={"pool": pool, "allowed": list(SALE_POOLS)},
        )
    return pool


def _aggregate_items(items) -> dict[int, Decimal]:
    if not items:
        raise InvalidPayment("Le panier est vide", details={"items": []})

    totals: dict[int, Decimal] = {}
    for item in items:
        try:
            product_id = int(item["product_id"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Article invalide", details={"item": item})
        quantity = positive_quantity(item.get("quantity"))
        totals[product_id] = totals.get(product_id, ZERO) + quantity
    return totals


def _validate_on_hand(totals: dict[int, Decimal], pool: str) -> dict[int, StockEntry]:
    """Check every line against the till's pool; report all short lines at once."""
    entries = {
        entry.product_id: entry
        for entry in db.session.query(StockEntry)
        .filter(StockEntry.pool == pool, StockEntry.product_id.in_(list(totals)))
        .all()
    }

    insufficient = []
    shortest = None
    for product_id, quantity in totals.items():
        entry = entries.get(product_id)
        available = Decimal(entry.available_quantity or 0) if entry else ZERO
        if available < quantity:
            product = db.session.get(Product, product_id)
            insufficient.append({
                "product_id": product_id,
                "name": product.name if product else None,
                "requested": float(quantity),
                "available": float(available),
            })
            shortest = available if shortest is None else min(shortest, available)

    if len(insufficient) == 1:
        raise InsufficientStock(
            f"Stock insuffisant, disponible: {shortest.normalize():f}",
            details={"pool": pool, "items": insufficient},
        )
    if insufficient:
        raise InsufficientStock(
            "Stock insuffisant pour plusieurs articles",
            details={"pool": pool, "items": insufficient},
        )
    return entries


def _insert_header(total: Decimal, tendered: Decimal, seller_id: int | None, pool: str) -> Sale:
    attempts = current_app.config.get("TICKET_NUMBER_ATTEMPTS", 5)
    for _ in range(attempts):
        ticket_number = generate_ticket_number(pool)
        try:
            with db.session.begin_nested():
                sale = Sale(
                    ticket_number=ticket_number,
                    total=total,
                    amount_tendered=tendered,
                    change_due=tendered - total,
                    seller_user_id=seller_id,
                    status=SALE_STATUS_VALIDATED,
                    pool=pool,
                    created_at=utcnow(),
                )
                db.session.add(sale)
                db.session.flush()
            return sale
        except IntegrityError:
            current_app.logger.warning("Ticket number collision on %s, retrying", ticket_number)
    raise PersistenceFailure(
        "Impossible d'attribuer un numéro de ticket, veuillez réessayer",
        details={"attempts": attempts},
    )


def finalize_sale(
    items,
    amount_tendered,
    *,
    seller_id: int | None = None,
    pool: str = POOL_SHOP,
) -> Sale:
    """
    Validate and record a sale on the till of `pool` (shop or kitchen).

    items: [{"product_id": int, "quantity": number}, ...]

    Raises:
        InvalidPayment: empty cart, or amount_tendered below the total
        ValidationError: unknown till, malformed line, or a product without a
            selling price in that pool
        InsufficientStock: any line exceeds the pool's stock (details list them all)
    """
    check_sale_pool(pool)
    totals = _aggregate_items(items)
    if amount_tendered is None:
        raise InvalidPayment("Le montant reçu est obligatoire", details={"field": "amount_tendered"})
    tendered = to_money(amount_tendered, "montant_donne")

    def _op():
        entries = _validate_on_hand(totals, pool)

        priced = []
        total = ZERO
        for product_id, quantity in totals.items():
            entry = entries[product_id]
            unit_price = Decimal(entry.sale_price or 0)
            if unit_price <= 0:
                raise ValidationError(
                    f"Aucun prix de vente défini pour {entry.product.name}",
                    details={"product_id": product_id},
                )
            line_total = to_money(unit_price * quantity)
            total += line_total
            priced.append((entry, quantity, unit_price, line_total))

        if tendered < total:
            raise InvalidPayment(
                f"Montant insuffisant: {tendered.normalize():f} reçu pour {total.normalize():f}",
                details={"total": float(total), "amount_tendered": float(tendered)},
            )

        sale = _insert_header(total, tendered, seller_id, pool)

        for entry, quantity, unit_price, line_total in priced:
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=entry.product_id,
                product_name=entry.product.name,
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
            ))
            change = ledger_service.adjust(entry.product_id, pool, -quantity)
            ledger_service.bump_counter(entry.product_id, pool, "sold", quantity)
            movement_service.record(
                product_id=entry.product_id,
                movement_type=MOVEMENT_SALE,
                quantity=quantity,
                before=change.before,
                after=change.after,
                actor_id=seller_id,
                reference=f"Vente {sale.ticket_number}",
                pool=pool,
                sale_id=sale.id,
            )

        db.session.flush()
        return sale

    return run_in_transaction(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound(f"Vente {sale_id} introuvable", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    status: str | None = None,
    seller_id: int | None = None,
    pool: str | None = None,
    limit: int = 200,
) -> list[Sale]:
    query = db.session.query(Sale)
    if date_from:
        query = query.filter(Sale.created_at >= date_from)
    if date_to:
        query = query.filter(Sale.created_at <= date_to)
    if status:
        query = query.filter(Sale.status == status)
    if seller_id is not None:
        query = query.filter(Sale.seller_user_id == seller_id)
    if pool:
        query = query.filter(Sale.pool == pool)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


def available_for_sale(pool: str = POOL_SHOP) -> list[dict]:
    """Entries the till of `pool` can sell: in stock and priced."""
    check_sale_pool(pool)
    entries = (
        db.session.query(StockEntry)
        .filter(
            StockEntry.pool == pool,
            StockEntry.available_quantity > 0,
            StockEntry.sale_price.isnot(None),
            StockEntry.sale_price > 0,
        )
        .all()
    )
    return [
        {
            "product_id": entry.product_id,
            "name": entry.product.name,
            "unit": entry.product.unit.label if entry.product.unit else "unité",
            "available_quantity": float(entry.available_quantity),
            "sale_price": float(entry.sale_price),
        }
        for entry in sorted(entries, key=lambda e: e.product.name)
    ]


def top_products(*, limit: int = 10, days: int = 30) -> list[dict]:
    """Best sellers by revenue over the last `days`, validated tickets only."""
    since = utcnow() - timedelta(days=days)
    rows = (
        db.session.query(
            SaleLine.product_name,
            func.sum(SaleLine.quantity),
            func.sum(SaleLine.line_total),
            func.count(SaleLine.id),
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(Sale.status == SALE_STATUS_VALIDATED, Sale.created_at >= since)
        .group_by(SaleLine.product_name)
        .order_by(func.sum(SaleLine.line_total).desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_name": name,
            "quantity_sold": float(quantity or 0),
            "revenue": float(revenue or 0),
            "line_count": count,
        }
        for name, quantity, revenue, count in rows
    ]
