# Overview: Point updates on per-pool balances; the only writer of stock quantities.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import Product, StockEntry
from ..models.stock import ENTRY_POOLS, POOLS, POOL_RAW, POOL_SHOP, SALE_POOLS
from bakery.time_utils import utcnow
"""
Quantity Ledger Invariants (authoritative)

- A balance is a stored counter, never a sum over movements.
- available never drops below zero: every decrement is a guarded
  UPDATE ... SET available = ROUND(available + :delta, 3)
  WHERE ROUND(available + :delta, 3) >= 0.
- New values and guards are rounded to QUANTITY_PLACES in SQL, so a store
  that keeps NUMERIC as binary floating point (SQLite) never drifts.
- The raw pool is products.remaining_quantity; the other pools are rows of
  stock_entries keyed by (product_id, pool).
- sold/used are reporting aggregates; they are floored at zero and never
  gate anything.
- Nothing here commits. Callers own the transaction.
"""


ZERO = Decimal("0")
QUANTITY_PLACES = 3
QUANTITY_STEP = Decimal("0.001")
MONEY_STEP = Decimal("0.01")

LEDGER_TOUCHED_KEY = "ledger_touched"

_ENTRY_FIELDS = {
    "available": StockEntry.available_quantity,
    "reserved": StockEntry.reserved_quantity,
    "sold": StockEntry.sold_quantity,
    "used": StockEntry.used_quantity,
}

STOCK_STATUS_OUT = "rupture"
STOCK_STATUS_CRITICAL = "critique"
STOCK_STATUS_LOW = "faible"
STOCK_STATUS_OK = "normal"


@dataclass(frozen=True)
class Balance:
    available: Decimal = ZERO
    reserved: Decimal = ZERO
    sold: Decimal = ZERO
    used: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "available": float(self.available),
            "reserved": float(self.reserved),
            "sold": float(self.sold),
            "used": float(self.used),
        }


@dataclass(frozen=True)
class Change:
    before: Decimal
    after: Decimal


def _to_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"Valeur invalide pour {field}", details={"field": field})
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Valeur invalide pour {field}", details={"field": field, "value": value})
    if not number.is_finite():
        raise ValidationError(f"Valeur invalide pour {field}", details={"field": field, "value": str(value)})
    return number


def to_quantity(value, field: str = "quantite") -> Decimal:
    return _to_decimal(value, field).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def to_money(value, field: str = "prix") -> Decimal:
    return _to_decimal(value, field).quantize(MONEY_STEP, rounding=ROUND_HALF_UP)


def positive_quantity(value, field: str = "quantite") -> Decimal:
    quantity = to_quantity(value, field)
    if quantity <= ZERO:
        raise ValidationError("La quantité doit être positive", details={"field": field, "value": str(value)})
    return quantity


def check_pool(pool: str) -> str:
    if pool not in POOLS:
        raise ValidationError(f"Stock inconnu: {pool}", details={"pool": pool, "allowed": list(POOLS)})
    return pool


def stock_status(available) -> str:
    qty = Decimal(available or 0)
    if qty <= 0:
        return STOCK_STATUS_OUT
    if qty <= 5:
        return STOCK_STATUS_CRITICAL
    if qty <= 10:
        return STOCK_STATUS_LOW
    return STOCK_STATUS_OK


def mark_touched() -> None:
    """Flag the current transaction so the stats cache is dropped on commit."""
    db.session.info[LEDGER_TOUCHED_KEY] = True


def _rounded(expr):
    # "+ 0" folds the -0.0 SQLite can return from ROUND into 0
    return func.round(expr, QUANTITY_PLACES) + 0


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Produit {product_id} introuvable", details={"product_id": product_id})
    return product


def get_entry(product_id: int, pool: str, *, refresh: bool = False) -> StockEntry | None:
    query = db.session.query(StockEntry).filter_by(product_id=product_id, pool=pool)
    if refresh:
        query = query.populate_existing()
    return query.first()


def get_balance(product_id: int, pool: str) -> Balance:
    """
    Current balance of a product in a pool. A missing entry reads as zero.
    """
    check_pool(pool)
    if pool == POOL_RAW:
        product = _require_product(product_id)
        return Balance(available=Decimal(product.remaining_quantity or 0))

    entry = get_entry(product_id, pool)
    if entry is None:
        return Balance()
    return Balance(
        available=Decimal(entry.available_quantity or 0),
        reserved=Decimal(entry.reserved_quantity or 0),
        sold=Decimal(entry.sold_quantity or 0),
        used=Decimal(entry.used_quantity or 0),
    )


def ensure_entry(product_id: int, pool: str, *, actor_id: int | None = None) -> StockEntry:
    """
    Return the (product, pool) entry, creating it at zero if absent.

    A concurrent first insert loses on the unique constraint inside a
    SAVEPOINT and then reads the winner's row.
    """
    entry = get_entry(product_id, pool)
    if entry is not None:
        return entry

    _require_product(product_id)
    try:
        with db.session.begin_nested():
            entry = StockEntry(
                product_id=product_id,
                pool=pool,
                available_quantity=ZERO,
                reserved_quantity=ZERO,
                sold_quantity=ZERO,
                used_quantity=ZERO,
                transferred_by_user_id=actor_id,
            )
            db.session.add(entry)
            db.session.flush()
    except IntegrityError:
        entry = get_entry(product_id, pool, refresh=True)
        if entry is None:
            raise
    mark_touched()
    return entry


def _adjust_raw(product_id: int, delta: Decimal) -> Change:
    column = Product.remaining_quantity
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values({column: _rounded(column + delta), Product.updated_at: utcnow()})
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(_rounded(column + delta) >= 0)

    result = db.session.execute(stmt)
    product = db.session.query(Product).filter_by(id=product_id).populate_existing().first()
    if product is None:
        raise NotFound(f"Produit {product_id} introuvable", details={"product_id": product_id})
    if result.rowcount == 0:
        available = Decimal(product.remaining_quantity or 0)
        raise InsufficientStock(
            f"Stock insuffisant, disponible: {available.normalize():f}",
            details={"product_id": product_id, "pool": POOL_RAW, "available": float(available),
                     "requested": float(-delta)},
        )
    after = Decimal(product.remaining_quantity)
    return Change(before=after - delta, after=after)


def _adjust_entry(product_id: int, pool: str, delta: Decimal, field: str) -> Change | None:
    column = _ENTRY_FIELDS[field]
    stmt = (
        update(StockEntry)
        .where(StockEntry.product_id == product_id, StockEntry.pool == pool)
        .values({column: _rounded(column + delta), StockEntry.updated_at: utcnow()})
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(_rounded(column + delta) >= 0)

    result = db.session.execute(stmt)
    entry = get_entry(product_id, pool, refresh=True)
    if entry is None:
        return None
    current = Decimal(getattr(entry, column.key) or 0)
    if result.rowcount == 0:
        raise InsufficientStock(
            f"Stock insuffisant, disponible: {current.normalize():f}",
            details={"product_id": product_id, "pool": pool, "available": float(current),
                     "requested": float(-delta)},
        )
    return Change(before=current - delta, after=current)


def adjust(product_id: int, pool: str, delta, *, field: str = "available") -> Change:
    """
    Add `delta` (possibly negative) to a balance counter.

    Raises InsufficientStock if the result would be negative and NotFound if
    the product, or a workshop/kitchen entry, does not exist. Shop entries
    are created at zero on first touch.
    """
    check_pool(pool)
    delta = to_quantity(delta, "delta")
    if field not in _ENTRY_FIELDS:
        raise ValidationError(f"Compteur inconnu: {field}", details={"field": field})

    if pool == POOL_RAW:
        if field != "available":
            raise ValidationError("Le stock brut n'a qu'un compteur disponible", details={"field": field})
        change = _adjust_raw(product_id, delta)
        mark_touched()
        return change

    change = _adjust_entry(product_id, pool, delta, field)
    if change is None:
        if pool != POOL_SHOP:
            _require_product(product_id)
            raise NotFound(
                f"Aucun stock {pool} pour le produit {product_id}",
                details={"product_id": product_id, "pool": pool},
            )
        ensure_entry(product_id, pool)
        change = _adjust_entry(product_id, pool, delta, field)
    mark_touched()
    return change


def credit(product_id: int, pool: str, quantity, *, actor_id: int | None = None) -> Change:
    """Create-or-increment: add a positive quantity to any pool."""
    check_pool(pool)
    quantity = positive_quantity(quantity)
    if pool != POOL_RAW:
        ensure_entry(product_id, pool, actor_id=actor_id)
    return adjust(product_id, pool, quantity)


def bump_counter(product_id: int, pool: str, field: str, delta) -> Decimal:
    """
    Move a reporting aggregate (sold/used). Decrements floor at zero
    instead of failing.
    """
    if pool not in ENTRY_POOLS:
        raise ValidationError(f"Stock inconnu: {pool}", details={"pool": pool})
    if field not in ("sold", "used"):
        raise ValidationError(f"Compteur inconnu: {field}", details={"field": field})
    delta = to_quantity(delta, "delta")

    ensure_entry(product_id, pool)
    column = _ENTRY_FIELDS[field]
    db.session.execute(
        update(StockEntry)
        .where(StockEntry.product_id == product_id, StockEntry.pool == pool)
        .values({
            column: case((_rounded(column + delta) < 0, ZERO), else_=_rounded(column + delta)),
            StockEntry.updated_at: utcnow(),
        })
        .execution_options(synchronize_session=False)
    )
    entry = get_entry(product_id, pool, refresh=True)
    mark_touched()
    return Decimal(getattr(entry, column.key) or 0)


def set_sale_price(product_id: int, price, *, pool: str = POOL_SHOP) -> StockEntry:
    """Write the denormalized selling price onto a till pool's entry."""
    if pool not in SALE_POOLS:
        raise ValidationError(f"Pas de caisse pour le stock {pool}", details={"pool": pool, "allowed": list(SALE_POOLS)})
    price = to_money(price)
    if price < 0:
        raise ValidationError("Le prix doit être positif", details={"price": float(price)})
    entry = ensure_entry(product_id, pool)
    entry.sale_price = price
    db.session.flush()
    return entry


def list_balances(pool: str, *, include_empty: bool = True) -> list[dict]:
    """Read-only listing of a pool with a derived stock_status."""
    check_pool(pool)
    rows = []
    if pool == POOL_RAW:
        products = (
            db.session.query(Product)
            .filter(Product.is_active.is_(True))
            .order_by(Product.name)
            .all()
        )
        for product in products:
            available = Decimal(product.remaining_quantity or 0)
            if not include_empty and available <= 0:
                continue
            data = product.to_dict()
            data["pool"] = POOL_RAW
            data["available_quantity"] = float(available)
            data["stock_status"] = stock_status(available)
            rows.append(data)
        return rows

    entries = (
        db.session.query(StockEntry)
        .join(Product, Product.id == StockEntry.product_id)
        .filter(StockEntry.pool == pool)
        .order_by(Product.name)
        .all()
    )
    for entry in entries:
        if not include_empty and Decimal(entry.available_quantity or 0) <= 0:
            continue
        data = entry.to_dict()
        data["unit"] = entry.product.unit.value if entry.product and entry.product.unit else None
        data["stock_status"] = stock_status(entry.available_quantity)
        rows.append(data)
    return rows
