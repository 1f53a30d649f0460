# Overview: Dashboard stock statistics behind an explicitly injected cache.

"""
StockStatsCache is created once per app (create_app stores it in
app.extensions) and handed to dashboard_stats by the caller. Any committed
transaction that touched the ledger drops it; rolled-back ones do not.
"""

from __future__ import annotations

import threading
import time
from datetime import date
from decimal import Decimal

from sqlalchemy import event, func
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import Product, ProductionRun, StockEntry
from ..models.stock import POOL_SHOP, POOL_WORKSHOP
from .ledger_service import LEDGER_TOUCHED_KEY


RAW_CRITICAL_THRESHOLD = Decimal("10")
WORKSHOP_CRITICAL_THRESHOLD = Decimal("5")


class StockStatsCache:
    """Single-value cache with a TTL and explicit invalidation."""

    def __init__(self, ttl_seconds: float = 60, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value = None
        self._stored_at = None

    def get(self):
        with self._lock:
            if self._stored_at is None:
                return None
            if self._clock() - self._stored_at > self.ttl_seconds:
                self._value = None
                self._stored_at = None
                return None
            return self._value

    def set(self, value) -> None:
        with self._lock:
            self._value = value
            self._stored_at = self._clock()

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._stored_at = None

    @property
    def is_warm(self) -> bool:
        return self.get() is not None


def install_invalidation(cache: StockStatsCache) -> None:
    """Drop `cache` after every commit of a transaction that touched the ledger."""

    @event.listens_for(Session, "after_commit")
    def _after_commit(session):
        if session.info.pop(LEDGER_TOUCHED_KEY, False):
            cache.invalidate()

    @event.listens_for(Session, "after_soft_rollback")
    def _after_rollback(session, previous_transaction):
        if previous_transaction.parent is None:
            session.info.pop(LEDGER_TOUCHED_KEY, None)


def compute_stats(today: date | None = None) -> dict:
    today = today or date.today()

    total_products = db.session.query(func.count(Product.id)).filter(Product.is_active.is_(True)).scalar()
    raw_critical = (
        db.session.query(func.count(Product.id))
        .filter(Product.is_active.is_(True), Product.remaining_quantity < RAW_CRITICAL_THRESHOLD)
        .scalar()
    )
    workshop_critical = (
        db.session.query(func.count(StockEntry.id))
        .filter(StockEntry.pool == POOL_WORKSHOP, StockEntry.available_quantity < WORKSHOP_CRITICAL_THRESHOLD)
        .scalar()
    )
    shop_out_of_stock = (
        db.session.query(func.count(StockEntry.id))
        .filter(StockEntry.pool == POOL_SHOP, StockEntry.available_quantity <= 0)
        .scalar()
    )
    productions_today = (
        db.session.query(func.count(ProductionRun.id))
        .filter(ProductionRun.production_date == today)
        .scalar()
    )

    workshop_value = Decimal("0")
    entries = (
        db.session.query(StockEntry)
        .filter(StockEntry.pool == POOL_WORKSHOP, StockEntry.available_quantity > 0)
        .all()
    )
    for entry in entries:
        workshop_value += Decimal(entry.available_quantity) * entry.product.unit_cost

    return {
        "total_products": total_products or 0,
        "raw_critical": raw_critical or 0,
        "workshop_critical": workshop_critical or 0,
        "shop_out_of_stock": shop_out_of_stock or 0,
        "productions_today": productions_today or 0,
        "workshop_value": round(float(workshop_value), 2),
    }


def dashboard_stats(*, cache: StockStatsCache | None = None) -> dict:
    if cache is not None:
        cached = cache.get()
        if cached is not None:
            return dict(cached, cached=True)

    stats = compute_stats()
    if cache is not None:
        cache.set(stats)
    return dict(stats, cached=False)
