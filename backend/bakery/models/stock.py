from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from bakery.time_utils import to_utc_z, utcnow
from .catalog import QTY, MONEY, _num


POOL_RAW = "raw"
POOL_WORKSHOP = "workshop"
POOL_SHOP = "shop"
POOL_KITCHEN = "kitchen"

# Pools backed by a stock_entries row; raw lives on products.remaining_quantity
ENTRY_POOLS = (POOL_WORKSHOP, POOL_SHOP, POOL_KITCHEN)
POOLS = (POOL_RAW,) + ENTRY_POOLS
# Pools with a till; each sells from its own balance at its own price
SALE_POOLS = (POOL_SHOP, POOL_KITCHEN)

MOVEMENT_IN = "entree"
MOVEMENT_OUT = "sortie"
MOVEMENT_TRANSFER = "transfert"
MOVEMENT_SALE = "vente"
MOVEMENT_SALE_CANCEL = "annulation_vente"
MOVEMENT_ADJUSTMENT = "ajustement"

MOVEMENT_TYPES = (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_TRANSFER,
    MOVEMENT_SALE,
    MOVEMENT_SALE_CANCEL,
    MOVEMENT_ADJUSTMENT,
)

PRODUCTION_DONE = "termine"
PRODUCTION_CANCELLED = "annule"


class StockEntry(db.Model):
    """
    Balance of one product in one downstream pool (workshop, shop, kitchen).

    available_quantity is the only authoritative counter. sold_quantity and
    used_quantity are reporting aggregates that never gate an operation.
    Rows are created on first credit and never deleted.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("product_id", "pool", name="uq_stock_entries_product_pool"),
        db.CheckConstraint("available_quantity >= 0", name="ck_stock_entries_available_nonneg"),
        db.CheckConstraint("sold_quantity >= 0", name="ck_stock_entries_sold_nonneg"),
        db.CheckConstraint("pool IN ('workshop', 'shop', 'kitchen')", name="ck_stock_entries_pool"),
        db.Index("ix_stock_entries_pool", "pool"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    pool = db.Column(db.String(16), nullable=False)

    available_quantity = db.Column(QTY, nullable=False, default=Decimal("0"))
    reserved_quantity = db.Column(QTY, nullable=False, default=Decimal("0"))
    sold_quantity = db.Column(QTY, nullable=False, default=Decimal("0"))
    used_quantity = db.Column(QTY, nullable=False, default=Decimal("0"))

    # Till pools (shop, kitchen): denormalized copy of the selling price
    sale_price = db.Column(MONEY, nullable=True)

    transferred_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("stock_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "pool": self.pool,
            "available_quantity": _num(self.available_quantity),
            "reserved_quantity": _num(self.reserved_quantity),
            "sold_quantity": _num(self.sold_quantity),
            "used_quantity": _num(self.used_quantity),
            "sale_price": _num(self.sale_price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Movement(db.Model):
    """
    Append-only audit row describing one quantity change.

    Balances are never recomputed from movements; this table exists so every
    change can be traced to an actor and a reason. Updates and deletes
    through the ORM are refused (see bakery.immutability).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_type", "movement_type"),
        db.Index("ix_stock_movements_sale", "sale_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    movement_type = db.Column(db.String(32), nullable=False)
    pool = db.Column(db.String(16), nullable=True)
    counterpart_pool = db.Column(db.String(16), nullable=True)

    quantity = db.Column(QTY, nullable=False)
    quantity_before = db.Column(QTY, nullable=True)
    quantity_after = db.Column(QTY, nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reference = db.Column(db.String(255), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    production_id = db.Column(db.Integer, db.ForeignKey("productions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")
    actor = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "movement_type": self.movement_type,
            "pool": self.pool,
            "counterpart_pool": self.counterpart_pool,
            "quantity": _num(self.quantity),
            "quantity_before": _num(self.quantity_before),
            "quantity_after": _num(self.quantity_after),
            "actor_user_id": self.actor_user_id,
            "actor_username": self.actor.username if self.actor else None,
            "reference": self.reference,
            "sale_id": self.sale_id,
            "production_id": self.production_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProductionRun(db.Model):
    """A batch of a finished good made from workshop ingredients."""
    __tablename__ = "productions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_productions_quantity_positive"),
        db.CheckConstraint("status IN ('termine', 'annule')", name="ck_productions_status"),
        db.Index("ix_productions_date", "production_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_name = db.Column(db.String(128), nullable=False)
    finished_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    quantity = db.Column(QTY, nullable=False)
    destination = db.Column(db.String(16), nullable=False, default=POOL_SHOP)
    production_date = db.Column(db.Date, nullable=False)
    ingredient_cost = db.Column(MONEY, nullable=False, default=Decimal("0"))
    status = db.Column(db.String(16), nullable=False, default=PRODUCTION_DONE)
    producer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    producer = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "finished_product_id": self.finished_product_id,
            "quantity": _num(self.quantity),
            "destination": self.destination,
            "production_date": self.production_date.isoformat() if self.production_date else None,
            "ingredient_cost": _num(self.ingredient_cost),
            "status": self.status,
            "producer_user_id": self.producer_user_id,
            "producer_username": self.producer.username if self.producer else None,
            "created_at": to_utc_z(self.created_at),
        }
