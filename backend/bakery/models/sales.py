from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from bakery.time_utils import to_utc_z, utcnow
from .catalog import QTY, MONEY, _num
from .stock import POOL_SHOP


SALE_STATUS_VALIDATED = "validee"
SALE_STATUS_CANCELLED = "annulee"


class Sale(db.Model):
    """
    A finalized point-of-sale ticket.

    Tickets are created directly in status 'validee'; the cart lives on the
    client until then. The only later transition is to 'annulee'.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("ticket_number", name="uq_sales_ticket_number"),
        db.CheckConstraint("status IN ('validee', 'annulee')", name="ck_sales_status"),
        db.CheckConstraint("pool IN ('shop', 'kitchen')", name="ck_sales_pool"),
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_number = db.Column(db.String(64), nullable=False)
    total = db.Column(MONEY, nullable=False, default=Decimal("0"))
    amount_tendered = db.Column(MONEY, nullable=False, default=Decimal("0"))
    change_due = db.Column(MONEY, nullable=False, default=Decimal("0"))
    seller_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_VALIDATED)
    pool = db.Column(db.String(16), nullable=False, default=POOL_SHOP)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Optimistic concurrency control on status flips
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    seller = db.relationship("User")
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        order_by="SaleLine.id",
    )

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "ticket_number": self.ticket_number,
            "total": _num(self.total),
            "amount_tendered": _num(self.amount_tendered),
            "change_due": _num(self.change_due),
            "seller_user_id": self.seller_user_id,
            "seller_username": self.seller.username if self.seller else None,
            "status": self.status,
            "pool": self.pool,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(128), nullable=False)
    quantity = db.Column(QTY, nullable=False)
    unit_price = db.Column(MONEY, nullable=False)
    line_total = db.Column(MONEY, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": _num(self.quantity),
            "unit_price": _num(self.unit_price),
            "line_total": _num(self.line_total),
        }


class SaleCancellation(db.Model):
    """
    Immutable record of a cancelled ticket. At most one per sale.
    """
    __tablename__ = "sale_cancellations"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_sale_cancellations_sale"),
        db.Index("ix_sale_cancellations_cancelled_at", "cancelled_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    ticket_number = db.Column(db.String(64), nullable=False)
    amount_cancelled = db.Column(MONEY, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    cancelled_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "ticket_number": self.ticket_number,
            "amount_cancelled": _num(self.amount_cancelled),
            "reason": self.reason,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_by_username": self.cancelled_by.username if self.cancelled_by else None,
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
