from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from bakery.time_utils import to_utc_z, utcnow


QTY = db.Numeric(12, 3, asdecimal=True)
MONEY = db.Numeric(12, 2, asdecimal=True)

PRODUCT_KIND_INGREDIENT = "ingredient"
PRODUCT_KIND_FINISHED = "finished"


def _num(value) -> float | None:
    return float(value) if value is not None else None


class Unit(db.Model):
    """Measurement unit (kg, litre, pièce...)."""
    __tablename__ = "units"
    __table_args__ = (
        db.UniqueConstraint("value", name="uq_units_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    value = db.Column(db.String(32), nullable=False)
    label = db.Column(db.String(64), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "value": self.value, "label": self.label}


class Product(db.Model):
    """
    Something the bakery buys or makes.

    remaining_quantity is the raw stock pool: what is left of the purchased
    quantity before anything is moved to the workshop, shop or kitchen.
    purchase_price is the total paid for purchased_quantity, so the unit
    cost is their ratio.

    Products are never deleted; is_active=False hides them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("remaining_quantity >= 0", name="ck_products_remaining_nonneg"),
        db.CheckConstraint("kind IN ('ingredient', 'finished')", name="ck_products_kind"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default=PRODUCT_KIND_INGREDIENT)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True)

    purchase_price = db.Column(MONEY, nullable=False, default=Decimal("0"))
    purchased_quantity = db.Column(QTY, nullable=False, default=Decimal("0"))
    remaining_quantity = db.Column(QTY, nullable=False, default=Decimal("0"))
    purchase_date = db.Column(db.Date, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    unit = db.relationship("Unit")

    @property
    def unit_cost(self) -> Decimal:
        purchased = Decimal(self.purchased_quantity or 0)
        if purchased <= 0:
            return Decimal("0")
        return Decimal(self.purchase_price or 0) / purchased

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "unit": self.unit.to_dict() if self.unit else None,
            "purchase_price": _num(self.purchase_price),
            "purchased_quantity": _num(self.purchased_quantity),
            "remaining_quantity": _num(self.remaining_quantity),
            "unit_cost": round(float(self.unit_cost), 4),
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Recipe(db.Model):
    """
    One bill-of-materials line: how much of an ingredient one unit of the
    finished good (identified by product_name) consumes.
    """
    __tablename__ = "recipes"
    __table_args__ = (
        db.UniqueConstraint("product_name", "ingredient_product_id", name="uq_recipes_product_ingredient"),
        db.CheckConstraint("quantity_per_unit > 0", name="ck_recipes_qpu_positive"),
        db.Index("ix_recipes_product_name", "product_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_name = db.Column(db.String(128), nullable=False)
    ingredient_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity_per_unit = db.Column(QTY, nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    ingredient = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "ingredient_product_id": self.ingredient_product_id,
            "ingredient_name": self.ingredient.name if self.ingredient else None,
            "unit": self.ingredient.unit.value if self.ingredient and self.ingredient.unit else None,
            "quantity_per_unit": _num(self.quantity_per_unit),
            "created_at": to_utc_z(self.created_at),
        }


class SalePrice(db.Model):
    """
    Selling price keyed either by product or by recipe name.

    Exactly one of product_id / recipe_name is set. The shop stock entry
    keeps its own copy in sale_price; callers sync it explicitly.
    """
    __tablename__ = "sale_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_sale_prices_product"),
        db.UniqueConstraint("recipe_name", name="uq_sale_prices_recipe"),
        db.CheckConstraint(
            "(product_id IS NULL) <> (recipe_name IS NULL)",
            name="ck_sale_prices_single_key",
        ),
        db.CheckConstraint("price >= 0", name="ck_sale_prices_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    recipe_name = db.Column(db.String(128), nullable=True)
    price = db.Column(MONEY, nullable=False)
    margin_percent = db.Column(db.Numeric(8, 2), nullable=False, default=Decimal("0"))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    set_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "recipe_name": self.recipe_name,
            "price": _num(self.price),
            "margin_percent": _num(self.margin_percent),
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }
