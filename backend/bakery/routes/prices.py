# backend/bakery/routes/prices.py
"""
Selling prices for products and recipes.

Setting a product price also refreshes the shop entry's copy so the till
sees it immediately.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import BakeryError
from ..extensions import db
from ..models import Product
from ..models.catalog import PRODUCT_KIND_FINISHED
from ..services import ledger_service, pricing_service
from ..services.concurrency import commit_with_retry

prices_bp = Blueprint("prices", __name__, url_prefix="/api/prices")


@prices_bp.get("")
@require_auth
def list_prices():
    return jsonify({"prices": [p.to_dict() for p in pricing_service.list_prices()]}), 200


@prices_bp.get("/products/<int:product_id>")
@require_auth
def get_product_price(product_id: int):
    try:
        info = pricing_service.get_product_price(product_id)
        return jsonify({"product_id": product_id, "price": info.to_dict() if info else None}), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code


@prices_bp.put("/products/<int:product_id>")
@require_auth
@require_permission("SET_PRICES")
def set_product_price(product_id: int):
    """
    Request body: {"price": number}
    """
    data = request.get_json(silent=True) or {}

    try:
        row = pricing_service.set_product_price(product_id, data.get("price"), g.current_user)
        ledger_service.set_sale_price(product_id, row.price)
        commit_with_retry()
        info = pricing_service.get_product_price(product_id)
        return jsonify({"product_id": product_id, "price": info.to_dict()}), 200
    except BakeryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set product price")
        return jsonify({"error": "Internal server error"}), 500


@prices_bp.get("/recipes/<path:recipe_name>")
@require_auth
def get_recipe_price(recipe_name: str):
    info = pricing_service.get_recipe_price(recipe_name)
    return jsonify({"recipe_name": recipe_name, "price": info.to_dict() if info else None}), 200


@prices_bp.put("/recipes/<path:recipe_name>")
@require_auth
@require_permission("SET_PRICES")
def set_recipe_price(recipe_name: str):
    """
    Request body: {"price": number}

    When a finished product of that name already exists, its shop price is
    refreshed too.
    """
    data = request.get_json(silent=True) or {}

    try:
        row = pricing_service.set_recipe_price(recipe_name, data.get("price"), g.current_user)
        finished = (
            db.session.query(Product)
            .filter(Product.name == row.recipe_name, Product.kind == PRODUCT_KIND_FINISHED)
            .first()
        )
        if finished is not None:
            ledger_service.set_sale_price(finished.id, row.price)
            commit_with_retry()
        info = pricing_service.get_recipe_price(row.recipe_name)
        return jsonify({"recipe_name": row.recipe_name, "price": info.to_dict()}), 200
    except BakeryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set recipe price")
        return jsonify({"error": "Internal server error"}), 500
