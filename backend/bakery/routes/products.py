# backend/bakery/routes/products.py
"""
Purchased products: listing, purchase intake, replenishment, deactivation.

- Read operations require VIEW_STOCK
- Write operations require MANAGE_PURCHASES
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import BakeryError
from ..services import purchase_service
from bakery.time_utils import parse_iso_datetime

products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/products")
@require_auth
@require_permission("VIEW_STOCK")
def list_products():
    """
    Query params:
    - include_inactive: "1" to include deactivated products
    - kind: ingredient | finished
    """
    include_inactive = request.args.get("include_inactive") in ("1", "true")
    kind = request.args.get("kind")
    products = purchase_service.list_products(include_inactive=include_inactive, kind=kind)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("/products")
@require_auth
@require_permission("MANAGE_PURCHASES")
def create_product():
    """
    Record a purchase.

    Request body:
    {
        "name": str,
        "purchase_price": number (total paid),
        "quantity": number,
        "unit_id": int (optional),
        "purchase_date": "YYYY-MM-DD" (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        purchase_date = parse_iso_datetime(data.get("purchase_date"))
        product = purchase_service.create_purchase(
            name=data["name"],
            purchase_price=data["purchase_price"],
            quantity=data["quantity"],
            unit_id=data.get("unit_id"),
            purchase_date=purchase_date.date() if purchase_date else None,
            actor_id=g.current_user.id,
        )
        return jsonify(product.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Champ obligatoire manquant: {e.args[0]}"}), 400
    except ValueError as e:
        return jsonify({"error": f"Date invalide: {e}"}), 400
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/products/<int:product_id>/replenish")
@require_auth
@require_permission("MANAGE_PURCHASES")
def replenish_product(product_id: int):
    """
    Request body: {"quantity": number, "unit_price": number}
    """
    data = request.get_json(silent=True) or {}

    try:
        product = purchase_service.replenish(
            product_id,
            data["quantity"],
            data["unit_price"],
            actor_id=g.current_user.id,
        )
        return jsonify(product.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Champ obligatoire manquant: {e.args[0]}"}), 400
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to replenish product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/products/<int:product_id>/deactivate")
@require_auth
@require_permission("MANAGE_PURCHASES")
def deactivate_product(product_id: int):
    try:
        product = purchase_service.deactivate(product_id)
        return jsonify(product.to_dict()), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/units")
@require_auth
def list_units():
    return jsonify({"units": [u.to_dict() for u in purchase_service.list_units()]}), 200
