# backend/bakery/routes/stock.py
"""
Pool balances, transfers, counted adjustments and dashboard statistics.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import BakeryError
from ..services import adjustment_service, ledger_service, stats_service, transfer_service

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/stats")
@require_auth
@require_permission("VIEW_STOCK")
def stock_stats():
    cache = current_app.extensions["stock_stats_cache"]
    return jsonify(stats_service.dashboard_stats(cache=cache)), 200


@stock_bp.get("/<pool>")
@require_auth
@require_permission("VIEW_STOCK")
def list_pool(pool: str):
    """
    Query params:
    - in_stock: "1" to hide empty balances
    """
    include_empty = request.args.get("in_stock") not in ("1", "true")
    try:
        rows = ledger_service.list_balances(pool, include_empty=include_empty)
        return jsonify({"pool": pool, "items": rows}), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.get("/<pool>/<int:product_id>")
@require_auth
@require_permission("VIEW_STOCK")
def get_balance(pool: str, product_id: int):
    try:
        balance = ledger_service.get_balance(product_id, pool)
        body = {"pool": pool, "product_id": product_id}
        body.update(balance.to_dict())
        body["stock_status"] = ledger_service.stock_status(balance.available)
        return jsonify(body), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.post("/transfers")
@require_auth
@require_permission("TRANSFER_STOCK")
def create_transfer():
    """
    Request body:
    {
        "product_id": int,
        "from_pool": "raw" | "workshop" | "shop" | "kitchen",
        "to_pool": "raw" | "workshop" | "shop" | "kitchen",
        "quantity": number,
        "sale_price": number (optional, shop destination only),
        "reference": str (optional)
    }

    Returns:
        201: Transfer applied
        400: Invalid request
        404: Unknown product
        409: Insufficient stock
    """
    data = request.get_json(silent=True) or {}

    try:
        result = transfer_service.transfer(
            int(data["product_id"]),
            data["from_pool"],
            data["to_pool"],
            data["quantity"],
            actor_id=g.current_user.id,
            reference=data.get("reference"),
            sale_price=data.get("sale_price"),
        )
        return jsonify(result.to_dict()), 201
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({"error": f"Requête invalide: {e}"}), 400
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to transfer stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/<pool>/<int:product_id>/adjust")
@require_auth
@require_permission("ADJUST_STOCK")
def adjust_balance(pool: str, product_id: int):
    """
    Request body: {"counted_quantity": number, "reason": str (optional)}
    """
    data = request.get_json(silent=True) or {}

    try:
        change = adjustment_service.adjust_pool(
            product_id,
            pool,
            data["counted_quantity"],
            actor_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({
            "pool": pool,
            "product_id": product_id,
            "before": float(change.before),
            "after": float(change.after),
        }), 200
    except KeyError as e:
        return jsonify({"error": f"Champ obligatoire manquant: {e.args[0]}"}), 400
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/<pool>/empty")
@require_auth
@require_permission("ADJUST_STOCK")
def empty_pool(pool: str):
    data = request.get_json(silent=True) or {}

    try:
        emptied = adjustment_service.empty_pool(pool, actor_id=g.current_user.id, reason=data.get("reason"))
        return jsonify({"pool": pool, "emptied": emptied}), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to empty stock pool")
        return jsonify({"error": "Internal server error"}), 500
