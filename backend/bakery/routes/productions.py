# backend/bakery/routes/productions.py
"""
Production runs.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import BakeryError
from ..services import production_service
from bakery.time_utils import parse_iso_datetime

productions_bp = Blueprint("productions", __name__, url_prefix="/api/productions")


@productions_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTION")
def list_productions():
    """
    Query params:
    - date: YYYY-MM-DD (optional)
    """
    try:
        day = parse_iso_datetime(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "Date invalide"}), 400
    runs = production_service.list_runs(day.date() if day else None)
    return jsonify({"productions": [run.to_dict() for run in runs]}), 200


@productions_bp.post("")
@require_auth
@require_permission("CREATE_PRODUCTION")
def create_production():
    """
    Request body:
    {
        "product_name": str,
        "quantity": number,
        "destination": "shop" | "kitchen" | "workshop" (default "shop"),
        "selling_price": number (optional, admin only)
    }

    Returns:
        201: Production recorded
        400: Invalid request
        403: Selling price set by a non-admin
        404: Unknown recipe
        409: Insufficient ingredients (details.shortfalls)
    """
    data = request.get_json(silent=True) or {}

    try:
        run = production_service.produce(
            data["product_name"],
            data["quantity"],
            destination=data.get("destination") or "shop",
            selling_price=data.get("selling_price"),
            actor=g.current_user,
        )
        return jsonify(run.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Champ obligatoire manquant: {e.args[0]}"}), 400
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record production")
        return jsonify({"error": "Internal server error"}), 500


@productions_bp.get("/<int:run_id>")
@require_auth
@require_permission("VIEW_PRODUCTION")
def get_production(run_id: int):
    try:
        run = production_service.get_run(run_id)
        return jsonify(run.to_dict()), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code


@productions_bp.post("/<int:run_id>/cancel")
@require_auth
@require_permission("CREATE_PRODUCTION")
def cancel_production(run_id: int):
    """
    Mark a run as cancelled. Admin only; stock is not reversed.

    Returns:
        200: Run now in status 'annule'
        400: Run already cancelled
        403: Not an admin
        404: Unknown run
    """
    try:
        run = production_service.cancel_run(run_id, g.current_user)
        return jsonify(run.to_dict()), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel production")
        return jsonify({"error": "Internal server error"}), 500
