# backend/bakery/routes/movements.py
"""
Read-only stock movement history.
"""
from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission
from ..services import movement_service
from bakery.time_utils import parse_iso_datetime

movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


@movements_bp.get("")
@require_auth
@require_permission("VIEW_MOVEMENTS")
def list_movements():
    """
    Query params:
    - product_id, sale_id: int
    - type: entree | sortie | transfert | vente | annulation_vente | ajustement
    - pool: raw | workshop | shop | kitchen
    - from, to: ISO-8601 datetimes
    - limit: int (default 100, max 1000)
    """
    try:
        date_from = parse_iso_datetime(request.args.get("from"))
        date_to = parse_iso_datetime(request.args.get("to"))
    except ValueError:
        return jsonify({"error": "Date invalide"}), 400

    movements = movement_service.history(
        product_id=request.args.get("product_id", type=int),
        movement_type=request.args.get("type"),
        sale_id=request.args.get("sale_id", type=int),
        pool=request.args.get("pool"),
        date_from=date_from,
        date_to=date_to,
        limit=request.args.get("limit", default=100, type=int),
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200
