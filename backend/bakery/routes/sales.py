# backend/bakery/routes/sales.py
"""
Point-of-sale tickets from the shop and kitchen tills, and their cancellation.

Cancellation additionally requires the admin role, which the
cancellation service checks itself.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import BakeryError
from ..services import cancellation_service, sales_service
from bakery.time_utils import parse_iso_datetime

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales():
    """
    Query params:
    - from, to: ISO-8601 datetimes
    - status: validee | annulee
    - seller_id: int
    - pool: shop | kitchen
    """
    try:
        date_from = parse_iso_datetime(request.args.get("from"))
        date_to = parse_iso_datetime(request.args.get("to"))
    except ValueError:
        return jsonify({"error": "Date invalide"}), 400

    sales = sales_service.list_sales(
        date_from=date_from,
        date_to=date_to,
        status=request.args.get("status"),
        seller_id=request.args.get("seller_id", type=int),
        pool=request.args.get("pool"),
    )
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.get("/available")
@require_auth
@require_permission("CREATE_SALE")
def available_products():
    """
    Query params:
    - pool: shop | kitchen (default shop)
    """
    try:
        products = sales_service.available_for_sale(request.args.get("pool") or "shop")
        return jsonify({"products": products}), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/top-products")
@require_auth
@require_permission("VIEW_SALES")
def top_products():
    limit = request.args.get("limit", default=10, type=int)
    days = request.args.get("days", default=30, type=int)
    return jsonify({"products": sales_service.top_products(limit=limit, days=days)}), 200


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale():
    """
    Request body:
    {
        "items": [{"product_id": int, "quantity": number}, ...],
        "amount_tendered": number,
        "pool": "shop" | "kitchen" (default "shop")
    }

    Returns:
        201: Sale validated, with lines and change_due
        400: Empty cart, short payment, invalid line or unknown till
        409: Insufficient stock in the till's pool (details.items)
        503: Ticket number could not be allocated
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.finalize_sale(
            data.get("items") or [],
            data.get("amount_tendered"),
            seller_id=g.current_user.id,
            pool=data.get("pool") or "shop",
        )
        return jsonify(sale.to_dict(include_lines=True)), 201
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to finalize sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/cancellations")
@require_auth
@require_permission("CANCEL_SALE")
def list_cancellations():
    try:
        date_from = parse_iso_datetime(request.args.get("from"))
        date_to = parse_iso_datetime(request.args.get("to"))
    except ValueError:
        return jsonify({"error": "Date invalide"}), 400

    try:
        records = cancellation_service.list_cancellations(
            g.current_user, date_from=date_from, date_to=date_to
        )
        return jsonify({"cancellations": [r.to_dict() for r in records]}), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify(sale.to_dict(include_lines=True)), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/<int:sale_id>/cancellable")
@require_auth
@require_permission("VIEW_SALES")
def sale_cancellable(sale_id: int):
    check = cancellation_service.can_cancel(sale_id, g.current_user)
    return jsonify(check.to_dict()), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_permission("CANCEL_SALE")
def cancel_sale(sale_id: int):
    """
    Request body: {"reason": str (at least 10 characters)}
    """
    data = request.get_json(silent=True) or {}

    try:
        result = cancellation_service.cancel(sale_id, data.get("reason"), g.current_user)
        return jsonify(result.to_dict()), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
