# backend/bakery/routes/recipes.py
"""
Recipe (bill of materials) management and ingredient requirement checks.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import BakeryError
from ..services import recipe_service

recipes_bp = Blueprint("recipes", __name__, url_prefix="/api/recipes")


@recipes_bp.get("")
@require_auth
@require_permission("VIEW_RECIPES")
def list_recipes():
    grouped = recipe_service.list_recipes()
    return jsonify({
        "recipes": [
            {
                "product_name": name,
                "unit_cost": round(float(recipe_service.unit_cost(name)), 2),
                "ingredients": [line.to_dict() for line in lines],
            }
            for name, lines in grouped.items()
        ]
    }), 200


@recipes_bp.post("")
@require_auth
@require_permission("MANAGE_RECIPES")
def create_recipe_lines():
    """
    Request body:
    {
        "product_name": str,
        "ingredients": [{"ingredient_product_id": int, "quantity_per_unit": number}, ...]
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        lines = recipe_service.add_lines(
            data.get("product_name"),
            data.get("ingredients") or [],
            actor_id=g.current_user.id,
        )
        return jsonify({"lines": [line.to_dict() for line in lines]}), 201
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create recipe lines")
        return jsonify({"error": "Internal server error"}), 500


@recipes_bp.put("/<int:recipe_id>")
@require_auth
@require_permission("MANAGE_RECIPES")
def update_recipe_line(recipe_id: int):
    data = request.get_json(silent=True) or {}

    try:
        line = recipe_service.update_line(recipe_id, data.get("quantity_per_unit"))
        return jsonify(line.to_dict()), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update recipe line")
        return jsonify({"error": "Internal server error"}), 500


@recipes_bp.delete("/<int:recipe_id>")
@require_auth
@require_permission("MANAGE_RECIPES")
def delete_recipe_line(recipe_id: int):
    try:
        recipe_service.delete_line(recipe_id)
        return jsonify({"deleted": recipe_id}), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete recipe line")
        return jsonify({"error": "Internal server error"}), 500


@recipes_bp.get("/<path:product_name>/requirements")
@require_auth
@require_permission("VIEW_RECIPES")
def recipe_requirements(product_name: str):
    """
    Query params:
    - quantity: number of units to produce (default 1)
    """
    try:
        requirements = recipe_service.compute_requirements(
            product_name, request.args.get("quantity", "1")
        )
        return jsonify(requirements.to_dict()), 200
    except BakeryError as e:
        return jsonify(e.to_dict()), e.status_code
