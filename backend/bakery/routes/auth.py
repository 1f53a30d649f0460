# backend/bakery/routes/auth.py
"""
Login, logout and current-user endpoints.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..permissions import get_role_permissions
from ..services import auth_service, session_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    """
    Request body: {"username": str, "password": str}

    Returns 200 with {"token", "user", "permissions"} or 401.
    """
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""

    if not username or not password:
        return jsonify({"error": "Identifiant et mot de passe obligatoires"}), 400

    try:
        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for %s", username)
            return jsonify({"error": "Identifiants invalides"}), 401

        _, token = session_service.create_session(
            user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "token": token,
            "user": user.to_dict(),
            "permissions": sorted(get_role_permissions(user.role)),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout():
    session_service.revoke_session(g.auth_token)
    return jsonify({"status": "logged_out"}), 200


@auth_bp.get("/me")
@require_auth
def me():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
    }), 200
