# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Register and login both answer with a bearer token; it goes in the
Authorization header of every write request.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..validation import ConflictError, ValidationError
from ..decorators import require_auth
from shopkeeper.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _token_response(user, status: int = 200):
    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({
        "token": token,
        "user": user.to_dict(),
        "expiresAt": to_utc_z(session.expires_at),
    }), status


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            data.get("name"),
            data.get("email"),
            data.get("password"),
            role=data.get("role") or "admin",
        )
        return _token_response(user, 201)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Register failed")
        return jsonify({"error": "Server error"}), 500


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    email = auth_service.normalize_email(data.get("email"))
    password = data.get("password")

    if not email or not password:
        return jsonify({"error": "email and password required"}), 400

    try:
        user = auth_service.authenticate(email, password)
        if user is None:
            current_app.logger.info("Failed login for %s from %s", email, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401
        return _token_response(user)
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    context = g.session_context
    return jsonify({
        "user": g.current_user.to_dict(),
        "tokenExpiresAt": to_utc_z(context.session.expires_at),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token)
    return jsonify({"message": "Logged out successfully"}), 200
