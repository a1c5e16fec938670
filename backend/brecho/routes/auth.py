# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /register creates a shop together with its owner account
- POST /login returns an opaque bearer token
- users of a shop are managed under /users (MANAGE_USERS)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services.auth_service import (
    InvalidCredentialsError,
    PasswordValidationError,
    ShopNotFoundError,
)
from ..validation import ConflictError, ValidationError
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, session, token) -> dict:
    return {
        "user": user.to_dict(),
        "roles": permission_service.get_user_role_names(user.id),
        "permissions": sorted(permission_service.get_user_permissions(user.id)),
        "token": token,
        "session": session.to_dict(),
        "shop_id": user.shop_id,
    }


@auth_bp.post("/register")
def register_route():
    """Sign up a shop and its owner, and log the owner in."""
    data = request.get_json(silent=True) or {}
    try:
        shop, owner = auth_service.register_shop(
            shop_name=data.get("shop_name"),
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password"),
            document=data.get("document"),
            timezone=data.get("timezone") or current_app.config["DEFAULT_TIMEZONE"],
        )
        session, token = session_service.create_session(
            user_id=owner.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to register shop")
        return jsonify({"error": "Internal server error"}), 500

    body = _session_payload(owner, session, token)
    body["shop"] = shop.to_dict()
    return jsonify(body), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("username") or data.get("email") or data.get("identifier")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(identifier, password, shop_id=data.get("shop_id"))

        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action="LOGIN",
                reason="Invalid credentials",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )
        body = _session_payload(user, session, token)
        body["message"] = "Login successful"
        return jsonify(body), 200

    except CONCURRENT_WRITE_ERRORS:

        raise

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/validate")
@require_auth
def validate_route():
    """Check a token and return the session's user, roles and permissions."""
    user = g.current_user
    return jsonify({
        "valid": True,
        "user": user.to_dict(),
        "roles": permission_service.get_user_role_names(user.id),
        "permissions": sorted(permission_service.get_user_permissions(user.id)),
        "shop_id": g.shop_id,
    }), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    data = request.get_json(silent=True) or {}
    if not data.get("current_password") or not data.get("new_password"):
        return jsonify({"error": "current_password and new_password required"}), 400

    try:
        auth_service.change_password(
            user_id=g.current_user.id,
            current_password=data["current_password"],
            new_password=data["new_password"],
            keep_session_id=g.session_context.session.id,
        )
    except InvalidCredentialsError as e:
        return jsonify({"error": str(e)}), 401
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Password changed"}), 200


@auth_bp.get("/users")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    users = auth_service.list_users(shop_id=g.shop_id)
    items = []
    for user in users:
        row = user.to_dict()
        row["roles"] = permission_service.get_user_role_names(user.id)
        items.append(row)
    return jsonify({"items": items, "count": len(items)}), 200


@auth_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            shop_id=g.shop_id,
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password"),
            role=data.get("role") or "seller",
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ShopNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    row = user.to_dict()
    row["roles"] = permission_service.get_user_role_names(user.id)
    return jsonify(row), 201
