# Overview: Flask API routes for the public interest form and its lead list.

from flask import Blueprint, request, jsonify, current_app

from ..services import lead_service
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, page_args, page_response

leads_bp = Blueprint("leads", __name__, url_prefix="/api/leads")


def _text(payload: dict, name: str):
    value = payload.get(name)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


@leads_bp.post("")
def submit_interest_route():
    """Public: no token required."""
    payload = request.get_json(silent=True) or {}
    try:
        lead = lead_service.submit_interest(
            shop_name=_text(payload, "shop_name"),
            email=_text(payload, "email"),
            phone=_text(payload, "phone"),
            contact_name=_text(payload, "contact_name"),
            city=_text(payload, "city"),
            message=_text(payload, "message"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to register lead")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"ok": True, "id": lead.id}), 201


@leads_bp.get("")
@require_auth
@require_permission("VIEW_LEADS")
def list_leads_route():
    limit, offset = page_args()
    items, total = lead_service.list_leads(limit=limit, offset=offset)
    return jsonify(page_response(items, total, limit, offset)), 200
