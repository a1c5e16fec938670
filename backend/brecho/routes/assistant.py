# Overview: Flask API routes for the chat assistant.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import assistant_service
from ..services.assistant_service import AssistantUnavailableError
from ..validation import ValidationError
from ..decorators import require_auth, require_permission

assistant_bp = Blueprint("assistant", __name__, url_prefix="/api/assistant")


@assistant_bp.post("/messages")
@require_auth
@require_permission("USE_ASSISTANT")
def send_message_route():
    payload = request.get_json(silent=True) or {}
    message = payload.get("message")
    if not isinstance(message, str):
        return jsonify({"error": "message is required"}), 400

    config = current_app.config
    try:
        reply = assistant_service.send_message(
            shop_id=g.shop_id,
            user_id=g.current_user.id,
            message=message,
            webhook_url=config.get("ASSISTANT_WEBHOOK_URL"),
            timeout=config.get("ASSISTANT_TIMEOUT_SECONDS", 30),
            simulation=config.get("ASSISTANT_SIMULATION", True),
            transport=config.get("ASSISTANT_HTTP_TRANSPORT"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except AssistantUnavailableError as e:
        current_app.logger.warning("Assistant webhook unavailable for user %s: %s", g.current_user.id, e)
        return jsonify({"error": "Assistant is unavailable, try again later"}), 502

    if reply.fallback_reason:
        current_app.logger.warning(
            "Assistant answered by simulation for user %s: %s", g.current_user.id, reply.fallback_reason
        )
    return jsonify({
        "reply": reply.message.content,
        "source": reply.source,
        "message": reply.message.to_dict(),
    }), 200


@assistant_bp.get("/history")
@require_auth
@require_permission("USE_ASSISTANT")
def history_route():
    limit = request.args.get("limit", default=50, type=int)
    rows = assistant_service.history(user_id=g.current_user.id, limit=limit)
    return jsonify({"items": [m.to_dict() for m in rows]}), 200


@assistant_bp.delete("/history")
@require_auth
@require_permission("USE_ASSISTANT")
def clear_history_route():
    deleted = assistant_service.clear_history(user_id=g.current_user.id)
    return jsonify({"deleted": deleted}), 200
