# Overview: Flask API routes for the audit ledger.

from flask import Blueprint, request, jsonify, g

from ..services import ledger_service
from ..time_utils import parse_iso_datetime
from ..decorators import require_auth, require_permission
from .common import page_args, page_response

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- as_of filtering is inclusive: occurred_at <= as_of.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def list_ledger_events_route():
    limit, offset = page_args()

    try:
        as_of = parse_iso_datetime(request.args.get("as_of"))
    except ValueError:
        return jsonify({"error": "as_of must be an ISO-8601 datetime"}), 400

    rows, total = ledger_service.list_ledger_events(
        shop_id=g.shop_id,
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        event_type=request.args.get("event_type"),
        event_category=request.args.get("event_category"),
        as_of=as_of,
        limit=limit,
        offset=offset,
    )
    return jsonify(page_response(rows, total, limit, offset)), 200
