# Overview: Flask API routes for health and version checks.

"""
System health and version endpoints.

Both are public so load balancers and deploy scripts can call them.
"""

import os
import time
from importlib.metadata import PackageNotFoundError, version as package_version

from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Shop, User
from brecho.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Run a trivial query against the main tables and time it."""
    start_time = time.time()
    try:
        shop_count = db.session.query(Shop).count()
        user_count = db.session.query(User).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"shops": shop_count, "users": user_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def _app_version() -> str:
    try:
        return package_version("brecho-manager")
    except PackageNotFoundError:
        return "unknown"


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503


@system_bp.get("/version")
def version():
    return jsonify({
        "name": "brecho-manager",
        "version": _app_version(),
        "git_commit": os.environ.get("GIT_COMMIT"),
        "environment": os.environ.get("FLASK_ENV", "production"),
    })
