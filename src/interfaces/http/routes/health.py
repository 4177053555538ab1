from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from src.database.db_manager import db

health_bp = Blueprint("health_bp", __name__)


def _database_check() -> str:
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - DB failure path
        db.session.rollback()
        return f"error: {exc}"
    return "ok"


@health_bp.route("/healthz")
def healthz():
    checks = {"database": _database_check()}

    metadata = current_app.extensions.get("metadata_service")
    checks["streaming_provider"] = "ok" if metadata is not None and metadata.available else "unavailable"

    status = 200 if checks["database"] == "ok" else 503
    overall = "ok" if status == 200 else "degraded"
    return jsonify({"status": overall, "checks": checks}), status


@health_bp.route("/readyz")
def readyz():
    database = _database_check()
    ready = database == "ok"
    payload = {
        "status": "ready" if ready else "blocked",
        "database": database,
    }
    return jsonify(payload), 200 if ready else 503
