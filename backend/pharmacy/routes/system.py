# backend/pharmacy/routes/system.py
"""System health endpoint."""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "database": database,
        "tax_rate_bps": current_app.config["TAX_RATE_BPS"],
    }), 200 if healthy else 503
