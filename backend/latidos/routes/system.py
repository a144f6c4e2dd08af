# backend/latidos/routes/system.py
"""
System health endpoint.

Used by deployment probes; checks database connectivity only.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from latidos.time_utils import utcnow

system_bp = Blueprint("system", __name__)


@system_bp.get("/api/health")
def health():
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return jsonify({
            "status": "ok",
            "database": {"status": "healthy", "response_time_ms": round(elapsed_ms, 2)},
            "timestamp": utcnow().isoformat() + "Z",
        })
    except Exception:
        current_app.logger.exception("Health check failed")
        return jsonify({"status": "error", "database": {"status": "unhealthy"}}), 503
