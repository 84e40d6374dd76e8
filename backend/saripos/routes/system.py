# backend/saripos/routes/system.py
"""
System health and connection-recovery endpoints.

/health never raises: it reports the connection manager's state plus a
live probe. /reconnect and /reset-connection are the explicit, user
triggered recovery path once automatic retries are exhausted.
"""

import time
from flask import Blueprint, current_app, jsonify

from ..errors import PosError
from ..services.connection_service import get_connection_manager
from ..services.history_service import latest_activity_at

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Probe the shared connection.

    Returns dict with status and details.
    """
    manager = get_connection_manager()
    start_time = time.time()
    try:
        manager.ensure_available()
        healthy = manager.check_connection()
        last_activity = latest_activity_at() if healthy else None
    except PosError as e:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.warning("Database health check failed: %s", e.message)
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": e.message,
            "connection": manager.status(),
        }

    elapsed_ms = (time.time() - start_time) * 1000
    return {
        "status": "healthy" if healthy else "unhealthy",
        "latency_ms": round(elapsed_ms, 2),
        "last_inventory_activity": last_activity,
        "connection": manager.status(),
    }


@system_bp.get("/health")
def health():
    database = check_database_health()
    code = 200 if database["status"] == "healthy" else 503
    return jsonify({"status": database["status"], "database": database}), code


@system_bp.post("/reconnect")
def reconnect():
    manager = get_connection_manager()
    manager.reconnect()
    return jsonify({"reconnected": True, "connection": manager.status()})


@system_bp.post("/reset-connection")
def reset_connection():
    """Clear an exhausted reconnect state, then try once more."""
    manager = get_connection_manager()
    manager.reset()
    manager.reconnect()
    return jsonify({"reconnected": True, "connection": manager.status()})
