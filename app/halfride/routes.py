from datetime import datetime, timezone

from flask import Blueprint, g, jsonify

bp = Blueprint("routes", __name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/health")
def api_health():
    return jsonify({"status": "ok", "message": "Server is running", "timestamp": _now_iso()})


@bp.get("/api/public/data")
def public_data():
    user = getattr(g, "current_user", None)
    if user:
        return jsonify({"message": f"Hello {user.username}", "personalized": True, "timestamp": _now_iso()})
    return jsonify({"message": "Hello guest", "personalized": False, "timestamp": _now_iso()})
