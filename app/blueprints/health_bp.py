"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — service name + status
    GET /api/v1/health/ready  — 200 as soon as the app is serving
    GET /api/v1/health/live   — backend round-trip under the normal retry policy
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.core.exceptions import NetworkError
from app.repositories import get_backend

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

SERVICE_NAME = "Elevator Workspace"


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "service": SERVICE_NAME}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Count departments through the backend; 503 once the retry budget is spent."""
    cfg = current_app.config
    policy = {
        "timeout_seconds": cfg.get("BACKEND_TIMEOUT_SECONDS"),
        "max_retries": cfg.get("BACKEND_MAX_RETRIES"),
    }

    started = time.perf_counter()
    try:
        get_backend().departments.count()
    except NetworkError as exc:
        logger.error("Liveness check failed: %s", exc, extra={"operation": exc.operation})
        return jsonify({
            "status": "degraded",
            "checks": {"database": {"status": "error", "operation": exc.operation}},
            "policy": policy,
        }), 503

    latency_ms = round((time.perf_counter() - started) * 1000, 1)
    return jsonify({
        "status": "healthy",
        "checks": {"database": {"status": "ok", "latency_ms": latency_ms}},
        "policy": policy,
    }), 200
