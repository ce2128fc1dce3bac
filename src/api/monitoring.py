"""
Monitoring and health API endpoints.

This blueprint provides:
- /metrics: Prometheus-compatible metrics endpoint
- /metrics/json: JSON format metrics
- /health: Basic health check
- /health/live: Liveness probe
- /health/ready: Readiness probe
"""

import time
from importlib.metadata import PackageNotFoundError, version

from flask import Blueprint, Response, jsonify

from api.state import get_market
from monitoring import metrics

monitoring_bp = Blueprint("monitoring", __name__)

_startup_time = time.time()


def _update_dynamic_metrics() -> None:
    engine = get_market().engine
    metrics.set_gauge("held_balance", float(engine.held_balance))
    metrics.set_gauge("unallocated_total", float(engine.unallocated_total))
    metrics.set_gauge("active_listings", float(len(engine.listings)))


@monitoring_bp.route("/metrics", methods=["GET"])
def prometheus_metrics():
    """Prometheus text exposition of all metrics."""
    _update_dynamic_metrics()
    return Response(metrics.to_prometheus(), mimetype="text/plain; charset=utf-8")


@monitoring_bp.route("/metrics/json", methods=["GET"])
def json_metrics():
    """All collected metrics as JSON."""
    _update_dynamic_metrics()
    return jsonify(metrics.get_all())


@monitoring_bp.route("/health", methods=["GET"])
def health():
    """Service status and key ledger figures."""
    market = get_market()
    return jsonify({
        "status": "healthy",
        "service": "Royalty Ledger API",
        "version": _get_version(),
        "uptime_seconds": time.time() - _startup_time,
        "checks": {
            "ledger": {
                "status": "ok",
                "active_listings": len(market.engine.listings),
                "held_balance": market.engine.held_balance,
            },
            "storage": market.storage.get_info(),
        },
    })


@monitoring_bp.route("/health/live", methods=["GET"])
def liveness():
    """Liveness probe; fails only if the process needs a restart."""
    return jsonify({"status": "alive"})


@monitoring_bp.route("/health/ready", methods=["GET"])
def readiness():
    """Readiness probe; checks the storage backend."""
    issues = []
    try:
        if not get_market().storage.is_available():
            issues.append("storage: not available")
    except Exception as e:
        issues.append(f"storage: {e}")

    if issues:
        return jsonify({"status": "not_ready", "issues": issues}), 503
    return jsonify({"status": "ready"})


def _get_version() -> str:
    """Installed package version, or the source version."""
    try:
        return version("royalty-ledger")
    except PackageNotFoundError:
        return "0.1.0"
