"""
Monitoring and metrics API endpoints.

This blueprint provides:
- /metrics: Prometheus-compatible metrics endpoint
- /metrics/json: JSON format metrics
- /health: Basic health check
- /health/live: Liveness probe
"""

import time

from flask import Blueprint, Response, jsonify

from .state import get_contract

# Create the blueprint
monitoring_bp = Blueprint('monitoring', __name__)

# Track startup time
_startup_time = time.time()


@monitoring_bp.route('/metrics', methods=['GET'])
def prometheus_metrics():
    """Metrics in Prometheus text exposition format."""
    contract = get_contract()
    _update_dynamic_metrics()
    return Response(
        contract.metrics.to_prometheus(),
        mimetype='text/plain; charset=utf-8'
    )


@monitoring_bp.route('/metrics/json', methods=['GET'])
def json_metrics():
    contract = get_contract()
    _update_dynamic_metrics()
    return jsonify(contract.metrics.get_all())


@monitoring_bp.route('/health', methods=['GET'])
def health():
    """
    Basic health check endpoint.

    Returns service status and key ledger statistics.
    """
    contract = get_contract()
    stats = contract.get_total_stats()
    pending = sum(1 for r in contract.requests.list_requests() if r.is_pending)

    return jsonify({
        "status": "healthy",
        "service": "PrivateArt API",
        "version": _get_version(),
        "uptime_seconds": time.time() - _startup_time,
        "checks": {
            "ledger": {
                "status": "ok",
                "owner": contract.owner,
                "artworks": stats["total_artworks"],
                "investors": stats["total_investors"],
                "pending_requests": pending,
            },
            "block": {
                "timestamp": contract.block.timestamp(),
            },
        }
    })


@monitoring_bp.route('/health/live', methods=['GET'])
def liveness():
    return jsonify({"status": "alive"})


def _get_version() -> str:
    """Get application version."""
    from importlib.metadata import PackageNotFoundError, version
    try:
        return version("privateart-ledger")
    except PackageNotFoundError:
        return "0.1.0"


def _update_dynamic_metrics():
    """Update gauges before export."""
    contract = get_contract()
    stats = contract.get_total_stats()
    balance = contract.get_balance()
    contract.metrics.set_gauge("artworks_total", stats["total_artworks"])
    contract.metrics.set_gauge("investors_total", stats["total_investors"])
    contract.metrics.set_gauge("pool_balance_wei", balance["total_balance"])
