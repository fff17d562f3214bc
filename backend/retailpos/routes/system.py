# backend/retailpos/routes/system.py
"""
System health endpoint.

Verifies database connectivity and the stock quantity invariant.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Store, StockItem
from ..services.stock_service import find_inconsistent_stock_items
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        store_count = db.session.query(Store).count()
        stock_item_count = db.session.query(StockItem).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stores": store_count,
                "stock_items": stock_item_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_stock_invariants() -> dict:
    """Rows where qty_available != qty_on_hand - qty_reserved make the ledger degraded."""
    start_time = time.time()
    try:
        bad = find_inconsistent_stock_items()
        elapsed_ms = (time.time() - start_time) * 1000
        if bad:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"{len(bad)} stock item(s) violate qty_available = qty_on_hand - qty_reserved",
                "details": {"stock_item_ids": [item.id for item in bad[:50]]},
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Stock invariant check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Stock invariant check error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    stock_health = check_stock_invariants()

    all_checks = [database_health, stock_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "stock_invariants": stock_health,
        }
    }

    return response, http_status
