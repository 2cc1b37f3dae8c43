# backend/branchpos/routes/system.py
"""
System health endpoint.

Reports database reachability plus a few row counts that are useful when
checking a fresh deployment (is anything seeded?).
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Branch, Product, Stock, User
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()
        stock_rows = db.session.query(Stock).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "branches": branch_count,
                "users": user_count,
                "products": product_count,
                "stock_rows": stock_rows,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
