# backend/gestion_pro/routes/system.py
"""
System health and version endpoints.

Health checks the database and the auth setup (roles and permissions seeded).
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Organization, Branch, Role, Permission
from gestion_pro.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        org_count = db.session.query(Organization).count()
        branch_count = db.session.query(Branch).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"organizations": org_count, "branches": branch_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_auth_health() -> dict:
    """Degraded when permissions or roles were never seeded (run `flask system init`)."""
    start_time = time.time()
    try:
        permission_count = db.session.query(Permission).count()
        role_count = db.session.query(Role).count()
        elapsed_ms = (time.time() - start_time) * 1000

        details = {"permission_count": permission_count, "role_count": role_count}
        if not permission_count or not role_count:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Roles or permissions not initialized",
                "details": details,
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Auth health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Auth service error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: a dependency is unhealthy
    """
    start_time = time.time()
    checks = {
        "database": check_database_health(),
        "auth_service": check_auth_health(),
    }
    statuses = [c["status"] for c in checks.values()]

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info."""
    return {
        "api_version": "1.0.0",
        "environment": "production" if not current_app.debug else "development",
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
