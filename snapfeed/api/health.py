"""Health check endpoints"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snapfeed import __version__
from snapfeed.api.deps import get_session_registry
from snapfeed.database import get_db
from snapfeed.utils.logger import logger
from snapfeed.utils.sessions import SessionRegistry

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time
STARTUP_TIME = time.time()


@router.get("")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {
        "status": "healthy",
        "service": "SnapFeed",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/ready")
def readiness_check(
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
) -> Dict[str, Any]:
    """
    Readiness check - verifies all dependencies are available

    Checks:
    - Database connectivity and latency
    - Session registry reachability

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    checks = {
        "database": False,
        "database_latency_ms": None,
        "session_registry": False,
    }

    try:
        # Check database connectivity and measure latency
        start = time.time()
        db.execute(text("SELECT 1"))
        checks["database"] = True
        checks["database_latency_ms"] = round((time.time() - start) * 1000, 2)
    except SQLAlchemyError as e:
        logger.error("Readiness check: database unavailable", extra={"error": str(e)})

    checks["session_registry"] = registry.ping()

    if not (checks["database"] and checks["session_registry"]):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "checks": checks,
                "timestamp": datetime.utcnow().isoformat()
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Returns 200 if process is alive
    Kubernetes liveness check
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": datetime.utcnow().isoformat()
    }
