"""Health check endpoints."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from fusionrelay import __version__
from fusionrelay.config import get_settings

router = APIRouter()

_started_at = time.monotonic()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "fusionrelay",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started_at, 3),
    }


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration info."""
    settings = get_settings()
    coordinator = request.app.state.coordinator
    return {
        "status": "healthy",
        "service": "fusionrelay",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started_at, 3),
        "chains": coordinator.supported_chains(),
        "cosmos": coordinator.cosmos_resolver is not None,
        "config": settings.get_safe_dict(),
    }
