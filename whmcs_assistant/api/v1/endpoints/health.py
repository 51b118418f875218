from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from whmcs_assistant.api.deps import get_container
from whmcs_assistant.config.settings import REQUIRED_SETTINGS
from whmcs_assistant.core.container import Container

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/health")
async def health_check(container: Container = Depends(get_container)):
    """Configuration and dependency health; 503 when anything is off."""
    settings = container.settings
    missing = settings.missing_required()

    services = {
        "assistant": await container.assistant_service.health_check(),
        "cache": await container.cache.health_check(),
        "functions": container.registry.health_check(),
    }
    healthy = not missing and all(s["status"] == "healthy" for s in services.values())

    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.VERSION,
        "config": {name: bool(getattr(settings, name)) for name in REQUIRED_SETTINGS},
        "missing_config": missing,
        "services": services,
    }
    if healthy:
        logger.debug("health_check_passed")
    else:
        logger.warning("health_check_failed", missing_config=missing)
    return JSONResponse(status_code=200 if healthy else 503, content=body)


@router.get("/ready")
async def readiness_check(container: Container = Depends(get_container)):
    """Readiness for load balancers: required configuration present."""
    missing = container.settings.missing_required()
    if missing:
        return JSONResponse(status_code=503, content={"status": "not_ready", "missing_config": missing})
    return {"status": "ready", "cache_backend": container.cache.backend}
