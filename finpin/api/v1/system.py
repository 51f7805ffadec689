import datetime as dt

from fastapi import APIRouter, Depends

from finpin.core.config import Settings
from finpin.core.deps import get_parser, get_settings_dep
from finpin.services.parser import ExpenseParser

router = APIRouter()


@router.get("/health")
async def health(settings: Settings = Depends(get_settings_dep), parser: ExpenseParser = Depends(get_parser)):
    ai_healthy = await parser.health_check()
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "version": settings.api_version,
            "environment": settings.environment,
            "services": {"ai_api": "healthy" if ai_healthy else "unhealthy"},
        },
    }


@router.get("/stats")
async def stats(settings: Settings = Depends(get_settings_dep)):
    return {
        "success": True,
        "data": {
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "environment": settings.environment,
            "version": settings.api_version,
            "rate_limit_per_minute": settings.rate_limit_per_minute,
            "signature_validity_minutes": settings.signature_validity_minutes,
        },
    }
