"""
Health check endpoint
"""
from fastapi import APIRouter
import pytz

from app.config import get_settings
from app.scheduler import auto_refresh
from app.utils.helpers import local_now
from app import __version__

settings = get_settings()

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    now = local_now()
    return {
        "status": "OK",
        "message": f"{settings.app_name} API is running",
        "timestamp": now.astimezone(pytz.utc).isoformat(),
        "serverTime": now.strftime("%m/%d/%Y, %I:%M:%S %p"),
        "version": __version__,
        "autoRefresh": auto_refresh.status(),
    }
