"""
Server-side auto-refresh control
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from app.scheduler import auto_refresh

router = APIRouter(prefix="/api/auto-refresh", tags=["auto-refresh"])


class StartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")


@router.post("/start")
async def start_auto_refresh(request: StartRequest):
    """Refresh the given range every interval until stopped."""
    if not request.start_date or not request.end_date:
        return JSONResponse(status_code=400, content={"error": "Start date and end date are required"})

    auto_refresh.start(request.start_date, request.end_date)
    return {
        "success": True,
        "message": "Auto-refresh started",
        "interval": f"{auto_refresh.interval_minutes} minutes",
        "dateRange": {"startDate": request.start_date, "endDate": request.end_date},
    }


@router.post("/stop")
async def stop_auto_refresh():
    auto_refresh.stop()
    return {"success": True, "message": "Auto-refresh stopped"}


@router.get("/status")
async def auto_refresh_status():
    return auto_refresh.status()
