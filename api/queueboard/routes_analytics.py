"""Queue analytics routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from .deps.services import get_analytics
from .services import AnalyticsService
from .services.analytics import WINDOWS
from .utils.responses import ok

router = APIRouter()


@router.get("/api/queues/{queue_id}/analytics")
async def queue_analytics(
    queue_id: str,
    window: int = 7,
    analytics: AnalyticsService = Depends(get_analytics),
):
    """Return the rolling analytics snapshot for the last ``window`` days."""
    if window not in WINDOWS:
        raise HTTPException(status_code=400, detail="invalid window")
    return ok((await analytics.snapshot(queue_id, window)).unwrap())
