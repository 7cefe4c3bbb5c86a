"""Trend analytics endpoints."""
import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from correlator.api.dependencies import get_event_store, resolve_time_range
from correlator.services.errors import CorrelationValidationError
from correlator.services.event_store import SqlEventStore
from correlator.services.schemas import TrendAnalysis
from correlator.services.trend_service import TrendAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trends", tags=["trends"])


@router.get("/symptoms/{name}", response_model=TrendAnalysis)
async def symptom_trend(
    name: str,
    userId: str | None = None,
    startMs: int | None = None,
    endMs: int | None = None,
    metric: Literal["severity", "frequency"] = "severity",
    granularity: Literal["daily", "weekly"] = "daily",
    penalty: float | None = Query(default=None, ge=0),
    event_store: SqlEventStore = Depends(get_event_store),
):
    """
    Bucketed series for one symptom with its linear trend and the change
    points where the level shifted.
    """
    if not userId:
        raise HTTPException(status_code=400, detail="Missing required query params: userId")

    time_range = resolve_time_range(startMs, endMs)
    try:
        return await TrendAnalysisService(event_store).analyze(
            userId, name, time_range, metric=metric, granularity=granularity, penalty=penalty
        )
    except CorrelationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
