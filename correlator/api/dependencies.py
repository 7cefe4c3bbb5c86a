"""Request-scoped service construction for the API routers."""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from correlator.config import settings
from correlator.database import get_db
from correlator.services.clock import now_ms
from correlator.services.correlation_cache import SqlCorrelationCache
from correlator.services.errors import InvalidTimeRangeError
from correlator.services.event_store import SqlEventStore
from correlator.services.orchestration_service import CorrelationOrchestrationService
from correlator.services.recalculation_scheduler import RecalculationScheduler
from correlator.services.recalculation_service import RecalculationService
from correlator.services.schemas import TimeRange

DAY_MS = 24 * 60 * 60 * 1000


def get_event_store(db: Session = Depends(get_db)) -> SqlEventStore:
    return SqlEventStore(db)


def get_cache(db: Session = Depends(get_db)) -> SqlCorrelationCache:
    return SqlCorrelationCache(db)


def get_orchestrator(
    request: Request,
    event_store: SqlEventStore = Depends(get_event_store),
    cache: SqlCorrelationCache = Depends(get_cache),
) -> CorrelationOrchestrationService:
    # The single-flight map lives on the app so concurrent requests share it
    return CorrelationOrchestrationService(
        event_store, cache, single_flight=request.app.state.single_flight
    )


def get_recalculation_service(
    event_store: SqlEventStore = Depends(get_event_store),
    cache: SqlCorrelationCache = Depends(get_cache),
    orchestrator: CorrelationOrchestrationService = Depends(get_orchestrator),
) -> RecalculationService:
    return RecalculationService(event_store, cache, orchestrator=orchestrator)


def get_scheduler() -> RecalculationScheduler:
    return RecalculationScheduler()


def resolve_time_range(start_ms: int | None, end_ms: int | None) -> TimeRange:
    """
    Build the requested range, defaulting to the trailing window.

    With neither bound given the range is tagged (e.g. "30d") so it shares
    cache entries with the scheduled batch.

    Raises:
        HTTPException: 400 if the range ends at or before its start
    """
    days = settings.correlation_default_range_days
    if start_ms is None and end_ms is None:
        return TimeRange.trailing(now_ms(), days)

    end = end_ms if end_ms is not None else now_ms()
    start = start_ms if start_ms is not None else end - days * DAY_MS
    try:
        return TimeRange(start=start, end=end).ensure_valid()
    except InvalidTimeRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))
