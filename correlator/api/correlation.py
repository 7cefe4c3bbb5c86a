"""Correlation API endpoints: enhanced analysis, pair batches, dose-response,
daily-log correlation and recalculation."""
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from correlator.api.dependencies import (
    get_cache,
    get_event_store,
    get_orchestrator,
    get_recalculation_service,
    get_scheduler,
    resolve_time_range,
)
from correlator.services.correlation_cache import SqlCorrelationCache
from correlator.services.daily_log_correlation import DailyLogCorrelationService
from correlator.services.dose_response import DoseResponseService
from correlator.services.errors import CorrelationValidationError
from correlator.services.event_store import SqlEventStore
from correlator.services.orchestration_service import CorrelationOrchestrationService
from correlator.services.recalculation_scheduler import RecalculationScheduler
from correlator.services.recalculation_service import RecalculationService
from correlator.services.schemas import (
    CauseKind,
    CombinationOptions,
    CorrelationDirection,
    DailyLogCorrelationResult,
    DailyLogMetric,
    DoseResponseResult,
    EnhancedResult,
    PairBatchResult,
    PairRequest,
    ThresholdOperator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/correlation", tags=["correlation"])


class CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EnhancedRequest(CamelRequest):
    """Request model for enhanced (individual + combination) analysis."""

    user_id: str | None = None
    symptom_id: str | None = None
    start_ms: int | None = None
    end_ms: int | None = None
    min_sample_size: int | None = None  # Defaults to settings.correlation_min_sample_size
    max_pairs: int | None = None
    synergy_threshold: float | None = None
    bypass_cache: bool = False


class PairsRequest(CamelRequest):
    user_id: str | None = None
    pairs: list[PairRequest] = []
    start_ms: int | None = None
    end_ms: int | None = None
    min_sample_size: int | None = None
    bypass_cache: bool = False


class RecalculateRequest(CamelRequest):
    user_id: str | None = None
    background: bool = False  # Queue a worker job instead of computing inline


class DataLoggedRequest(CamelRequest):
    """Notification that new events were logged for a user."""

    user_id: str | None = None
    cause_kind: CauseKind | None = None
    cause_id: str | None = None
    symptom_id: str | None = None


def _combination_options(request: EnhancedRequest) -> CombinationOptions:
    overrides = {
        "min_sample_size": request.min_sample_size,
        "max_pairs": request.max_pairs,
        "synergy_threshold": request.synergy_threshold,
    }
    try:
        return CombinationOptions(**{k: v for k, v in overrides.items() if v is not None})
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid options: {e}")


async def _enhanced(
    request: EnhancedRequest,
    orchestrator: CorrelationOrchestrationService,
    missing_message: str,
) -> EnhancedResult:
    if not request.user_id or not request.symptom_id:
        logger.warning(
            "Enhanced correlation rejected: user_id=%s symptom_id=%s",
            request.user_id,
            request.symptom_id,
        )
        raise HTTPException(status_code=400, detail=missing_message)

    time_range = resolve_time_range(request.start_ms, request.end_ms)
    options = _combination_options(request)

    try:
        return await orchestrator.compute_with_combinations(
            request.user_id,
            request.symptom_id,
            time_range,
            options=options,
            bypass_cache=request.bypass_cache,
        )
    except CorrelationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Enhanced correlation failed for user %s", request.user_id)
        raise HTTPException(status_code=500, detail="Failed to compute enhanced correlation")


@router.post("/enhanced", response_model=EnhancedResult)
async def enhanced_correlation(
    request: EnhancedRequest = Body(...),
    orchestrator: CorrelationOrchestrationService = Depends(get_orchestrator),
):
    """
    Individual correlations for every food in range plus synergistic
    combinations for one symptom.
    """
    return await _enhanced(
        request, orchestrator, "Missing required fields: userId, symptomId"
    )


@router.get("/enhanced", response_model=EnhancedResult)
async def enhanced_correlation_query(
    userId: str | None = None,
    symptomId: str | None = None,
    startMs: int | None = None,
    endMs: int | None = None,
    minSampleSize: int | None = None,
    orchestrator: CorrelationOrchestrationService = Depends(get_orchestrator),
):
    """Query-string variant of POST /correlation/enhanced."""
    request = EnhancedRequest(
        user_id=userId,
        symptom_id=symptomId,
        start_ms=startMs,
        end_ms=endMs,
        min_sample_size=minSampleSize,
    )
    return await _enhanced(
        request, orchestrator, "Missing required query params: userId, symptomId"
    )


@router.post("/pairs", response_model=PairBatchResult)
async def correlate_pairs(
    request: PairsRequest = Body(...),
    orchestrator: CorrelationOrchestrationService = Depends(get_orchestrator),
):
    """Compute a batch of (cause, effect) pairs; failures are reported per pair."""
    if not request.user_id:
        raise HTTPException(status_code=400, detail="Missing required fields: userId")

    time_range = resolve_time_range(request.start_ms, request.end_ms)
    try:
        return await orchestrator.compute_multiple_pairs(
            request.user_id,
            request.pairs,
            time_range,
            min_sample_size=request.min_sample_size,
            bypass_cache=request.bypass_cache,
        )
    except CorrelationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Pair batch failed for user %s", request.user_id)
        raise HTTPException(status_code=500, detail="Failed to compute correlations")


@router.post("/recalculate")
async def recalculate(
    request: RecalculateRequest = Body(...),
    service: RecalculationService = Depends(get_recalculation_service),
    scheduler: RecalculationScheduler = Depends(get_scheduler),
):
    """Manual recalculation, bypassing fresh cache entries."""
    if not request.user_id:
        raise HTTPException(status_code=400, detail="Missing required fields: userId")

    if request.background:
        scheduler.schedule_now(request.user_id, force=True)
        return {"status": "queued", "userId": request.user_id}

    try:
        result = await service.recalculate_user(request.user_id, force=True)
    except Exception:
        logger.exception("Manual recalculation failed for user %s", request.user_id)
        raise HTTPException(status_code=500, detail="Failed to recalculate correlations")
    return {
        "status": "completed",
        "userId": request.user_id,
        "computed": result.computed,
        "errors": [e.model_dump(by_alias=True) for e in result.errors],
    }


@router.post("/data-logged")
async def data_logged(
    request: DataLoggedRequest = Body(...),
    service: RecalculationService = Depends(get_recalculation_service),
    scheduler: RecalculationScheduler = Depends(get_scheduler),
):
    """Invalidate affected cache entries and schedule a debounced recalculation."""
    if not request.user_id:
        raise HTTPException(status_code=400, detail="Missing required fields: userId")

    invalidated = await service.on_data_logged(
        request.user_id,
        cause_kind=request.cause_kind,
        cause_id=request.cause_id,
        effect_id=request.symptom_id,
    )
    scheduled = scheduler.schedule(request.user_id)
    return {"invalidated": invalidated, "scheduled": scheduled}


@router.get("/dose-response", response_model=DoseResponseResult)
async def dose_response(
    userId: str | None = None,
    foodId: str | None = None,
    symptomId: str | None = None,
    startMs: int | None = None,
    endMs: int | None = None,
    event_store: SqlEventStore = Depends(get_event_store),
):
    """Severity of a symptom against the logged portion size of one food."""
    if not userId or not foodId or not symptomId:
        raise HTTPException(
            status_code=400, detail="Missing required query params: userId, foodId, symptomId"
        )

    time_range = resolve_time_range(startMs, endMs)
    try:
        return await DoseResponseService(event_store).analyze(
            userId, foodId, symptomId, time_range
        )
    except CorrelationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/daily-log", response_model=DailyLogCorrelationResult)
async def daily_log_correlation(
    userId: str | None = None,
    metric: DailyLogMetric | None = None,
    symptomId: str | None = None,
    threshold: float | None = None,
    operator: ThresholdOperator = "<",
    direction: CorrelationDirection = "forward",
    startMs: int | None = None,
    endMs: int | None = None,
    minSampleSize: int | None = Query(default=None, ge=1),
    event_store: SqlEventStore = Depends(get_event_store),
):
    """
    Correlate days where a wellbeing metric passed a threshold (e.g.
    sleepHours < 6) with a symptom, in either direction.
    """
    if not userId or not metric or not symptomId or threshold is None:
        raise HTTPException(
            status_code=400,
            detail="Missing required query params: userId, metric, symptomId, threshold",
        )

    time_range = resolve_time_range(startMs, endMs)
    try:
        return await DailyLogCorrelationService(event_store).compute_correlation(
            userId,
            metric,
            symptomId,
            direction,
            time_range,
            threshold,
            operator,
            min_sample_size=minSampleSize,
        )
    except CorrelationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/cache/stats")
async def cache_stats(
    userId: str | None = None,
    cache: SqlCorrelationCache = Depends(get_cache),
):
    if not userId:
        raise HTTPException(status_code=400, detail="Missing required query params: userId")
    return await cache.stats(userId)
