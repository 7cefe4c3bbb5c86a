"""Scheduled batch endpoint, called by an external cron with a shared secret."""
import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException

from correlator.api.dependencies import get_recalculation_service
from correlator.config import settings
from correlator.services.clock import now_ms
from correlator.services.recalculation_service import RecalculationService
from correlator.services.schemas import BatchSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Reject the request unless it carries `Bearer <CRON_SECRET>`."""
    expected = settings.cron_secret
    if not expected or not authorization or not authorization.startswith("Bearer "):
        logger.warning("Cron request rejected: missing credentials")
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = authorization[len("Bearer "):]
    if not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Cron request rejected: invalid secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route(
    "/correlations",
    methods=["GET", "POST"],
    response_model=BatchSummary,
    dependencies=[Depends(require_cron_secret)],
)
async def run_correlation_batch(
    budgetMs: int | None = None,
    service: RecalculationService = Depends(get_recalculation_service),
):
    """
    Sweep expired cache entries and refresh correlations for every user.

    `budgetMs` sets a soft deadline: pairs not started before it are skipped
    and the partial summary is returned.
    """
    deadline = now_ms() + budgetMs if budgetMs is not None else None
    try:
        return await service.run_scheduled_batch(deadline=deadline)
    except Exception:
        logger.exception("Scheduled correlation batch failed")
        raise HTTPException(status_code=500, detail="Internal server error")
