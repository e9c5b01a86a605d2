"""
Allowance API endpoints (manual trigger of the weekly allowance batch)
"""
import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from allowance_engine.api.deps import get_clock, get_session_factory, require_trigger_token
from allowance_engine.application.allowance_batch import AllowanceBatchCoordinator
from allowance_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/allowances", tags=["allowances"])


# === Response models ===

class RunAllowancesResponse(BaseModel):
    success: bool
    message: str
    processed: int
    skipped: int
    errors: int
    day: str


class RunAllowancesError(BaseModel):
    success: bool
    error: str


# === Endpoints ===

@router.post(
    "/run",
    response_model=RunAllowancesResponse,
    responses={500: {"model": RunAllowancesError}},
    dependencies=[Depends(require_trigger_token)],
)
def run_allowances(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Запустить обработку еженедельных пособий вручную"""
    logger.info("Manual trigger: processing weekly allowances")

    try:
        summary = AllowanceBatchCoordinator(session_factory, settings=settings, clock=clock).run()
    except Exception as exc:
        logger.exception("Error in manual allowance run")
        return JSONResponse(
            status_code=500,
            content=RunAllowancesError(success=False, error=str(exc)).model_dump(),
        )

    return RunAllowancesResponse(
        success=True,
        message="Weekly allowance processing complete",
        processed=summary.processed,
        skipped=summary.skipped,
        errors=summary.errored,
        day=summary.day,
    )
