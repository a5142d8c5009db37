"""
Scheduler API - status, missed-run check and manual trigger.
"""
import logging

from fastapi import APIRouter, Depends

from autoblog.api.deps import get_scheduler
from autoblog.workers.scheduler import Scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/scheduler", tags=["scheduler"])


@router.get("/status")
async def scheduler_status(scheduler: Scheduler = Depends(get_scheduler)):
    return {"success": True, "data": await scheduler.get_status()}


@router.post("/check")
async def check_missed_run(scheduler: Scheduler = Depends(get_scheduler)):
    """Fire the last trigger if it was missed (e.g. the worker was down)."""
    outcome = await scheduler.check_missed_run()
    return {"success": True, "data": outcome.to_dict() if outcome else None}


@router.post("/run")
async def run_now(scheduler: Scheduler = Depends(get_scheduler)):
    """Run the gated scheduled generation immediately."""
    outcome = await scheduler.run_scheduled_generation()
    logger.info("Manual scheduler run: %s", outcome.outcome)
    return {"success": True, "data": outcome.to_dict()}
