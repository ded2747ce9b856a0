"""
Scheduler API routes.

Provides endpoints for:
- GET /scheduler - Scheduler state and today's stats
- POST /scheduler - Run the daily pass now
- POST /scheduler/start, /scheduler/stop - Control the timer
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ....core.dependencies import get_pipeline_scheduler, raise_http
from ....core.errors import PipelineError
from ....services.pipeline.scheduler import PipelineScheduler

router = APIRouter(prefix="/scheduler", tags=["scheduler"])
logger = logging.getLogger(__name__)


@router.get("")
async def scheduler_status(scheduler: PipelineScheduler = Depends(get_pipeline_scheduler)):
    try:
        return await scheduler.get_status()
    except PipelineError as e:
        raise_http(e)
    except Exception as e:
        logger.error(f"[SCHEDULER] Failed to get status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to get scheduler status: {str(e)}")


@router.post("")
async def run_scheduler_now(
    force: bool = False,
    scheduler: PipelineScheduler = Depends(get_pipeline_scheduler),
):
    """Manual trigger; the `pipeline` section has the same shape as POST /pipeline/run."""
    logger.info(f"[SCHEDULER] POST /scheduler: manual daily pass (force={force})")
    try:
        return await scheduler.run_daily(force=force)
    except PipelineError as e:
        raise_http(e)
    except Exception as e:
        logger.error(f"[SCHEDULER] Manual pass failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Scheduler run failed: {str(e)}")


@router.post("/start")
async def start_scheduler(scheduler: PipelineScheduler = Depends(get_pipeline_scheduler)):
    await scheduler.start()
    return {"status": "started", "next_scheduled": scheduler.next_run_time().isoformat()}


@router.post("/stop")
async def stop_scheduler(scheduler: PipelineScheduler = Depends(get_pipeline_scheduler)):
    await scheduler.stop()
    return {"status": "stopped"}
