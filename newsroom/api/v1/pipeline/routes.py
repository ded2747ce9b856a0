"""
Pipeline API routes.

Provides endpoints for:
- POST /pipeline/run - Trigger an orchestrator run
- GET /pipeline/status - Latest run summary
- GET /pipeline/runs/{run_id} - Stored run report
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ....core.dependencies import get_ledger, get_orchestrator, raise_http
from ....core.errors import PipelineError
from ....services.pipeline.ledger import RunLedger
from ....services.pipeline.orchestrator import PipelineOrchestrator

router = APIRouter(prefix="/pipeline", tags=["pipeline"])
logger = logging.getLogger(__name__)


class RunRequest(BaseModel):
    """Request body for a pipeline run."""
    mode: str = "full"
    force: bool = False


@router.post("/run")
async def trigger_run(
    request: RunRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """
    Run the pipeline in the given mode.

    Partial counts with a non-empty `errors` list are a normal outcome;
    only a failure to persist the run record returns 500.
    """
    logger.info(f"[PIPELINE] POST /run: mode={request.mode}, force={request.force}")
    try:
        run = await orchestrator.run(request.mode, force=request.force)
        return run.to_dict()
    except PipelineError as e:
        logger.error(f"[PIPELINE] Run rejected or failed: {e}")
        raise_http(e)
    except Exception as e:
        logger.error(f"[PIPELINE] Run failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Pipeline run failed: {str(e)}")


@router.get("/status")
async def pipeline_status(ledger: RunLedger = Depends(get_ledger)):
    """Latest run report, if the ledger still holds it."""
    try:
        return {
            "status": "active",
            "latest_run": ledger.latest_run(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    except PipelineError as e:
        logger.error(f"[PIPELINE] Failed to read status: {e}")
        raise_http(e)


@router.get("/runs/{run_id}")
async def get_run(run_id: str, ledger: RunLedger = Depends(get_ledger)):
    try:
        report = ledger.get_run(run_id)
    except PipelineError as e:
        raise_http(e)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found or expired")
    return report
