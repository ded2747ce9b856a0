"""
Collection API routes.

Provides endpoints for:
- POST /collect - Collect feeds, or list stored raw items with include_raw
- GET /collect/health - Per-source health snapshots
- GET /collect/sources - Configured feed sources
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.config import Settings, get_settings
from ....core.dependencies import get_ledger, get_session_factory, raise_http
from ....core.errors import PipelineError
from ....database import get_db
from ....services.collectors import FEED_SOURCES, FeedCollector
from ....services.pipeline.ledger import RunLedger

router = APIRouter(prefix="/collect", tags=["collection"])
logger = logging.getLogger(__name__)


def get_collector(
    session_factory=Depends(get_session_factory),
    ledger: RunLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
) -> FeedCollector:
    return FeedCollector(session_factory, ledger=ledger, settings=settings)


@router.post("")
async def collect(
    include_raw: bool = False,
    sources: Optional[str] = Query(None, description="Comma-separated source ids"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    collector: FeedCollector = Depends(get_collector),
    db: AsyncSession = Depends(get_db),
):
    """
    Collect the configured feeds.

    Source failures are reported per source in `by_source`; they never
    fail the request.
    """
    source_ids = [s.strip() for s in sources.split(",") if s.strip()] if sources else None
    logger.info(f"[COLLECTION] POST /collect: include_raw={include_raw}, sources={source_ids}, limit={limit}")
    try:
        if include_raw:
            return await collector.list_raw_items(db, limit=limit or 50)
        report = await collector.collect(sources=source_ids, limit=limit)
        return report.to_dict()
    except PipelineError as e:
        raise_http(e)
    except Exception as e:
        logger.error(f"[COLLECTION] Collection failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Collection failed: {str(e)}")


@router.get("/health")
async def collection_health(ledger: RunLedger = Depends(get_ledger)):
    """Health snapshots; a source whose last fetch failed counts as degraded."""
    try:
        snapshots = ledger.list_source_health()
    except PipelineError as e:
        raise_http(e)

    degraded = [s["source_id"] for s in snapshots if not s.get("last_ok", True)]
    return {
        "overall": "degraded" if degraded else "healthy",
        "degraded": degraded,
        "sources": snapshots,
    }


@router.get("/sources")
async def list_sources():
    return {"sources": [s.to_dict() for s in FEED_SOURCES]}
