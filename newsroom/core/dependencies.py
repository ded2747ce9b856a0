from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import redis

from ..database import async_session, init_db
from ..services.pipeline.ledger import RunLedger
from ..services.pipeline.orchestrator import PipelineOrchestrator
from ..services.pipeline.scheduler import PipelineScheduler, get_scheduler, setup_scheduler
from ..services.pipeline.stages import StageGateway, build_stage_gateway
from .config import Settings, get_settings
from .errors import PipelineError
from .logging import init_logging, get_logger

# Global singletons for shared resources
_redis_client: Optional[redis.Redis] = None
_stage_gateway: Optional[StageGateway] = None

init_logging()
logger = get_logger(__name__)


def get_session_factory():
    """Session factory shared by services that open their own sessions."""
    return async_session


def get_redis_client() -> redis.Redis:
    """
    Get the shared Redis client instance.
    Creates one on first call and reuses it for all subsequent calls.
    """
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            decode_responses=True  # Return strings instead of bytes
        )
        logger.info(f"Redis client initialized: {settings.redis_host}:{settings.redis_port}")
    return _redis_client


def get_ledger(
    redis_client: redis.Redis = Depends(get_redis_client),
    settings: Settings = Depends(get_settings),
) -> RunLedger:
    return RunLedger(redis_client, settings)


def get_stage_gateway(
    ledger: RunLedger = Depends(get_ledger),
    session_factory=Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> StageGateway:
    global _stage_gateway
    if _stage_gateway is None:
        _stage_gateway = build_stage_gateway(session_factory, ledger=ledger, settings=settings)
    return _stage_gateway


def get_orchestrator(
    gateway: StageGateway = Depends(get_stage_gateway),
    ledger: RunLedger = Depends(get_ledger),
    session_factory=Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> PipelineOrchestrator:
    return PipelineOrchestrator(gateway, session_factory, ledger, settings)


def get_pipeline_scheduler(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    ledger: RunLedger = Depends(get_ledger),
    session_factory=Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> PipelineScheduler:
    scheduler = get_scheduler()
    if scheduler is None:
        scheduler = setup_scheduler(orchestrator, session_factory, ledger, settings)
    return scheduler


def raise_http(error: PipelineError, status_code: Optional[int] = None):
    """Translate a pipeline error into the HTTPException the API returns."""
    raise HTTPException(status_code=status_code or error.status_code, detail=error.to_dict()) from error


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle event handler for FastAPI"""
    settings = get_settings()
    await init_db()

    ledger = RunLedger(get_redis_client(), settings)
    gateway = build_stage_gateway(async_session, ledger=ledger, settings=settings)
    orchestrator = PipelineOrchestrator(gateway, async_session, ledger, settings)
    scheduler = setup_scheduler(orchestrator, async_session, ledger, settings)
    logger.info("Pipeline scheduler initialized")
    # Note: the timer is not auto-started - use POST /api/v1/scheduler/start

    yield

    if scheduler.is_running:
        await scheduler.stop()
        logger.info("Pipeline scheduler stopped")


def setup_cors(app: FastAPI):
    """Setup CORS middleware"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:8000", "http://127.0.0.1:8000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
