"""
Pipeline orchestration: run ledger, stage gateways, orchestrator and scheduler.

Usage:
    from newsroom.services.pipeline import PipelineOrchestrator, RunMode

    orchestrator = PipelineOrchestrator(gateway, async_session, ledger)
    run = await orchestrator.run(RunMode.FULL)
"""
from .ledger import RunLedger
from .stages import StageGateway, LocalStageGateway, HttpStageGateway, build_stage_gateway
from .orchestrator import PipelineOrchestrator, PipelineRun, RunMode, ItemResult
from .scheduler import PipelineScheduler, get_scheduler, setup_scheduler

__all__ = [
    "RunLedger",
    "StageGateway",
    "LocalStageGateway",
    "HttpStageGateway",
    "build_stage_gateway",
    "PipelineOrchestrator",
    "PipelineRun",
    "RunMode",
    "ItemResult",
    "PipelineScheduler",
    "get_scheduler",
    "setup_scheduler",
]
