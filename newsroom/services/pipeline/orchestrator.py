"""
Pipeline orchestrator.

Runs the stages of one pipeline run in order:

    collect -> score -> generate -> validate -> publish

Only the stages included in the run mode execute. Generation, validation
and publication work on bounded batches; every item yields an ItemResult
and the run report is derived from those results. A failing item or
stage is recorded and the run moves on. The report is persisted at the
end whatever happened.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging
import time
import uuid

from sqlalchemy import select, update, desc, exists
from sqlalchemy.exc import SQLAlchemyError

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import InvalidInput, RunInProgress, StorageFailure
from newsroom.models.article import Article, ArticleStatus
from newsroom.models.news_item import RawItem
from newsroom.models.pipeline_run import PipelineRunRecord
from newsroom.services.pipeline.ledger import RunLedger
from newsroom.services.pipeline.stages import StageGateway

logger = logging.getLogger(__name__)


class RunMode(str, Enum):
    COLLECT = "collect"
    SCORE = "score"
    GENERATE = "generate"
    VALIDATE = "validate"
    PUBLISH = "publish"
    FULL = "full"

    @classmethod
    def parse(cls, value) -> "RunMode":
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise InvalidInput(f"Unknown mode {value!r}; expected one of: {allowed}") from None


STAGE_ORDER = ["collect", "score", "generate", "validate", "publish"]
COUNT_KEYS = {
    "collect": "collected",
    "score": "scored",
    "generate": "generated",
    "validate": "validated",
    "publish": "published",
}


def stages_for(mode: RunMode) -> List[str]:
    if mode == RunMode.FULL:
        return list(STAGE_ORDER)
    return [mode.value]


@dataclass
class ItemResult:
    """Success or failure of one item inside a stage batch."""
    item_id: str
    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, item_id: str, value: Any = None) -> "ItemResult":
        return cls(item_id=item_id, ok=True, value=value)

    @classmethod
    def failure(cls, item_id: str, exc: BaseException) -> "ItemResult":
        return cls(item_id=item_id, ok=False, error=f"{type(exc).__name__}: {exc}")


@dataclass
class StageOutcome:
    stage: str
    count: int = 0
    results: List[ItemResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    failed: bool = False

    @property
    def status(self) -> str:
        if self.failed:
            return "failed"
        if self.errors:
            return "partial"
        return "ok"


@dataclass
class PipelineRun:
    """Report for one orchestrator run."""
    run_id: str
    mode: RunMode
    started_at: datetime
    completed_at: Optional[datetime] = None
    counts: Dict[str, int] = field(default_factory=lambda: {key: 0 for key in COUNT_KEYS.values()})
    errors: List[str] = field(default_factory=list)
    worker_status: Dict[str, str] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return not self.errors

    def apply(self, outcome: StageOutcome):
        self.counts[COUNT_KEYS[outcome.stage]] = outcome.count
        self.errors.extend(f"{outcome.stage}: {e}" for e in outcome.errors)
        self.worker_status[outcome.stage] = outcome.status

    def to_dict(self) -> dict:
        return {
            "pipeline_run_id": self.run_id,
            "mode": self.mode.value,
            **self.counts,
            "errors": list(self.errors),
            "worker_status": dict(self.worker_status),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "success": self.success,
        }

    def to_record(self) -> PipelineRunRecord:
        return PipelineRunRecord(
            id=self.run_id,
            mode=self.mode.value,
            started_at=self.started_at,
            completed_at=self.completed_at,
            errors=list(self.errors),
            worker_status=dict(self.worker_status),
            success=self.success,
            **self.counts,
        )


class PipelineOrchestrator:
    """Sequences the stages of a run through a StageGateway."""

    def __init__(
        self,
        gateway: StageGateway,
        session_factory,
        ledger: RunLedger,
        settings: Optional[Settings] = None,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.ledger = ledger
        self.settings = settings or get_settings()
        self._logger = logging.getLogger(f"{__name__}.PipelineOrchestrator")

    async def run(self, mode, force: bool = False) -> PipelineRun:
        """
        Execute one run.

        Args:
            mode: RunMode or its string value
            force: Skip the run lease

        Raises:
            InvalidInput: unknown mode
            RunInProgress: another run of this mode holds the lease
            StorageFailure: the final run record could not be persisted
        """
        mode = RunMode.parse(mode)
        token = None
        if not force:
            token = self.ledger.acquire_lease(mode.value)
            if token is None:
                raise RunInProgress(f"A {mode.value} run is already in progress")

        try:
            return await self._execute(mode)
        finally:
            if token:
                try:
                    self.ledger.release_lease(mode.value, token)
                except StorageFailure as e:
                    self._logger.warning(f"[PIPELINE] Lease release failed, it will expire: {e}")

    async def _execute(self, mode: RunMode) -> PipelineRun:
        run = PipelineRun(run_id=str(uuid.uuid4()), mode=mode, started_at=datetime.now(timezone.utc))
        start_time = time.time()
        included = stages_for(mode)
        self._logger.info(f"[PIPELINE] Run {run.run_id} started: mode={mode.value}")

        handlers: Dict[str, Callable[[], Awaitable[StageOutcome]]] = {
            "collect": self._stage_collect,
            "score": self._stage_score,
            "generate": self._stage_generate,
            "validate": self._stage_validate,
            "publish": self._stage_publish,
        }

        for stage in STAGE_ORDER:
            if stage not in included:
                run.worker_status[stage] = "skipped"
                continue
            try:
                outcome = await handlers[stage]()
            except Exception as e:
                self._logger.error(f"[PIPELINE] Stage {stage} failed: {e}", exc_info=True)
                outcome = StageOutcome(stage=stage, errors=[f"{type(e).__name__}: {e}"], failed=True)
            run.apply(outcome)
            self._logger.info(
                f"[PIPELINE] Stage {stage}: {outcome.status}, count={outcome.count}, errors={len(outcome.errors)}"
            )

        run.completed_at = datetime.now(timezone.utc)
        run.duration_ms = int((time.time() - start_time) * 1000)
        await self._persist(run)

        self._logger.info(
            f"[PIPELINE] Run {run.run_id} finished in {run.duration_ms}ms: "
            f"{run.counts}, errors={len(run.errors)}"
        )
        return run

    async def _persist(self, run: PipelineRun):
        try:
            async with self.session_factory() as session:
                session.add(run.to_record())
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to persist run {run.run_id}: {e}") from e
        self.ledger.save_run(run.to_dict())

    async def _run_batch(self, items: List[Any], key: Callable[[Any], str], call) -> List[ItemResult]:
        """Run `call` over items with bounded parallelism; never raises."""
        semaphore = asyncio.Semaphore(max(1, self.settings.stage_concurrency))

        async def run_one(item) -> ItemResult:
            item_id = key(item)
            async with semaphore:
                try:
                    return ItemResult.success(item_id, await call(item))
                except Exception as e:
                    self._logger.warning(f"[PIPELINE] Item {item_id} failed: {type(e).__name__}: {e}")
                    return ItemResult.failure(item_id, e)

        return list(await asyncio.gather(*(run_one(item) for item in items)))

    @staticmethod
    def _outcome(stage: str, results: List[ItemResult], counted: Optional[Callable[[ItemResult], bool]] = None) -> StageOutcome:
        counted = counted or (lambda r: True)
        return StageOutcome(
            stage=stage,
            count=sum(1 for r in results if r.ok and counted(r)),
            results=results,
            errors=[f"{r.item_id}: {r.error}" for r in results if not r.ok],
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _stage_collect(self) -> StageOutcome:
        report = await self.gateway.collect()
        return StageOutcome(
            stage="collect",
            count=int(report.get("collected", 0)),
            errors=list(report.get("errors", [])),
        )

    async def _stage_score(self) -> StageOutcome:
        report = await self.gateway.score()
        return StageOutcome(stage="score", count=int(report.get("processed", 0)))

    async def select_generation_batch(self, limit: int, min_score: float) -> List[RawItem]:
        """Highest-scoring raw items at or above min_score without an article."""
        has_article = exists().where(Article.raw_item_id == RawItem.id)
        stmt = (
            select(RawItem)
            .where(RawItem.relevance_score >= min_score, ~has_article)
            .order_by(desc(RawItem.relevance_score), desc(RawItem.collected_at))
            .limit(limit)
        )
        async with self.session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    def region_for(self, item: RawItem) -> str:
        if item.source_id in self.settings.city_segments:
            return item.source_id
        return self.settings.default_region

    async def generate_items(self, items: List[RawItem]) -> List[ItemResult]:
        return await self._run_batch(
            items,
            key=lambda item: item.id,
            call=lambda item: self.gateway.generate(raw_item_id=item.id, region=self.region_for(item)),
        )

    async def _stage_generate(self) -> StageOutcome:
        batch = await self.select_generation_batch(
            self.settings.generation_batch_size,
            self.settings.qualification_threshold,
        )
        return self._outcome("generate", await self.generate_items(batch))

    async def _stage_validate(self) -> StageOutcome:
        stmt = (
            select(Article)
            .where(Article.status == ArticleStatus.GENERATED.value)
            .order_by(Article.created_at)
            .limit(self.settings.validation_batch_size)
        )
        async with self.session_factory() as session:
            batch = list((await session.execute(stmt)).scalars().all())

        async def validate_one(article: Article) -> dict:
            verdict = await self.gateway.validate(
                content_text=article.body,
                category=article.category,
                title=article.title,
                content_id=article.id,
            )
            await self._apply_verdict(article.id, verdict)
            return verdict

        return self._outcome("validate", await self._run_batch(batch, lambda a: a.id, validate_one))

    async def _apply_verdict(self, article_id: str, verdict: Dict[str, Any]):
        """generated -> validated when approved, otherwise -> review."""
        approved = bool(verdict.get("approved"))
        values = {"status": ArticleStatus.VALIDATED.value if approved else ArticleStatus.REVIEW.value}
        if not approved:
            values["rejection_reason"] = ", ".join(verdict.get("flags") or []) or "below validation threshold"
        async with self.session_factory() as session:
            await session.execute(
                update(Article)
                .where(Article.id == article_id, Article.status == ArticleStatus.GENERATED.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def _stage_publish(self) -> StageOutcome:
        stmt = (
            select(Article)
            .where(
                Article.status == ArticleStatus.VALIDATED.value,
                Article.confidence >= self.settings.publish_threshold,
            )
            .order_by(desc(Article.confidence), Article.created_at)
            .limit(self.settings.publish_batch_size)
        )
        async with self.session_factory() as session:
            batch = list((await session.execute(stmt)).scalars().all())

        results = await self._run_batch(
            batch,
            key=lambda a: a.id,
            call=lambda a: self.gateway.publish(content_id=a.id, auto_publish=True),
        )
        return self._outcome(
            "publish",
            results,
            counted=lambda r: not (r.value or {}).get("already_published", False),
        )
