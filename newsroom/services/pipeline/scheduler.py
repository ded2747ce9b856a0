"""
Daily pipeline scheduler.

Each pass, in order:
    1. full orchestrator run
    2. backfill generation when fewer than MIN_DAILY_PUBLISHED articles went out today
    3. newsletter hand-off at NEWSLETTER_HOUR
    4. retention cleanup

The scheduler never publishes; it only widens the generation backlog and
keeps the tables tidy.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select, update, delete, func

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import PipelineError
from newsroom.models.article import Article, ArticleStatus
from newsroom.models.news_item import RawItem
from newsroom.services.newsletter import NewsletterTrigger
from newsroom.services.pipeline.ledger import RunLedger
from newsroom.services.pipeline.orchestrator import PipelineOrchestrator, RunMode

logger = logging.getLogger(__name__)

PURGEABLE_STATUSES = [ArticleStatus.DRAFT.value, ArticleStatus.GENERATED.value]


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class PipelineScheduler:
    """Runs the daily pass on a timer and on demand."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        session_factory,
        ledger: RunLedger,
        newsletter: Optional[NewsletterTrigger] = None,
        settings: Optional[Settings] = None,
    ):
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.ledger = ledger
        self.settings = settings or get_settings()
        self.newsletter = newsletter or NewsletterTrigger(self.settings)
        self.is_running = False
        self.next_run_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None
        self._logger = logging.getLogger("scheduler")

    # ------------------------------------------------------------------
    # Daily pass
    # ------------------------------------------------------------------

    async def run_daily(self, now: Optional[datetime] = None, force: bool = False) -> Dict[str, Any]:
        """Run one scheduler pass and return its summary. A failing step never skips the rest."""
        now = now or datetime.now(timezone.utc)
        self._logger.info(f"[SCHEDULER] Daily pass started at {now.isoformat()}")
        summary: Dict[str, Any] = {"started_at": now.isoformat(), "success": True}

        async def pipeline_run():
            return (await self.orchestrator.run(RunMode.FULL, force=force)).to_dict()

        await self._step(summary, "pipeline", pipeline_run, {"success": False})
        await self._step(summary, "backfill", lambda: self.ensure_minimum_output(now), {"triggered": False})

        if now.hour == self.settings.newsletter_hour:
            await self._step(summary, "newsletter", self.newsletter.trigger, {"triggered": False})
        else:
            summary["newsletter"] = {"triggered": False, "reason": "outside newsletter hour"}

        await self._step(summary, "cleanup", lambda: self.cleanup(now), {})
        summary["completed_at"] = datetime.now(timezone.utc).isoformat()

        self.ledger.save_scheduler_run(summary)
        self._logger.info(
            f"[SCHEDULER] Daily pass finished: success={summary['success']}, "
            f"backfill={summary['backfill'].get('generated', 0)}, purged={summary['cleanup']}"
        )
        return summary

    async def _step(self, summary: Dict[str, Any], name: str, step, failure: Dict[str, Any]):
        try:
            summary[name] = await step()
        except PipelineError as e:
            self._logger.error(f"[SCHEDULER] {name} failed: {e}")
            summary[name] = {**failure, "error": str(e)}
            summary["success"] = False
        except Exception as e:
            self._logger.error(f"[SCHEDULER] {name} failed unexpectedly: {e}", exc_info=True)
            summary[name] = {**failure, "error": f"{type(e).__name__}: {e}"}
            summary["success"] = False

    async def count_published_today(self, now: datetime) -> int:
        async with self.session_factory() as session:
            return (await session.execute(
                select(func.count(Article.id)).where(
                    Article.status == ArticleStatus.PUBLISHED.value,
                    Article.published_at >= start_of_day(now),
                )
            )).scalar_one()

    async def ensure_minimum_output(self, now: datetime) -> Dict[str, Any]:
        """Push extra high-scoring raw items through generation when today's output is short."""
        published_today = await self.count_published_today(now)
        target = self.settings.min_daily_published
        result: Dict[str, Any] = {"published_today": published_today, "target": target, "triggered": False}
        if published_today >= target:
            return result

        batch = await self.orchestrator.select_generation_batch(
            self.settings.backfill_batch_size,
            self.settings.backfill_score_threshold,
        )
        results = await self.orchestrator.generate_items(batch)
        result.update({
            "triggered": True,
            "selected": len(batch),
            "generated": sum(1 for r in results if r.ok),
            "errors": [f"{r.item_id}: {r.error}" for r in results if not r.ok],
        })
        self._logger.info(
            f"[SCHEDULER] Backfill: published_today={published_today} < {target}, "
            f"generated {result['generated']}/{len(batch)}"
        )
        return result

    async def cleanup(self, now: datetime) -> Dict[str, int]:
        """Purge stale low-score raw items and stale unpublished drafts."""
        cutoff = now - timedelta(days=self.settings.retention_days)
        stale_raw = select(RawItem.id).where(
            RawItem.collected_at < cutoff,
            RawItem.relevance_score < self.settings.purge_score_threshold,
        )

        async with self.session_factory() as session:
            await session.execute(
                update(Article)
                .where(Article.raw_item_id.in_(stale_raw))
                .values(raw_item_id=None)
                .execution_options(synchronize_session=False)
            )
            raw_deleted = await session.execute(
                delete(RawItem)
                .where(RawItem.id.in_(stale_raw))
                .execution_options(synchronize_session=False)
            )
            drafts_deleted = await session.execute(
                delete(Article)
                .where(Article.created_at < cutoff, Article.status.in_(PURGEABLE_STATUSES))
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        return {"raw_items": raw_deleted.rowcount or 0, "articles": drafts_deleted.rowcount or 0}

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def today_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.now(timezone.utc)
        midnight = start_of_day(now)
        async with self.session_factory() as session:
            created = (await session.execute(
                select(Article.status, func.count(Article.id))
                .where(Article.created_at >= midnight)
                .group_by(Article.status)
            )).all()
            collected = (await session.execute(
                select(func.count(RawItem.id)).where(RawItem.collected_at >= midnight)
            )).scalar_one()
        by_status = {status: count for status, count in created}
        return {
            "collected": collected,
            "generated": sum(by_status.values()),
            "by_status": by_status,
            "published": await self.count_published_today(now),
        }

    def next_run_time(self, now: Optional[datetime] = None) -> datetime:
        """Next NEWSLETTER_HOUR:00 UTC strictly after `now`."""
        if self.next_run_at and now is None:
            return self.next_run_at
        now = now or datetime.now(timezone.utc)
        candidate = now.replace(hour=self.settings.newsletter_hour, minute=0, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    async def get_status(self) -> Dict[str, Any]:
        return {
            "scheduler": "active" if self.is_running else "idle",
            "is_running": self.is_running,
            "last_run": self.ledger.last_scheduler_run(),
            "today_stats": await self.today_stats(),
            "next_scheduled": self.next_run_time().isoformat(),
            "run_hour": self.settings.newsletter_hour,
        }

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    async def start(self):
        if self.is_running:
            self._logger.warning("Scheduler already running")
            return
        self.is_running = True
        self.next_run_at = self.next_run_time(datetime.now(timezone.utc))
        self._task = asyncio.create_task(self._loop(), name="pipeline_scheduler")
        self._logger.info(f"[SCHEDULER] Started, next pass at {self.next_run_at.isoformat()}")

    async def stop(self, timeout: float = 30.0):
        if not self.is_running:
            return
        self.is_running = False
        if self._task and not self._task.done():
            self._task.cancel()
            await asyncio.wait([self._task], timeout=timeout)
        self._task = None
        self.next_run_at = None
        self._logger.info("[SCHEDULER] Stopped")

    async def _loop(self):
        while self.is_running:
            if self.next_run_at is None:
                self.next_run_at = self.next_run_time(datetime.now(timezone.utc))
            try:
                delay = (self.next_run_at - datetime.now(timezone.utc)).total_seconds()
                await asyncio.sleep(max(delay, 0))
                if not self.is_running:
                    break
                await self.run_daily()
            except asyncio.CancelledError:
                self._logger.debug("[SCHEDULER] Loop cancelled")
                break
            except Exception as e:
                self._logger.error(f"[SCHEDULER] Unexpected error in daily pass: {e}", exc_info=True)
            self.next_run_at = self.next_run_time(datetime.now(timezone.utc))


_scheduler: Optional[PipelineScheduler] = None


def get_scheduler() -> Optional[PipelineScheduler]:
    """Return the global scheduler, if one was set up."""
    return _scheduler


def setup_scheduler(
    orchestrator: PipelineOrchestrator,
    session_factory,
    ledger: RunLedger,
    settings: Optional[Settings] = None,
) -> PipelineScheduler:
    """Create the global scheduler (not started)."""
    global _scheduler
    _scheduler = PipelineScheduler(orchestrator, session_factory, ledger, settings=settings)
    return _scheduler
