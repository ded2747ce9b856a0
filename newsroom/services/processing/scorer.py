"""
Relevance scoring for collected raw items.

Scores each unscored RawItem exactly once. The score function is
pluggable; the default weighs source priority, recency, category
importance, local keyword matches and content length.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Dict, Any
from datetime import datetime, timezone
import logging
import math

from sqlalchemy import select, update, desc

from newsroom.core.config import Settings, get_settings
from newsroom.models.news_item import RawItem, ensure_utc
from newsroom.services.collectors.config import (
    SOURCE_PRIORITY,
    CATEGORY_IMPORTANCE,
    CATEGORY_KEYWORDS,
    LOCAL_KEYWORDS,
)

logger = logging.getLogger(__name__)

ScoreFn = Callable[[RawItem, datetime], float]


@dataclass
class ScoringConfig:
    """Weights for the default relevance heuristic."""
    source_weight: float = 0.25
    recency_weight: float = 0.25
    category_weight: float = 0.20
    keyword_weight: float = 0.20
    content_weight: float = 0.10

    recency_half_life_hours: float = 24.0
    recency_max_age_hours: float = 168.0

    source_scores: Dict[str, float] = field(default_factory=lambda: dict(SOURCE_PRIORITY))
    category_importance: Dict[str, float] = field(default_factory=lambda: dict(CATEGORY_IMPORTANCE))
    local_keywords: List[str] = field(default_factory=lambda: list(LOCAL_KEYWORDS))


@dataclass
class ScoringReport:
    """Outcome of one scoring pass."""
    processed: int = 0
    qualified: int = 0
    items: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def qualification_rate(self) -> float:
        return self.qualified / self.processed if self.processed else 0.0

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "qualified": self.qualified,
            "qualification_rate": round(self.qualification_rate, 3),
            "items": self.items,
        }


def infer_category(text: str, hint: Optional[str] = None) -> str:
    """Pick the category whose keywords appear most often, falling back to the hint."""
    text = text.lower()
    best, best_hits = None, 0
    for category, keywords in CATEGORY_KEYWORDS.items():
        hits = sum(1 for kw in keywords if kw in text)
        if hits > best_hits:
            best, best_hits = category, hits
    return best or hint or "local"


class RelevanceHeuristic:
    """
    Default score function.

    Total and side-effect free: any RawItem, including one with missing
    fields, yields a float in [0, 1].
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def __call__(self, item: RawItem, now: datetime) -> float:
        cfg = self.config
        return (
            self._score_source(item) * cfg.source_weight
            + self._score_recency(item, now) * cfg.recency_weight
            + self._score_category(item) * cfg.category_weight
            + self._score_keywords(item) * cfg.keyword_weight
            + self._score_content(item) * cfg.content_weight
        )

    def _score_source(self, item: RawItem) -> float:
        return self.config.source_scores.get(item.source_id or "", 5.0) / 10.0

    def _score_recency(self, item: RawItem, now: datetime) -> float:
        """Exponential decay from publication (or collection) time."""
        pub_time = ensure_utc(item.published_at or item.collected_at)
        if pub_time is None:
            return 0.5
        age_hours = max(0.0, (now - pub_time).total_seconds() / 3600)
        if age_hours > self.config.recency_max_age_hours:
            return 0.0
        return 0.5 ** (age_hours / self.config.recency_half_life_hours)

    def _score_category(self, item: RawItem) -> float:
        category = infer_category(f"{item.title or ''} {item.body or ''}", item.category_hint)
        return self.config.category_importance.get(category, 5.0) / 10.0

    def _score_keywords(self, item: RawItem) -> float:
        text = f"{item.title or ''} {item.body or ''}".lower()
        hits = sum(1 for kw in self.config.local_keywords if kw in text)
        if hits == 0:
            return 0.2
        elif hits == 1:
            return 0.6
        elif hits == 2:
            return 0.8
        return 1.0

    def _score_content(self, item: RawItem) -> float:
        length = len(item.body or "")
        if length < 100:
            return 0.3
        elif length < 300:
            return 0.6
        elif length < 1000:
            return 0.85
        return 1.0


class RelevanceScorer:
    """Scores unscored RawItems and persists each score once."""

    def __init__(
        self,
        score_fn: Optional[ScoreFn] = None,
        settings: Optional[Settings] = None,
    ):
        self.score_fn = score_fn or RelevanceHeuristic()
        self.settings = settings or get_settings()
        self._logger = logging.getLogger(f"{__name__}.RelevanceScorer")

    def score(self, item: RawItem, now: Optional[datetime] = None) -> float:
        """Apply the score function and clamp to [0, 1]. NaN maps to 0."""
        value = float(self.score_fn(item, now or datetime.now(timezone.utc)))
        if math.isnan(value):
            return 0.0
        return min(1.0, max(0.0, value))

    async def score_pending(self, db_session, limit: Optional[int] = None) -> ScoringReport:
        """
        Score up to `limit` RawItems that have no score yet, newest first.

        Each write is guarded by `relevance_score IS NULL`, so an item
        scored concurrently by another pass is counted once only.
        """
        limit = limit or self.settings.scoring_batch_size
        threshold = self.settings.qualification_threshold
        stmt = (
            select(RawItem)
            .where(RawItem.relevance_score.is_(None))
            .order_by(desc(RawItem.collected_at))
            .limit(limit)
        )
        pending = (await db_session.execute(stmt)).scalars().all()
        report = ScoringReport()
        if not pending:
            self._logger.debug("[SCORE] No unscored items")
            return report

        now = datetime.now(timezone.utc)
        for item in pending:
            value = self.score(item, now)
            category = infer_category(f"{item.title or ''} {item.body or ''}", item.category_hint)
            result = await db_session.execute(
                update(RawItem)
                .where(RawItem.id == item.id, RawItem.relevance_score.is_(None))
                .values(relevance_score=value, scored_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                continue

            report.processed += 1
            if value >= threshold:
                report.qualified += 1
                report.items.append({
                    "id": item.id,
                    "title": item.title,
                    "score": round(value, 3),
                    "category": category,
                })

        await db_session.commit()
        self._logger.info(
            f"[SCORE] processed={report.processed}, qualified={report.qualified} "
            f"(threshold={threshold})"
        )
        return report
