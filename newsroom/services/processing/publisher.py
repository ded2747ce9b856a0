"""
Publishing of validated, high-confidence articles.

Publication is a one-way status change plus append-only Publication rows,
one per audience segment.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import InvalidInput, NotFound, PreconditionFailed
from newsroom.models.article import Article, ArticleStatus, Publication
from newsroom.models.news_item import ensure_utc
from newsroom.services.collectors.config import CITY_WIDE_CATEGORIES

logger = logging.getLogger(__name__)


@dataclass
class PublishRequest:
    content_id: Optional[str]
    auto_publish: bool = False
    segment: Optional[str] = None


class Publisher:
    """Promotes validated Articles whose confidence clears the publish threshold."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._logger = logging.getLogger(f"{__name__}.Publisher")

    def target_segments(self, article: Article, segment: Optional[str] = None) -> List[str]:
        """Explicit segment, else every city segment for city-wide news, else the article's region."""
        if segment:
            return [segment]
        if (article.category or "").lower() in CITY_WIDE_CATEGORIES:
            return list(self.settings.city_segments)
        return [article.region or self.settings.default_region]

    def check_eligible(self, article: Article):
        threshold = self.settings.publish_threshold
        if article.status != ArticleStatus.VALIDATED.value:
            raise PreconditionFailed(
                f"Article {article.id} has status {article.status!r}, expected 'validated'",
                content_id=article.id,
            )
        if article.confidence is None or article.confidence < threshold:
            raise PreconditionFailed(
                f"Article {article.id} confidence {article.confidence} below publish threshold {threshold}",
                content_id=article.id,
                required_confidence=threshold,
            )

    async def publish(self, request: PublishRequest, db_session) -> dict:
        """
        Publish one article.

        Raises:
            InvalidInput: content_id missing
            NotFound: no such article
            PreconditionFailed: not validated or confidence below the threshold
        """
        if not request.content_id:
            raise InvalidInput("Missing required field: content_id")

        article = await db_session.get(Article, request.content_id)
        if article is None:
            raise NotFound(f"Article {request.content_id} not found", content_id=request.content_id)

        if article.status == ArticleStatus.PUBLISHED.value:
            self._logger.debug(f"[PUBLISH] Article {article.id} already published")
            await self._restore_publications(db_session, article, request)
            return await self._record(article, db_session, already_published=True)

        self.check_eligible(article)

        now = datetime.now(timezone.utc)
        segments = self.target_segments(article, request.segment)
        try:
            result = await db_session.execute(
                update(Article)
                .where(
                    Article.id == article.id,
                    Article.status == ArticleStatus.VALIDATED.value,
                    Article.confidence >= self.settings.publish_threshold,
                )
                .values(status=ArticleStatus.PUBLISHED.value, published_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Lost a race: somebody else changed it between the read and the update
                await db_session.rollback()
                await db_session.refresh(article)
                if article.status == ArticleStatus.PUBLISHED.value:
                    return await self._record(article, db_session, already_published=True)
                raise PreconditionFailed(f"Article {article.id} is no longer eligible", content_id=article.id)

            for segment in segments:
                await self._stage_publication(db_session, article, segment, request.auto_publish, now)
            # Status change and Publication rows land together or not at all
            await db_session.commit()
        except PreconditionFailed:
            raise
        except Exception:
            await db_session.rollback()
            raise

        await db_session.refresh(article)
        self._logger.info(
            f"[PUBLISH] Article {article.id} published to {segments} "
            f"(confidence={article.confidence:.2f}, auto={request.auto_publish})"
        )
        return await self._record(article, db_session, already_published=False)

    async def _restore_publications(self, db_session, article: Article, request: PublishRequest):
        """Give a published article with no Publication rows its target segments."""
        existing = (await db_session.execute(
            select(Publication.id).where(Publication.article_id == article.id).limit(1)
        )).scalar_one_or_none()
        if existing:
            return
        segments = self.target_segments(article, request.segment)
        when = article.published_at or datetime.now(timezone.utc)
        try:
            for segment in segments:
                await self._stage_publication(db_session, article, segment, request.auto_publish, when)
            await db_session.commit()
        except IntegrityError:
            # A concurrent republish restored them first
            await db_session.rollback()
            await db_session.refresh(article)
            return
        self._logger.warning(f"[PUBLISH] Restored missing publications for {article.id}: {segments}")

    async def _stage_publication(self, db_session, article: Article, segment: str, auto: bool, when: datetime):
        exists = (await db_session.execute(
            select(Publication.id).where(Publication.article_id == article.id, Publication.segment == segment)
        )).scalar_one_or_none()
        if exists:
            return
        db_session.add(Publication(
            article_id=article.id,
            segment=segment,
            category=article.category,
            published_at=when,
            auto_published=auto,
        ))
        await db_session.flush()

    async def _record(self, article: Article, db_session, already_published: bool) -> dict:
        publications = (await db_session.execute(
            select(Publication).where(Publication.article_id == article.id)
        )).scalars().all()
        published_at = ensure_utc(article.published_at)
        return {
            "success": True,
            "content_id": article.id,
            "status": article.status,
            "published_at": published_at.isoformat() if published_at else None,
            "confidence": article.confidence,
            "already_published": already_published,
            "segments": sorted(p.segment for p in publications),
        }
