"""
Generated articles and their publication records.

Article.status lifecycle:

    generated -> validated -> published
              -> review     (validator below threshold, handed to editors)
    draft / rejected are set only by editors outside the pipeline.
"""
from enum import Enum

from sqlalchemy import Column, String, Float, DateTime, Text, JSON, Boolean, ForeignKey, Index, UniqueConstraint

from newsroom.database import Base
from newsroom.models.news_item import utcnow, ensure_utc, new_id


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    GENERATED = "generated"
    VALIDATED = "validated"
    REVIEW = "review"
    PUBLISHED = "published"
    REJECTED = "rejected"


class Article(Base):
    """
    Article synthesized from a RawItem.

    `confidence` is written only by the validator and stays NULL until then.
    """
    __tablename__ = "articles"

    id = Column(String(36), primary_key=True, default=new_id)
    raw_item_id = Column(String(36), ForeignKey("raw_items.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    summary = Column(Text)
    category = Column(String(64), index=True)
    region = Column(String(64), index=True)

    confidence = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default=ArticleStatus.GENERATED.value, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    validated_at = Column(DateTime(timezone=True))
    published_at = Column(DateTime(timezone=True), index=True)

    rejection_reason = Column(Text)
    validation_flags = Column(JSON, default=list)
    article_metadata = Column(JSON, default=dict)

    __table_args__ = (
        Index("ix_articles_status_confidence", "status", "confidence"),
    )

    def __repr__(self):
        return f"<Article(status={self.status!r}, title={self.title[:40] if self.title else ''}...)>"

    def to_dict(self) -> dict:
        created_at = ensure_utc(self.created_at)
        validated_at = ensure_utc(self.validated_at)
        published_at = ensure_utc(self.published_at)
        return {
            "id": self.id,
            "raw_item_id": self.raw_item_id,
            "title": self.title,
            "body": self.body,
            "summary": self.summary,
            "category": self.category,
            "region": self.region,
            "confidence": self.confidence,
            "status": self.status,
            "created_at": created_at.isoformat() if created_at else None,
            "validated_at": validated_at.isoformat() if validated_at else None,
            "published_at": published_at.isoformat() if published_at else None,
            "rejection_reason": self.rejection_reason,
            "validation_flags": self.validation_flags or [],
            "metadata": self.article_metadata or {},
        }


class Publication(Base):
    """Append-only association of a published Article with an audience segment."""
    __tablename__ = "publications"

    id = Column(String(36), primary_key=True, default=new_id)
    article_id = Column(String(36), ForeignKey("articles.id"), nullable=False, index=True)
    segment = Column(String(64), nullable=False, index=True)
    category = Column(String(64))
    published_at = Column(DateTime(timezone=True), default=utcnow)
    auto_published = Column(Boolean, default=False)

    __table_args__ = (
        UniqueConstraint("article_id", "segment", name="uq_publications_article_segment"),
    )

    def __repr__(self):
        return f"<Publication(article={self.article_id!r}, segment={self.segment!r})>"

    def to_dict(self) -> dict:
        published_at = ensure_utc(self.published_at)
        return {
            "id": self.id,
            "article_id": self.article_id,
            "segment": self.segment,
            "category": self.category,
            "published_at": published_at.isoformat() if published_at else None,
            "auto_published": bool(self.auto_published),
        }
