"""
Raw feed items as stored by the collector.

A RawItem is written once by the collector, receives its relevance score
once from the scorer, and is never touched by later stages.
"""
from sqlalchemy import Column, String, Float, DateTime, Text, JSON, Index, UniqueConstraint
from datetime import datetime, timezone
from typing import Optional
import uuid

from newsroom.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return str(uuid.uuid4())


class RawItem(Base):
    """
    One entry from one feed source.

    Attributes:
        id: Unique identifier (UUID string)
        source_id: Feed source identifier (e.g. "praha4", "dpp")
        title: Plain-text title
        body: Plain-text description/summary
        url: Entry link
        guid: Feed-provided stable identifier, if any
        dedup_key: url or guid; unique together with source_id
        published_at: Publication date reported by the feed
        collected_at: When the collector stored the entry
        relevance_score: Scorer output in [0, 1]; NULL until scored
        category_hint: Category suggested by the source definition
        scored_at: When the scorer wrote relevance_score
        item_metadata: Source-specific extras
    """
    __tablename__ = "raw_items"

    id = Column(String(36), primary_key=True, default=new_id)
    source_id = Column(String(64), nullable=False, index=True)

    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False, default="")
    url = Column(Text)
    guid = Column(Text)
    dedup_key = Column(Text, nullable=False)

    published_at = Column(DateTime(timezone=True))
    collected_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    relevance_score = Column(Float, nullable=True, index=True)
    category_hint = Column(String(64))
    scored_at = Column(DateTime(timezone=True), nullable=True)

    item_metadata = Column(JSON, default=dict)

    __table_args__ = (
        UniqueConstraint("source_id", "dedup_key", name="uq_raw_items_source_dedup"),
        Index("ix_raw_items_score_collected", "relevance_score", "collected_at"),
    )

    def __repr__(self):
        return f"<RawItem(source={self.source_id!r}, title={self.title[:40] if self.title else ''}...)>"

    def is_qualified(self, threshold: float) -> bool:
        return self.relevance_score is not None and self.relevance_score >= threshold

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        published_at = ensure_utc(self.published_at)
        collected_at = ensure_utc(self.collected_at)
        scored_at = ensure_utc(self.scored_at)
        return {
            "id": self.id,
            "source_id": self.source_id,
            "title": self.title,
            "body": self.body[:1000] if self.body else "",
            "url": self.url,
            "guid": self.guid,
            "published_at": published_at.isoformat() if published_at else None,
            "collected_at": collected_at.isoformat() if collected_at else None,
            "relevance_score": self.relevance_score,
            "category_hint": self.category_hint,
            "scored_at": scored_at.isoformat() if scored_at else None,
            "metadata": self.item_metadata or {},
        }
