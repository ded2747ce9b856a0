"""
Base collector class and core data structures for feed collection.

Collectors turn external documents into CollectedEntry objects and store
them as RawItem rows with an insert-if-absent policy keyed on
(source_id, url_or_guid).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime
import re
import logging

from bs4 import BeautifulSoup
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from newsroom.models.news_item import RawItem

logger = logging.getLogger(__name__)

CDATA_PATTERN = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.S)
WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass
class CollectedEntry:
    """One parsed feed entry before it becomes a RawItem."""
    source_id: str
    title: str
    body: str
    url: str = ""
    guid: str = ""
    published: Optional[datetime] = None
    category_hint: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dedup_key(self) -> str:
        """Stable identity within a source: the link, else the feed guid."""
        return self.url or self.guid

    def to_raw_item(self) -> RawItem:
        return RawItem(
            source_id=self.source_id,
            title=self.title,
            body=self.body,
            url=self.url or None,
            guid=self.guid or None,
            dedup_key=self.dedup_key,
            published_at=self.published,
            category_hint=self.category_hint,
            item_metadata=self.metadata,
        )

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "title": self.title,
            "body": self.body[:500],
            "url": self.url,
            "guid": self.guid,
            "published": self.published.isoformat() if self.published else None,
            "category_hint": self.category_hint,
        }


@dataclass
class SourceResult:
    """Outcome of collecting one source. Errors are reported, never raised."""
    source_id: str
    name: str
    fetched: int = 0
    collected: int = 0
    duplicates: int = 0
    errors: List[str] = field(default_factory=list)
    items: List[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "source": self.source_id,
            "name": self.name,
            "collected": self.collected,
            "fetched": self.fetched,
            "duplicates": self.duplicates,
            "errors": self.errors,
            "items": self.items,
        }


@dataclass
class CollectionReport:
    """Aggregate over all sources of one collection pass."""
    sources: List[SourceResult] = field(default_factory=list)

    @property
    def collected(self) -> int:
        return sum(s.collected for s in self.sources)

    @property
    def errors(self) -> List[str]:
        return [f"{s.source_id}: {e}" for s in self.sources for e in s.errors]

    def to_dict(self) -> dict:
        return {
            "collected": self.collected,
            "sources": [s.source_id for s in self.sources],
            "by_source": {
                s.source_id: {
                    "name": s.name,
                    "collected": s.collected,
                    "fetched": s.fetched,
                    "duplicates": s.duplicates,
                    "errors": s.errors,
                }
                for s in self.sources
            },
            "errors": self.errors,
        }


class BaseCollector(ABC):
    """
    Abstract base class for content collectors.

    Subclasses implement collect(); storage and text cleanup live here.
    """

    def __init__(self):
        self._logger = logging.getLogger(f"collectors.{self.__class__.__name__}")

    @abstractmethod
    async def collect(self, sources: Optional[List[str]] = None, limit: Optional[int] = None) -> CollectionReport:
        """Fetch, parse and store entries; one SourceResult per source."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this collector."""

    async def store_entries(self, entries: List[CollectedEntry], db_session) -> Tuple[List[RawItem], int]:
        """
        Insert entries that are not stored yet.

        Returns:
            Tuple of (new RawItems, duplicate count)
        """
        new_items: List[RawItem] = []
        duplicates = 0
        seen = set()

        for entry in entries:
            key = (entry.source_id, entry.dedup_key)
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)

            stmt = select(RawItem.id).where(
                RawItem.source_id == entry.source_id,
                RawItem.dedup_key == entry.dedup_key,
            )
            existing = (await db_session.execute(stmt)).scalar_one_or_none()
            if existing:
                duplicates += 1
                self._logger.debug(f"[COLLECT] [{entry.source_id}] DUPLICATE: {entry.dedup_key[:80]}")
                continue

            raw_item = entry.to_raw_item()
            db_session.add(raw_item)
            new_items.append(raw_item)

        if not new_items:
            return new_items, duplicates

        try:
            await db_session.commit()
        except IntegrityError:
            # A concurrent collector stored some of these first; fall back to one row at a time
            await db_session.rollback()
            return await self._store_one_by_one(new_items, db_session, duplicates)

        return new_items, duplicates

    async def _store_one_by_one(self, items: List[RawItem], db_session, duplicates: int) -> Tuple[List[RawItem], int]:
        stored = []
        for item in items:
            fresh = RawItem(
                source_id=item.source_id,
                title=item.title,
                body=item.body,
                url=item.url,
                guid=item.guid,
                dedup_key=item.dedup_key,
                published_at=item.published_at,
                category_hint=item.category_hint,
                item_metadata=item.item_metadata,
            )
            db_session.add(fresh)
            try:
                await db_session.commit()
                stored.append(fresh)
            except IntegrityError:
                await db_session.rollback()
                duplicates += 1
        return stored, duplicates

    def clean_text(self, text: Optional[str]) -> str:
        """Strip CDATA wrappers, HTML markup and entities down to plain text."""
        if not text:
            return ""
        text = CDATA_PATTERN.sub(r"\1", text)
        if "<" in text or "&" in text:
            text = BeautifulSoup(text, "html.parser").get_text(" ")
        return WHITESPACE_PATTERN.sub(" ", text).strip()

    def truncate_text(self, text: str, max_length: int = 500) -> str:
        """Truncate text to max_length, preserving word boundaries."""
        if not text or len(text) <= max_length:
            return text or ""
        truncated = text[:max_length].rsplit(" ", 1)[0]
        return truncated + "..."
