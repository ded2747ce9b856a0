"""
RSS/Atom feed collector.

Fetches every configured source concurrently, parses entries with
feedparser and stores them as RawItems. A failing source is reported in
its SourceResult and never stops the others.
"""
import asyncio
import aiohttp
import feedparser
from datetime import datetime, timezone
from typing import List, Optional, Tuple
import logging

from sqlalchemy import select, func, desc

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import StorageFailure, UpstreamFailure
from newsroom.models.news_item import RawItem
from .base import BaseCollector, CollectedEntry, CollectionReport, SourceResult
from .config import FEED_SOURCES, FeedSource

logger = logging.getLogger(__name__)


class FeedCollector(BaseCollector):
    """Collects entries from the configured feed sources."""

    def __init__(
        self,
        session_factory,
        sources: Optional[List[FeedSource]] = None,
        ledger=None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            session_factory: Callable returning an AsyncSession context manager
            sources: Feed sources to collect. Uses config default if None.
            ledger: Optional RunLedger receiving per-source health snapshots
            settings: Optional settings override
        """
        super().__init__()
        self.session_factory = session_factory
        self.sources = sources if sources is not None else FEED_SOURCES
        self.ledger = ledger
        self.settings = settings or get_settings()

    @property
    def name(self) -> str:
        return "Feed Collector"

    async def collect(self, sources: Optional[List[str]] = None, limit: Optional[int] = None) -> CollectionReport:
        """
        Collect the selected sources in parallel.

        Args:
            sources: Optional subset of source ids; unknown ids are reported as errors
            limit: Max entries considered per source (defaults to ITEMS_PER_FEED)
        """
        selected, unknown = self._select_sources(sources)
        limit = limit or self.settings.items_per_feed
        self._logger.info(f"[COLLECT] Fetching {len(selected)} feeds (limit={limit})")

        report = CollectionReport()
        for source_id in unknown:
            report.sources.append(SourceResult(source_id=source_id, name=source_id, errors=["unknown source"]))

        async with aiohttp.ClientSession() as http:
            results = await asyncio.gather(
                *(self._collect_source(http, source, limit) for source in selected),
                return_exceptions=True,
            )

        for source, result in zip(selected, results):
            if isinstance(result, BaseException):
                self._logger.error(f"[COLLECT] [{source.source_id}] failed: {result}")
                result = SourceResult(
                    source_id=source.source_id,
                    name=source.name,
                    errors=[f"{type(result).__name__}: {result}"],
                )
            report.sources.append(result)
            self._record_health(source, result)

        self._logger.info(
            f"[COLLECT] Collection complete: {report.collected} new items from "
            f"{len(selected)} feeds, {len(report.errors)} errors"
        )
        return report

    def _select_sources(self, source_ids: Optional[List[str]]) -> Tuple[List[FeedSource], List[str]]:
        if not source_ids:
            return list(self.sources), []
        by_id = {s.source_id: s for s in self.sources}
        selected = [by_id[sid] for sid in source_ids if sid in by_id]
        unknown = [sid for sid in source_ids if sid not in by_id]
        return selected, unknown

    async def _collect_source(self, http: aiohttp.ClientSession, source: FeedSource, limit: int) -> SourceResult:
        result = SourceResult(source_id=source.source_id, name=source.name)
        try:
            document = await self._fetch_document(http, source)
            entries = self.parse_feed(document, source, limit)
        except UpstreamFailure as e:
            self._logger.warning(f"[COLLECT] [{source.source_id}] {e}")
            result.errors.append(str(e))
            return result

        result.fetched = len(entries)
        async with self.session_factory() as db_session:
            new_items, duplicates = await self.store_entries(entries, db_session)

        result.collected = len(new_items)
        result.duplicates = duplicates
        result.items = [
            {"id": item.id, "title": item.title, "url": item.url}
            for item in new_items
        ]
        self._logger.info(
            f"[COLLECT] [{source.source_id}] fetched={result.fetched}, "
            f"new={result.collected}, duplicates={duplicates}"
        )
        return result

    async def _fetch_document(self, http: aiohttp.ClientSession, source: FeedSource) -> str:
        """Fetch the raw feed document. Any failure becomes UpstreamFailure."""
        timeout = self.settings.feed_timeout_seconds
        self._logger.debug(f"[COLLECT] Fetching {source.source_id} ({source.url})")
        try:
            async with http.get(
                source.url,
                timeout=aiohttp.ClientTimeout(total=timeout),
                headers={"User-Agent": "newsroom-pipeline/0.3"},
            ) as response:
                if not 200 <= response.status < 300:
                    raise UpstreamFailure(f"HTTP {response.status} from {source.url}")
                return await response.text()
        except asyncio.TimeoutError as e:
            raise UpstreamFailure(f"Timed out after {timeout}s fetching {source.url}") from e
        except aiohttp.ClientError as e:
            raise UpstreamFailure(f"{type(e).__name__} fetching {source.url}: {e}") from e

    def parse_feed(self, document: str, source: FeedSource, limit: Optional[int] = None) -> List[CollectedEntry]:
        """
        Parse a feed document into entries worth storing.

        Raises:
            UpstreamFailure: if the document has no recognizable entries
        """
        feed = feedparser.parse(document)
        if not feed.entries:
            detail = f": {feed.bozo_exception}" if feed.bozo else ""
            raise UpstreamFailure(f"No feed entries recognized{detail}")
        if feed.bozo:
            self._logger.warning(f"[COLLECT] [{source.source_id}] parsing issues: {feed.bozo_exception}")

        limit = limit or self.settings.items_per_feed
        entries = []
        for entry in feed.entries[:limit]:
            try:
                collected = self._parse_entry(entry, source)
            except (AttributeError, KeyError, TypeError, ValueError, IndexError) as e:
                self._logger.debug(f"[COLLECT] [{source.source_id}] skipped malformed entry: {e}")
                continue
            if collected is not None:
                entries.append(collected)
        return entries

    def _parse_entry(self, entry, source: FeedSource) -> Optional[CollectedEntry]:
        title = self.clean_text(entry.get("title"))
        body = self.clean_text(entry.get("summary") or entry.get("description") or self._content_value(entry))
        url = (entry.get("link") or "").strip()
        guid = (entry.get("id") or "").strip()

        if not url and not guid:
            self._logger.debug(f"[COLLECT] [{source.source_id}] entry without link or guid")
            return None
        if len(title) <= self.settings.min_title_length or len(body) <= self.settings.min_body_length:
            self._logger.debug(f"[COLLECT] [{source.source_id}] entry too sparse: {title[:40]!r}")
            return None

        return CollectedEntry(
            source_id=source.source_id,
            title=self.truncate_text(title, 300),
            body=body,
            url=url,
            guid=guid,
            published=self._parse_date(entry),
            category_hint=source.category_hint,
            metadata={"source_name": source.name, "author": entry.get("author", "")},
        )

    @staticmethod
    def _content_value(entry) -> str:
        content = entry.get("content") or []
        return content[0].get("value", "") if content else ""

    @staticmethod
    def _parse_date(entry) -> Optional[datetime]:
        for attr in ("published_parsed", "updated_parsed"):
            parsed = entry.get(attr)
            if parsed:
                try:
                    return datetime(*parsed[:6], tzinfo=timezone.utc)
                except (TypeError, ValueError):
                    continue
        return None

    def _record_health(self, source: FeedSource, result: SourceResult):
        if self.ledger is None:
            return
        try:
            self.ledger.record_source_health(
                source.source_id,
                source.name,
                source.url,
                ok=result.ok,
                collected=result.collected,
                error="; ".join(result.errors) or None,
            )
        except StorageFailure as e:
            self._logger.warning(f"[COLLECT] [{source.source_id}] could not record health: {e}")

    async def list_raw_items(self, db_session, limit: int = 50, qualified_only: bool = False) -> dict:
        """Raw item listing returned by the collect endpoint when include_raw is set."""
        threshold = self.settings.qualification_threshold
        stmt = select(RawItem).order_by(desc(RawItem.collected_at)).limit(limit)
        if qualified_only:
            stmt = stmt.where(RawItem.relevance_score >= threshold)
        items = (await db_session.execute(stmt)).scalars().all()

        total = (await db_session.execute(select(func.count(RawItem.id)))).scalar_one()
        qualified = (await db_session.execute(
            select(func.count(RawItem.id)).where(RawItem.relevance_score >= threshold)
        )).scalar_one()

        return {
            "items": [
                {**item.to_dict(), "qualified": item.is_qualified(threshold)}
                for item in items
            ],
            "total": total,
            "qualified": qualified,
            "qualification_rate": qualified / total if total else 0.0,
            "view": "qualified" if qualified_only else "all",
        }
