"""
Shared pytest fixtures and configuration for newsroom tests.
"""

import asyncio
import fnmatch
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

# Settings are read at import time by newsroom.database and newsroom.core.dependencies
_TEST_ROOT = tempfile.mkdtemp(prefix="newsroom-tests-")
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TEST_ROOT, 'default.db')}")

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from newsroom.core.config import Settings
from newsroom.core.errors import UpstreamFailure
from newsroom.database import create_session_factory, init_db
from newsroom.models import Article, ArticleStatus, RawItem
from newsroom.services.collectors.config import FeedSource
from newsroom.services.pipeline.ledger import RunLedger
from newsroom.services.pipeline.stages import StageGateway
from newsroom.services.text_generation import GeneratedText


GOOD_ARTICLE = (
    "Dopravní podnik hlásí výluku tramvají v ulici Vinohradská od pondělí do pátku. "
    "Tramvaj linky 11 pojede odklonem přes náměstí Míru a zastávka Jiřího z Poděbrad bude dočasně zrušena. "
    "Cestující mohou využít náhradní autobusovou dopravu, která zastavuje u stanice metra. "
    "Aktuálně doporučuje dopravní podnik počítat s delší dobou jízdy. "
    "Podrobné informace najdete na webu dopravního podniku."
)

POOR_ARTICLE = "Krátká zpráva bez kontextu."

TRANSPORT_BODY = (
    "Od pondělí platí výluka tramvají v Nuslích, tramvaj linky 18 a autobus "
    "náhradní dopravy jezdí podle upraveného jízdního řádu."
)


# ============================================================================
# Test doubles
# ============================================================================

class InMemoryRedis:
    """Dict-backed stand-in for the redis client subset the ledger uses."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def keys(self, pattern="*"):
        return [k for k in self.data if fnmatch.fnmatchcase(k, pattern)]


class FakeTextClient:
    """Returns a fixed article; raises for prompts containing a failing marker."""

    def __init__(self, content: str = GOOD_ARTICLE, fail_on: Optional[List[str]] = None):
        self.content = content
        self.fail_on = list(fail_on or [])
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> GeneratedText:
        self.prompts.append(prompt)
        for marker in self.fail_on:
            if marker in prompt:
                raise UpstreamFailure("Generation service returned 503")
        return GeneratedText(
            title="Výluka tramvají na Vinohradské",
            content=self.content,
            summary="Tramvaje jezdí odklonem.",
            confidence=0.9,
        )


class FakeGateway(StageGateway):
    """Records stage calls and answers from canned values."""

    def __init__(
        self,
        collect_report: Optional[dict] = None,
        score_report: Optional[dict] = None,
        verdicts: Optional[Dict[str, float]] = None,
        fail_generate: Optional[List[str]] = None,
    ):
        self.collect_report = collect_report or {"collected": 0, "sources": [], "by_source": {}, "errors": []}
        self.score_report = score_report or {"processed": 0, "qualified": 0, "qualification_rate": 0.0, "items": []}
        self.verdicts = verdicts or {}
        self.fail_generate = set(fail_generate or [])
        self.calls: List[tuple] = []

    async def collect(self, sources=None, limit=None):
        self.calls.append(("collect", sources))
        return self.collect_report

    async def score(self):
        self.calls.append(("score",))
        return self.score_report

    async def generate(self, raw_item_id, region, category=None, force=False):
        self.calls.append(("generate", raw_item_id, region))
        if raw_item_id in self.fail_generate:
            raise UpstreamFailure("Generation service returned 503")
        return {"content_id": f"article-{raw_item_id}", "raw_content_id": raw_item_id}

    async def validate(self, content_text, category=None, title=None, content_id=None):
        self.calls.append(("validate", content_id))
        confidence = self.verdicts.get(content_id, 0.9)
        approved = confidence >= 0.8
        return {
            "content_id": content_id,
            "confidence": confidence,
            "approved": approved,
            "checks": {},
            "flags": [] if approved else ["local_context"],
        }

    async def publish(self, content_id, auto_publish=False, segment=None):
        self.calls.append(("publish", content_id, auto_publish))
        return {"success": True, "content_id": content_id, "already_published": False, "segments": ["praha4"]}

    def stage_calls(self, stage: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == stage]


# ============================================================================
# Fixtures: configuration and storage
# ============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a per-test SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        log_dir=str(tmp_path / "logs"),
        newsletter_url="",
        stage_transport="local",
    )


@pytest.fixture
def session_factory(settings):
    """Async session factory over a fresh schema."""
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    asyncio.run(init_db(engine))
    yield create_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def ledger(redis_client, settings) -> RunLedger:
    return RunLedger(redis_client, settings)


@pytest.fixture
def text_client() -> FakeTextClient:
    return FakeTextClient()


@pytest.fixture
def feed_source() -> FeedSource:
    return FeedSource("dpp", "Prague Public Transport", "https://example.test/dpp.rss", "transport")


# ============================================================================
# Fixtures: seeded rows
# ============================================================================

def make_raw_item(
    source_id: str = "dpp",
    title: str = "Výluka tramvají v Nuslích",
    body: str = TRANSPORT_BODY,
    score: Optional[float] = None,
    collected_at: Optional[datetime] = None,
    key: Optional[str] = None,
) -> RawItem:
    item = RawItem(
        source_id=source_id,
        title=title,
        body=body,
        url=f"https://example.test/{key or title}",
        dedup_key=f"https://example.test/{key or title}",
        category_hint="transport",
        relevance_score=score,
        collected_at=collected_at or datetime.now(timezone.utc),
        item_metadata={"source_name": "Test"},
    )
    return item


def make_article(
    raw_item_id: Optional[str] = None,
    status: str = ArticleStatus.GENERATED.value,
    confidence: Optional[float] = None,
    category: str = "local",
    region: str = "praha4",
    body: str = GOOD_ARTICLE,
    created_at: Optional[datetime] = None,
    published_at: Optional[datetime] = None,
) -> Article:
    return Article(
        raw_item_id=raw_item_id,
        title="Výluka tramvají na Vinohradské",
        body=body,
        category=category,
        region=region,
        status=status,
        confidence=confidence,
        created_at=created_at or datetime.now(timezone.utc),
        published_at=published_at,
    )


@pytest.fixture
def seed(session_factory):
    """Insert rows and return their ids in order."""

    def _seed(*rows) -> List[str]:
        async def _insert():
            async with session_factory() as session:
                session.add_all(rows)
                await session.commit()
                return [row.id for row in rows]

        return asyncio.run(_insert())

    return _seed


@pytest.fixture
def fetch(session_factory):
    """Load one row by primary key."""

    def _fetch(model, row_id):
        async def _get():
            async with session_factory() as session:
                return await session.get(model, row_id)

        return asyncio.run(_get())

    return _fetch


@pytest.fixture
def days_ago():
    def _days_ago(days: float) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=days)

    return _days_ago


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: end-to-end integration tests")
    config.addinivalue_line("markers", "unit: unit tests")
