"""Relevance scoring: totality, clamping and score-once semantics."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_raw_item
from newsroom.models import RawItem
from newsroom.services.processing import RelevanceHeuristic, RelevanceScorer
from newsroom.services.processing.scorer import infer_category


@pytest.mark.unit
def test_heuristic_is_total_on_sparse_items():
    item = RawItem(source_id=None, title=None, body=None)

    value = RelevanceHeuristic()(item, datetime.now(timezone.utc))

    assert 0.0 <= value <= 1.0


@pytest.mark.unit
def test_fresh_local_transport_item_outranks_stale_unknown_one():
    now = datetime.now(timezone.utc)
    fresh = make_raw_item(source_id="dpp", collected_at=now)
    fresh.published_at = now - timedelta(hours=1)
    stale = make_raw_item(source_id="elsewhere", title="Something", body="Unrelated text")
    stale.published_at = now - timedelta(days=30)

    heuristic = RelevanceHeuristic()

    assert heuristic(fresh, now) > heuristic(stale, now)
    assert heuristic(fresh, now) >= 0.6


@pytest.mark.unit
@pytest.mark.parametrize("raw, expected", [(1.7, 1.0), (-0.4, 0.0), (float("nan"), 0.0), (0.42, 0.42)])
def test_score_is_clamped(settings, raw, expected):
    scorer = RelevanceScorer(score_fn=lambda item, now: raw, settings=settings)

    assert scorer.score(make_raw_item()) == expected


@pytest.mark.unit
def test_infer_category_falls_back_to_hint():
    assert infer_category("Koncert na náměstí, festival a trh", "local") == "events"
    assert infer_category("nothing matches here", "weather") == "weather"
    assert infer_category("nothing matches here") == "local"


@pytest.mark.integration
def test_score_pending_scores_each_item_once(session_factory, settings, seed, fetch):
    ids = seed(
        make_raw_item(key="a"),
        make_raw_item(key="b"),
        make_raw_item(key="c", score=0.1),
    )
    scorer = RelevanceScorer(score_fn=lambda item, now: 0.75, settings=settings)

    async def score():
        async with session_factory() as session:
            return await scorer.score_pending(session)

    first = asyncio.run(score())
    second = asyncio.run(score())

    assert first.processed == 2
    assert first.qualified == 2
    assert {entry["id"] for entry in first.items} == set(ids[:2])
    assert second.processed == 0
    assert fetch(RawItem, ids[2]).relevance_score == 0.1
    assert fetch(RawItem, ids[0]).scored_at is not None


@pytest.mark.integration
def test_score_pending_lists_only_qualified_items(session_factory, settings, seed):
    ids = seed(make_raw_item(key="high", title="high"), make_raw_item(key="low", title="low"))
    scores = {"high": 0.9, "low": 0.3}
    scorer = RelevanceScorer(score_fn=lambda item, now: scores[item.title], settings=settings)

    async def score():
        async with session_factory() as session:
            return await scorer.score_pending(session)

    report = asyncio.run(score())

    assert report.processed == 2
    assert report.qualified == 1
    assert [entry["id"] for entry in report.items] == [ids[0]]
    assert report.to_dict()["qualification_rate"] == 0.5


@pytest.mark.integration
def test_score_pending_honors_batch_limit(session_factory, settings, seed):
    seed(*(make_raw_item(key=str(n)) for n in range(4)))
    scorer = RelevanceScorer(score_fn=lambda item, now: 0.5, settings=settings)

    async def score():
        async with session_factory() as session:
            return await scorer.score_pending(session, limit=3)

    assert asyncio.run(score()).processed == 3
    assert asyncio.run(score()).processed == 1
