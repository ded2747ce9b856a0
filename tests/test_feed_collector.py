"""Feed parsing, storage dedup and per-source isolation of the collector."""

import asyncio

import pytest

from newsroom.core.errors import UpstreamFailure
from newsroom.services.collectors import FeedCollector, FeedSource
from newsroom.services.collectors.base import CollectedEntry

RSS_TWO_GOOD_ONE_EMPTY = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>DPP</title>
    <link>https://example.test/</link>
    <description>Dopravní informace</description>
    <item>
      <title>Výluka tramvají v Nuslích o víkendu</title>
      <link>https://example.test/vyluka-nusle</link>
      <guid>vyluka-nusle</guid>
      <description><![CDATA[<p>Tramvaje linky 18 nepojedou mezi zastávkami Otakarova a Nádraží Braník.</p>]]></description>
      <pubDate>Mon, 12 Oct 2026 08:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Nová autobusová linka na Chodov</title>
      <link>https://example.test/linka-chodov</link>
      <description>Od listopadu začne jezdit autobus linky 203 &amp; posílí spojení k metru.</description>
    </item>
    <item>
      <title>Oznámení bez jakéhokoli textu</title>
      <link>https://example.test/prazdne</link>
    </item>
  </channel>
</rss>
"""

RSS_OTHER = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Praha 4</title>
    <item>
      <title>Radnice Prahy 4 opraví chodníky v Michli</title>
      <link>https://example.test/chodniky</link>
      <description>Městská část zahájí opravy chodníků v ulici Michelská během října.</description>
    </item>
  </channel>
</rss>
"""


def make_collector(session_factory, settings, ledger=None, sources=None):
    sources = sources or [
        FeedSource("dpp", "Prague Public Transport", "https://example.test/dpp.rss", "transport"),
        FeedSource("praha4", "Praha 4 Official", "https://example.test/praha4.rss", "local_government"),
    ]
    return FeedCollector(session_factory, sources=sources, ledger=ledger, settings=settings)


def serve_documents(monkeypatch, documents):
    """Route _fetch_document to canned documents; exceptions are raised."""

    async def fake_fetch(self, http, source):
        document = documents[source.source_id]
        if isinstance(document, Exception):
            raise document
        return document

    monkeypatch.setattr(FeedCollector, "_fetch_document", fake_fetch)


# ============================================================================
# Parsing
# ============================================================================

@pytest.mark.unit
def test_parse_feed_skips_entry_without_body(session_factory, settings, feed_source):
    collector = make_collector(session_factory, settings)

    entries = collector.parse_feed(RSS_TWO_GOOD_ONE_EMPTY, feed_source)

    assert [e.url for e in entries] == [
        "https://example.test/vyluka-nusle",
        "https://example.test/linka-chodov",
    ]


@pytest.mark.unit
def test_parse_feed_strips_markup_and_entities(session_factory, settings, feed_source):
    collector = make_collector(session_factory, settings)

    first, second = collector.parse_feed(RSS_TWO_GOOD_ONE_EMPTY, feed_source)

    assert first.body == "Tramvaje linky 18 nepojedou mezi zastávkami Otakarova a Nádraží Braník."
    assert "<" not in first.body
    assert "&amp;" not in second.body
    assert "autobus linky 203 & posílí" in second.body


@pytest.mark.unit
def test_parse_feed_reads_dates_and_category_hint(session_factory, settings, feed_source):
    collector = make_collector(session_factory, settings)

    first, second = collector.parse_feed(RSS_TWO_GOOD_ONE_EMPTY, feed_source)

    assert first.published is not None
    assert (first.published.year, first.published.month, first.published.day) == (2026, 10, 12)
    assert first.published.tzinfo is not None
    assert second.published is None
    assert first.category_hint == "transport"
    assert first.metadata["source_name"] == feed_source.name


@pytest.mark.unit
def test_parse_feed_respects_limit(session_factory, settings, feed_source):
    collector = make_collector(session_factory, settings)

    entries = collector.parse_feed(RSS_TWO_GOOD_ONE_EMPTY, feed_source, limit=1)

    assert len(entries) == 1


@pytest.mark.unit
def test_parse_feed_without_entries_is_upstream_failure(session_factory, settings, feed_source):
    collector = make_collector(session_factory, settings)

    with pytest.raises(UpstreamFailure):
        collector.parse_feed("<html><body>Service unavailable</body></html>", feed_source)


@pytest.mark.unit
def test_dedup_key_prefers_url_over_guid():
    assert CollectedEntry("dpp", "t", "b", url="https://x", guid="g").dedup_key == "https://x"
    assert CollectedEntry("dpp", "t", "b", guid="g").dedup_key == "g"


@pytest.mark.unit
def test_clean_text_handles_cdata_and_whitespace(session_factory, settings):
    collector = make_collector(session_factory, settings)

    assert collector.clean_text("<![CDATA[  Linka   22\n jede ]]>") == "Linka 22 jede"
    assert collector.clean_text(None) == ""


# ============================================================================
# Collection
# ============================================================================

@pytest.mark.integration
def test_collect_inserts_two_items_from_three_entries(monkeypatch, session_factory, settings, ledger):
    serve_documents(monkeypatch, {"dpp": RSS_TWO_GOOD_ONE_EMPTY})
    collector = make_collector(session_factory, settings, ledger=ledger)

    report = asyncio.run(collector.collect(sources=["dpp"]))

    assert report.collected == 2
    assert report.errors == []
    data = report.to_dict()
    assert data["by_source"]["dpp"]["fetched"] == 2
    assert data["sources"] == ["dpp"]


@pytest.mark.integration
def test_collect_twice_stores_nothing_new(monkeypatch, session_factory, settings):
    serve_documents(monkeypatch, {"dpp": RSS_TWO_GOOD_ONE_EMPTY})
    collector = make_collector(session_factory, settings)

    asyncio.run(collector.collect(sources=["dpp"]))
    second = asyncio.run(collector.collect(sources=["dpp"]))

    assert second.collected == 0
    assert second.sources[0].duplicates == 2

    async def count():
        async with session_factory() as session:
            return (await collector.list_raw_items(session))["total"]

    assert asyncio.run(count()) == 2


@pytest.mark.integration
def test_failing_source_does_not_stop_others(monkeypatch, session_factory, settings, ledger):
    serve_documents(monkeypatch, {
        "dpp": UpstreamFailure("HTTP 503 from https://example.test/dpp.rss"),
        "praha4": RSS_OTHER,
    })
    collector = make_collector(session_factory, settings, ledger=ledger)

    report = asyncio.run(collector.collect())

    assert report.collected == 1
    assert report.errors == ["dpp: HTTP 503 from https://example.test/dpp.rss"]

    failed = ledger.get_source_health("dpp")
    assert failed["last_ok"] is False
    assert failed["error_count"] == 1
    healthy = ledger.get_source_health("praha4")
    assert healthy["last_ok"] is True
    assert healthy["last_items"] == 1


@pytest.mark.integration
def test_unexpected_fetch_error_is_reported_per_source(monkeypatch, session_factory, settings):
    serve_documents(monkeypatch, {"dpp": RuntimeError("boom"), "praha4": RSS_OTHER})
    collector = make_collector(session_factory, settings)

    report = asyncio.run(collector.collect())

    assert report.collected == 1
    assert report.errors == ["dpp: RuntimeError: boom"]


@pytest.mark.integration
def test_unknown_source_is_an_error_not_an_exception(monkeypatch, session_factory, settings):
    serve_documents(monkeypatch, {"dpp": RSS_OTHER})
    collector = make_collector(session_factory, settings)

    report = asyncio.run(collector.collect(sources=["dpp", "nowhere"]))

    assert "nowhere: unknown source" in report.errors
    assert report.collected == 1


@pytest.mark.integration
def test_list_raw_items_reports_qualification(monkeypatch, session_factory, settings):
    serve_documents(monkeypatch, {"dpp": RSS_TWO_GOOD_ONE_EMPTY})
    collector = make_collector(session_factory, settings)
    asyncio.run(collector.collect(sources=["dpp"]))

    async def listing():
        async with session_factory() as session:
            return await collector.list_raw_items(session, limit=10)

    data = asyncio.run(listing())
    assert data["total"] == 2
    assert data["qualified"] == 0
    assert data["qualification_rate"] == 0.0
    assert all(item["relevance_score"] is None for item in data["items"])
