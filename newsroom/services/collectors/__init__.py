"""
Feed collection for the newsroom pipeline.

Usage:
    from newsroom.services.collectors import FeedCollector

    collector = FeedCollector(async_session, ledger=ledger)
    report = await collector.collect(sources=["praha4", "dpp"])
"""
from .base import BaseCollector, CollectedEntry, CollectionReport, SourceResult
from .config import FEED_SOURCES, FeedSource
from .feed_collector import FeedCollector

__all__ = [
    "BaseCollector",
    "CollectedEntry",
    "CollectionReport",
    "SourceResult",
    "FEED_SOURCES",
    "FeedSource",
    "FeedCollector",
]
