"""
Collection configuration for the newsroom pipeline.

Feed source definitions, source priorities and the keyword vocabularies
used by the scorer, validator and publisher.
"""
from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class FeedSource:
    """A named feed: where to fetch it and what it usually covers."""
    source_id: str
    name: str
    url: str
    category_hint: str = "local"

    def to_dict(self) -> dict:
        return {
            "id": self.source_id,
            "name": self.name,
            "url": self.url,
            "category_hint": self.category_hint,
        }


# Default feed sources
FEED_SOURCES: List[FeedSource] = [
    FeedSource("praha4", "Praha 4 Official", "https://www.praha4.cz/rss", "local_government"),
    FeedSource("praha2", "Praha 2 Official", "https://www.praha2.cz/rss", "local_government"),
    FeedSource("dpp", "Prague Public Transport", "https://www.dpp.cz/rss", "transport"),
    FeedSource(
        "weather",
        "Prague Weather",
        "https://api.openweathermap.org/data/2.5/weather?q=Prague&appid=demo&mode=xml",
        "weather",
    ),
]

# Source credibility (0-10)
SOURCE_PRIORITY: Dict[str, float] = {
    "praha4": 9.0,
    "praha2": 8.5,
    "dpp": 9.0,
    "weather": 6.0,
}

# Category importance (0-10)
CATEGORY_IMPORTANCE: Dict[str, float] = {
    "emergency": 10.0,
    "transport": 8.5,
    "local_government": 8.0,
    "local": 7.5,
    "community": 7.0,
    "events": 6.5,
    "weather": 6.0,
    "business": 5.5,
}

# Terms that make an item relevant to the neighborhoods we cover
LOCAL_KEYWORDS: List[str] = [
    "praha", "prague", "chodov", "michle", "nusle", "krč", "podolí", "braník",
    "vinohrady", "karlín", "smíchov", "vyšehrad", "městská část", "radnice",
    "tramvaj", "metro", "autobus", "mhd", "uzavírka", "výluka",
]

# Keywords that tie article text to its category; also used to infer a
# category for items whose source gives no useful hint
CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "transport": ["tramvaj", "metro", "autobus", "mhd", "doprava", "výluka", "zastávka", "linka"],
    "local": ["místní", "čtvrť", "obyvatel", "komunita", "sousedé"],
    "local_government": ["radnice", "zastupitelstvo", "městská část", "úřad", "starosta", "vyhláška"],
    "weather": ["počasí", "teplota", "déšť", "sníh", "slunce", "vítr", "bouřka"],
    "emergency": ["nehoda", "požár", "hasiči", "policie", "záchranka", "evakuace", "varování"],
    "events": ["koncert", "festival", "výstava", "akce", "trh", "program"],
}

# Categories that concern the whole city rather than one neighborhood
CITY_WIDE_CATEGORIES = {"emergency", "transport", "weather"}


def get_source(source_id: str) -> FeedSource:
    for source in FEED_SOURCES:
        if source.source_id == source_id:
            return source
    raise KeyError(source_id)
