"""
Google News RSS provider.

This module provides GoogleNewsRSSProvider, which searches the Google News
RSS feed for a tenant's category and keywords and turns entries into news
candidates with real publication dates.
"""

import datetime
import logging
from typing import Any, List, Optional

import requests
import feedparser  # type: ignore

from src.errors import ProviderFailure
from src.models import Candidate
from src.providers.base import GenerationProvider
from src.providers.parsing import clean_html

logger = logging.getLogger(__name__)

GOOGLE_NEWS_SEARCH_URL = "https://news.google.com/rss/search"


def build_search_query(category: str, keywords: List[str]) -> str:
    """Google News query: category plus any keyword, last day only."""
    terms = []
    for keyword in keywords:
        phrase = keyword.replace("-", " ")
        terms.append(f'"{phrase}"' if " " in phrase else phrase)
    query = category.replace("-", " ")
    if terms:
        query = f"{query} ({' OR '.join(terms)})"
    return f"{query} when:1d"


def keyword_relevance(text: str, keywords: List[str]) -> float:
    """0.5 baseline plus up to 0.5 for the share of keywords mentioned in text."""
    if not keywords:
        return 0.5
    lowered = text.lower()
    hits = sum(1 for k in keywords if k.replace("-", " ").lower() in lowered)
    return round(0.5 + 0.5 * hits / len(keywords), 4)


def _entry_published(entry: Any) -> Optional[datetime.datetime]:
    parsed = getattr(entry, "published_parsed", None) or getattr(
        entry, "updated_parsed", None
    )
    if not parsed:
        return None
    return datetime.datetime(*parsed[:6], tzinfo=datetime.timezone.utc)


class GoogleNewsRSSProvider(GenerationProvider):
    """Fetches current news from the Google News RSS search endpoint."""

    def __init__(self, timeout: float = 45.0, max_entries: int = 20):
        self.name = "google_news_rss"
        self.timeout = timeout
        self.max_entries = max_entries

    def generate(
        self, category: str, keywords: List[str], item_count: int
    ) -> List[Candidate]:
        query = build_search_query(category, keywords)
        try:
            # Add a user-agent to prevent 403s from strict endpoints
            resp = requests.get(
                GOOGLE_NEWS_SEARCH_URL,
                params={"q": query, "hl": "en-US", "gl": "US", "ceid": "US:en"},
                timeout=self.timeout,
                headers={"User-Agent": "ContentCuratorBot/1.0"},
            )
            resp.raise_for_status()
            feed_content = resp.content
        except requests.Timeout as e:
            raise ProviderFailure(self.name, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ProviderFailure(self.name, f"network error: {e}") from e

        feed = feedparser.parse(feed_content)
        items = []
        for entry in feed.entries[: self.max_entries]:
            title = entry.title if hasattr(entry, "title") else ""
            if not title:
                continue
            raw_summary = entry.summary if hasattr(entry, "summary") else ""
            summary = clean_html(raw_summary)
            source = "Google News"
            if hasattr(entry, "source") and getattr(entry.source, "title", None):
                source = entry.source.title
            items.append(
                Candidate(
                    title=title,
                    summary=summary[:250],
                    url=entry.link if hasattr(entry, "link") else "",
                    source=source,
                    published_at=_entry_published(entry),
                    relevance_score=keyword_relevance(f"{title} {summary}", keywords),
                    tags=list(keywords),
                )
            )

        if not items:
            raise ProviderFailure(self.name, f"no entries for query {query!r}")
        logger.info("Google News returned %d entries for %r", len(items), query)
        return items
