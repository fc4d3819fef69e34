from __future__ import annotations

from typing import List, Sequence

import feedparser
import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict

from voicevox_reader.config import NewsSettings
from voicevox_reader.reading import SummarizedItem
from voicevox_reader.splitter import summarize_excerpt

USER_AGENT = "voicevox-reader/0.1 (+https://voicevox.hiroshiba.jp/)"


class Article(BaseModel):
    """One RSS entry as fetched, before filtering and summarization."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = ""
    description: str = ""
    content: str = ""
    link: str = ""
    published_at: str = ""
    source: str = "Unknown"


def _entry_content(entry: feedparser.FeedParserDict) -> str:
    for block in entry.get("content", []):
        value = block.get("value")
        if value:
            return value
    return entry.get("description", "") or entry.get("summary", "")


def fetch_feed(feed_url: str, timeout: float = 30.0) -> List[Article]:
    """Fetch and parse one feed; any failure yields an empty list for that feed."""
    logger.info("news.fetch feed={feed}", feed=feed_url)
    try:
        response = httpx.get(
            feed_url,
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("news.fetch_failed feed={feed} error={error}", feed=feed_url, error=exc)
        return []

    feed = feedparser.parse(response.content)
    if feed.bozo and not feed.entries:
        logger.error(
            "news.parse_failed feed={feed} error={error}",
            feed=feed_url,
            error=feed.get("bozo_exception"),
        )
        return []

    source = feed.feed.get("title") or "Unknown"
    articles = [
        Article(
            title=entry.get("title", ""),
            description=entry.get("description", "") or entry.get("summary", ""),
            content=_entry_content(entry),
            link=entry.get("link", ""),
            published_at=entry.get("published", "") or entry.get("updated", ""),
            source=source,
        )
        for entry in feed.entries
    ]
    logger.debug("news.fetched feed={feed} entries={count}", feed=feed_url, count=len(articles))
    return articles


def fetch_all_news(settings: NewsSettings) -> List[Article]:
    """Fetch every configured feed in order and concatenate the entries."""
    if not settings.rss_feeds:
        logger.warning("news.no_feeds_configured")
        return []
    articles: List[Article] = []
    for feed_url in settings.rss_feeds:
        articles.extend(fetch_feed(feed_url, timeout=settings.fetch_timeout))
    return articles


def contains_keywords(text: str, keywords: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def filter_and_summarize(
    articles: Sequence[Article], settings: NewsSettings
) -> List[SummarizedItem]:
    """Keep keyword matches, drop duplicate titles, cap the count and digest each."""
    if settings.keywords:
        relevant = [
            article
            for article in articles
            if contains_keywords(
                f"{article.title} {article.description} {article.content}", settings.keywords
            )
        ]
    else:
        relevant = list(articles)

    seen_titles = set()
    unique: List[Article] = []
    for article in relevant:
        if article.title in seen_titles:
            continue
        seen_titles.add(article.title)
        unique.append(article)

    return [
        SummarizedItem(
            title=article.title,
            summary=summarize_excerpt(
                article.content or article.description, settings.summary_length
            ),
            source=article.source,
            published_at=article.published_at,
            link=article.link,
        )
        for article in unique[: settings.max_articles]
    ]
