from typing import Any, Dict

import httpx
import pytest

from voicevox_reader import news
from voicevox_reader.config import NewsSettings
from voicevox_reader.news import Article, contains_keywords, fetch_all_news, filter_and_summarize

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>テックニュース</title>
    <link>https://news.example.com/</link>
    <description>IT news</description>
    <item>
      <title>AIが囲碁で勝利</title>
      <link>https://news.example.com/1</link>
      <description>新しいAIが囲碁で勝利した。次は将棋に挑む。</description>
      <pubDate>Mon, 01 Jan 2024 09:00:00 +0900</pubDate>
    </item>
    <item>
      <title>天気予報</title>
      <link>https://news.example.com/2</link>
      <description>明日は晴れる見込み。</description>
    </item>
  </channel>
</rss>
"""


def _serve(feeds: Dict[str, str]):
    def fake_get(url: str, **kwargs: Any) -> httpx.Response:
        request = httpx.Request("GET", url)
        if url not in feeds:
            raise httpx.ConnectTimeout("timed out", request=request)
        return httpx.Response(200, content=feeds[url].encode("utf-8"), request=request)

    return fake_get


def test_fetch_collects_entries_and_skips_dead_feeds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(news.httpx, "get", _serve({"https://ok.test/rss": RSS}))
    settings = NewsSettings(rss_feeds=["https://down.test/rss", "https://ok.test/rss"])

    articles = fetch_all_news(settings)

    assert [article.title for article in articles] == ["AIが囲碁で勝利", "天気予報"]
    first = articles[0]
    assert first.source == "テックニュース"
    assert first.link == "https://news.example.com/1"
    assert first.published_at.startswith("Mon, 01 Jan 2024")
    assert "囲碁" in first.content


def test_unparseable_feed_yields_nothing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(news.httpx, "get", _serve({"https://bad.test/rss": "<html><oops"}))
    assert fetch_all_news(NewsSettings(rss_feeds=["https://bad.test/rss"])) == []


def test_no_feeds_configured() -> None:
    assert fetch_all_news(NewsSettings(rss_feeds=[])) == []


def _article(title: str, text: str) -> Article:
    return Article(title=title, description=text, link=f"https://x.test/{title}")


def test_filter_dedups_caps_and_digests() -> None:
    articles = [
        _article("AI速報", "AIが進化した。詳細は後ほど。"),
        _article("AI速報", "重複した記事。"),
        _article("スポーツ", "試合結果。"),
        _article("テクノロジー展", "展示会が開かれた。"),
        _article("人工知能の未来", "人工知能の研究。"),
    ]
    settings = NewsSettings(keywords=["ai", "テクノロジー", "人工知能"], max_articles=2, summary_length=10)

    items = filter_and_summarize(articles, settings)

    assert [item.title for item in items] == ["AI速報", "テクノロジー展"]
    assert items[0].summary == "AIが進化した。"
    assert items[0].link == "https://x.test/AI速報"


def test_empty_keywords_accept_everything() -> None:
    articles = [_article("一", "一。"), _article("二", "二。")]
    items = filter_and_summarize(articles, NewsSettings(keywords=[]))
    assert [item.title for item in items] == ["一", "二"]


def test_keyword_match_is_case_insensitive() -> None:
    assert contains_keywords("OpenAI releases", ["openai"])
    assert not contains_keywords("天気", ["AI"])
