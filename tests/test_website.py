from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Sequence

import httpx
import pytest
from langchain_core.messages import AIMessage, BaseMessage

from voicevox_reader import website
from voicevox_reader.config import WebsiteSettings
from voicevox_reader.rate_limit import RateLimiter
from voicevox_reader.website import (
    extract_text,
    process_url,
    process_urls,
    summarize_text,
    url_subdir,
    write_overview_report,
)

PAGE = """<html>
  <head><title>Example</title></head>
  <body>
    <h1>量子コンピュータの最新動向</h1>
    <p>研究チームは新しい誤り訂正手法を発表した。実験では従来より安定した結果が得られた。</p>
  </body>
</html>"""


class _FakeLLM:
    """Chat-model stub: answers every call with a numbered summary."""

    def __init__(self) -> None:
        self.prompts: List[Sequence[BaseMessage]] = []

    def invoke(self, messages: Sequence[BaseMessage], config: object = None) -> AIMessage:
        self.prompts.append(messages)
        return AIMessage(content=f"要約{len(self.prompts)}です。")


def _limiter(fake_clock) -> RateLimiter:
    return RateLimiter(clock=fake_clock, sleep=fake_clock.sleep)


def _serve(pages: Dict[str, str]):
    def fake_get(url: str, **kwargs: Any) -> httpx.Response:
        request = httpx.Request("GET", url)
        if url not in pages:
            raise httpx.ConnectError("unreachable", request=request)
        return httpx.Response(200, text=pages[url], request=request)

    return fake_get


def test_extract_text_keeps_readable_blocks() -> None:
    text = extract_text(PAGE)
    assert "量子コンピュータの最新動向" in text
    assert "誤り訂正手法を発表した。" in text
    assert "<p>" not in text


def test_summarize_maps_each_document_then_combines(fake_clock) -> None:
    text = "\n\n".join(["あ" * 20, "い" * 20, "う" * 20])
    llm = _FakeLLM()
    limiter = _limiter(fake_clock)

    summary = summarize_text(text, llm, limiter, length="short", chunk_size=25, chunk_overlap=0)  # type: ignore[arg-type]

    assert summary == "要約4です。"
    assert len(llm.prompts) == 4
    assert all("簡潔に2-3文" in prompt[0].content for prompt in llm.prompts)
    assert "あ" * 20 in llm.prompts[0][1].content
    assert "う" * 20 in llm.prompts[2][1].content
    combine = llm.prompts[3][1].content
    assert combine.startswith("要約リスト:")
    assert "要約1です。" in combine and "要約3です。" in combine
    assert limiter.current_usage()[0] == 4


def test_summarize_rejects_empty_text(fake_clock) -> None:
    with pytest.raises(ValueError):
        summarize_text("", _FakeLLM(), _limiter(fake_clock))  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://example.com/news/today.html", "example_com_news_today_html"),
        ("https://www.example.co.jp/", "www_example_co_jp_"),
        ("", "website"),
    ],
)
def test_url_subdir(url: str, expected: str) -> None:
    assert url_subdir(url) == expected


def test_url_subdir_is_capped() -> None:
    assert len(url_subdir("https://example.com/" + "a" * 100)) == 50


def test_process_url_writes_reading_files_and_report(
    tmp_path: Path, fake_clock, monkeypatch: pytest.MonkeyPatch
) -> None:
    url = "https://example.com/news/today.html"
    monkeypatch.setattr(website.httpx, "get", _serve({url: PAGE}))

    result = process_url(url, tmp_path, WebsiteSettings(), _FakeLLM(), _limiter(fake_clock))  # type: ignore[arg-type]

    target = tmp_path / "example_com_news_today_html"
    assert result.output_dir == target
    assert result.summary == "要約2です。"
    assert [path.name for path in result.created_files] == ["website_summary_01_01.txt"]
    assert result.created_files[0].read_text(encoding="utf-8") == "要約2です。"
    assert result.summary_file == target / "website_summary_report.md"
    report = result.summary_file.read_text(encoding="utf-8")
    assert report.startswith("# ウェブサイト要約レポート")
    assert f"## 1. ウェブサイト要約: {url}" in report


def test_process_urls_skips_failures(tmp_path: Path, fake_clock, monkeypatch: pytest.MonkeyPatch) -> None:
    good = "https://good.test/page"
    monkeypatch.setattr(website.httpx, "get", _serve({good: PAGE}))
    urls = ["https://down.test/", good]

    results = process_urls(urls, tmp_path, WebsiteSettings(), _FakeLLM(), _limiter(fake_clock))  # type: ignore[arg-type]

    assert [result.url for result in results] == [good]


def test_summary_length_override_reaches_the_prompt(
    tmp_path: Path, fake_clock, monkeypatch: pytest.MonkeyPatch
) -> None:
    url = "https://example.com/"
    monkeypatch.setattr(website.httpx, "get", _serve({url: PAGE}))
    llm = _FakeLLM()

    process_url(url, tmp_path, WebsiteSettings(), llm, _limiter(fake_clock), summary_length="400")  # type: ignore[arg-type]

    assert all("約400文字程度" in prompt[0].content for prompt in llm.prompts)


def test_overview_report_links_every_site(tmp_path: Path, fake_clock, monkeypatch: pytest.MonkeyPatch) -> None:
    urls = ["https://a.test/", "https://b.test/"]
    monkeypatch.setattr(website.httpx, "get", _serve({url: PAGE for url in urls}))
    results = process_urls(urls, tmp_path, WebsiteSettings(), _FakeLLM(), _limiter(fake_clock))  # type: ignore[arg-type]

    path = write_overview_report(results, tmp_path, today=date(2024, 5, 6))

    assert path == tmp_path / "2024-05-06" / "all_summaries" / "all_websites_summary.md"
    overview = path.read_text(encoding="utf-8")
    assert "1. [https://a.test/](https://a.test/)" in overview
    assert "### https://b.test/" in overview
    assert "要約4です。" in overview
