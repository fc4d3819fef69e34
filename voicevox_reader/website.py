"""Fetch web pages, summarize them with an LLM and lay the result out for narration.

Summaries follow a map-reduce shape: the page text is cut into large
overlapping documents, each document is summarized on its own, and the
partial summaries are combined in a final call. Every LLM call first passes
through the shared :class:`RateLimiter`.
"""

from __future__ import annotations

import os
import re
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import urlparse

import httpx
from langchain_core.callbacks import UsageMetadataCallbackHandler
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from langchain_openai import ChatOpenAI
from langchain_text_splitters import RecursiveCharacterTextSplitter
from loguru import logger
from pydantic import BaseModel, ConfigDict
from unstructured.partition.html import partition_html

from voicevox_reader.config import WebsiteSettings
from voicevox_reader.progress import ProgressLogger
from voicevox_reader.rate_limit import RateLimiter, estimate_tokens
from voicevox_reader.reading import SummarizedItem, write_reading_files, write_report
from voicevox_reader.splitter import clean_text, length_instruction

# Summarizer calls are never retried: each call is exactly one request in the
# rate limiter's accounting.
NO_RETRY = 0

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
REPORT_FILE_NAME = "website_summary_report.md"
OVERVIEW_FILE_NAME = "all_websites_summary.md"

MAP_PROMPT = "テキスト:\n{text}\n\n要約:"
COMBINE_PROMPT = "要約リスト:\n{text}\n\n最終要約:"

_URL_SEPARATOR_RE = re.compile(r"[./]")


class WebsiteResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str
    summary: str
    summary_file: Path
    created_files: List[Path]
    output_dir: Path


def build_llm(settings: WebsiteSettings) -> ChatOpenAI:
    """Chat model for summaries; endpoint overridable through ``OPENAI_API_URL``."""
    return ChatOpenAI(
        model=settings.model,
        temperature=settings.temperature,
        max_retries=NO_RETRY,
        base_url=os.environ.get("OPENAI_API_URL") or None,
    )


def build_rate_limiter(settings: WebsiteSettings) -> RateLimiter:
    return RateLimiter(
        max_requests=settings.max_requests,
        max_tokens=settings.max_tokens,
        window_ms=settings.window_ms,
    )


def fetch_website_content(url: str, timeout: float = 30.0) -> str:
    """Download the raw HTML of ``url``.

    Raises:
        httpx.HTTPError: On connection errors, timeouts or non-2xx answers.
    """
    logger.info("website.fetch url={url}", url=url)
    response = httpx.get(
        url,
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": BROWSER_USER_AGENT},
    )
    response.raise_for_status()
    return response.text


def extract_text(html: str) -> str:
    """Narratable text of an HTML page, cleaned of markup and special tokens."""
    elements = partition_html(text=html)
    blocks = [(element.text or "").strip() for element in elements]
    return clean_text("\n\n".join(block for block in blocks if block))


def url_subdir(url: str) -> str:
    """Directory name derived from host and path, capped at 50 characters."""
    parsed = urlparse(url)
    hostname = (parsed.hostname or "").replace(".", "_")
    pathname = _URL_SEPARATOR_RE.sub("_", parsed.path)
    return f"{hostname}{pathname}"[:50] or "website"


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = [part if isinstance(part, str) else part.get("text", "") for part in content]
    return "".join(parts).strip()


def _invoke(
    llm: BaseChatModel,
    limiter: RateLimiter,
    instruction: str,
    prompt: str,
    stage: str,
) -> str:
    messages = [SystemMessage(content=instruction), HumanMessage(content=prompt)]
    cost = min(estimate_tokens(instruction + prompt), limiter.max_tokens)
    limiter.acquire(cost)
    callback = UsageMetadataCallbackHandler()
    response = llm.invoke(messages, config=RunnableConfig(callbacks=[callback]))
    logger.debug(
        "website.{stage}.tokens estimated={cost} usage={usage}",
        stage=stage,
        cost=cost,
        usage=callback.usage_metadata,
    )
    return _message_text(response)


def summarize_text(
    text: str,
    llm: BaseChatModel,
    limiter: RateLimiter,
    *,
    length: str = "medium",
    chunk_size: int = 30_000,
    chunk_overlap: int = 1_000,
) -> str:
    """Map-reduce summary of ``text``: one call per document, then one combine call."""
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
    )
    documents = splitter.create_documents([text])
    if not documents:
        raise ValueError("Nothing to summarize: text is empty.")
    logger.info(
        "website.summarize documents={count} requests={requests}",
        count=len(documents),
        requests=len(documents) + 1,
    )

    instruction = length_instruction(length)
    partials: List[str] = []
    for index, document in enumerate(documents, start=1):
        logger.info("website.map document={index}/{count}", index=index, count=len(documents))
        partials.append(
            _invoke(llm, limiter, instruction, MAP_PROMPT.format(text=document.page_content), "map")
        )

    return _invoke(
        llm, limiter, instruction, COMBINE_PROMPT.format(text="\n\n".join(partials)), "combine"
    )


def process_url(
    url: str,
    output_dir: Path | str,
    settings: WebsiteSettings,
    llm: BaseChatModel,
    limiter: RateLimiter,
    *,
    summary_length: Optional[str] = None,
) -> WebsiteResult:
    """Fetch, summarize and write reading files plus a report for one URL."""
    progress = ProgressLogger(6)
    length = summary_length or settings.summary_length
    logger.info(
        "website.start url={url} output_dir={output_dir} length={length}",
        url=url,
        output_dir=output_dir,
        length=length,
    )
    progress.step("settings ready")

    html = fetch_website_content(url, timeout=settings.fetch_timeout)
    progress.step("page fetched")

    text = extract_text(html)
    if not text:
        raise ValueError(f"No narratable text found at {url}")
    logger.info("website.text url={url} chars={chars}", url=url, chars=len(text))
    progress.step("text extracted")

    summary = summarize_text(
        text,
        llm,
        limiter,
        length=length,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
    progress.step("summary done")

    url_output_dir = Path(output_dir) / url_subdir(url)
    item = SummarizedItem(
        title=f"ウェブサイト要約: {url}",
        summary=summary,
        source=url,
        published_at=datetime.now().strftime("%Y/%m/%d %H:%M:%S"),
        link=url,
    )
    created_files = write_reading_files([item], url_output_dir, settings.reading)
    summary_file = write_report(
        [item], url_output_dir, REPORT_FILE_NAME, heading="ウェブサイト要約レポート"
    )
    progress.step("files written")
    progress.complete()

    return WebsiteResult(
        url=url,
        summary=summary,
        summary_file=summary_file,
        created_files=created_files,
        output_dir=url_output_dir,
    )


def process_urls(
    urls: Sequence[str],
    output_dir: Path | str,
    settings: WebsiteSettings,
    llm: BaseChatModel,
    limiter: RateLimiter,
    *,
    summary_length: Optional[str] = None,
) -> List[WebsiteResult]:
    """Process URLs in order; a failing URL is logged and left out of the result."""
    results: List[WebsiteResult] = []
    for index, url in enumerate(urls, start=1):
        logger.info("website.url [{index}/{total}] {url}", index=index, total=len(urls), url=url)
        try:
            results.append(
                process_url(url, output_dir, settings, llm, limiter, summary_length=summary_length)
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("website.failed url={url} error={error}", url=url, error=exc)
    return results


def write_overview_report(
    results: Sequence[WebsiteResult],
    output_dir: Path | str,
    today: Optional[date] = None,
) -> Path:
    """Write ``{date}/all_summaries/all_websites_summary.md`` covering every result."""
    today = today or date.today()
    report_dir = Path(output_dir) / today.isoformat() / "all_summaries"
    report_dir.mkdir(parents=True, exist_ok=True)

    lines = [
        "# 複数ウェブサイト要約レポート",
        "",
        f"処理日時: {datetime.now():%Y/%m/%d %H:%M:%S}",
        "",
        "## 処理したURL一覧",
        "",
    ]
    lines.extend(f"{index}. [{result.url}]({result.url})" for index, result in enumerate(results, 1))
    lines.extend(["", "## 各サイトの要約", ""])
    for result in results:
        lines.extend(
            [
                f"### {result.url}",
                "",
                result.summary,
                "",
                f"[詳細レポート]({result.summary_file})",
                "",
            ]
        )

    path = report_dir / OVERVIEW_FILE_NAME
    path.write_text("\n".join(lines), encoding="utf-8")
    logger.info("website.overview_saved path={path} urls={count}", path=path, count=len(results))
    return path
