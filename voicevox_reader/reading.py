from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from voicevox_reader.splitter import split_text_by_length


class SummarizedItem(BaseModel):
    """A summarized news article or website, ready to be narrated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str
    summary: str
    source: str = ""
    published_at: str = ""
    link: str = ""


class ReadingOptions(BaseModel):
    """How summaries are laid out into numbered reading files."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    split_files: bool = True
    max_chars_per_file: int = Field(default=300, gt=0)
    include_metadata: bool = False
    output_prefix: str = "news_reading_"


def _write_text(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    logger.debug("reading.file_saved path={path} chars={chars}", path=path, chars=len(content))
    return path


def write_reading_files(
    items: Sequence[SummarizedItem],
    output_dir: Path | str,
    options: ReadingOptions,
) -> List[Path]:
    """Write summaries as numbered ``.txt`` chunks and return them in narration order.

    Split mode writes ``{prefix}{item:02d}_{chunk:02d}.txt`` per item; combined
    mode joins every item into one narration and writes ``{prefix}{chunk:02d}.txt``.
    Numbered files left under the same prefix by an earlier run are removed
    first, so a lexicographic listing reproduces the returned order.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = options.output_prefix
    limit = options.max_chars_per_file

    numbered = re.compile(rf"{re.escape(prefix)}\d{{2,}}(_\d{{2,}})?\.txt")
    for stale in output_dir.iterdir():
        if numbered.fullmatch(stale.name):
            stale.unlink()
            logger.debug("reading.stale_removed path={path}", path=stale)

    created: List[Path] = []
    if options.split_files:
        for item_index, item in enumerate(items, start=1):
            chunks = split_text_by_length(item.summary, limit)
            for chunk_index, chunk in enumerate(chunks, start=1):
                path = output_dir / f"{prefix}{item_index:02d}_{chunk_index:02d}.txt"
                created.append(_write_text(path, chunk))
    else:
        narration = ""
        if options.include_metadata:
            narration += f"ニュース要約。{len(items)}件の記事があります。"
        for item_index, item in enumerate(items, start=1):
            if options.include_metadata:
                narration += f"記事{item_index}。"
            narration += f"{item.title}。{item.summary}。"
        for chunk_index, chunk in enumerate(split_text_by_length(narration, limit), start=1):
            path = output_dir / f"{prefix}{chunk_index:02d}.txt"
            created.append(_write_text(path, chunk))

    logger.info(
        "reading.done output_dir={output_dir} items={items} files={files} split={split}",
        output_dir=output_dir,
        items=len(items),
        files=len(created),
        split=options.split_files,
    )
    return created


def write_report(
    items: Sequence[SummarizedItem],
    output_dir: Path | str,
    file_name: str,
    *,
    heading: str = "ニュース要約レポート",
    keywords: Optional[Sequence[str]] = None,
    feed_count: Optional[int] = None,
    generated_at: Optional[datetime] = None,
) -> Path:
    """Render every item into one human-readable Markdown report."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    generated_at = generated_at or datetime.now()

    lines = [f"# {heading}", f"生成日時: {generated_at:%Y/%m/%d %H:%M:%S}"]
    if keywords is not None:
        lines.append(f"検索キーワード: {', '.join(keywords) or 'なし'}")
    lines.append(f"記事数: {len(items)}件")
    if feed_count is not None:
        lines.append(f"RSSフィード数: {feed_count}件")
    lines.append("")

    for index, item in enumerate(items, start=1):
        lines.extend(
            [
                f"## {index}. {item.title}",
                f"**ソース**: {item.source}",
                f"**公開日**: {item.published_at}",
                f"**URL**: {item.link}",
                "",
                "**要約**:",
                item.summary,
                "",
                "---",
                "",
            ]
        )

    path = output_dir / file_name
    path.write_text("\n".join(lines), encoding="utf-8")
    logger.info("reading.report_saved path={path} items={items}", path=path, items=len(items))
    return path
