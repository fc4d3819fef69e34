"""Typed, immutable application configuration backed by ``config.json``.

Sections mirror the JSON file: ``api``, ``speaker``, ``output``, ``playback``,
``news`` and ``websites``. Omitted keys take their defaults, so a partial file
behaves like a deep merge over the defaults. A file that is not valid JSON is
ignored in favour of in-memory defaults; a file that parses but does not
match the schema is a :class:`ConfigError`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voicevox_reader.reading import ReadingOptions


class ConfigError(RuntimeError):
    """Configuration is unusable; raised before any batch work starts."""


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ApiSettings(_Section):
    url: str = "http://localhost:50021"
    timeout: int = Field(default=10_000, gt=0, description="TTS request timeout in ms.")


class SpeakerSettings(_Section):
    default_id: int = Field(default=0, ge=0)
    name: str = "四国めたん（ノーマル）"


class OutputSettings(_Section):
    dir: str = "output"
    filename: str = "output.wav"


class PlaybackSettings(_Section):
    auto_play: bool = True
    interval_ms: int = Field(default=1_000, ge=0, description="Pause between items.")


class NewsSettings(_Section):
    keywords: List[str] = Field(default_factory=lambda: ["AI", "人工知能", "テクノロジー"])
    max_articles: int = Field(default=5, gt=0)
    summary_length: int = Field(default=200, gt=0)
    output_file: str = "news_summary.txt"
    output_dir: str = "news_output"
    language: str = "ja"
    fetch_timeout: float = Field(default=30.0, gt=0, description="RSS fetch timeout in s.")
    rss_feeds: List[str] = Field(
        default_factory=lambda: [
            "https://news.yahoo.co.jp/rss/topics/it.xml",
            "https://feeds.feedburner.com/itmedia/news",
            "https://rss.cnn.com/rss/edition.rss",
            "https://feeds.bbci.co.uk/news/technology/rss.xml",
        ]
    )
    reading: ReadingOptions = Field(default_factory=ReadingOptions)


class WebsiteSettings(_Section):
    urls: List[str] = Field(default_factory=list)
    output_dir: str = "website_summaries"
    summary_length: str = "medium"
    model: str = "gpt-4o-mini"
    temperature: float = 0.1
    chunk_size: int = Field(default=30_000, gt=0)
    chunk_overlap: int = Field(default=1_000, ge=0)
    fetch_timeout: float = Field(default=30.0, gt=0, description="Page fetch timeout in s.")
    max_requests: int = Field(default=200, gt=0)
    max_tokens: int = Field(default=150_000, gt=0)
    window_ms: int = Field(default=60_000, gt=0)
    reading: ReadingOptions = Field(
        default_factory=lambda: ReadingOptions(
            split_files=True,
            max_chars_per_file=100,
            include_metadata=True,
            output_prefix="website_summary_",
        )
    )


class AppConfig(_Section):
    api: ApiSettings = Field(default_factory=ApiSettings)
    speaker: SpeakerSettings = Field(default_factory=SpeakerSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)
    news: NewsSettings = Field(default_factory=NewsSettings)
    websites: WebsiteSettings = Field(default_factory=WebsiteSettings)


def save_config(config: AppConfig, path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    logger.info("config.saved path={path}", path=path)
    return path


def load_config(path: Path | str) -> AppConfig:
    """Load ``path``, creating it with defaults when it does not exist.

    Raises:
        ConfigError: If the file is valid JSON but violates the schema.
    """
    path = Path(path)
    if not path.exists():
        logger.info("config.missing path={path} writing defaults", path=path)
        config = AppConfig()
        try:
            save_config(config, path)
        except OSError as exc:
            logger.warning("config.save_failed path={path} error={error}", path=path, error=exc)
        return config

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error(
            "config.unreadable path={path} error={error} using defaults",
            path=path,
            error=exc,
        )
        return AppConfig()

    try:
        config = AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}:\n{exc}") from exc
    logger.info("config.loaded path={path}", path=path)
    return config
