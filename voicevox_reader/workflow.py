"""
VOICEVOX Reader (Collect → Chunk → Synthesize → Play)

Command-line entry point that turns local text files, RSS news and web pages
into narrated audio. Commands are exposed through ``fire``:

    read       narrate files or directories
    speakers   list the engine's speakers
    news       digest RSS news into reading files, then narrate them
    summarize  summarize one URL (or every configured URL) into reading files
    websites   summarize configured URLs, then narrate them
    run        news, website or all of the above

Configuration is read once from ``config.json`` and passed to every
collaborator; it is never mutated after loading.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

import fire
from dotenv import load_dotenv
from langchain_core.language_models import BaseChatModel
from loguru import logger

from voicevox_reader.batch import (
    BatchItem,
    BatchOrchestrator,
    BatchResult,
    collect_text_files,
    file_items,
    load_ignore_patterns,
    numbered_items,
)
from voicevox_reader.config import AppConfig, ConfigError, load_config
from voicevox_reader.news import fetch_all_news, filter_and_summarize
from voicevox_reader.playback import AudioPlayer
from voicevox_reader.reading import write_reading_files, write_report
from voicevox_reader.voicevox import VoicevoxClient
from voicevox_reader.website import (
    WebsiteResult,
    build_llm,
    build_rate_limiter,
    process_url,
    process_urls,
    write_overview_report,
)

CONFIG_FILE = Path("config.json")
IGNORE_FILE = Path(".readignore")
RUN_MODES = ("news", "website", "all")


class Reader:
    """Narrate local text, RSS news and website summaries through VOICEVOX."""

    def __init__(
        self,
        config: Path | str = CONFIG_FILE,
        ignore_file: Path | str = IGNORE_FILE,
        debug: bool = False,
        app_config: Optional[AppConfig] = None,
        synthesizer=None,
        player=None,
        llm: Optional[BaseChatModel] = None,
    ) -> None:
        """Load configuration and wire the external collaborators.

        Args:
            config: Path of the JSON configuration file.
            ignore_file: Glob pattern file applied to directory reads.
            debug: Enable DEBUG-level logging.
            app_config: Preloaded configuration; skips reading ``config``.
            synthesizer: TTS collaborator; defaults to a VOICEVOX client.
            player: Playback collaborator; defaults to the system audio device.
            llm: Chat model for website summaries; built lazily when omitted.
        """
        if debug:
            logger.remove()
            logger.add(sys.stderr, level="DEBUG")
        self.config = app_config or load_config(config)
        self.ignore_file = Path(ignore_file)
        self.root = Path.cwd()
        self.synthesizer = synthesizer or VoicevoxClient.from_config(self.config)
        self.player = player or AudioPlayer()
        self._llm = llm

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = build_llm(self.config.websites)
        return self._llm

    # —————————————————— Helpers ——————————————————

    def _orchestrator(self) -> BatchOrchestrator:
        return BatchOrchestrator(
            self.synthesizer,
            self.player,
            speaker_id=self.config.speaker.default_id,
            auto_play=self.config.playback.auto_play,
            interval_ms=self.config.playback.interval_ms,
        )

    def _items_for(self, paths: List[Path]) -> List[BatchItem]:
        patterns = load_ignore_patterns(self.ignore_file)
        if patterns:
            logger.info("read.ignore_patterns count={count}", count=len(patterns))

        if len(paths) == 1 and paths[0].is_file():
            path = paths[0]
            return [
                BatchItem(label=path.name, text_path=path, output_name=self.config.output.filename)
            ]

        text_files: List[Path] = []
        for path in paths:
            if not path.exists():
                logger.error("read.missing path={path}", path=path)
            elif path.is_file():
                text_files.append(path)
            elif path.is_dir():
                try:
                    found = collect_text_files(path, patterns, self.root)
                except OSError as exc:
                    logger.error("read.directory_failed path={path} error={error}", path=path, error=exc)
                    continue
                if not found:
                    logger.warning("read.no_text_files path={path}", path=path)
                text_files.extend(found)
            else:
                logger.error("read.unsupported path={path}", path=path)
        # Positions count across the whole batch.
        return file_items(text_files)

    # —————————————————— Commands ——————————————————

    def read(self, *paths: str) -> BatchResult:
        """Narrate files and directories: synthesize everything, then play in order."""
        if not paths:
            raise ConfigError("read needs at least one file or directory path.")
        resolved = [Path(path) if Path(path).is_absolute() else self.root / path for path in paths]
        items = self._items_for(resolved)
        logger.info("read.start items={count}", count=len(items))
        return self._orchestrator().run(items)

    def speakers(self) -> List[str]:
        """List available speakers as ``id: name``."""
        client = (
            self.synthesizer
            if isinstance(self.synthesizer, VoicevoxClient)
            else VoicevoxClient.from_config(self.config)
        )
        return [f"{speaker.id}: {speaker.name}" for speaker in client.speakers()]

    def news(self, speak: bool = True) -> Optional[BatchResult]:
        """Digest configured RSS feeds into reading files and narrate them."""
        settings = self.config.news
        logger.info(
            "news.start keywords={keywords} max_articles={max_articles} summary_length={length}",
            keywords=", ".join(settings.keywords),
            max_articles=settings.max_articles,
            length=settings.summary_length,
        )
        articles = fetch_all_news(settings)
        if not articles:
            logger.info("news.none_found")
            return None
        items = filter_and_summarize(articles, settings)
        if not items:
            logger.info("news.none_matched fetched={count}", count=len(articles))
            return None
        logger.info("news.matched count={count}", count=len(items))

        output_dir = self.root / settings.output_dir
        reading_files = write_reading_files(items, output_dir, settings.reading)
        write_report(
            items,
            output_dir,
            settings.output_file,
            keywords=settings.keywords,
            feed_count=len(settings.rss_feeds),
        )
        if not speak:
            return None
        return self._orchestrator().run(numbered_items(reading_files, "news"))

    def summarize(
        self,
        url: str = "",
        output: str = "",
        length: str = "medium",
        from_config: bool = False,
    ) -> List[WebsiteResult]:
        """Summarize one URL, or every ``websites.urls`` entry with ``--from_config``."""
        settings = self.config.websites
        limiter = build_rate_limiter(settings)
        if from_config:
            if not settings.urls:
                raise ConfigError("websites.urls is empty; add URLs to the configuration.")
            output_dir = self.root / settings.output_dir
            results = process_urls(settings.urls, output_dir, settings, self.llm, limiter)
            write_overview_report(results, output_dir)
            return results

        if not url:
            raise ConfigError("--url is required unless --from_config is given.")
        if not output:
            raise ConfigError("--output is required unless --from_config is given.")
        return [process_url(url, self.root / output, settings, self.llm, limiter, summary_length=length)]

    def websites(self, speak: bool = True) -> Optional[BatchResult]:
        """Summarize every configured URL, then narrate all summaries in order."""
        settings = self.config.websites
        if not settings.urls:
            raise ConfigError("websites.urls is empty; add URLs to the configuration.")
        results = process_urls(
            settings.urls,
            self.root / settings.output_dir,
            settings,
            self.llm,
            build_rate_limiter(settings),
        )
        if not results:
            logger.info("websites.none_succeeded")
            return None
        logger.info("websites.summarized count={count}", count=len(results))
        if not speak:
            return None

        items: List[BatchItem] = []
        for site_index, result in enumerate(results, start=1):
            items.extend(numbered_items(result.created_files, f"website_{site_index}"))
        return self._orchestrator().run(items)

    def run(self, mode: str = "all") -> None:
        """Narrate ``news``, ``website`` or ``all`` sources."""
        mode = mode.lower()
        if mode not in RUN_MODES:
            raise ConfigError(f"Unknown mode {mode!r}; expected one of {', '.join(RUN_MODES)}.")
        if mode in ("news", "all"):
            self.news()
        if mode in ("website", "all"):
            self.websites()


def main() -> None:
    load_dotenv()
    try:
        fire.Fire(Reader)
    except ConfigError as exc:
        logger.error("config.error {error}", error=exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
