"""Two-phase narration batches: synthesize every item, then play them in order.

Phase 1 walks the inputs in their given order and asks the TTS collaborator
for one audio file per item. Phase 2 plays whatever phase 1 produced, in the
same order, with a fixed pause between items. A failing item is logged and
left out; it never aborts the rest of the batch.
"""

from __future__ import annotations

import time
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Callable, List, Literal, Optional, Protocol, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

TEXT_EXTENSIONS = frozenset(
    {".txt", ".md", ".json", ".js", ".ts", ".html", ".css", ".xml", ".csv"}
)


class Synthesizer(Protocol):
    def synthesize(self, text: str, speaker_id: int, output_name: str) -> Path: ...


class Player(Protocol):
    def play(self, path: Path) -> None: ...


class BatchState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    NOTHING_GENERATED = "nothing_generated"
    PLAYBACK_SKIPPED = "playback_skipped"
    PLAYING = "playing"
    DONE = "done"


class BatchItem(BaseModel):
    """One text file to narrate and the audio file name to produce for it."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    label: str
    text_path: Path
    output_name: str = Field(min_length=1)


class GeneratedArtifact(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    sequence_index: int = Field(ge=1)
    file_path: Path
    source_label: str


class BatchFailure(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    label: str
    phase: Literal["generate", "play"]
    error: str


class BatchResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    outcome: Literal["nothing_generated", "playback_skipped", "played"]
    artifacts: List[GeneratedArtifact] = Field(default_factory=list)
    played: List[Path] = Field(default_factory=list)
    failures: List[BatchFailure] = Field(default_factory=list)


class BatchOrchestrator:
    """Drive generate-all-then-play-all over an ordered list of :class:`BatchItem`."""

    def __init__(
        self,
        synthesizer: Synthesizer,
        player: Player,
        *,
        speaker_id: int = 0,
        auto_play: bool = True,
        interval_ms: int = 1_000,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.synthesizer = synthesizer
        self.player = player
        self.speaker_id = speaker_id
        self.auto_play = auto_play
        self.interval = interval_ms / 1000
        self._sleep = sleep
        self.state = BatchState.IDLE

    def generate(
        self, items: Sequence[BatchItem]
    ) -> Tuple[List[GeneratedArtifact], List[BatchFailure]]:
        """Phase 1: synthesize each item in order, skipping the ones that fail."""
        artifacts: List[GeneratedArtifact] = []
        failures: List[BatchFailure] = []
        logger.info("batch.generate.start items={count}", count=len(items))
        for position, item in enumerate(items, start=1):
            logger.info(
                "batch.generate [{position}/{total}] {label}",
                position=position,
                total=len(items),
                label=item.label,
            )
            try:
                text = item.text_path.read_text(encoding="utf-8")
                if not text.strip():
                    logger.warning("batch.generate.empty label={label}", label=item.label)
                    continue
                path = self.synthesizer.synthesize(text, self.speaker_id, item.output_name)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "batch.generate.failed label={label} error={error}",
                    label=item.label,
                    error=exc,
                )
                failures.append(BatchFailure(label=item.label, phase="generate", error=str(exc)))
                continue
            artifacts.append(
                GeneratedArtifact(
                    sequence_index=len(artifacts) + 1,
                    file_path=path,
                    source_label=item.label,
                )
            )
        logger.info(
            "batch.generate.done artifacts={artifacts} failures={failures}",
            artifacts=len(artifacts),
            failures=len(failures),
        )
        return artifacts, failures

    def play(
        self, artifacts: Sequence[GeneratedArtifact]
    ) -> Tuple[List[Path], List[BatchFailure]]:
        """Phase 2: play artifacts strictly in order with a pause between them."""
        played: List[Path] = []
        failures: List[BatchFailure] = []
        for position, artifact in enumerate(artifacts, start=1):
            logger.info(
                "batch.play [{position}/{total}] {file}",
                position=position,
                total=len(artifacts),
                file=artifact.file_path.name,
            )
            try:
                self.player.play(artifact.file_path)
                played.append(artifact.file_path)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "batch.play.failed file={file} error={error}",
                    file=artifact.file_path.name,
                    error=exc,
                )
                failures.append(
                    BatchFailure(label=artifact.source_label, phase="play", error=str(exc))
                )
            if position < len(artifacts) and self.interval > 0:
                self._sleep(self.interval)
        return played, failures

    def run(self, items: Sequence[BatchItem]) -> BatchResult:
        self.state = BatchState.GENERATING
        artifacts, failures = self.generate(items)

        if not artifacts:
            self.state = BatchState.NOTHING_GENERATED
            logger.info("batch.nothing_to_play")
            result = BatchResult(outcome="nothing_generated", failures=failures)
        elif not self.auto_play:
            self.state = BatchState.PLAYBACK_SKIPPED
            logger.info(
                "batch.playback_skipped auto_play=false artifacts={count}",
                count=len(artifacts),
            )
            result = BatchResult(
                outcome="playback_skipped", artifacts=artifacts, failures=failures
            )
        else:
            self.state = BatchState.PLAYING
            played, play_failures = self.play(artifacts)
            result = BatchResult(
                outcome="played",
                artifacts=artifacts,
                played=played,
                failures=[*failures, *play_failures],
            )
            logger.info("batch.play.done played={count}", count=len(played))

        self.state = BatchState.DONE
        return result


# —————————————————— Input collection ——————————————————


def load_ignore_patterns(path: Path | str) -> List[str]:
    """Read glob patterns from an ignore file; ``#`` comments and blanks are skipped."""
    path = Path(path)
    if not path.exists():
        return []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        logger.warning("batch.ignore_unreadable path={path} error={error}", path=path, error=exc)
        return []
    patterns = [line.strip() for line in lines]
    return [pattern for pattern in patterns if pattern and not pattern.startswith("#")]


def _match_segments(parts: Sequence[str], pattern: Sequence[str]) -> bool:
    if not pattern:
        return not parts
    head, rest = pattern[0], pattern[1:]
    if head == "**":
        for skip in range(len(parts) + 1):
            if _match_segments(parts[skip:], rest):
                return True
            if skip < len(parts) and parts[skip].startswith("."):
                return False
        return False
    if not parts:
        return False
    if parts[0].startswith(".") and not head.startswith("."):
        return False
    return fnmatchcase(parts[0], head) and _match_segments(parts[1:], rest)


def glob_match(path: str, pattern: str) -> bool:
    """Match a ``/``-separated path one segment at a time.

    ``*`` and ``?`` stay inside a segment, ``**`` spans any number of
    segments, and dot-names only match patterns that spell the dot.
    """
    parts = [part for part in path.split("/") if part]
    return _match_segments(parts, [part for part in pattern.split("/") if part])


def should_ignore(path: Path, patterns: Sequence[str], root: Optional[Path] = None) -> bool:
    """Match ``path`` relative to ``root`` and by bare file name against ``patterns``."""
    if not patterns:
        return False
    candidates = [path.name]
    if root is not None:
        try:
            candidates.append(path.resolve().relative_to(root.resolve()).as_posix())
        except ValueError:
            candidates.append(path.as_posix())
    else:
        candidates.append(path.as_posix())
    return any(glob_match(candidate, pattern) for pattern in patterns for candidate in candidates)


def collect_text_files(
    directory: Path | str,
    patterns: Sequence[str] = (),
    root: Optional[Path] = None,
) -> List[Path]:
    """Readable text files directly under ``directory``, sorted by file name.

    Raises:
        OSError: If the directory cannot be listed.
    """
    directory = Path(directory)
    files: List[Path] = []
    for path in directory.iterdir():
        if not path.is_file():
            continue
        if should_ignore(path, patterns, root):
            logger.info("batch.ignored file={file}", file=path.name)
            continue
        if path.suffix.lower() in TEXT_EXTENSIONS:
            files.append(path)
    return sorted(files, key=lambda path: path.name)


def directory_items(
    directory: Path | str,
    patterns: Sequence[str] = (),
    root: Optional[Path] = None,
) -> List[BatchItem]:
    """Batch items for a directory read, named ``{stem}_{position}.wav``."""
    return file_items(collect_text_files(directory, patterns, root))


def file_items(paths: Sequence[Path]) -> List[BatchItem]:
    """Batch items named ``{stem}_{position}.wav`` by position in ``paths``.

    The position counts across the whole sequence, so files with the same
    stem from different directories still get distinct audio names.
    """
    return [
        BatchItem(label=path.name, text_path=path, output_name=f"{path.stem}_{position}.wav")
        for position, path in enumerate(paths, start=1)
    ]


def numbered_items(paths: Sequence[Path], stem: str) -> List[BatchItem]:
    """Batch items for already-ordered reading files, named ``{stem}_{position}.wav``."""
    return [
        BatchItem(label=path.name, text_path=path, output_name=f"{stem}_{position}.wav")
        for position, path in enumerate(paths, start=1)
    ]
