from __future__ import annotations

from pathlib import Path

from loguru import logger
from pydub import AudioSegment
from pydub.playback import play


class PlaybackError(RuntimeError):
    """An audio file could not be decoded or played."""


class AudioPlayer:
    """Play audio files to completion on the default output device."""

    def play(self, path: Path | str) -> None:
        path = Path(path)
        logger.info("playback.start file={file}", file=path.name)
        try:
            segment = AudioSegment.from_file(path)
            play(segment)
        except Exception as exc:  # noqa: BLE001
            raise PlaybackError(f"Failed to play {path}: {exc}") from exc
        logger.debug("playback.done file={file}", file=path.name)
