from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict

from voicevox_reader.config import AppConfig

VOICEVOX_DOWNLOAD_URL = "https://voicevox.hiroshiba.jp/"


class TtsError(RuntimeError):
    """Synthesis failed; the caller decides whether to skip the item."""


class Speaker(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str


DEFAULT_SPEAKERS: List[Speaker] = [
    Speaker(id=speaker_id, name=name)
    for speaker_id, name in enumerate(
        [
            "四国めたん（ノーマル）",
            "四国めたん（あまあま）",
            "四国めたん（ツンツン）",
            "四国めたん（セクシー）",
            "ずんだもん（ノーマル）",
            "ずんだもん（あまあま）",
            "ずんだもん（ツンツン）",
            "ずんだもん（セクシー）",
            "春日部つむぎ（ノーマル）",
            "雨晴はう（ノーマル）",
            "波音リツ（ノーマル）",
            "玄野武宏（ノーマル）",
            "白上虎太郎（ノーマル）",
            "青山龍星（ノーマル）",
            "冥鳴ひまり（ノーマル）",
            "九州そら（ノーマル）",
        ]
    )
]


class VoicevoxClient:
    """Thin client for a VOICEVOX engine: ``audio_query`` then ``synthesis``.

    Calls are never retried; a failure surfaces as :class:`TtsError`.
    """

    def __init__(
        self,
        *,
        base_url: str,
        output_dir: Path | str,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self.output_dir = Path(output_dir)

    @classmethod
    def from_config(cls, config: AppConfig) -> "VoicevoxClient":
        return cls(
            base_url=config.api.url,
            output_dir=config.output.dir,
            timeout_seconds=config.api.timeout / 1000,
        )

    def speakers(self) -> List[Speaker]:
        """List engine speakers (one entry per style); built-in list when unreachable."""
        try:
            response = httpx.get(f"{self._base_url}/speakers", timeout=self._timeout_seconds)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("voicevox.speakers_failed error={error} using defaults", error=exc)
            return list(DEFAULT_SPEAKERS)

        speakers: List[Speaker] = []
        for entry in response.json():
            for style in entry.get("styles", []):
                speakers.append(
                    Speaker(id=style["id"], name=f"{entry['name']}（{style['name']}）")
                )
        return speakers

    def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = httpx.post(
                f"{self._base_url}{path}", timeout=self._timeout_seconds, **kwargs
            )
            response.raise_for_status()
        except httpx.ConnectError as exc:
            raise TtsError(
                "Could not connect to the VOICEVOX engine at "
                f"{self._base_url}; make sure it is running ({VOICEVOX_DOWNLOAD_URL})."
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise TtsError(
                f"VOICEVOX {path} returned HTTP {exc.response.status_code}: "
                f"{exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TtsError(f"VOICEVOX {path} failed: {exc}") from exc
        return response

    def synthesize(self, text: str, speaker_id: int, output_name: str) -> Path:
        """Synthesize ``text`` and write the WAV to ``output_dir / output_name``."""
        logger.debug(
            "voicevox.query speaker={speaker} chars={chars}", speaker=speaker_id, chars=len(text)
        )
        query: Dict[str, Any] = self._post(
            "/audio_query", params={"text": text, "speaker": speaker_id}
        ).json()
        audio = self._post(
            "/synthesis",
            params={"speaker": speaker_id},
            json=query,
            headers={"Accept": "audio/wav"},
        ).content

        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / output_name
        path.write_bytes(audio)
        logger.info("voicevox.saved path={path} bytes={size}", path=path, size=len(audio))
        return path
