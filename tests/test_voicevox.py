from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest

from voicevox_reader import voicevox
from voicevox_reader.config import AppConfig
from voicevox_reader.voicevox import DEFAULT_SPEAKERS, TtsError, VoicevoxClient

BASE_URL = "http://engine.test:50021"


def _response(method: str, url: str, status_code: int = 200, **kwargs: Any) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request(method, url), **kwargs)


def _client(tmp_path: Path) -> VoicevoxClient:
    return VoicevoxClient(base_url=BASE_URL + "/", output_dir=tmp_path / "audio", timeout_seconds=2.5)


def test_synthesize_queries_then_writes_audio(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Dict[str, Any]] = []

    def fake_post(url: str, **kwargs: Any) -> httpx.Response:
        calls.append({"url": url, **kwargs})
        if url.endswith("/audio_query"):
            return _response("POST", url, json={"speedScale": 1.0})
        return _response("POST", url, content=b"RIFF-fake-wav")

    monkeypatch.setattr(voicevox.httpx, "post", fake_post)

    path = _client(tmp_path).synthesize("こんにちは。", 3, "greeting.wav")

    assert path == tmp_path / "audio" / "greeting.wav"
    assert path.read_bytes() == b"RIFF-fake-wav"
    assert [call["url"] for call in calls] == [
        f"{BASE_URL}/audio_query",
        f"{BASE_URL}/synthesis",
    ]
    assert calls[0]["params"] == {"text": "こんにちは。", "speaker": 3}
    assert calls[1]["params"] == {"speaker": 3}
    assert calls[1]["json"] == {"speedScale": 1.0}
    assert all(call["timeout"] == 2.5 for call in calls)


def test_unreachable_engine_raises_tts_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(url: str, **kwargs: Any) -> httpx.Response:
        raise httpx.ConnectError("refused", request=httpx.Request("POST", url))

    monkeypatch.setattr(voicevox.httpx, "post", refuse)

    with pytest.raises(TtsError, match="Could not connect"):
        _client(tmp_path).synthesize("テスト。", 0, "out.wav")
    assert not (tmp_path / "audio" / "out.wav").exists()


def test_http_error_status_raises_tts_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        voicevox.httpx,
        "post",
        lambda url, **kwargs: _response("POST", url, status_code=422, text="bad speaker"),
    )
    with pytest.raises(TtsError, match="422"):
        _client(tmp_path).synthesize("テスト。", 999, "out.wav")


def test_speakers_flatten_styles(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    payload = [
        {"name": "ずんだもん", "styles": [{"id": 3, "name": "ノーマル"}, {"id": 1, "name": "あまあま"}]},
        {"name": "春日部つむぎ", "styles": [{"id": 8, "name": "ノーマル"}]},
    ]
    monkeypatch.setattr(
        voicevox.httpx, "get", lambda url, **kwargs: _response("GET", url, json=payload)
    )

    speakers = _client(tmp_path).speakers()

    assert [(speaker.id, speaker.name) for speaker in speakers] == [
        (3, "ずんだもん（ノーマル）"),
        (1, "ずんだもん（あまあま）"),
        (8, "春日部つむぎ（ノーマル）"),
    ]


def test_speakers_fall_back_to_builtin_list(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(url: str, **kwargs: Any) -> httpx.Response:
        raise httpx.ConnectError("refused", request=httpx.Request("GET", url))

    monkeypatch.setattr(voicevox.httpx, "get", refuse)
    assert _client(tmp_path).speakers() == DEFAULT_SPEAKERS


def test_from_config_converts_timeout_to_seconds() -> None:
    config = AppConfig.model_validate({"api": {"url": BASE_URL, "timeout": 1500}})
    client = VoicevoxClient.from_config(config)
    assert client._timeout_seconds == 1.5
    assert client.output_dir == Path("output")
