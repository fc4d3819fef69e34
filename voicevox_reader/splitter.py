from __future__ import annotations

import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field

_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[。．！？!?\n])|(?<=\.)(?=\s|$)")
_DIGEST_DELIMITER_RE = re.compile(r"[。．！？\n]")
_DIGEST_TERMINAL = "。"

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_HTML_ENTITY_RE = re.compile(r"&[^;\s]+;")
_SPECIAL_TOKEN_RE = re.compile(r"<\|[^|]*\|>")
_WHITESPACE_RE = re.compile(r"\s+")


class TextChunk(BaseModel):
    """One bounded piece of text, numbered in narration order."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    index: int = Field(ge=1, description="One-based position of the chunk.")
    content: str = Field(min_length=1)
    source_length: int = Field(ge=0, description="Length of the text it was cut from.")


def split_sentences(text: str) -> List[str]:
    """Split ``text`` after each terminal delimiter, keeping the delimiter."""
    return [segment for segment in _SENTENCE_BOUNDARY_RE.split(text) if segment]


def _force_split(sentence: str, max_length: int) -> List[str]:
    return [
        sentence[start : start + max_length]
        for start in range(0, len(sentence), max_length)
    ]


def split_text_by_length(text: str, max_length: int) -> List[str]:
    """Greedily pack sentences into chunks of at most ``max_length`` characters.

    Sentences that alone exceed the limit are cut into fixed-width pieces of
    exactly ``max_length`` characters (the last piece may be shorter). The
    boundary check is inclusive, so a chunk may be exactly ``max_length`` long.
    """
    if max_length <= 0:
        raise ValueError(f"max_length must be positive, got {max_length}")
    if not text:
        return []

    chunks: List[str] = []
    current = ""
    for sentence in split_sentences(text):
        if not current and not sentence.strip():
            continue
        if len(current) + len(sentence) <= max_length:
            current += sentence if current else sentence.lstrip()
            continue

        if current.strip():
            chunks.append(current.strip())
        current = ""

        candidate = sentence.strip()
        if len(candidate) > max_length:
            chunks.extend(_force_split(candidate, max_length))
        else:
            current = candidate

    if current.strip():
        chunks.append(current.strip())

    return [chunk for chunk in chunks if chunk]


def chunk_text(text: str, max_length: int) -> List[TextChunk]:
    """Same as :func:`split_text_by_length`, wrapped into :class:`TextChunk`."""
    return [
        TextChunk(index=index, content=content, source_length=len(text))
        for index, content in enumerate(split_text_by_length(text, max_length), start=1)
    ]


def summarize_excerpt(text: str, max_length: int) -> str:
    """Build a lossy digest from the leading sentences of ``text``.

    Sentences are taken in order until the next one would overflow
    ``max_length``; everything after that point is dropped. When not even the
    first sentence fits, the cleaned text is truncated with an ellipsis.
    """
    if max_length <= 0:
        raise ValueError(f"max_length must be positive, got {max_length}")

    cleaned = _HTML_ENTITY_RE.sub("", _HTML_TAG_RE.sub("", text))
    sentences = [s.strip() for s in _DIGEST_DELIMITER_RE.split(cleaned) if s.strip()]

    summary = ""
    current_length = 0
    for sentence in sentences:
        if current_length + len(sentence) + 1 > max_length:
            break
        summary += (_DIGEST_TERMINAL if summary else "") + sentence
        current_length += len(sentence) + 1

    if summary and not summary.endswith(_DIGEST_TERMINAL):
        summary += _DIGEST_TERMINAL

    return summary or cleaned[:max_length] + "..."


def clean_text(text: str) -> str:
    """Strip markup, model special tokens and NUL bytes; collapse whitespace."""
    text = _HTML_TAG_RE.sub("", text)
    text = _SPECIAL_TOKEN_RE.sub("", text)
    text = text.replace("\x00", "")
    return _WHITESPACE_RE.sub(" ", text).strip()


_LENGTH_INSTRUCTIONS = {
    "short": "簡潔に2-3文で要約してください。",
    "brief": "簡潔に2-3文で要約してください。",
    "medium": "適度な長さ（5-8文程度）で要約してください。",
    "normal": "適度な長さ（5-8文程度）で要約してください。",
    "long": "詳細に10-15文程度で要約してください。",
    "detailed": "詳細に10-15文程度で要約してください。",
}
_DEFAULT_LENGTH_INSTRUCTION = "適度な長さで要約してください。"
_SUMMARY_LANGUAGE_NOTE = (
    "要約は日本語で行ってください。"
    "記事のタイトルとして抽出できそうな部分があれば、1行目にタイトルを記載してください。"
)


def length_instruction(length: str | int) -> str:
    """Render the summary length instruction for ``short|medium|long|<N>``."""
    key = str(length).strip().lower()
    if key in _LENGTH_INSTRUCTIONS:
        content = _LENGTH_INSTRUCTIONS[key]
    elif key.isdigit():
        content = f"約{key}文字程度で要約してください。"
    else:
        content = _DEFAULT_LENGTH_INSTRUCTION
    return content + _SUMMARY_LANGUAGE_NOTE
