"""Sliding-window gate for calls to a request- and token-metered API."""

from __future__ import annotations

import time
from collections import deque
from functools import lru_cache
from threading import Lock
from typing import Callable, Deque, Optional, Tuple

import tiktoken
from loguru import logger
from pydantic import BaseModel, ConfigDict

DEFAULT_MAX_REQUESTS = 200
DEFAULT_MAX_TOKENS = 150_000
DEFAULT_WINDOW_MS = 60_000
DEFAULT_GUARD_MS = 1_000


class RateWindowEntry(BaseModel):
    """A single consumption event kept while it is inside the window."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: float
    tokens: int


class RateLimiter:
    """Bound request count and token volume over a trailing time window.

    Each :meth:`acquire` prunes expired events, waits when either ceiling
    would be crossed, then records the call. The two waits are evaluated
    independently against the same ``now`` and may both be incurred in one
    call; afterwards the window is checked again so a recorded call never
    pushes the window over either ceiling.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        window_ms: int = DEFAULT_WINDOW_MS,
        guard_ms: int = DEFAULT_GUARD_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_requests <= 0 or max_tokens <= 0 or window_ms <= 0:
            raise ValueError("Rate limits and window must be positive.")
        self.max_requests = max_requests
        self.max_tokens = max_tokens
        self.window = window_ms / 1000
        self.guard = guard_ms / 1000
        self._clock = clock
        self._sleep = sleep
        self._requests: Deque[float] = deque()
        self._tokens: Deque[RateWindowEntry] = deque()
        self._lock = Lock()

    def _prune(self, now: float) -> None:
        horizon = now - self.window
        while self._requests and self._requests[0] <= horizon:
            self._requests.popleft()
        while self._tokens and self._tokens[0].timestamp <= horizon:
            self._tokens.popleft()

    def _wait(self, seconds: float, reason: str) -> None:
        logger.info(
            "rate_limit.wait reason={reason} seconds={seconds:.1f}",
            reason=reason,
            seconds=seconds,
        )
        self._sleep(seconds)

    def acquire(self, estimated_tokens: int) -> None:
        """Block until one more request of ``estimated_tokens`` fits, then record it."""
        if estimated_tokens < 0:
            raise ValueError("estimated_tokens must not be negative.")
        if estimated_tokens > self.max_tokens:
            raise ValueError(
                f"A single call of {estimated_tokens} tokens can never fit "
                f"a budget of {self.max_tokens} tokens per window."
            )

        with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                current_tokens = sum(entry.tokens for entry in self._tokens)
                request_full = len(self._requests) >= self.max_requests
                token_full = current_tokens + estimated_tokens > self.max_tokens
                if not request_full and not token_full:
                    break

                if request_full:
                    wait = self.window - (now - self._requests[0]) + self.guard
                    if wait > 0:
                        self._wait(wait, "requests")
                if token_full:
                    wait = self.window - (now - self._tokens[0].timestamp) + self.guard
                    if wait > 0:
                        self._wait(wait, "tokens")

            self._requests.append(now)
            self._tokens.append(RateWindowEntry(timestamp=now, tokens=estimated_tokens))
            logger.debug(
                "rate_limit.acquired requests={requests} tokens={tokens}",
                requests=len(self._requests),
                tokens=current_tokens + estimated_tokens,
            )

    def current_usage(self) -> Tuple[int, int]:
        """Return ``(requests, tokens)`` recorded inside the current window."""
        with self._lock:
            self._prune(self._clock())
            return len(self._requests), sum(entry.tokens for entry in self._tokens)


@lru_cache(maxsize=1)
def _token_encoder() -> Optional[tiktoken.Encoding]:
    try:
        return tiktoken.get_encoding("cl100k_base")
    except Exception:  # noqa: BLE001
        logger.warning("rate_limit.encoder_unavailable falling back to char heuristic")
        return None


def estimate_tokens(text: str) -> int:
    """Token count of ``text``; roughly four characters per token without tiktoken."""
    encoder = _token_encoder()
    if encoder is not None:
        return len(encoder.encode(text))
    text = text.strip()
    if not text:
        return 0
    return max(1, (len(text) + 3) // 4)
