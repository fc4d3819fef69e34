from __future__ import annotations

import time
from typing import Callable

from loguru import logger


class ProgressLogger:
    """Log numbered steps with completion percentage and elapsed seconds."""

    def __init__(self, total_steps: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.total_steps = max(1, total_steps)
        self.current_step = 0
        self._clock = clock
        self._started = clock()

    def elapsed(self) -> int:
        return int(self._clock() - self._started)

    def step(self, name: str) -> int:
        self.current_step += 1
        percent = min(100, self.current_step * 100 // self.total_steps)
        logger.info(
            "[{step}/{total}] ({percent}%) {name} elapsed={elapsed}s",
            step=self.current_step,
            total=self.total_steps,
            percent=percent,
            name=name,
            elapsed=self.elapsed(),
        )
        return percent

    def complete(self) -> None:
        logger.info("progress.complete total={elapsed}s", elapsed=self.elapsed())
