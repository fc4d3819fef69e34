from pathlib import Path
from typing import Callable, Dict, List

import pytest


class FakeClock:
    """Manual clock: time only moves when ``sleep`` is called."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def write_files(tmp_path: Path) -> Callable[..., List[Path]]:
    """Write ``{name: content}`` into a fresh directory under ``tmp_path``."""

    def _write(files: Dict[str, str], directory: str = "texts") -> List[Path]:
        root = tmp_path / directory
        root.mkdir(parents=True, exist_ok=True)
        paths = []
        for name, content in files.items():
            path = root / name
            path.write_text(content, encoding="utf-8")
            paths.append(path)
        return paths

    return _write
