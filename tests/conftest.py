"""
Pytest fixtures for reelgen tests.

Nothing here needs FFmpeg: subprocess and ffprobe calls are mocked, and all
files live under pytest's tmp_path.
"""

from pathlib import Path

import pytest

from reelgen.config import Settings
from reelgen.services.rate_limiter import LocalCounterBackend


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "api: HTTP surface tests using TestClient")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory."""
    return Settings(
        _env_file=None,
        data_root=str(tmp_path / "data"),
        environment="production",
        redis_url="",
    )


@pytest.fixture
def local_counters(clock: FakeClock) -> LocalCounterBackend:
    return LocalCounterBackend(clock=clock)


@pytest.fixture
def make_file():
    """Create a file (and parents) with the given content."""

    def _make(path: Path, content: bytes = b"data") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _make
