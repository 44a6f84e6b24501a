"""Shared test fixtures for httpcachekit.

Provides isolated config directories, a plain output manager, a fake
clock for simulating the passage of time, and response stores for each
backend. These fixtures are discovered automatically by pytest.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from httpcachekit.cache.store import BaseCacheStore, DiskCacheStore, SQLiteCacheStore
from httpcachekit.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches a reference to sys.stderr at creation time;
    pytest's capture swaps that stream per test.
    """
    yield
    reset_output()


@pytest.fixture
def plain_output() -> OutputManager:
    """Install a colourless, non-verbose OutputManager for the duration of a test."""
    output = OutputManager(no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def verbose_output() -> OutputManager:
    """Install a verbose, colourless OutputManager so debug lines reach stderr."""
    output = OutputManager(no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_CACHE_HOME at subdirectories of
    tmp_path, forces the XDG layout, and clears HTTPCACHEKIT_* variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("httpcachekit.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    for var in [
        "HTTPCACHEKIT_BACKEND",
        "HTTPCACHEKIT_CACHE_PATH",
        "HTTPCACHEKIT_MAX_AGE",
    ]:
        monkeypatch.delenv(var, raising=False)
    return tmp_path


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock returning a controllable epoch time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def sqlite_store(tmp_path: Path) -> SQLiteCacheStore:
    store = SQLiteCacheStore(tmp_path / "cache.db")
    yield store
    store.close()


@pytest.fixture
def disk_store(tmp_path: Path) -> DiskCacheStore:
    store = DiskCacheStore(tmp_path / "diskcache")
    yield store
    store.close()


@pytest.fixture(params=["sqlite", "diskcache"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> BaseCacheStore:
    """Each test using this fixture runs once per storage backend."""
    if request.param == "sqlite":
        s: BaseCacheStore = SQLiteCacheStore(tmp_path / "cache.db")
    else:
        s = DiskCacheStore(tmp_path / "diskcache")
    yield s
    s.close()
