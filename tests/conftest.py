"""
Shared fixtures for Pocket Ledger tests.

Every test gets its own working directory and SQLite file, so nothing
persists between tests and no `.env` in the repository leaks into settings.
No test touches the network: the rate source is a scripted fake.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from pocket_ledger.config import get_settings
from pocket_ledger.services.rates import RateSource, RateTransportError
from pocket_ledger.services.storage import (
    Database,
    PriceCacheInterface,
    SqliteLedgerStorage,
    SqlitePriceCache,
    StorageError,
)


NOW = datetime(2026, 10, 13, 12, 0, tzinfo=timezone.utc)


class FakeRateSource(RateSource):
    """
    Returns scripted results in order. An exception in the script is raised
    instead of returned; an exhausted script fails like a dead network.
    """

    def __init__(self, results: Optional[list] = None):
        self.results = list(results or [])
        self.calls = 0
        self.closed = False

    async def fetch_rate(self) -> float:
        self.calls += 1
        if not self.results:
            raise RateTransportError("no scripted result")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def describe(self) -> str:
        return "fake"

    def close(self) -> None:
        self.closed = True


class GatedRateSource(RateSource):
    """Blocks every fetch until `gate` is set, then returns `value`."""

    def __init__(self, value: float):
        self.value = value
        self.calls = 0
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def fetch_rate(self) -> float:
        self.calls += 1
        self.started.set()
        await self.gate.wait()
        return self.value


class MemoryPriceCache(PriceCacheInterface):
    """In-memory price cache with switchable failures."""

    def __init__(self, value: Optional[float] = None):
        self.value = value
        self.saved: list[float] = []
        self.fail_save = False
        self.fail_load = False

    async def save(self, value: float) -> None:
        if self.fail_save:
            raise StorageError("disk full")
        self.saved.append(value)
        self.value = value

    async def load(self) -> Optional[float]:
        if self.fail_load:
            raise StorageError("disk unreadable")
        if not self.value:
            return None
        return self.value


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Run each test in its own directory with a fresh settings cache."""
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database(tmp_path: Path):
    db = Database.for_path(tmp_path / "data" / "ledger.db")
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def storage(database: Database) -> SqliteLedgerStorage:
    return SqliteLedgerStorage(database, zone=timezone.utc)


@pytest.fixture
def price_cache(database: Database) -> SqlitePriceCache:
    return SqlitePriceCache(database)


@pytest.fixture
def memory_cache() -> MemoryPriceCache:
    return MemoryPriceCache()


@pytest.fixture
def fake_source() -> FakeRateSource:
    return FakeRateSource()


@pytest.fixture
def gated_source_factory():
    return GatedRateSource


@pytest.fixture
def fake_source_factory():
    return FakeRateSource
