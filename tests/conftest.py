"""Shared fixtures: catalog entry builders and an in-memory store."""

from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from craftcatalog.models.game import (
    Capabilities,
    CatalogEntry,
    PriceInfo,
    RawDetailRecord,
    RawTagRecord,
    ReviewInfo,
    StoreStats,
)
from craftcatalog.services.logging import LoggingService

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_entry(appid: int, **overrides: object) -> CatalogEntry:
    entry = CatalogEntry(
        appid=appid,
        name=f"Game {appid}",
        description="",
        header_image=f"https://cdn.akamai.steamstatic.com/steam/apps/{appid}/header.jpg",
        screenshots=[],
        price=PriceInfo.free(),
        reviews=ReviewInfo.from_counts(80, 20),
        release_date="",
        tags=["Crafting"],
        capabilities=Capabilities(),
        owners="100,000 .. 200,000",
        playtime=0,
        updated_at=BASE_TIME,
    )
    return replace(entry, **overrides)


def make_tag_record(appid: int, tags: list[str], positive: int = 80, negative: int = 20, **overrides: object) -> RawTagRecord:
    record = RawTagRecord(
        appid=appid,
        name=f"Game {appid}",
        tags=tags,
        positive=positive,
        negative=negative,
        owners="100,000 .. 200,000",
        average_playtime=120,
    )
    return replace(record, **overrides)


def make_detail(appid: int, **overrides: object) -> RawDetailRecord:
    detail = RawDetailRecord(
        appid=appid,
        name=f"Detail {appid}",
        description=f"About game {appid}",
        header_image=f"https://example.test/{appid}.jpg",
        screenshots=[f"https://example.test/{appid}/1.jpg"],
        price=PriceInfo(initial=10000, final=7500, discount_percent=25, is_free=False),
        release_date="14 Jul, 2020",
        genres=["Action", "Indie"],
        capabilities=Capabilities(singleplayer=True, multiplayer=False, coop=True),
    )
    return replace(detail, **overrides)


class InMemoryCatalogStore:
    """``CatalogStore`` kept in a dict, for tests."""

    def __init__(self, entries: Sequence[CatalogEntry] = (), writable: bool = True) -> None:
        self.rows: dict[int, CatalogEntry] = {entry.appid: entry for entry in entries}
        self.writable = writable
        self.upsert_calls: list[list[CatalogEntry]] = []

    @property
    def is_configured(self) -> bool:
        return True

    @property
    def can_write(self) -> bool:
        return self.writable

    async def fetch_all(self) -> list[CatalogEntry]:
        return sorted(self.rows.values(), key=lambda entry: entry.reviews.score, reverse=True)

    async def fetch_by_id(self, appid: int) -> CatalogEntry | None:
        return self.rows.get(appid)

    async def fetch_on_sale(self) -> list[CatalogEntry]:
        on_sale = [entry for entry in self.rows.values() if entry.price.discount_percent > 0]
        return sorted(on_sale, key=lambda entry: entry.price.discount_percent, reverse=True)

    async def fetch_oldest(self, limit: int) -> list[CatalogEntry]:
        ordered = sorted(self.rows.values(), key=lambda entry: (entry.updated_at, entry.appid))
        return ordered[:limit]

    async def upsert(self, entries: Sequence[CatalogEntry]) -> int:
        self.upsert_calls.append(list(entries))
        for entry in entries:
            self.rows[entry.appid] = entry
        return len(entries)

    async def get_stats(self) -> StoreStats:
        return StoreStats(
            total=len(self.rows),
            on_sale=sum(1 for entry in self.rows.values() if entry.price.discount_percent > 0),
            last_updated=max((entry.updated_at for entry in self.rows.values()), default=None),
        )


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StepDateTime:
    """Wall clock returning a later UTC datetime on every call."""

    def __init__(self, start: datetime = BASE_TIME, step: timedelta = timedelta(minutes=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        self.current = self.current + self.step
        return self.current


@pytest.fixture
def entry_factory() -> Callable[..., CatalogEntry]:
    return make_entry


@pytest.fixture
def tag_record_factory() -> Callable[..., RawTagRecord]:
    return make_tag_record


@pytest.fixture
def detail_factory() -> Callable[..., RawDetailRecord]:
    return make_detail


@pytest.fixture
def memory_store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store_factory() -> type[InMemoryCatalogStore]:
    return InMemoryCatalogStore


@pytest.fixture
def wall_clock() -> StepDateTime:
    return StepDateTime()


@pytest.fixture(autouse=True)
def _configure_logging() -> None:
    """Route structlog to stderr as ``main()`` does, keeping stdout for command output."""
    LoggingService(log_level="WARNING").configure()
