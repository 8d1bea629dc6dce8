"""Tiered catalog cache: memory, primary store, local snapshot, bundled fallback."""

import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from importlib import resources
from pathlib import Path

import structlog

from ..models.game import CATALOG_SCHEMA_VERSION, CacheInfo, CacheSnapshot, CatalogEntry
from .filesystem import FileSystemService
from .store import CatalogStore

log = structlog.stdlib.get_logger()

Provider = Callable[[], Awaitable[list[CatalogEntry] | None]]

SOURCE_STORE = "store"
SOURCE_SNAPSHOT = "snapshot"
SOURCE_FALLBACK = "fallback"
SOURCE_NONE = "none"


@dataclass(frozen=True)
class _MemoryEntry:
    entries: list[CatalogEntry]
    source: str
    fetched_at: float


def bundled_fallback_path() -> Path:
    """Location of the fallback catalog shipped inside the package."""
    return Path(str(resources.files("craftcatalog") / "data" / "fallback_catalog.json"))


class CatalogCache:
    """Resolves the current catalog through an ordered list of providers.

    The first provider returning a non-empty list wins and is held in memory
    for ``ttl`` seconds. The bundled fallback is the last provider and is
    accepted even when empty. A provider that raises is logged and skipped;
    reads never raise.
    """

    def __init__(
        self,
        store: CatalogStore | None,
        filesystem: FileSystemService,
        snapshot_path: Path,
        fallback_path: Path | None = None,
        ttl: float = 300.0,
        snapshot_max_age: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.filesystem = filesystem
        self.snapshot_path = snapshot_path
        self.fallback_path = fallback_path or bundled_fallback_path()
        self.ttl = ttl
        self.snapshot_max_age = snapshot_max_age
        self._clock = clock
        self._now = now
        self._memory: _MemoryEntry | None = None

        self.providers: list[tuple[str, Provider]] = []
        if store is not None and store.is_configured:
            self.providers.append((SOURCE_STORE, store.fetch_all))
        self.providers.append((SOURCE_SNAPSHOT, self.read_snapshot_entries))
        self.providers.append((SOURCE_FALLBACK, self.read_fallback_entries))

    @property
    def store_available(self) -> bool:
        return self.store is not None and self.store.is_configured

    def _memory_fresh(self) -> bool:
        return self._memory is not None and self._clock() - self._memory.fetched_at < self.ttl

    async def read_snapshot(self) -> CacheSnapshot | None:
        """Read the local snapshot; a missing file or version mismatch reads as absent.

        Raises:
            ValueError: If the file exists but is not a valid snapshot document
        """
        try:
            data = await self.filesystem.load_json(self.snapshot_path)
        except FileNotFoundError:
            log.debug("No snapshot file", path=str(self.snapshot_path))
            return None

        # Older schemas may shape entries differently, so check before parsing them
        version = data.get("version")
        if version != CATALOG_SCHEMA_VERSION:
            log.warning(
                "Snapshot version mismatch, ignoring",
                path=str(self.snapshot_path),
                found=version,
                expected=CATALOG_SCHEMA_VERSION,
            )
            return None

        try:
            return CacheSnapshot.from_dict(data)
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Invalid snapshot document: {e}") from e

    async def read_snapshot_entries(self) -> list[CatalogEntry] | None:
        snapshot = await self.read_snapshot()
        return snapshot.entries if snapshot else None

    async def read_fallback_entries(self) -> list[CatalogEntry]:
        data = await self.filesystem.load_json(self.fallback_path)
        return CacheSnapshot.from_dict(data).entries

    async def _resolve(self) -> _MemoryEntry:
        if self._memory_fresh():
            return self._memory

        for source, provider in self.providers:
            try:
                entries = await provider()
            except Exception as e:
                log.warning("Cache provider failed, trying next", source=source, error=str(e))
                continue

            if entries or source == SOURCE_FALLBACK:
                entries = entries or []
                log.info("Catalog loaded", source=source, count=len(entries))
                self._memory = _MemoryEntry(entries=entries, source=source, fetched_at=self._clock())
                return self._memory

            log.debug("Cache provider returned nothing", source=source)

        log.error("All catalog sources exhausted")
        return _MemoryEntry(entries=[], source=SOURCE_NONE, fetched_at=self._clock())

    async def get_all(self) -> list[CatalogEntry]:
        resolved = await self._resolve()
        return list(resolved.entries)

    async def get_by_id(self, appid: int) -> CatalogEntry | None:
        """Point lookup on the store, falling back to a scan of ``get_all``."""
        if self.store_available:
            try:
                entry = await self.store.fetch_by_id(appid)
            except Exception as e:
                log.warning("Store lookup failed, scanning cached catalog", appid=appid, error=str(e))
            else:
                if entry is not None:
                    return entry

        for entry in await self.get_all():
            if entry.appid == appid:
                return entry
        return None

    async def get_by_ids(self, appids: Sequence[int]) -> list[CatalogEntry]:
        """Entries in the requested order; unknown ids are skipped."""
        by_id = {entry.appid: entry for entry in await self.get_all()}
        return [by_id[appid] for appid in appids if appid in by_id]

    async def search(self, query: str) -> list[CatalogEntry]:
        entries = await self.get_all()
        needle = query.strip().lower()
        if not needle:
            return entries
        return [entry for entry in entries if needle in entry.name.lower()]

    async def get_on_sale(self) -> list[CatalogEntry]:
        """Discounted entries, biggest discount first."""
        if self.store_available:
            try:
                entries = await self.store.fetch_on_sale()
            except Exception as e:
                log.warning("Store sale scan failed, filtering cached catalog", error=str(e))
            else:
                if entries:
                    return entries

        discounted = [entry for entry in await self.get_all() if entry.price.discount_percent > 0]
        return sorted(discounted, key=lambda entry: entry.price.discount_percent, reverse=True)

    async def is_stale(self) -> bool:
        """True when the snapshot is missing, unreadable or older than ``snapshot_max_age``."""
        try:
            snapshot = await self.read_snapshot()
        except (OSError, ValueError) as e:
            log.warning("Unreadable snapshot", path=str(self.snapshot_path), error=str(e))
            return True

        if snapshot is None:
            return True
        return self._now() - snapshot.updated_at > timedelta(seconds=self.snapshot_max_age)

    async def write(self, entries: Sequence[CatalogEntry]) -> CacheSnapshot:
        """Persist ``entries`` as the local snapshot and drop the memory cache.

        Raises:
            OSError: If the snapshot cannot be written
        """
        snapshot = CacheSnapshot(
            entries=list(entries),
            updated_at=self._now(),
            schema_version=CATALOG_SCHEMA_VERSION,
        )
        await self.filesystem.save_json(snapshot.to_dict(), self.snapshot_path)
        self.clear()
        log.info("Snapshot written", path=str(self.snapshot_path), count=len(snapshot.entries))
        return snapshot

    async def get_cache_info(self) -> CacheInfo:
        resolved = await self._resolve()
        updated_at = max((entry.updated_at for entry in resolved.entries), default=None)
        return CacheInfo(source=resolved.source, entry_count=len(resolved.entries), updated_at=updated_at)

    def clear(self) -> None:
        self._memory = None
