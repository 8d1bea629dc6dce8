"""Full collection job: tag source, detail source, merge, persist."""

import time
from collections.abc import Callable, Sequence

import structlog

from ..models.config import AppConfig
from ..models.progress import CollectionSummary
from .cache import CatalogCache
from .detail_fetcher import DetailFetcher, ProgressCallback
from .errors import CollectionError, ConfigurationError
from .merger import Merger
from .store import CatalogStore
from .tag_collector import TagCollector

log = structlog.stdlib.get_logger()

# Time kept back from the detail stage so merged entries can still be persisted
PERSIST_RESERVE_SECONDS = 30.0
PERSIST_RESERVE_FRACTION = 0.2


def detail_stage_timeout(time_budget: float | None, elapsed: float) -> float | None:
    """Seconds the detail stage may use, or ``None`` when unbounded."""
    if time_budget is None:
        return None
    reserve = min(PERSIST_RESERVE_SECONDS, time_budget * PERSIST_RESERVE_FRACTION)
    return max(time_budget - elapsed - reserve, 0.0)


class CollectionJob:
    """Orchestrates one full collection cycle."""

    def __init__(
        self,
        tag_collector: TagCollector,
        detail_fetcher: DetailFetcher,
        merger: Merger,
        store: CatalogStore | None,
        cache: CatalogCache,
        config: AppConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tag_collector = tag_collector
        self.detail_fetcher = detail_fetcher
        self.merger = merger
        self.store = store
        self.cache = cache
        self.config = config or AppConfig()
        self._clock = clock

    async def run(
        self,
        tags: Sequence[str] | None = None,
        limit: int | None = None,
        write_store: bool = True,
        write_snapshot: bool = False,
        time_budget: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CollectionSummary:
        """Run the collection.

        Args:
            tags: Category tags to query (defaults to the configured core tags)
            limit: Maximum games to fetch details for (defaults to ``max_collect_games``)
            write_store: Upsert merged entries into the persisted store
            write_snapshot: Write merged entries to the local snapshot
            time_budget: Overall seconds available; the detail stage is cut short to fit
            on_progress: Detail-stage progress callback ``(completed, total)``

        Returns:
            Per-stage counts

        Raises:
            ConfigurationError: If ``write_store`` is set but the store cannot be written
            CollectionError: If the tag source produced no games at all
        """
        if write_store and (self.store is None or not self.store.can_write):
            raise ConfigurationError(
                "Store write credentials are required to persist the collection",
                setting="SUPABASE_SERVICE_ROLE_KEY",
                expected="SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY set in the environment",
            )

        started = self._clock()
        tags = list(tags or self.config.core_tags)
        limit = self.config.max_collect_games if limit is None else limit

        log.info("Starting collection", tags=tags, limit=limit, time_budget=time_budget)

        collection = await self.tag_collector.collect(tags)
        if collection.unique_count == 0:
            raise CollectionError("Tag source returned no games", stage="tag_collection")

        selected_ids = list(collection.records)[:limit]

        timeout = detail_stage_timeout(time_budget, self._clock() - started)
        report = await self.detail_fetcher.fetch_report(selected_ids, on_progress=on_progress, timeout=timeout)
        if report.abandoned:
            log.warning("Detail stage hit the time budget", abandoned=len(report.abandoned))

        # Games past the detail cap still enter the catalog as partial entries
        result = self.merger.merge_all(collection.records, report.details)

        upserted = 0
        if write_store and result.entries:
            upserted = await self.store.upsert(result.entries)

        snapshot_written = False
        if write_snapshot:
            await self.cache.write(result.entries)
            snapshot_written = True

        summary = CollectionSummary(
            tag_records=collection.unique_count,
            detail_records=len(report.details),
            merged=len(result.entries),
            filtered=result.filtered_count,
            upserted=upserted,
            snapshot_written=snapshot_written,
            elapsed_seconds=round(self._clock() - started, 3),
            failed_tags=list(collection.failed_tags),
        )
        log.info("Collection completed", **summary.to_dict())
        return summary
