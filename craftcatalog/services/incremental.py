"""Budgeted oldest-first refresh of persisted catalog entries."""

import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

import structlog

from ..models.game import CatalogEntry, RawDetailRecord
from ..models.progress import UpdateSummary
from .detail_fetcher import DetailFetcher
from .errors import ConfigurationError
from .merger import header_image_url
from .store import CatalogStore

log = structlog.stdlib.get_logger()


def build_update(existing: CatalogEntry, detail: RawDetailRecord, now: datetime) -> CatalogEntry:
    """Overwrite detail-sourced fields of ``existing``.

    Review counts, owners and playtime come from the tag source, which an
    incremental run does not query, so they are carried over unchanged.
    Tags are replaced by the detail genres unless the detail has none.
    """
    return replace(
        existing,
        name=detail.name or existing.name,
        description=detail.description,
        header_image=detail.header_image or header_image_url(existing.appid),
        screenshots=list(detail.screenshots),
        price=detail.price,
        release_date=detail.release_date,
        tags=list(detail.genres) if detail.genres else list(existing.tags),
        capabilities=detail.capabilities,
        updated_at=now,
    )


class IncrementalUpdater:
    """Refreshes the ``batch_size`` least recently updated entries per run.

    Each run moves the refreshed entries to the back of the queue, so with no
    other writers every entry is refreshed within ``ceil(size / batch_size)``
    runs.
    """

    def __init__(
        self,
        store: CatalogStore,
        detail_fetcher: DetailFetcher,
        batch_size: int = 50,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.detail_fetcher = detail_fetcher
        self.batch_size = batch_size
        self._clock = clock
        self._timer = timer

    async def run(self, time_budget: float | None = None, dry_run: bool = False) -> UpdateSummary:
        """Refresh one batch.

        Args:
            time_budget: Seconds allowed for the detail stage; unfinished fetches are dropped
            dry_run: Fetch and build updates without writing them

        Returns:
            Counts for the run

        Raises:
            ConfigurationError: If the run would write but the store has no write credentials

        Only entries with a fresh detail record, or that the detail source no
        longer knows, get a new ``updated_at``. Failed and abandoned fetches
        stay at the front of the queue for the next run.
        """
        if not dry_run and not self.store.can_write:
            raise ConfigurationError(
                "Store write credentials are required to persist the refresh",
                setting="SUPABASE_SERVICE_ROLE_KEY",
                expected="SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY set in the environment",
            )

        started = self._timer()
        existing = await self.store.fetch_oldest(self.batch_size)
        log.info("Selected entries for refresh", count=len(existing), batch_size=self.batch_size)

        if not existing:
            return UpdateSummary(selected=0, fetched=0, upserted=0, dry_run=dry_run, elapsed_seconds=0.0)

        report = await self.detail_fetcher.fetch_report([entry.appid for entry in existing], timeout=time_budget)
        details = report.details
        not_found = set(report.not_found)

        now = self._clock()
        updates: list[CatalogEntry] = []
        for entry in existing:
            detail = details.get(entry.appid)
            if detail is not None:
                updates.append(build_update(entry, detail, now))
            elif entry.appid in not_found:
                # Delisted or no longer a game: keep the data, move it to the back of the queue
                updates.append(replace(entry, updated_at=now))

        if report.failed or report.abandoned:
            log.warning(
                "Entries left for the next run",
                failed=len(report.failed),
                abandoned=len(report.abandoned),
            )

        upserted = 0
        if dry_run:
            log.info("Dry run, skipping persistence", updates=len(updates))
        elif updates:
            upserted = await self.store.upsert(updates)

        summary = UpdateSummary(
            selected=len(existing),
            fetched=len(details),
            upserted=upserted,
            dry_run=dry_run,
            elapsed_seconds=round(self._timer() - started, 3),
        )
        log.info("Incremental update completed", **summary.to_dict())
        return summary
