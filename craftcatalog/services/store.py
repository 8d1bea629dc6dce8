"""Persisted catalog store: the narrow contract plus a PostgREST implementation."""

import re
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

import structlog

from ..models.game import (
    Capabilities,
    CatalogEntry,
    PriceInfo,
    ReviewInfo,
    StoreStats,
    format_timestamp,
    parse_timestamp,
)
from .errors import AppError, ConfigurationError, PersistenceError
from .http_client import HttpClientService

log = structlog.stdlib.get_logger()

GAMES_TABLE = "games"
PAGE_SIZE = 1000
UPSERT_BATCH_SIZE = 100

_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)$")


class CatalogStore(Protocol):
    """Operations the pipeline needs from the persisted store."""

    @property
    def is_configured(self) -> bool: ...

    @property
    def can_write(self) -> bool: ...

    async def fetch_all(self) -> list[CatalogEntry]: ...

    async def fetch_by_id(self, appid: int) -> CatalogEntry | None: ...

    async def fetch_on_sale(self) -> list[CatalogEntry]: ...

    async def fetch_oldest(self, limit: int) -> list[CatalogEntry]: ...

    async def upsert(self, entries: Sequence[CatalogEntry]) -> int: ...

    async def get_stats(self) -> StoreStats: ...


def entry_to_row(entry: CatalogEntry) -> dict[str, Any]:
    """Flatten an entry into a ``games`` table row."""
    return {
        "appid": entry.appid,
        "name": entry.name,
        "description": entry.description,
        "header_image": entry.header_image,
        "screenshots": list(entry.screenshots),
        "price_initial": entry.price.initial,
        "price_final": entry.price.final,
        "discount_percent": entry.price.discount_percent,
        "is_free": entry.price.is_free,
        "review_positive": entry.reviews.positive,
        "review_negative": entry.reviews.negative,
        "review_score": entry.reviews.score,
        "release_date": entry.release_date,
        "owners": entry.owners,
        "playtime": entry.playtime,
        "singleplayer": entry.capabilities.singleplayer,
        "multiplayer": entry.capabilities.multiplayer,
        "coop": entry.capabilities.coop,
        "tags": list(entry.tags),
        "updated_at": format_timestamp(entry.updated_at),
    }


def row_to_entry(row: dict[str, Any]) -> CatalogEntry:
    """Rebuild an entry from a ``games`` table row.

    Raises:
        KeyError: If ``appid`` is missing
        ValueError: If a numeric column holds garbage
    """
    return CatalogEntry(
        appid=int(row["appid"]),
        name=row.get("name") or "",
        description=row.get("description") or "",
        header_image=row.get("header_image") or "",
        screenshots=list(row.get("screenshots") or []),
        price=PriceInfo(
            initial=int(row.get("price_initial") or 0),
            final=int(row.get("price_final") or 0),
            discount_percent=int(row.get("discount_percent") or 0),
            is_free=bool(row.get("is_free")),
        ),
        reviews=ReviewInfo(
            positive=int(row.get("review_positive") or 0),
            negative=int(row.get("review_negative") or 0),
            score=int(row.get("review_score") or 0),
        ),
        release_date=row.get("release_date") or "",
        tags=list(row.get("tags") or []),
        capabilities=Capabilities(
            singleplayer=bool(row.get("singleplayer")),
            multiplayer=bool(row.get("multiplayer")),
            coop=bool(row.get("coop")),
        ),
        owners=row.get("owners") or "",
        playtime=int(row.get("playtime") or 0),
        updated_at=parse_timestamp(row.get("updated_at")),
    )


def parse_content_range_total(value: str | None) -> int:
    """Total row count from a PostgREST ``Content-Range`` header such as ``0-24/3573``."""
    if not value:
        return 0
    match = _CONTENT_RANGE_TOTAL.search(value.strip())
    return int(match.group(1)) if match else 0


class SupabaseCatalogStore:
    """``CatalogStore`` backed by a Supabase (PostgREST) ``games`` table.

    Reads use the anonymous key; writes need the service-role key. Store
    failures surface as ``PersistenceError``.
    """

    def __init__(
        self,
        http_client: HttpClientService,
        base_url: str | None,
        anon_key: str | None = None,
        service_key: str | None = None,
        batch_size: int = UPSERT_BATCH_SIZE,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.http_client = http_client
        self.base_url = (base_url or "").rstrip("/")
        self.anon_key = anon_key
        self.service_key = service_key
        self.batch_size = batch_size
        self.page_size = page_size

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and (self.anon_key or self.service_key))

    @property
    def can_write(self) -> bool:
        return bool(self.base_url and self.service_key)

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{GAMES_TABLE}"

    def _headers(self, write: bool = False, prefer: str | None = None) -> dict[str, str]:
        if write:
            if not self.can_write:
                raise ConfigurationError(
                    "Store write credentials are missing",
                    setting="SUPABASE_SERVICE_ROLE_KEY",
                )
            key = self.service_key
        else:
            if not self.is_configured:
                raise ConfigurationError(
                    "Store is not configured",
                    setting="SUPABASE_URL",
                )
            key = self.anon_key or self.service_key

        headers = {"apikey": key, "Authorization": f"Bearer {key}"}
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _select(
        self,
        operation: str,
        params: dict[str, str],
        prefer: str | None = None,
    ) -> tuple[list[dict[str, Any]], str | None]:
        headers = self._headers(prefer=prefer)
        try:
            response = await self.http_client.request("GET", self.table_url, params=params, headers=headers)
        except AppError as e:
            raise PersistenceError(
                f"Store query failed: {operation}",
                operation=operation,
                status_code=getattr(e, "status_code", None),
                original_error=e,
            ) from e

        rows = self.http_client.decode_json(response, self.table_url)
        if not isinstance(rows, list):
            raise PersistenceError(f"Store returned a non-list body: {operation}", operation=operation)
        return rows, response.headers.get("content-range")

    def _rows_to_entries(self, rows: list[dict[str, Any]]) -> list[CatalogEntry]:
        entries: list[CatalogEntry] = []
        for row in rows:
            try:
                entries.append(row_to_entry(row))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("Skipping malformed store row", appid=row.get("appid"), error=str(e))
        return entries

    async def fetch_all(self) -> list[CatalogEntry]:
        """All rows, paginated, ordered by review score (highest first)."""
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            page, _ = await self._select(
                "fetch_all",
                {
                    "select": "*",
                    "order": "review_score.desc",
                    "limit": str(self.page_size),
                    "offset": str(offset),
                },
            )
            rows.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size

        log.debug("Fetched catalog from store", count=len(rows))
        return self._rows_to_entries(rows)

    async def fetch_by_id(self, appid: int) -> CatalogEntry | None:
        rows, _ = await self._select(
            "fetch_by_id",
            {"select": "*", "appid": f"eq.{appid}", "limit": "1"},
        )
        entries = self._rows_to_entries(rows)
        return entries[0] if entries else None

    async def fetch_on_sale(self) -> list[CatalogEntry]:
        rows, _ = await self._select(
            "fetch_on_sale",
            {"select": "*", "discount_percent": "gt.0", "order": "discount_percent.desc"},
        )
        return self._rows_to_entries(rows)

    async def fetch_oldest(self, limit: int) -> list[CatalogEntry]:
        """The ``limit`` entries with the oldest ``updated_at``."""
        if limit <= 0:
            return []
        rows, _ = await self._select(
            "fetch_oldest",
            {"select": "*", "order": "updated_at.asc,appid.asc", "limit": str(limit)},
        )
        return self._rows_to_entries(rows)

    async def upsert(self, entries: Sequence[CatalogEntry]) -> int:
        """Insert or replace entries keyed by appid, one batch at a time.

        A failed batch is logged and skipped; the remaining batches still run.

        Returns:
            Number of entries in batches the store accepted

        Raises:
            ConfigurationError: If write credentials are missing
        """
        headers = self._headers(write=True, prefer="resolution=merge-duplicates,return=minimal")
        upserted = 0
        total_batches = (len(entries) + self.batch_size - 1) // self.batch_size

        for start in range(0, len(entries), self.batch_size):
            batch = entries[start:start + self.batch_size]
            batch_number = start // self.batch_size + 1
            try:
                await self.http_client.request(
                    "POST",
                    self.table_url,
                    params={"on_conflict": "appid"},
                    headers=headers,
                    json=[entry_to_row(entry) for entry in batch],
                )
            except AppError as e:
                log.error(
                    "Upsert batch failed",
                    batch=batch_number,
                    total_batches=total_batches,
                    size=len(batch),
                    error=str(e),
                )
                continue

            upserted += len(batch)
            log.info("Upserted batch", batch=batch_number, total_batches=total_batches, size=len(batch))

        return upserted

    async def _count(self, operation: str, filters: dict[str, str] | None = None) -> int:
        params = {"select": "appid", "limit": "1", **(filters or {})}
        _, content_range = await self._select(operation, params, prefer="count=exact")
        return parse_content_range_total(content_range)

    async def get_stats(self) -> StoreStats:
        total = await self._count("count_total")
        on_sale = await self._count("count_on_sale", {"discount_percent": "gt.0"})

        rows, _ = await self._select(
            "last_updated",
            {"select": "updated_at", "order": "updated_at.desc", "limit": "1"},
        )
        last_updated: datetime | None = None
        if rows and rows[0].get("updated_at"):
            last_updated = parse_timestamp(rows[0]["updated_at"])

        return StoreStats(total=total, on_sale=on_sale, last_updated=last_updated)
