"""Per-game detail source client (source B)."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..models.game import Capabilities, PriceInfo, RawDetailRecord
from ..models.progress import FetchProgress, TaskOutcome
from .errors import PayloadError
from .http_client import HttpClientService
from .retry import RetryPolicy
from .scheduler import ConcurrencyScheduler

log = structlog.stdlib.get_logger()

GAME_ENTITY_TYPE = "game"
MAX_SCREENSHOTS = 5

# Store category IDs mapped onto capability flags
CATEGORY_MULTIPLAYER = 1
CATEGORY_SINGLEPLAYER = 2
COOP_CATEGORY_IDS = frozenset({
    9,   # Co-op
    38,  # Online co-op
    48,  # LAN co-op
})

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class DetailFetchReport:
    """Outcome of a batch detail fetch, separating misses from failures."""
    details: dict[int, RawDetailRecord]
    not_found: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    abandoned: list[int] = field(default_factory=list)


def parse_capabilities(raw_categories: Any) -> Capabilities:
    """Derive capability flags from the store's category list."""
    category_ids: set[int] = set()
    for category in raw_categories or []:
        if isinstance(category, dict) and "id" in category:
            try:
                category_ids.add(int(category["id"]))
            except (TypeError, ValueError):
                continue
    return Capabilities(
        singleplayer=CATEGORY_SINGLEPLAYER in category_ids,
        multiplayer=CATEGORY_MULTIPLAYER in category_ids,
        coop=not category_ids.isdisjoint(COOP_CATEGORY_IDS),
    )


def parse_price(raw: dict[str, Any]) -> PriceInfo:
    """Price block in minor units; no ``price_overview`` means zero price."""
    is_free = bool(raw.get("is_free", False))
    overview = raw.get("price_overview")
    if not isinstance(overview, dict):
        return PriceInfo.free(is_free=is_free)
    return PriceInfo(
        initial=max(int(overview.get("initial") or 0), 0),
        final=max(int(overview.get("final") or 0), 0),
        discount_percent=max(int(overview.get("discount_percent") or 0), 0),
        is_free=is_free,
    )


def parse_release_date(raw: dict[str, Any]) -> str:
    release = raw.get("release_date")
    if not isinstance(release, dict) or release.get("coming_soon"):
        return ""
    return str(release.get("date") or "")


def normalize_detail(appid: int, raw: dict[str, Any]) -> RawDetailRecord | None:
    """Normalize a raw ``data`` block. Non-game entities (DLC, videos, ...) yield ``None``."""
    if raw.get("type") != GAME_ENTITY_TYPE:
        return None

    screenshots = [
        str(shot["path_full"])
        for shot in (raw.get("screenshots") or [])
        if isinstance(shot, dict) and shot.get("path_full")
    ][:MAX_SCREENSHOTS]

    genres = [
        str(genre["description"])
        for genre in (raw.get("genres") or [])
        if isinstance(genre, dict) and genre.get("description")
    ]

    return RawDetailRecord(
        appid=int(raw.get("steam_appid") or appid),
        name=str(raw.get("name") or ""),
        description=str(raw.get("short_description") or ""),
        header_image=str(raw.get("header_image") or ""),
        screenshots=screenshots,
        price=parse_price(raw),
        release_date=parse_release_date(raw),
        genres=genres,
        capabilities=parse_capabilities(raw.get("categories")),
    )


class DetailFetcher:
    """Fetches and normalizes per-game details with bounded concurrency."""

    def __init__(
        self,
        http_client: HttpClientService,
        base_url: str = "https://store.steampowered.com/api",
        concurrency: int = 2,
        request_delay: float = 0.8,
        retry_policy: RetryPolicy | None = None,
        scheduler: ConcurrencyScheduler | None = None,
        country_code: str = "kr",
        language: str = "korean",
    ) -> None:
        """Initialize the detail fetcher.

        Args:
            http_client: HTTP client for making requests
            base_url: Base URL of the store API
            concurrency: Maximum requests in flight
            request_delay: Minimum spacing between request starts in seconds
            retry_policy: Retry policy for transient failures
            scheduler: Batch scheduler
            country_code: Store region, which decides the price currency
            language: Store language for names, descriptions and genres
        """
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.concurrency = concurrency
        self.request_delay = request_delay
        self.retry_policy = retry_policy or RetryPolicy()
        self.scheduler = scheduler or ConcurrencyScheduler()
        self.country_code = country_code
        self.language = language

        log.info(
            "Detail fetcher initialized",
            base_url=self.base_url,
            concurrency=concurrency,
            request_delay=request_delay,
        )

    async def fetch_one(self, appid: int) -> RawDetailRecord | None:
        """Fetch one game's details.

        Returns:
            The normalized record, or ``None`` for delisted, invalid or non-game ids

        Raises:
            AppError: When the request fails for good
        """
        url = f"{self.base_url}/appdetails"
        params = {"appids": str(appid), "cc": self.country_code, "l": self.language}

        async def request() -> Any:
            return await self.http_client.get_json(url, params=params)

        payload = await self.retry_policy.run(request)
        if not isinstance(payload, dict):
            raise PayloadError("Detail response is not an object", url=url)

        envelope = payload.get(str(appid))
        if not isinstance(envelope, dict) or not envelope.get("success") or not isinstance(envelope.get("data"), dict):
            log.debug("No detail record", appid=appid)
            return None

        return normalize_detail(appid, envelope["data"])

    async def fetch_report(
        self,
        appids: Sequence[int],
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> DetailFetchReport:
        """Fetch details for many games.

        Args:
            appids: Identifiers to fetch
            on_progress: Called with ``(completed, total)`` after every identifier, successful or not
            timeout: Seconds after which unfinished identifiers are abandoned

        Returns:
            Report with the normalized records and the ids that missed, failed or were abandoned
        """
        total = len(appids)
        completed = 0

        async def worker(appid: int, _index: int) -> RawDetailRecord | None:
            nonlocal completed
            try:
                return await self.fetch_one(appid)
            finally:
                completed += 1
                if on_progress is not None:
                    on_progress(completed, total)

        log.info("Fetching details", total=total, concurrency=self.concurrency)
        results = await self.scheduler.run_tagged(
            appids,
            worker,
            concurrency=self.concurrency,
            delay=self.request_delay,
            timeout=timeout,
        )

        details: dict[int, RawDetailRecord] = {}
        not_found: list[int] = []
        failed: list[int] = []
        abandoned: list[int] = []
        for appid, result in zip(appids, results):
            if result.outcome is TaskOutcome.ABANDONED:
                abandoned.append(appid)
            elif result.outcome is TaskOutcome.FAILED:
                log.warning("Failed to fetch details", appid=appid, error=str(result.error))
                failed.append(appid)
            elif result.value is None:
                not_found.append(appid)
            else:
                details[appid] = result.value

        log.info(
            "Detail fetch completed",
            fetched=len(details),
            not_found=len(not_found),
            failed=len(failed),
            abandoned=len(abandoned),
            progress=FetchProgress(completed=completed, total=total).percent,
        )
        return DetailFetchReport(details=details, not_found=not_found, failed=failed, abandoned=abandoned)

    async def fetch_many(
        self,
        appids: Sequence[int],
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> dict[int, RawDetailRecord]:
        """Fetch details for many games, keeping only ids that produced a record."""
        report = await self.fetch_report(appids, on_progress=on_progress, timeout=timeout)
        return report.details
