"""Tag-indexed catalog source client (source A)."""

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

import structlog

from ..models.game import RawTagRecord
from .http_client import HttpClientService
from .retry import RetryPolicy
from .scheduler import ConcurrencyScheduler

log = structlog.stdlib.get_logger()


class DedupPolicy(Enum):
    """How to resolve a game that shows up under several category tags."""
    FIRST_SEEN = "first_seen"  # Keep the record from the first tag processed
    LAST_SEEN = "last_seen"  # Later tags replace earlier records
    MERGE_TAGS = "merge_tags"  # Keep the first record, union the tag lists


@dataclass(frozen=True)
class TagCollection:
    """Deduplicated result of querying source A across category tags."""
    records: dict[int, RawTagRecord]
    failed_tags: list[str] = field(default_factory=list)

    @property
    def unique_count(self) -> int:
        return len(self.records)


def parse_tag_list(raw_tags: Any) -> list[str]:
    """Normalize the source's tag field.

    The source returns either an object of ``tag -> votes`` or a plain list.
    Objects are ordered by votes, highest first.
    """
    if isinstance(raw_tags, dict):
        ranked = sorted(raw_tags.items(), key=lambda item: item[1] if isinstance(item[1], (int, float)) else 0, reverse=True)
        return [str(tag) for tag, _ in ranked]
    if isinstance(raw_tags, list):
        return [str(tag) for tag in raw_tags if tag]
    return []


def parse_tag_record(raw: dict[str, Any], query_tag: str) -> RawTagRecord:
    """Convert one source record into a ``RawTagRecord``.

    Raises:
        KeyError: If the record has no appid
        ValueError: If a numeric field is not numeric
    """
    tags = parse_tag_list(raw.get("tags"))
    return RawTagRecord(
        appid=int(raw["appid"]),
        name=str(raw.get("name") or ""),
        tags=tags or [query_tag],
        positive=int(raw.get("positive") or 0),
        negative=int(raw.get("negative") or 0),
        owners=str(raw.get("owners") or ""),
        average_playtime=int(raw.get("average_forever") or 0),
    )


def merge_records(
    existing: RawTagRecord | None,
    incoming: RawTagRecord,
    policy: DedupPolicy,
) -> RawTagRecord:
    """Resolve two records for the same appid according to ``policy``."""
    if existing is None:
        return incoming
    if policy is DedupPolicy.LAST_SEEN:
        return incoming
    if policy is DedupPolicy.MERGE_TAGS:
        extra = [tag for tag in incoming.tags if tag not in existing.tags]
        if extra:
            return replace(existing, tags=existing.tags + extra)
    return existing


class TagCollector:
    """Collects coarse game records from the tag-indexed source.

    The source enforces a strict global rate limit, so tags are queried one
    at a time through the scheduler with ``request_delay`` spacing.
    """

    def __init__(
        self,
        http_client: HttpClientService,
        base_url: str = "https://steamspy.com/api.php",
        request_delay: float = 1.0,
        retry_policy: RetryPolicy | None = None,
        dedup_policy: DedupPolicy = DedupPolicy.FIRST_SEEN,
        scheduler: ConcurrencyScheduler | None = None,
    ) -> None:
        self.http_client = http_client
        self.base_url = base_url
        self.request_delay = request_delay
        self.retry_policy = retry_policy or RetryPolicy()
        self.dedup_policy = dedup_policy
        self.scheduler = scheduler or ConcurrencyScheduler()

    async def fetch_tag(self, tag: str) -> list[RawTagRecord]:
        """Query the source for one tag, with retries.

        Raises:
            AppError: When the query fails for good
        """
        async def request() -> Any:
            return await self.http_client.get_json(self.base_url, params={"request": "tag", "tag": tag})

        payload = await self.retry_policy.run(request)
        if not isinstance(payload, dict):
            log.warning("Unexpected tag payload", tag=tag, payload_type=type(payload).__name__)
            return []

        records: list[RawTagRecord] = []
        for key, raw in payload.items():
            if not isinstance(raw, dict):
                continue
            try:
                records.append(parse_tag_record({"appid": key, **raw}, tag))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("Skipping malformed tag record", tag=tag, key=key, error=str(e))

        log.info("Fetched tag", tag=tag, count=len(records))
        return records

    async def collect(self, tags: Sequence[str]) -> TagCollection:
        """Query every tag and merge the results into one map keyed by appid.

        Args:
            tags: Category tags in processing order

        Returns:
            Deduplicated records plus the tags whose query failed
        """
        log.info("Starting tag collection", tags=list(tags), dedup_policy=self.dedup_policy.value)

        async def worker(tag: str, _index: int) -> list[RawTagRecord]:
            return await self.fetch_tag(tag)

        results = await self.scheduler.run_tagged(tags, worker, concurrency=1, delay=self.request_delay)

        records: dict[int, RawTagRecord] = {}
        failed_tags: list[str] = []
        for tag, result in zip(tags, results):
            if not result.ok:
                log.error("Tag query failed", tag=tag, error=str(result.error))
                failed_tags.append(tag)
                continue
            for record in result.value or []:
                records[record.appid] = merge_records(records.get(record.appid), record, self.dedup_policy)

        log.info(
            "Tag collection completed",
            unique_games=len(records),
            failed_tags=failed_tags,
        )
        return TagCollection(records=records, failed_tags=failed_tags)
