"""Joins tag-source and detail-source records into canonical catalog entries."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from ..models.config import DEFAULT_EXCLUDED_TAGS, DEFAULT_REQUIRED_TAGS
from ..models.game import (
    Capabilities,
    CatalogEntry,
    PriceInfo,
    RawDetailRecord,
    RawTagRecord,
    ReviewInfo,
)

log = structlog.stdlib.get_logger()

HEADER_IMAGE_URL = "https://cdn.akamai.steamstatic.com/steam/apps/{appid}/header.jpg"


def header_image_url(appid: int) -> str:
    return HEADER_IMAGE_URL.format(appid=appid)


class TagFilter:
    """Inclusion/exclusion rules over a game's tag list.

    Matching is a case-insensitive substring test. Exclusion is evaluated
    first and short-circuits; otherwise at least one required pattern must
    match.
    """

    def __init__(
        self,
        required_tags: Sequence[str] = DEFAULT_REQUIRED_TAGS,
        excluded_tags: Sequence[str] = DEFAULT_EXCLUDED_TAGS,
    ) -> None:
        self.required = [pattern.lower() for pattern in required_tags]
        self.excluded = [pattern.lower() for pattern in excluded_tags]

    def should_include(self, tags: Sequence[str]) -> bool:
        tags_lower = [tag.lower() for tag in tags]

        if any(pattern in tag for pattern in self.excluded for tag in tags_lower):
            return False

        return any(pattern in tag for pattern in self.required for tag in tags_lower)


def merge_one(
    tag_record: RawTagRecord,
    detail: RawDetailRecord | None,
    now: datetime | None = None,
) -> CatalogEntry:
    """Build the canonical entry for one game.

    Tags and review counts always come from the tag source. Without a detail
    record the entry is partial: a derived header image and empty
    description, screenshots and capabilities.
    """
    updated_at = now or datetime.now(timezone.utc)
    reviews = ReviewInfo.from_counts(tag_record.positive, tag_record.negative)

    if detail is None:
        return CatalogEntry(
            appid=tag_record.appid,
            name=tag_record.name,
            description="",
            header_image=header_image_url(tag_record.appid),
            screenshots=[],
            price=PriceInfo.free(),
            reviews=reviews,
            release_date="",
            tags=list(tag_record.tags),
            capabilities=Capabilities(),
            owners=tag_record.owners,
            playtime=tag_record.average_playtime,
            updated_at=updated_at,
        )

    return CatalogEntry(
        appid=tag_record.appid,
        name=detail.name or tag_record.name,
        description=detail.description,
        header_image=detail.header_image or header_image_url(tag_record.appid),
        screenshots=list(detail.screenshots),
        price=detail.price,
        reviews=reviews,
        release_date=detail.release_date,
        tags=list(tag_record.tags),
        capabilities=detail.capabilities,
        owners=tag_record.owners,
        playtime=tag_record.average_playtime,
        updated_at=updated_at,
    )


@dataclass(frozen=True)
class MergeResult:
    """Merged entries plus the number of games the tag filter rejected."""
    entries: list[CatalogEntry]
    filtered_count: int
    filtered_ids: list[int] = field(default_factory=list)


class Merger:
    """Merges whole tag and detail maps, applying the tag filter."""

    def __init__(self, tag_filter: TagFilter | None = None) -> None:
        self.tag_filter = tag_filter or TagFilter()

    def should_include(self, tags: Sequence[str]) -> bool:
        return self.tag_filter.should_include(tags)

    def merge_all(
        self,
        tag_records: Mapping[int, RawTagRecord],
        details: Mapping[int, RawDetailRecord],
        now: datetime | None = None,
    ) -> MergeResult:
        """Merge every tag-source game that passes the filter.

        Games known only to the detail source are not part of the catalog.
        """
        merged_at = now or datetime.now(timezone.utc)
        entries: list[CatalogEntry] = []
        filtered_ids: list[int] = []

        for appid, tag_record in tag_records.items():
            if not self.tag_filter.should_include(tag_record.tags):
                filtered_ids.append(appid)
                continue
            entries.append(merge_one(tag_record, details.get(appid), now=merged_at))

        if filtered_ids:
            log.info(
                "Filtered out games (missing required tags or has excluded tags)",
                filtered=len(filtered_ids),
            )

        return MergeResult(entries=entries, filtered_count=len(filtered_ids), filtered_ids=filtered_ids)
