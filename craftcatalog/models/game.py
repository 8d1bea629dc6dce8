"""Game-related data models."""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

CATALOG_SCHEMA_VERSION = 1


def calculate_review_score(positive: int, negative: int) -> int:
    """Percentage of positive reviews, rounded half-up. 0 when there are no reviews."""
    total = positive + negative
    if total == 0:
        return 0
    return int(math.floor(positive / total * 100 + 0.5))


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO-8601 timestamp (accepting a trailing ``Z``) into an aware datetime."""
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format an aware datetime as ISO-8601 with millisecond precision and ``Z``."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_value.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class RawTagRecord:
    """Coarse per-game record from the tag-indexed catalog source."""
    appid: int
    name: str
    tags: list[str]
    positive: int
    negative: int
    owners: str  # "lower .. upper" estimate, e.g. "1,000,000 .. 2,000,000"
    average_playtime: int


@dataclass(frozen=True)
class PriceInfo:
    """Price block in minor currency units."""
    initial: int
    final: int
    discount_percent: int
    is_free: bool

    @classmethod
    def free(cls, is_free: bool = False) -> "PriceInfo":
        return cls(initial=0, final=0, discount_percent=0, is_free=is_free)


@dataclass(frozen=True)
class Capabilities:
    """Play mode flags derived from store categories."""
    singleplayer: bool = False
    multiplayer: bool = False
    coop: bool = False


@dataclass(frozen=True)
class RawDetailRecord:
    """Normalized record from the per-game detail source."""
    appid: int
    name: str
    description: str
    header_image: str
    screenshots: list[str]
    price: PriceInfo
    release_date: str  # Empty when coming soon or unknown
    genres: list[str]
    capabilities: Capabilities


@dataclass(frozen=True)
class ReviewInfo:
    """Review counts with the derived 0-100 score."""
    positive: int
    negative: int
    score: int

    @classmethod
    def from_counts(cls, positive: int, negative: int) -> "ReviewInfo":
        return cls(
            positive=positive,
            negative=negative,
            score=calculate_review_score(positive, negative),
        )

    @property
    def total(self) -> int:
        return self.positive + self.negative


@dataclass(frozen=True)
class CatalogEntry:
    """Canonical merged catalog entry, unique by ``appid``."""
    appid: int
    name: str
    description: str
    header_image: str
    screenshots: list[str]
    price: PriceInfo
    reviews: ReviewInfo
    release_date: str
    tags: list[str]
    capabilities: Capabilities
    owners: str
    playtime: int
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase JSON document used by snapshots and the API."""
        return {
            "appid": self.appid,
            "name": self.name,
            "description": self.description,
            "headerImage": self.header_image,
            "screenshots": list(self.screenshots),
            "price": {
                "initial": self.price.initial,
                "final": self.price.final,
                "discountPercent": self.price.discount_percent,
                "isFree": self.price.is_free,
            },
            "reviews": {
                "positive": self.reviews.positive,
                "negative": self.reviews.negative,
                "score": self.reviews.score,
            },
            "releaseDate": self.release_date,
            "tags": list(self.tags),
            "categories": {
                "singleplayer": self.capabilities.singleplayer,
                "multiplayer": self.capabilities.multiplayer,
                "coop": self.capabilities.coop,
            },
            "owners": self.owners,
            "playtime": self.playtime,
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogEntry":
        """Build an entry from its camelCase JSON document.

        Raises:
            KeyError: If ``appid`` or ``name`` is missing
            ValueError: If a field has an unusable value
        """
        price = data.get("price") or {}
        reviews = data.get("reviews") or {}
        categories = data.get("categories") or {}
        positive = int(reviews.get("positive", 0))
        negative = int(reviews.get("negative", 0))
        return cls(
            appid=int(data["appid"]),
            name=str(data["name"]),
            description=data.get("description") or "",
            header_image=data.get("headerImage") or "",
            screenshots=list(data.get("screenshots") or []),
            price=PriceInfo(
                initial=max(int(price.get("initial", 0)), 0),
                final=max(int(price.get("final", 0)), 0),
                discount_percent=max(int(price.get("discountPercent", 0)), 0),
                is_free=bool(price.get("isFree", False)),
            ),
            reviews=ReviewInfo(
                positive=positive,
                negative=negative,
                score=int(reviews.get("score", calculate_review_score(positive, negative))),
            ),
            release_date=data.get("releaseDate") or "",
            tags=list(data.get("tags") or []),
            capabilities=Capabilities(
                singleplayer=bool(categories.get("singleplayer", False)),
                multiplayer=bool(categories.get("multiplayer", False)),
                coop=bool(categories.get("coop", False)),
            ),
            owners=data.get("owners") or "",
            playtime=int(data.get("playtime") or 0),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass(frozen=True)
class CacheSnapshot:
    """Versioned, timestamped serialization of the full catalog."""
    entries: list[CatalogEntry]
    updated_at: datetime
    schema_version: int = CATALOG_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "games": [entry.to_dict() for entry in self.entries],
            "updatedAt": format_timestamp(self.updated_at),
            "version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheSnapshot":
        return cls(
            entries=[CatalogEntry.from_dict(item) for item in data.get("games") or []],
            updated_at=parse_timestamp(data.get("updatedAt")),
            schema_version=int(data.get("version", 0)),
        )


@dataclass(frozen=True)
class StoreStats:
    """Aggregate counts reported by the persisted store."""
    total: int = 0
    on_sale: int = 0
    last_updated: datetime | None = None


@dataclass(frozen=True)
class CacheInfo:
    """Which cache tier currently serves the catalog."""
    source: str  # "store", "snapshot", "fallback" or "none"
    entry_count: int
    updated_at: datetime | None = None
