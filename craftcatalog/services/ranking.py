"""Sorting strategies for catalog slices."""

import math
import re
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from enum import Enum

from ..models.game import CatalogEntry

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)
WILSON_Z = 1.96  # 95% confidence

_OWNERS_PATTERN = re.compile(r"^([\d,]+)")
_KOREAN_DATE_PATTERN = re.compile(r"^(\d{4})\s*년\s*(\d{1,2})\s*월(?:\s*(\d{1,2})\s*일)?")
_RELEASE_DATE_FORMATS = (
    "%d %b, %Y",   # 14 Jul, 2020
    "%b %d, %Y",   # Jul 14, 2020
    "%d %B, %Y",
    "%B %d, %Y",
    "%Y-%m-%d",
    "%d %b %Y",
    "%b %Y",       # Jul 2020
    "%B %Y",
)


class SortStrategy(Enum):
    POPULAR = "popular"
    RATING = "rating"
    NEWEST = "newest"
    TRENDING = "trending"
    RISING = "rising"


def parse_owners_lower_bound(owners: str) -> int:
    """Lower bound of an owner-range string, e.g. ``"1,000,000 .. 2,000,000"`` -> 1000000."""
    if not owners:
        return 0
    match = _OWNERS_PATTERN.match(owners.strip())
    if not match:
        return 0
    digits = match.group(1).replace(",", "")
    return int(digits) if digits else 0


def wilson_score(positive: int, total: int, z: float = WILSON_Z) -> float:
    """Lower bound of the Wilson score interval for a binomial proportion."""
    if total <= 0:
        return 0.0

    phat = positive / total
    numerator = phat + (z * z) / (2 * total) - z * math.sqrt((phat * (1 - phat) + (z * z) / (4 * total)) / total)
    denominator = 1 + (z * z) / total
    return numerator / denominator


def parse_release_date(value: str) -> datetime:
    """Parse the store's release date text; unknown formats sort as the epoch."""
    text = (value or "").strip()
    if not text:
        return EPOCH

    korean = _KOREAN_DATE_PATTERN.match(text)
    if korean:
        year, month, day = korean.groups()
        try:
            return datetime(int(year), int(month), int(day or 1), tzinfo=timezone.utc)
        except ValueError:
            return EPOCH

    for fmt in _RELEASE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return EPOCH


def _trending_score(entry: CatalogEntry) -> float:
    return parse_owners_lower_bound(entry.owners) * (entry.reviews.score / 100)


def _rising_score(entry: CatalogEntry) -> float:
    return wilson_score(entry.reviews.positive, entry.reviews.total)


_SORT_KEYS: dict[SortStrategy, Callable[[CatalogEntry], float | int | datetime]] = {
    SortStrategy.POPULAR: lambda entry: parse_owners_lower_bound(entry.owners),
    SortStrategy.RATING: lambda entry: entry.reviews.score,
    SortStrategy.NEWEST: lambda entry: parse_release_date(entry.release_date),
    SortStrategy.TRENDING: _trending_score,
    SortStrategy.RISING: _rising_score,
}


def sort_entries(entries: Sequence[CatalogEntry], strategy: SortStrategy | str) -> list[CatalogEntry]:
    """Return a new list sorted by ``strategy``, highest first.

    The sort is stable and never mutates ``entries``. Unknown strategy names
    return the entries in their original order.
    """
    if isinstance(strategy, str):
        try:
            strategy = SortStrategy(strategy)
        except ValueError:
            return list(entries)

    return sorted(entries, key=_SORT_KEYS[strategy], reverse=True)
