"""Data models for the craftcatalog package."""

from .config import AppConfig, Credentials
from .game import (
    CATALOG_SCHEMA_VERSION,
    CacheInfo,
    CacheSnapshot,
    Capabilities,
    CatalogEntry,
    PriceInfo,
    RawDetailRecord,
    RawTagRecord,
    ReviewInfo,
    StoreStats,
)
from .progress import (
    CollectionSummary,
    FetchProgress,
    TaskOutcome,
    TaskResult,
    UpdateSummary,
)

__all__ = [
    "AppConfig",
    "CATALOG_SCHEMA_VERSION",
    "CacheInfo",
    "CacheSnapshot",
    "Capabilities",
    "CatalogEntry",
    "CollectionSummary",
    "Credentials",
    "FetchProgress",
    "PriceInfo",
    "RawDetailRecord",
    "RawTagRecord",
    "ReviewInfo",
    "StoreStats",
    "TaskOutcome",
    "TaskResult",
    "UpdateSummary",
]
