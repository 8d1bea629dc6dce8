"""Service layer for data collection, curation and serving."""

from .cache import CatalogCache
from .collection import CollectionJob
from .config import ConfigurationService, ValidationResult, load_credentials
from .detail_fetcher import DetailFetcher, DetailFetchReport
from .errors import (
    AppError,
    CollectionError,
    ConfigurationError,
    ErrorCategory,
    ErrorHandlingService,
    ErrorSeverity,
    NetworkError,
    PayloadError,
    PersistenceError,
    RateLimitedError,
    UpstreamClientError,
    UpstreamServerError,
    ValidationError,
    get_error_service,
    handle_error,
    is_retryable,
)
from .filesystem import FileSystemService
from .http_client import HttpClientService
from .incremental import IncrementalUpdater, build_update
from .merger import Merger, MergeResult, TagFilter, merge_one
from .ranking import SortStrategy, parse_owners_lower_bound, sort_entries, wilson_score
from .retry import RetryPolicy, with_retry
from .scheduler import ConcurrencyScheduler, RateGate
from .store import CatalogStore, SupabaseCatalogStore
from .tag_collector import DedupPolicy, TagCollection, TagCollector

__all__ = [
    "AppError",
    "CatalogCache",
    "CatalogStore",
    "CollectionError",
    "CollectionJob",
    "ConcurrencyScheduler",
    "ConfigurationError",
    "ConfigurationService",
    "DedupPolicy",
    "DetailFetchReport",
    "DetailFetcher",
    "ErrorCategory",
    "ErrorHandlingService",
    "ErrorSeverity",
    "FileSystemService",
    "HttpClientService",
    "IncrementalUpdater",
    "MergeResult",
    "Merger",
    "NetworkError",
    "PayloadError",
    "PersistenceError",
    "RateGate",
    "RateLimitedError",
    "RetryPolicy",
    "SortStrategy",
    "SupabaseCatalogStore",
    "TagCollection",
    "TagCollector",
    "TagFilter",
    "UpstreamClientError",
    "UpstreamServerError",
    "ValidationError",
    "ValidationResult",
    "build_update",
    "get_error_service",
    "handle_error",
    "is_retryable",
    "load_credentials",
    "merge_one",
    "parse_owners_lower_bound",
    "sort_entries",
    "wilson_score",
    "with_retry",
]
