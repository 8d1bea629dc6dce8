"""Main entry point for craftcatalog.

This module provides:
- Application initialization and dependency injection (``ApplicationContext``)
- Command-line argument parsing
- The ``collect``, ``update``, ``stats`` and ``check-cache`` commands
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any

import structlog

from craftcatalog.models import AppConfig, Credentials
from craftcatalog.models.game import format_timestamp
from craftcatalog.services.cache import CatalogCache
from craftcatalog.services.collection import CollectionJob
from craftcatalog.services.config import ConfigurationService, load_credentials
from craftcatalog.services.detail_fetcher import DetailFetcher
from craftcatalog.services.errors import AppError, ConfigurationError
from craftcatalog.services.filesystem import FileSystemService
from craftcatalog.services.http_client import HttpClientService
from craftcatalog.services.incremental import IncrementalUpdater
from craftcatalog.services.logging import setup_logging
from craftcatalog.services.merger import Merger, TagFilter
from craftcatalog.services.retry import RetryPolicy
from craftcatalog.services.scheduler import ConcurrencyScheduler
from craftcatalog.services.store import SupabaseCatalogStore
from craftcatalog.services.tag_collector import DedupPolicy, TagCollector

log = structlog.stdlib.get_logger()

VERSION = "0.1.0"
TEST_RUN_LIMIT = 10


class ApplicationContext:
    """Container for application services and state.

    Manages the lifecycle of all services and wires them together for the
    CLI and the HTTP app. Services are built lazily, once per context.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        config: AppConfig | None = None,
        credentials: Credentials | None = None,
        environ: Mapping[str, str] | None = None,
        transport: Any = None,
    ) -> None:
        """Initialize the application context.

        Args:
            config_path: Path to configuration file
            config: Ready configuration (skips loading the file)
            credentials: Ready credentials (skips reading the environment)
            environ: Environment mapping used for credentials and overrides
            transport: httpx transport override for the shared HTTP client
        """
        self._config_path: Path | None = config_path
        self._environ = environ
        self._transport = transport

        self._config: AppConfig | None = config
        self._credentials: Credentials | None = credentials

        # Services (initialized lazily)
        self._config_service: ConfigurationService | None = None
        self._http_client: HttpClientService | None = None
        self._filesystem: FileSystemService | None = None
        self._scheduler: ConcurrencyScheduler | None = None
        self._store: SupabaseCatalogStore | None = None
        self._cache: CatalogCache | None = None
        self._tag_collector: TagCollector | None = None
        self._detail_fetcher: DetailFetcher | None = None
        self._merger: Merger | None = None

    @property
    def config_service(self) -> ConfigurationService:
        if self._config_service is None:
            self._config_service = ConfigurationService(config_path=self._config_path, environ=self._environ)
        return self._config_service

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = self.config_service.load_config()
        return self._config

    @property
    def credentials(self) -> Credentials:
        if self._credentials is None:
            self._credentials = load_credentials(self._environ)
        return self._credentials

    @property
    def http_client(self) -> HttpClientService:
        if self._http_client is None:
            self._http_client = HttpClientService(timeout=self.config.request_timeout, transport=self._transport)
        return self._http_client

    @property
    def filesystem(self) -> FileSystemService:
        if self._filesystem is None:
            self._filesystem = FileSystemService()
        return self._filesystem

    @property
    def scheduler(self) -> ConcurrencyScheduler:
        if self._scheduler is None:
            self._scheduler = ConcurrencyScheduler()
        return self._scheduler

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.config.max_retries,
            initial_delay=self.config.retry_initial_delay,
        )

    @property
    def store(self) -> SupabaseCatalogStore:
        if self._store is None:
            self._store = SupabaseCatalogStore(
                http_client=self.http_client,
                base_url=self.credentials.store_url,
                anon_key=self.credentials.store_anon_key,
                service_key=self.credentials.store_service_key,
                batch_size=self.config.upsert_batch_size,
            )
        return self._store

    @property
    def cache(self) -> CatalogCache:
        if self._cache is None:
            self._cache = CatalogCache(
                store=self.store,
                filesystem=self.filesystem,
                snapshot_path=self.config.snapshot_path,
                fallback_path=self.config.fallback_path,
                ttl=self.config.memory_cache_ttl,
                snapshot_max_age=self.config.snapshot_max_age,
            )
        return self._cache

    @property
    def tag_collector(self) -> TagCollector:
        if self._tag_collector is None:
            self._tag_collector = TagCollector(
                http_client=self.http_client,
                base_url=self.config.tag_source_url,
                request_delay=self.config.tag_request_delay,
                retry_policy=self.retry_policy(),
                dedup_policy=DedupPolicy(self.config.dedup_policy),
                scheduler=self.scheduler,
            )
        return self._tag_collector

    @property
    def detail_fetcher(self) -> DetailFetcher:
        if self._detail_fetcher is None:
            self._detail_fetcher = DetailFetcher(
                http_client=self.http_client,
                base_url=self.config.detail_source_url,
                concurrency=self.config.detail_concurrency,
                request_delay=self.config.detail_request_delay,
                retry_policy=self.retry_policy(),
                scheduler=self.scheduler,
                country_code=self.config.detail_country_code,
                language=self.config.detail_language,
            )
        return self._detail_fetcher

    @property
    def merger(self) -> Merger:
        if self._merger is None:
            self._merger = Merger(TagFilter(self.config.required_tags, self.config.excluded_tags))
        return self._merger

    def collection_job(self) -> CollectionJob:
        return CollectionJob(
            tag_collector=self.tag_collector,
            detail_fetcher=self.detail_fetcher,
            merger=self.merger,
            store=self.store,
            cache=self.cache,
            config=self.config,
        )

    def incremental_updater(self, batch_size: int | None = None) -> IncrementalUpdater:
        if not self.store.is_configured:
            raise ConfigurationError(
                "Incremental updates need the persisted store",
                setting="SUPABASE_URL",
            )
        return IncrementalUpdater(
            store=self.store,
            detail_fetcher=self.detail_fetcher,
            batch_size=batch_size or self.config.incremental_batch_size,
        )

    async def cleanup(self) -> None:
        """Close connections."""
        if self._http_client is not None:
            await self._http_client.close()
            self._http_client = None
        log.debug("Application cleanup complete")


class ParsedArgs:
    """Type-safe container for parsed command-line arguments."""

    def __init__(
        self,
        command: str,
        config: Path | None,
        log_level: str | None,
        log_dir: Path | None,
        test: bool = False,
        tags: list[str] | None = None,
        no_store: bool = False,
        snapshot: bool = False,
        limit: int | None = None,
        dry_run: bool = False,
    ) -> None:
        self.command: str = command
        self.config: Path | None = config
        self.log_level: str | None = log_level
        self.log_dir: Path | None = log_dir
        self.test: bool = test
        self.tags: list[str] | None = tags
        self.no_store: bool = no_store
        self.snapshot: bool = snapshot
        self.limit: int | None = limit
        self.dry_run: bool = dry_run


def parse_arguments(argv: list[str] | None = None) -> ParsedArgs:
    """Parse command-line arguments.

    Returns:
        Parsed arguments container
    """
    parser = argparse.ArgumentParser(
        prog="craftcatalog",
        description="Collect, curate and serve a catalog of survival and crafting games",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  craftcatalog collect --test --no-store --snapshot   Small run written to the local snapshot
  craftcatalog update --limit 20                       Refresh the 20 stalest entries
  craftcatalog check-cache                             Show which cache tier is serving
        """,
    )

    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    _ = parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: ~/.config/craftcatalog/config.json)",
    )
    _ = parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set the logging level (default: from configuration)",
    )
    _ = parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for log files (default: console only)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    collect = subparsers.add_parser("collect", help="Run a full collection")
    _ = collect.add_argument("--test", action="store_true", help=f"Query one tag and fetch details for at most {TEST_RUN_LIMIT} games")
    _ = collect.add_argument("--tags", nargs="+", default=None, help="Category tags to query")
    _ = collect.add_argument("--no-store", action="store_true", help="Do not write to the persisted store")
    _ = collect.add_argument("--snapshot", action="store_true", help="Write the local snapshot file")

    update = subparsers.add_parser("update", help="Refresh the least recently updated entries")
    _ = update.add_argument("--limit", type=int, default=None, help="Entries to refresh (default: from configuration)")
    _ = update.add_argument("--dry-run", action="store_true", help="Fetch without writing")

    subparsers.add_parser("stats", help="Show persisted store statistics")
    subparsers.add_parser("check-cache", help="Show cache tier and staleness")

    ns = parser.parse_args(argv)

    return ParsedArgs(
        command=ns.command,
        config=ns.config,
        log_level=ns.log_level,
        log_dir=ns.log_dir,
        test=bool(getattr(ns, "test", False)),
        tags=getattr(ns, "tags", None),
        no_store=bool(getattr(ns, "no_store", False)),
        snapshot=bool(getattr(ns, "snapshot", False)),
        limit=getattr(ns, "limit", None),
        dry_run=bool(getattr(ns, "dry_run", False)),
    )


def print_json(data: dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def run_collect(context: ApplicationContext, args: ParsedArgs) -> int:
    tags = args.tags
    limit = None
    if args.test:
        tags = tags or context.config.core_tags[:1]
        limit = TEST_RUN_LIMIT

    summary = await context.collection_job().run(
        tags=tags,
        limit=limit,
        write_store=not args.no_store,
        write_snapshot=args.snapshot,
    )
    print_json(summary.to_dict())
    return 0


async def run_update(context: ApplicationContext, args: ParsedArgs) -> int:
    updater = context.incremental_updater(batch_size=args.limit)
    summary = await updater.run(time_budget=context.config.update_time_budget, dry_run=args.dry_run)
    print_json(summary.to_dict())
    return 0


async def run_stats(context: ApplicationContext, args: ParsedArgs) -> int:
    if not context.store.is_configured:
        raise ConfigurationError("Store is not configured", setting="SUPABASE_URL")

    stats = await context.store.get_stats()
    print_json({
        "totalGames": stats.total,
        "onSale": stats.on_sale,
        "lastUpdated": format_timestamp(stats.last_updated) if stats.last_updated else None,
    })
    return 0


async def run_check_cache(context: ApplicationContext, args: ParsedArgs) -> int:
    info = await context.cache.get_cache_info()
    print_json({
        "source": info.source,
        "gameCount": info.entry_count,
        "updatedAt": format_timestamp(info.updated_at) if info.updated_at else None,
        "snapshotStale": await context.cache.is_stale(),
        "snapshotPath": str(context.config.snapshot_path),
    })
    return 0


COMMANDS: dict[str, Callable[[ApplicationContext, ParsedArgs], Awaitable[int]]] = {
    "collect": run_collect,
    "update": run_update,
    "stats": run_stats,
    "check-cache": run_check_cache,
}


async def run_command(context: ApplicationContext, args: ParsedArgs) -> int:
    """Run one CLI command, turning application errors into exit codes."""
    try:
        return await COMMANDS[args.command](context, args)
    except ConfigurationError as e:
        log.error("Configuration error", error=e.message, setting=e.setting)
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2
    except AppError as e:
        log.error("Command failed", command=args.command, error=e.message, category=e.category.value)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        await context.cleanup()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the application."""
    args = parse_arguments(argv)

    context = ApplicationContext(config_path=args.config)
    log_level = args.log_level or context.config.log_level

    _ = setup_logging(log_level=log_level, log_dir=args.log_dir)

    log.info(
        "Starting craftcatalog",
        version=VERSION,
        command=args.command,
        log_level=log_level,
        config_path=str(args.config) if args.config else "default",
    )

    try:
        exit_code = asyncio.run(run_command(context, args))

    except KeyboardInterrupt:
        log.info("Interrupted by user")
        exit_code = 130  # Standard exit code for SIGINT

    except Exception as e:
        log.error("Unhandled exception", error=str(e), exc_info=True)
        print(f"Fatal error: {e}", file=sys.stderr)
        exit_code = 1

    log.info("Exiting", exit_code=exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
