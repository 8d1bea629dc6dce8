"""Configuration data models."""

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CORE_TAGS: list[str] = [
    "Survival",
    "Open World",
    "Building",
    "Crafting",
    "Base Building",
    "Sandbox",
    "Resource Management",
]

# A game must match at least one of these (case-insensitive substring)
DEFAULT_REQUIRED_TAGS: list[str] = [
    "크래프팅",
    "Crafting",
    "기지 건설",
    "Base Building",
    "건설",
    "Building",
    "자원 관리",
    "자동화",
    "Automation",
]

# A game matching any of these is dropped, even if it has a required tag
DEFAULT_EXCLUDED_TAGS: list[str] = [
    "배틀 로얄",
    "Battle Royale",
    "MOBA",
    "카드 게임",
    "Card Game",
    "스포츠",
    "Sports",
    "레이싱",
    "Racing",
    "격투",
    "Fighting",
]


@dataclass(frozen=True)
class AppConfig:
    """Application configuration settings."""
    core_tags: list[str] = field(default_factory=lambda: list(DEFAULT_CORE_TAGS))
    required_tags: list[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_TAGS))
    excluded_tags: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_TAGS))
    tag_source_url: str = "https://steamspy.com/api.php"
    detail_source_url: str = "https://store.steampowered.com/api"
    detail_country_code: str = "kr"
    detail_language: str = "korean"
    tag_request_delay: float = 1.0  # The tag source allows ~1 request/second
    detail_concurrency: int = 2
    detail_request_delay: float = 0.8
    max_retries: int = 3
    retry_initial_delay: float = 1.0
    request_timeout: float = 30.0
    dedup_policy: str = "first_seen"
    max_collect_games: int = 500
    collect_time_budget: float = 300.0
    update_time_budget: float = 60.0
    incremental_batch_size: int = 50
    upsert_batch_size: int = 100
    snapshot_path: Path = field(default_factory=lambda: Path("data") / "games.json")
    fallback_path: Path | None = None  # None = bundled dataset
    memory_cache_ttl: float = 300.0
    snapshot_max_age: float = 24 * 60 * 60
    log_level: str = "INFO"


@dataclass(frozen=True)
class Credentials:
    """Secrets read from the environment, never from the config file."""
    store_url: str | None = None
    store_anon_key: str | None = None
    store_service_key: str | None = None
    cron_secret: str | None = None

    @property
    def store_configured(self) -> bool:
        return bool(self.store_url and self.store_anon_key)

    @property
    def store_writable(self) -> bool:
        return bool(self.store_url and self.store_service_key)
