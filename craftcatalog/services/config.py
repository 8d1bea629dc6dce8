"""Configuration service for managing application settings."""

import json
import os
from collections.abc import Mapping
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import structlog

from ..models import AppConfig, Credentials

log = structlog.stdlib.get_logger()

ENV_STORE_URL = "SUPABASE_URL"
ENV_STORE_ANON_KEY = "SUPABASE_ANON_KEY"
ENV_STORE_SERVICE_KEY = "SUPABASE_SERVICE_ROLE_KEY"
ENV_CRON_SECRET = "CRON_SECRET"
ENV_LOG_LEVEL = "CRAFTCATALOG_LOG_LEVEL"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
VALID_DEDUP_POLICIES = {"first_seen", "last_seen", "merge_tags"}

_LIST_FIELDS = {"core_tags", "required_tags", "excluded_tags"}
_PATH_FIELDS = {"snapshot_path", "fallback_path"}


class ValidationResult:
    """Result of configuration validation."""

    def __init__(self, is_valid: bool, errors: list[str] | None = None) -> None:
        self.is_valid: bool = is_valid
        self.errors: list[str] = errors or []


def load_credentials(environ: Mapping[str, str] | None = None) -> Credentials:
    """Read store keys and the cron secret from the environment. Blank values count as unset."""
    env = os.environ if environ is None else environ

    def read(name: str) -> str | None:
        value = env.get(name, "").strip()
        return value or None

    return Credentials(
        store_url=read(ENV_STORE_URL),
        store_anon_key=read(ENV_STORE_ANON_KEY),
        store_service_key=read(ENV_STORE_SERVICE_KEY),
        cron_secret=read(ENV_CRON_SECRET),
    )


class ConfigurationService:
    """Service for managing application configuration."""

    def __init__(self, config_path: Path | None = None, environ: Mapping[str, str] | None = None) -> None:
        self.config_path: Path = config_path or Path.home() / ".config" / "craftcatalog" / "config.json"
        self.environ = os.environ if environ is None else environ
        log.debug("Configuration service initialized", config_path=str(self.config_path))

    def load_config(self) -> AppConfig:
        """Load configuration from file or return default configuration.

        ``CRAFTCATALOG_LOG_LEVEL`` overrides the file's log level.
        """
        config = self._load_file()

        env_level = self.environ.get(ENV_LOG_LEVEL, "").strip().upper()
        if env_level in VALID_LOG_LEVELS:
            config = replace(config, log_level=env_level)
        return config

    def _load_file(self) -> AppConfig:
        if not self.config_path.exists():
            log.info("Configuration file not found, using defaults")
            return self._get_default_config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError(f"Expected JSON object, got {type(data).__name__}")

            config = self._dict_to_config(data)
            validation_result = self.validate_config(config)

            if not validation_result.is_valid:
                log.warning("Invalid configuration loaded, using defaults", errors=validation_result.errors)
                return self._get_default_config()

            log.info("Configuration loaded successfully")
            return config

        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("Failed to load configuration, using defaults", error=str(e))
            return self._get_default_config()

    def save_config(self, config: AppConfig) -> None:
        """Save configuration to file."""
        validation_result = self.validate_config(config)
        if not validation_result.is_valid:
            raise ValueError(f"Invalid configuration: {', '.join(validation_result.errors)}")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.config_path.with_suffix(".json.tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(self._config_to_dict(config), f, indent=2, ensure_ascii=False)
            temp_path.replace(self.config_path)
            log.info("Configuration saved successfully")

        except OSError as e:
            log.error("Failed to save configuration", error=str(e))
            temp_path.unlink(missing_ok=True)
            raise

    def validate_config(self, config: AppConfig) -> ValidationResult:
        """Validate configuration settings."""
        errors = []

        if not config.core_tags:
            errors.append("core_tags cannot be empty")
        if not config.required_tags:
            errors.append("required_tags cannot be empty")

        for name in ("tag_source_url", "detail_source_url"):
            value = getattr(config, name)
            if not isinstance(value, str) or not value.startswith(("http://", "https://")):
                errors.append(f"{name} must be an http(s) URL")

        if not isinstance(config.detail_concurrency, int) or config.detail_concurrency < 1:
            errors.append("detail_concurrency must be a positive integer")
        elif config.detail_concurrency > 10:
            errors.append("detail_concurrency should not exceed 10")

        for name in ("tag_request_delay", "detail_request_delay", "retry_initial_delay"):
            value = getattr(config, name)
            if not isinstance(value, (int, float)) or value < 0:
                errors.append(f"{name} must be a non-negative number")
            elif value > 60:
                errors.append(f"{name} should not exceed 60 seconds")

        if not isinstance(config.max_retries, int) or config.max_retries < 0:
            errors.append("max_retries must be a non-negative integer")

        for name in ("max_collect_games", "incremental_batch_size", "upsert_batch_size"):
            value = getattr(config, name)
            if not isinstance(value, int) or value < 1:
                errors.append(f"{name} must be a positive integer")

        for name in ("request_timeout", "collect_time_budget", "update_time_budget", "memory_cache_ttl", "snapshot_max_age"):
            value = getattr(config, name)
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"{name} must be a positive number")

        if config.dedup_policy not in VALID_DEDUP_POLICIES:
            errors.append(f"dedup_policy must be one of: {', '.join(sorted(VALID_DEDUP_POLICIES))}")

        if config.log_level not in VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}")

        return ValidationResult(len(errors) == 0, errors)

    def _get_default_config(self) -> AppConfig:
        return AppConfig()

    def _config_to_dict(self, config: AppConfig) -> dict[str, Any]:
        """Convert AppConfig to dictionary for JSON serialization."""
        data: dict[str, Any] = {}
        for item in fields(AppConfig):
            value = getattr(config, item.name)
            if item.name in _PATH_FIELDS:
                value = str(value) if value is not None else None
            elif item.name in _LIST_FIELDS:
                value = list(value)
            data[item.name] = value
        return data

    def _dict_to_config(self, data: dict[str, Any]) -> AppConfig:
        """Convert dictionary to AppConfig. Unknown keys are ignored, missing keys keep their defaults."""
        defaults = AppConfig()
        values: dict[str, Any] = {}

        for item in fields(AppConfig):
            if item.name not in data:
                continue
            raw = data[item.name]
            default = getattr(defaults, item.name)

            if item.name in _PATH_FIELDS:
                values[item.name] = Path(str(raw)) if raw else None
            elif item.name in _LIST_FIELDS:
                if not isinstance(raw, list):
                    raise TypeError(f"{item.name} must be a list")
                values[item.name] = [str(tag) for tag in raw]
            elif isinstance(default, bool):
                values[item.name] = bool(raw)
            elif isinstance(default, int):
                values[item.name] = int(raw)
            elif isinstance(default, float):
                values[item.name] = float(raw)
            else:
                values[item.name] = str(raw)

        if values.get("snapshot_path", defaults.snapshot_path) is None:
            values["snapshot_path"] = defaults.snapshot_path
        if isinstance(values.get("log_level"), str):
            values["log_level"] = values["log_level"].upper()

        return AppConfig(**values)
