"""Property-based tests for configuration service."""

import json
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, strategies as st

from craftcatalog.models import AppConfig
from craftcatalog.services.config import ConfigurationService, load_credentials

valid_tags = st.lists(
    st.text(min_size=1, max_size=20, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Lo", "Zs"))),
    min_size=1,
    max_size=8,
)
valid_delay = st.floats(min_value=0.0, max_value=60.0, allow_nan=False, allow_infinity=False)
valid_log_levels = st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

valid_config_strategy = st.builds(
    AppConfig,
    core_tags=valid_tags,
    required_tags=valid_tags,
    excluded_tags=st.lists(st.text(min_size=1, max_size=20), max_size=5),
    detail_concurrency=st.integers(min_value=1, max_value=10),
    tag_request_delay=valid_delay,
    detail_request_delay=valid_delay,
    max_retries=st.integers(min_value=0, max_value=10),
    dedup_policy=st.sampled_from(["first_seen", "last_seen", "merge_tags"]),
    incremental_batch_size=st.integers(min_value=1, max_value=500),
    log_level=valid_log_levels,
)


@given(valid_config_strategy)
def test_configuration_round_trip(config: AppConfig) -> None:
    """Saving a valid configuration and loading it back preserves every value."""
    with tempfile.TemporaryDirectory() as temp_dir:
        service = ConfigurationService(Path(temp_dir) / "config.json", environ={})

        service.save_config(config)
        loaded = service.load_config()

        assert loaded == config


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    service = ConfigurationService(tmp_path / "absent.json", environ={})

    assert service.load_config() == AppConfig()


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2]",
        json.dumps({"detail_concurrency": 0}),
        json.dumps({"dedup_policy": "newest"}),
        json.dumps({"tag_source_url": "ftp://example.test"}),
        json.dumps({"core_tags": "Survival"}),
    ],
)
def test_invalid_file_falls_back_to_defaults(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(content, encoding="utf-8")

    assert ConfigurationService(config_path, environ={}).load_config() == AppConfig()


def test_partial_file_keeps_other_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"detail_concurrency": 4, "log_level": "debug", "unknown_setting": True}),
        encoding="utf-8",
    )

    config = ConfigurationService(config_path, environ={}).load_config()

    assert config.detail_concurrency == 4
    assert config.log_level == "DEBUG"
    assert config.core_tags == AppConfig().core_tags


def test_environment_overrides_log_level(tmp_path: Path) -> None:
    service = ConfigurationService(tmp_path / "absent.json", environ={"CRAFTCATALOG_LOG_LEVEL": "warning"})

    assert service.load_config().log_level == "WARNING"


def test_invalid_environment_log_level_is_ignored(tmp_path: Path) -> None:
    service = ConfigurationService(tmp_path / "absent.json", environ={"CRAFTCATALOG_LOG_LEVEL": "LOUD"})

    assert service.load_config().log_level == "INFO"


def test_save_rejects_invalid_configuration(tmp_path: Path) -> None:
    service = ConfigurationService(tmp_path / "config.json", environ={})

    with pytest.raises(ValueError, match="detail_concurrency"):
        service.save_config(AppConfig(detail_concurrency=50))

    assert not (tmp_path / "config.json").exists()


def test_validate_collects_every_error() -> None:
    result = ConfigurationService(environ={}).validate_config(
        AppConfig(core_tags=[], max_retries=-1, update_time_budget=0.0)
    )

    assert result.is_valid is False
    assert len(result.errors) == 3


def test_load_credentials_reads_environment() -> None:
    credentials = load_credentials({
        "SUPABASE_URL": "https://project.supabase.test",
        "SUPABASE_ANON_KEY": "anon",
        "SUPABASE_SERVICE_ROLE_KEY": "  ",
        "CRON_SECRET": "s3cret",
    })

    assert credentials.store_url == "https://project.supabase.test"
    assert credentials.store_anon_key == "anon"
    assert credentials.store_service_key is None
    assert credentials.cron_secret == "s3cret"
    assert credentials.store_configured is True
    assert credentials.store_writable is False
