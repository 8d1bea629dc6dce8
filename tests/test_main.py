"""Tests for argument parsing and CLI command dispatch."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from craftcatalog.main import ApplicationContext, ParsedArgs, parse_arguments, run_command
from craftcatalog.models import AppConfig, CollectionSummary, Credentials
from craftcatalog.services.errors import PersistenceError


def make_context(tmp_path: Path, credentials: Credentials | None = None) -> ApplicationContext:
    return ApplicationContext(
        config=AppConfig(snapshot_path=tmp_path / "games.json", fallback_path=tmp_path / "missing.json"),
        credentials=credentials or Credentials(),
    )


def args_for(command: str, **kwargs) -> ParsedArgs:
    return ParsedArgs(command=command, config=None, log_level=None, log_dir=None, **kwargs)


class TestParseArguments:
    def test_collect_flags(self) -> None:
        args = parse_arguments(["--log-level", "DEBUG", "collect", "--test", "--no-store", "--snapshot", "--tags", "Survival", "Crafting"])

        assert args.command == "collect"
        assert args.log_level == "DEBUG"
        assert args.test is True
        assert args.no_store is True
        assert args.snapshot is True
        assert args.tags == ["Survival", "Crafting"]

    def test_update_flags(self) -> None:
        args = parse_arguments(["update", "--limit", "20", "--dry-run"])

        assert args.command == "update"
        assert args.limit == 20
        assert args.dry_run is True
        assert args.snapshot is False

    def test_global_options(self, tmp_path: Path) -> None:
        args = parse_arguments(["--config", str(tmp_path / "c.json"), "--log-dir", str(tmp_path), "stats"])

        assert args.config == tmp_path / "c.json"
        assert args.log_dir == tmp_path

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_arguments([])

    def test_invalid_log_level_is_rejected(self) -> None:
        with pytest.raises(SystemExit):
            parse_arguments(["--log-level", "LOUD", "stats"])


@pytest.mark.asyncio
async def test_check_cache_prints_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = await run_command(make_context(tmp_path), args_for("check-cache"))

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert output["source"] == "none"
    assert output["gameCount"] == 0
    assert output["snapshotStale"] is True


@pytest.mark.asyncio
async def test_stats_without_store_is_a_configuration_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = await run_command(make_context(tmp_path), args_for("stats"))

    assert exit_code == 2
    assert "Configuration error" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_update_without_store_is_a_configuration_error(tmp_path: Path) -> None:
    assert await run_command(make_context(tmp_path), args_for("update")) == 2


@pytest.mark.asyncio
async def test_collect_test_run_queries_one_tag(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    job = AsyncMock()
    job.run.return_value = CollectionSummary(
        tag_records=3, detail_records=3, merged=2, filtered=1, upserted=0,
        snapshot_written=True, elapsed_seconds=0.5,
    )
    context = make_context(tmp_path)

    with patch.object(ApplicationContext, "collection_job", return_value=job):
        exit_code = await run_command(context, args_for("collect", test=True, no_store=True, snapshot=True))

    assert exit_code == 0
    kwargs = job.run.await_args.kwargs
    assert kwargs["tags"] == ["Survival"]
    assert kwargs["limit"] == 10
    assert kwargs["write_store"] is False
    assert kwargs["write_snapshot"] is True
    assert json.loads(capsys.readouterr().out)["mergedGames"] == 2


@pytest.mark.asyncio
async def test_app_error_exits_with_one(tmp_path: Path) -> None:
    job = AsyncMock()
    job.run.side_effect = PersistenceError("Store write failed")

    with patch.object(ApplicationContext, "collection_job", return_value=job):
        exit_code = await run_command(make_context(tmp_path), args_for("collect", no_store=True))

    assert exit_code == 1
