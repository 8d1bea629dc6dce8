"""Tests for the logging service."""

import json
import logging
import os
import tempfile
from io import StringIO
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog
from hypothesis import given, settings, strategies as st

from craftcatalog.services.logging import NOISY_LOGGERS, LoggingService, setup_logging


@pytest.fixture
def reset_logging():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    structlog.reset_defaults()


def read_json_lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


@pytest.mark.usefixtures("reset_logging")
class TestLoggingService:
    """Test cases for LoggingService."""

    def test_development_console_is_human_readable(self) -> None:
        with patch.dict(os.environ, {"ENVIRONMENT": "development"}):
            with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
                service = LoggingService(log_level="INFO")
                service.configure()
                service.get_logger("test").info("collection started", tags=3)
                output = mock_stderr.getvalue()

        assert "collection started" in output
        assert not output.strip().startswith("{")

    def test_production_console_is_json(self) -> None:
        with patch.dict(os.environ, {"ENVIRONMENT": "production"}):
            with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
                service = LoggingService(log_level="INFO")
                service.configure()
                service.get_logger("test").info("collection started", tags=3)
                output = mock_stderr.getvalue()

        lines = [line for line in output.splitlines() if line.strip()]
        parsed = json.loads(lines[-1])
        assert parsed["event"] == "collection started"
        assert parsed["tags"] == 3
        assert parsed["level"] == "info"
        assert "timestamp" in parsed

    def test_stdout_stays_clean(self) -> None:
        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            with patch("sys.stderr", new_callable=StringIO):
                service = LoggingService(log_level="DEBUG")
                service.configure()
                service.get_logger("test").info("not on stdout")

        assert mock_stdout.getvalue() == ""

    def test_file_logging_writes_json(self, tmp_path: Path) -> None:
        service = LoggingService(log_level="INFO", log_dir=tmp_path, console=False)
        service.configure()

        service.get_logger("test").info("snapshot written", games=42)

        records = read_json_lines(tmp_path / "craftcatalog.log")
        assert records[-1]["event"] == "snapshot written"
        assert records[-1]["games"] == 42
        assert (tmp_path / "error.log").exists()

    def test_error_file_only_gets_errors(self, tmp_path: Path) -> None:
        service = LoggingService(log_level="DEBUG", log_dir=tmp_path, console=False)
        service.configure()
        logger = service.get_logger("test")

        logger.info("routine")
        logger.error("store unreachable", status=503)

        errors = read_json_lines(tmp_path / "error.log")
        assert [record["event"] for record in errors] == ["store unreachable"]
        assert len(read_json_lines(tmp_path / "craftcatalog.log")) == 2

    def test_level_filters_messages(self, tmp_path: Path) -> None:
        service = LoggingService(log_level="WARNING", log_dir=tmp_path, console=False)
        service.configure()
        logger = service.get_logger("test")

        logger.info("hidden")
        logger.warning("shown")

        assert [record["event"] for record in read_json_lines(tmp_path / "craftcatalog.log")] == ["shown"]

    def test_noisy_http_loggers_are_quieted(self) -> None:
        LoggingService(log_level="DEBUG", console=False).configure()

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


@given(
    event=st.text(
        min_size=1, max_size=50, alphabet=st.characters(blacklist_categories=("Cc", "Cs", "Zl", "Zp")),
    ).filter(lambda x: x.strip()),
    appid=st.integers(min_value=0, max_value=10_000_000),
)
@settings(deadline=None, max_examples=25)
def test_structured_fields_survive_json_rendering(event: str, appid: int) -> None:
    """Any event text and key/value context come back intact from the log file."""
    with tempfile.TemporaryDirectory() as temp_dir:
        log_dir = Path(temp_dir)
        service = LoggingService(log_level="INFO", log_dir=log_dir, console=False)
        service.configure()
        try:
            service.get_logger("test").info(event, appid=appid)
            record = read_json_lines(log_dir / "craftcatalog.log")[-1]
        finally:
            root = logging.getLogger()
            for handler in list(root.handlers):
                handler.close()
                root.removeHandler(handler)

    assert record["event"] == event
    assert record["appid"] == appid


@pytest.mark.usefixtures("reset_logging")
def test_setup_logging_function(tmp_path: Path) -> None:
    with patch.dict(os.environ, {"ENVIRONMENT": "development"}):
        service = setup_logging(log_level="debug", log_dir=tmp_path, environment="production", console=False)

        assert isinstance(service, LoggingService)
        assert service.log_level == "DEBUG"
        assert service.is_development is False
        assert logging.getLogger().level == logging.DEBUG
