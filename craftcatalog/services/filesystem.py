"""File system service for snapshot persistence."""

import json
from pathlib import Path
from typing import Any

import structlog

log = structlog.stdlib.get_logger()


class FileSystemService:
    """Service for JSON file operations with atomic writes."""

    def __init__(self, base_path: Path | None = None) -> None:
        """Initialize the file system service.

        Args:
            base_path: Directory that relative paths are resolved against (defaults to current working directory)
        """
        self.base_path = base_path or Path.cwd()
        log.debug("File system service initialized", base_path=str(self.base_path))

    def resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.base_path / path

    async def save_json(self, data: dict[str, Any], path: Path) -> None:
        """Save data as JSON to the specified path.

        The document is written to a sibling temporary file and then moved
        over ``path``, so readers never see a half-written file.

        Args:
            data: Dictionary to save as JSON
            path: Path to save the file

        Raises:
            OSError: If file cannot be written
            ValueError: If data cannot be serialized to JSON
        """
        path = self.resolve(path)
        self.ensure_directory(path.parent)
        temp_path = path.with_suffix(path.suffix + ".tmp")

        log.debug("Saving JSON data", path=str(path), temp_path=str(temp_path))
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_path.replace(path)
        except OSError as e:
            log.error("Failed to save JSON data", path=str(path), error=str(e))
            temp_path.unlink(missing_ok=True)
            raise
        except (TypeError, ValueError) as e:
            log.error("Failed to serialize data to JSON", path=str(path), error=str(e))
            temp_path.unlink(missing_ok=True)
            raise ValueError(f"Cannot serialize data to JSON: {e}") from e

        log.info("JSON data saved successfully", path=str(path), size=path.stat().st_size)

    async def load_json(self, path: Path) -> dict[str, Any]:
        """Load JSON data from the specified path.

        Args:
            path: Path to load the file from

        Returns:
            Dictionary loaded from JSON

        Raises:
            FileNotFoundError: If file does not exist
            OSError: If file cannot be read
            ValueError: If file contains invalid JSON or is not an object
        """
        path = self.resolve(path)
        log.debug("Loading JSON data", path=str(path))

        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            log.error("Invalid JSON in file", path=str(path), error=str(e))
            raise ValueError(f"Invalid JSON in file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Expected JSON object (dict), got {type(data).__name__}")

        log.debug("JSON data loaded successfully", path=str(path), keys=list(data.keys()))
        return data

    def ensure_directory(self, path: Path) -> None:
        """Ensure that a directory exists, creating it if necessary.

        Raises:
            OSError: If the path exists as a file or cannot be created
        """
        if path.exists():
            if not path.is_dir():
                log.error("Path exists but is not a directory", path=str(path))
                raise OSError(f"Path exists but is not a directory: {path}")
            return

        log.debug("Creating directory", path=str(path))
        path.mkdir(parents=True, exist_ok=True)
