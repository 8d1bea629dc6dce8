"""Progress and result data models for batch operations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class TaskOutcome(Enum):
    """Outcome of a single scheduler slot."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABANDONED = "abandoned"  # Deadline reached before the task finished


@dataclass(frozen=True)
class TaskResult(Generic[T]):
    """Tagged result for one input item of a scheduled batch.

    A ``SUCCEEDED`` slot may still carry ``None`` as its value, meaning the
    worker ran fine and genuinely found nothing.
    """
    index: int
    outcome: TaskOutcome
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is TaskOutcome.SUCCEEDED

    @classmethod
    def success(cls, index: int, value: T | None) -> "TaskResult[T]":
        return cls(index=index, outcome=TaskOutcome.SUCCEEDED, value=value)

    @classmethod
    def failure(cls, index: int, error: BaseException) -> "TaskResult[T]":
        return cls(index=index, outcome=TaskOutcome.FAILED, error=error)

    @classmethod
    def abandoned(cls, index: int) -> "TaskResult[T]":
        return cls(index=index, outcome=TaskOutcome.ABANDONED)


@dataclass(frozen=True)
class FetchProgress:
    """Progress information for a batch fetch."""
    completed: int
    total: int

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 100
        return round(self.completed / self.total * 100)


@dataclass(frozen=True)
class CollectionSummary:
    """Per-stage counts of a full collection run."""
    tag_records: int
    detail_records: int
    merged: int
    filtered: int
    upserted: int
    snapshot_written: bool
    elapsed_seconds: float
    failed_tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tagSourceGames": self.tag_records,
            "detailSourceGames": self.detail_records,
            "mergedGames": self.merged,
            "filteredGames": self.filtered,
            "upsertedGames": self.upserted,
            "snapshotWritten": self.snapshot_written,
            "failedTags": list(self.failed_tags),
            "elapsedSeconds": self.elapsed_seconds,
        }


@dataclass(frozen=True)
class UpdateSummary:
    """Counts of an incremental refresh run."""
    selected: int
    fetched: int
    upserted: int
    dry_run: bool
    elapsed_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "selectedGames": self.selected,
            "fetchedGames": self.fetched,
            "upsertedGames": self.upserted,
            "dryRun": self.dry_run,
            "elapsedSeconds": self.elapsed_seconds,
        }
