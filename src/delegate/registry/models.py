"""Domain models for delegated commands and lifecycle reports."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime


class DelegateError(RuntimeError):
    """Base error for registry and process lifecycle failures."""


class SpawnError(DelegateError):
    """Temp stream file or child process could not be created."""


class StorageError(DelegateError):
    """Registry database could not be opened, migrated, read, or written."""


class RecordNotFoundError(DelegateError):
    """No live record matches the lookup."""


class AmbiguousRecordError(DelegateError):
    """More than one live record claims the same pid."""


class SignalDeliveryError(DelegateError):
    """Signal could not be delivered to the target process."""

    def __init__(self, message: str, *, pid: int) -> None:
        super().__init__(message)
        self.pid = pid


_REQUIRED_COLUMNS = ("pid", "command", "stdout_path", "stdin_path", "stderr_path")

DisplayRow = tuple[int, str, str, str, str, int | None]


@dataclass(slots=True, frozen=True)
class DelegateRecord:
    """One delegated invocation: command, OS pid, and redirected stream files."""

    pid: int
    command: str
    stdout_path: str
    stdin_path: str
    stderr_path: str
    group: int | None = None
    ongoing: bool = True
    record_id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, object]) -> DelegateRecord:
        """Decode a storage row, requiring every mandatory column.

        ``group_num`` may be missing or NULL; ``ongoing`` defaults to live.
        """

        missing = [name for name in _REQUIRED_COLUMNS if row.get(name) is None]
        if missing:
            raise StorageError(f"Delegate row is missing columns: {', '.join(missing)}")
        group = row.get("group_num")
        ongoing = row.get("ongoing", 1)
        record_id = row.get("id")
        created_at = row.get("created_at")
        return cls(
            pid=int(row["pid"]),  # type: ignore[arg-type]
            command=str(row["command"]),
            stdout_path=str(row["stdout_path"]),
            stdin_path=str(row["stdin_path"]),
            stderr_path=str(row["stderr_path"]),
            group=int(group) if group is not None else None,  # type: ignore[arg-type]
            ongoing=bool(ongoing),
            record_id=int(record_id) if record_id is not None else None,  # type: ignore[arg-type]
            created_at=created_at if isinstance(created_at, datetime) else None,
        )

    @property
    def stream_paths(self) -> tuple[str, str, str]:
        return (self.stdout_path, self.stdin_path, self.stderr_path)

    def to_display_row(self) -> DisplayRow:
        """Tuple consumed by the table renderer."""

        return (
            self.pid,
            self.command,
            self.stdout_path,
            self.stdin_path,
            self.stderr_path,
            self.group,
        )


@dataclass(slots=True)
class SignalFailure:
    """A target the lifecycle operation could not signal."""

    record: DelegateRecord
    error: str


@dataclass(slots=True)
class KillReport:
    """Outcome of one kill-by-token request."""

    token: str
    matched_by: str
    killed: list[DelegateRecord] = field(default_factory=list)
    failures: list[SignalFailure] = field(default_factory=list)


@dataclass(slots=True)
class ResetReport:
    """Outcome of killing every live record and destroying the store."""

    killed: list[DelegateRecord] = field(default_factory=list)
    failures: list[SignalFailure] = field(default_factory=list)


@dataclass(slots=True)
class RestartedRecord:
    previous: DelegateRecord
    current: DelegateRecord


@dataclass(slots=True)
class RestartReport:
    """Outcome of restarting live records of a group, or all of them."""

    group: int | None
    restarted: list[RestartedRecord] = field(default_factory=list)
    failures: list[SignalFailure] = field(default_factory=list)


@dataclass(slots=True)
class GcReport:
    """Stream files of dead records removed (or that would be removed)."""

    dry_run: bool
    records_scanned: int = 0
    files_deleted: list[str] = field(default_factory=list)
    files_missing: int = 0
    files_failed: list[str] = field(default_factory=list)
