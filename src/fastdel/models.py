"""Value types shared by the deletion components."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional


class EntryKind(str, Enum):
    """What a directory entry is, as seen without following symlinks."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class OutcomeStatus(str, Enum):
    """Result of a single removal request."""

    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why a removal request failed."""

    PERMISSION_DENIED = "permission_denied"
    LOCKED = "locked"
    OTHER_IO = "other_io"


@dataclass(frozen=True, slots=True)
class FileSystemEntry:
    """One child of a directory, captured while streaming its listing."""

    path: Path
    kind: EntryKind
    size: int = 0

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass(frozen=True, slots=True)
class Outcome:
    """What happened when an entry's removal was attempted."""

    path: Path
    kind: EntryKind
    status: OutcomeStatus
    bytes_freed: int = 0
    reason: Optional[FailureReason] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True when the entry is gone, whether we removed it or not."""
        return self.status is not OutcomeStatus.FAILED

    @classmethod
    def deleted(cls, entry: FileSystemEntry) -> Outcome:
        return cls(entry.path, entry.kind, OutcomeStatus.DELETED, bytes_freed=entry.size)

    @classmethod
    def already_absent(cls, entry: FileSystemEntry) -> Outcome:
        return cls(entry.path, entry.kind, OutcomeStatus.ALREADY_ABSENT)

    @classmethod
    def failed(cls, entry: FileSystemEntry, reason: FailureReason, error: str) -> Outcome:
        return cls(entry.path, entry.kind, OutcomeStatus.FAILED, reason=reason, error=error)


class ProgressKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """
    Emitted once per processed entry for an optional progress consumer.

    Symlinks and special files are reported as FILE.
    """

    path: Path
    kind: ProgressKind
    outcome: OutcomeStatus
    reason: Optional[FailureReason] = None

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> ProgressEvent:
        kind = ProgressKind.DIRECTORY if outcome.kind is EntryKind.DIRECTORY else ProgressKind.FILE
        return cls(outcome.path, kind, outcome.status, outcome.reason)


ProgressSink = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class DeletionSummary:
    """Final, immutable statistics of one deletion run."""

    files_deleted: int
    dirs_deleted: int
    errors_encountered: int
    bytes_freed: int
    elapsed_seconds: float

    @property
    def files_per_second(self) -> float:
        return self.files_deleted / self.elapsed_seconds if self.elapsed_seconds > 0 else 0.0

    @property
    def mb_freed(self) -> float:
        return self.bytes_freed / (1024 * 1024)

    def to_dict(self) -> dict:
        """Log-friendly view, most important fields first."""
        data = asdict(self)
        data["elapsed_seconds"] = round(self.elapsed_seconds, 2)
        data["files_per_second"] = round(self.files_per_second, 2)
        data["mb_freed"] = round(self.mb_freed, 2)
        return data
