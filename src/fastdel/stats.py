"""Aggregate counters for a deletion run."""

import time

from .models import DeletionSummary


class StatsCollector:
    """
    Four monotonically increasing counters shared by every deletion task.

    All updates happen on the event loop thread and never span an await, so
    each increment is atomic without a lock and no method ever blocks.
    """

    __slots__ = ("files_deleted", "dirs_deleted", "errors_encountered", "bytes_freed", "start_time")

    def __init__(self):
        self.files_deleted = 0
        self.dirs_deleted = 0
        self.errors_encountered = 0
        self.bytes_freed = 0
        self.start_time = time.monotonic()

    def record_file_deleted(self, size: int = 0) -> None:
        if size < 0:
            raise ValueError(f"size must be >= 0, got {size}")
        self.files_deleted += 1
        self.bytes_freed += size

    def record_dir_deleted(self) -> None:
        self.dirs_deleted += 1

    def record_error(self) -> None:
        self.errors_encountered += 1

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def snapshot(self, elapsed_seconds: float | None = None) -> DeletionSummary:
        """
        Point-in-time copy of the counters.

        Args:
            elapsed_seconds: Duration to report; defaults to time since construction
        """
        if elapsed_seconds is None:
            elapsed_seconds = self.elapsed()
        return DeletionSummary(
            files_deleted=self.files_deleted,
            dirs_deleted=self.dirs_deleted,
            errors_encountered=self.errors_encountered,
            bytes_freed=self.bytes_freed,
            elapsed_seconds=elapsed_seconds,
        )
