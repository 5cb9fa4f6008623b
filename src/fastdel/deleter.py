"""Removal of single filesystem entries."""

import asyncio
import errno
import logging

import aiofiles.os

from .logging import log_with_context
from .models import EntryKind, FailureReason, FileSystemEntry, Outcome, OutcomeStatus, ProgressEvent, ProgressSink
from .stats import StatsCollector

_LOCKED_ERRNOS = frozenset({errno.EBUSY, errno.ETXTBSY})
# ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
_LOCKED_WINERRORS = frozenset({32, 33})


def classify_error(error: OSError) -> FailureReason:
    """Map an OSError from a removal call onto a FailureReason."""
    # Windows reports sharing violations as PermissionError, so check locks first
    if error.errno in _LOCKED_ERRNOS or getattr(error, "winerror", None) in _LOCKED_WINERRORS:
        return FailureReason.LOCKED
    if isinstance(error, PermissionError):
        return FailureReason.PERMISSION_DENIED
    return FailureReason.OTHER_IO


class EntryDeleter:
    """
    Remove one entry at a time and account for the result.

    Every removal request is admitted through the shared semaphore, which is the
    only bound on how many filesystem calls are in flight for a run.

    Symlinks are unlinked as entries and never followed, so a link to a
    directory outside the tree cannot lead the run out of it.
    """

    def __init__(
        self,
        stats: StatsCollector,
        semaphore: asyncio.Semaphore,
        logger: logging.Logger,
        on_progress: ProgressSink | None = None,
    ):
        self.stats = stats
        self.semaphore = semaphore
        self.logger = logger
        self.on_progress = on_progress

    async def delete(self, entry: FileSystemEntry) -> Outcome:
        """
        Issue a single removal request for entry.

        Directories must already be empty; this does not recurse.

        Args:
            entry: File, symlink or empty directory to remove

        Returns:
            The classified outcome, already recorded in the stats
        """
        try:
            async with self.semaphore:
                if entry.kind is EntryKind.DIRECTORY:
                    await aiofiles.os.rmdir(entry.path)
                else:
                    await aiofiles.os.remove(entry.path)
        except FileNotFoundError:
            # Someone else got there first; the entry is gone either way
            outcome = Outcome.already_absent(entry)
        except OSError as e:
            outcome = Outcome.failed(entry, classify_error(e), str(e))
        else:
            outcome = Outcome.deleted(entry)

        self._record(outcome)
        return outcome

    def fail(self, entry: FileSystemEntry, error: OSError) -> Outcome:
        """Record a failure that happened before a removal could be issued."""
        outcome = Outcome.failed(entry, classify_error(error), str(error))
        self._record(outcome)
        return outcome

    def _record(self, outcome: Outcome) -> None:
        if outcome.status is OutcomeStatus.DELETED:
            if outcome.kind is EntryKind.DIRECTORY:
                self.stats.record_dir_deleted()
            else:
                self.stats.record_file_deleted(outcome.bytes_freed)
            self.logger.debug(f"Deleted {outcome.kind.value}: {outcome.path}")

        elif outcome.status is OutcomeStatus.ALREADY_ABSENT:
            self.logger.debug(f"Already deleted: {outcome.path}")

        else:
            self.stats.record_error()
            level = "error" if outcome.reason is FailureReason.OTHER_IO else "warning"
            log_with_context(
                self.logger,
                level,
                f"Could not delete {outcome.kind.value}",
                {"path": str(outcome.path), "reason": outcome.reason.value, "error": outcome.error},
            )

        if self.on_progress is not None:
            try:
                self.on_progress(ProgressEvent.from_outcome(outcome))
            except Exception as e:
                log_with_context(
                    self.logger,
                    "error",
                    "Progress callback failed",
                    {"path": str(outcome.path), "error": str(e), "error_type": type(e).__name__},
                )
