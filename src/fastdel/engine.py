"""Async deletion of whole directory trees, optimized for huge entry counts."""

import asyncio
import logging
import time

import psutil

from . import __version__
from .deleter import EntryDeleter
from .errors import ValidationError
from .logging import LOGGER_NAME, log_with_context, setup_logging
from .models import DeletionSummary, EntryKind, FileSystemEntry, ProgressSink
from .resolver import resolve_target_async
from .stats import StatsCollector
from .traversal import TraversalEngine

DEFAULT_CONCURRENCY_LIMIT = 256
DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_CONCURRENT_SUBDIRS = 16
DEFAULT_PROGRESS_INTERVAL = 30.0


def get_memory_usage_mb() -> float:
    """Resident memory of this process in MB."""
    return psutil.Process().memory_info().rss / 1024 / 1024


class DeletionEngine:
    """
    Delete a directory tree, root included, as fast as the filesystem allows.

    - Async I/O so many removals overlap
    - One global bound on in-flight removals
    - Symlinks removed as links, never followed
    - Per-entry failures counted, never fatal
    """

    def __init__(
        self,
        root_path,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrent_subdirs: int = DEFAULT_MAX_CONCURRENT_SUBDIRS,
        max_open_dirs: int | None = None,
        concurrent_files: bool = True,
        log_level: str = "INFO",
        progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
        on_progress: ProgressSink | None = None,
    ):
        """
        Initialize the deletion engine.

        Args:
            root_path: Directory to delete
            concurrency_limit: Maximum removal requests in flight across the whole run
            batch_size: Directory entries read, and file deletions dispatched, per chunk
            max_concurrent_subdirs: Sibling subdirectories processed at once, per directory
            max_open_dirs: Maximum directory listings open at once (default: concurrency_limit)
            concurrent_files: Delete a directory's files concurrently; False deletes them one by one
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            progress_interval: Seconds between progress log records
            on_progress: Called with a ProgressEvent for every entry processed

        Raises:
            ValueError: If invalid parameters are provided
        """
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if max_concurrent_subdirs < 1:
            raise ValueError(f"max_concurrent_subdirs must be >= 1, got {max_concurrent_subdirs}")
        if max_open_dirs is None:
            max_open_dirs = concurrency_limit
        if max_open_dirs < 1:
            raise ValueError(f"max_open_dirs must be >= 1, got {max_open_dirs}")
        if progress_interval <= 0:
            raise ValueError(f"progress_interval must be > 0, got {progress_interval}")

        self.root_path = root_path
        self.concurrency_limit = concurrency_limit
        self.batch_size = batch_size
        self.max_concurrent_subdirs = max_concurrent_subdirs
        self.max_open_dirs = max_open_dirs
        self.concurrent_files = concurrent_files
        self.progress_interval = progress_interval
        self.on_progress = on_progress

        self.logger = setup_logging(LOGGER_NAME, log_level)
        self.stats: StatsCollector | None = None

    async def _background_progress_reporter(self, stats: StatsCollector) -> None:
        """Log counters every progress_interval seconds until cancelled."""
        while True:
            await asyncio.sleep(self.progress_interval)

            elapsed = stats.elapsed()
            progress_data = {
                "elapsed_seconds": round(elapsed, 1),
                "files_deleted": stats.files_deleted,
                "dirs_deleted": stats.dirs_deleted,
                "errors": stats.errors_encountered,
                "files_per_second": round(stats.files_deleted / elapsed, 1) if elapsed > 0 else 0.0,
                "mb_freed": round(stats.bytes_freed / (1024 * 1024), 2),
                "memory_mb": round(get_memory_usage_mb(), 1),
            }
            if self.logger.isEnabledFor(logging.DEBUG):
                progress_data["bytes_freed"] = stats.bytes_freed

            log_with_context(self.logger, "info", "Progress update", progress_data)

    async def delete_directory(self) -> DeletionSummary:
        """
        Delete root_path and everything below it.

        Returns:
            Summary of the run; per-entry failures show up in errors_encountered

        Raises:
            ValidationError: root_path is missing, not a directory, inaccessible or protected;
                nothing was deleted
        """
        log_with_context(
            self.logger,
            "info",
            "Starting deletion",
            {
                "version": __version__,
                "root_path": str(self.root_path),
                "concurrency_limit": self.concurrency_limit,
                "batch_size": self.batch_size,
                "max_concurrent_subdirs": self.max_concurrent_subdirs,
                "max_open_dirs": self.max_open_dirs,
                "concurrent_files": self.concurrent_files,
                "progress_interval_seconds": self.progress_interval,
            },
        )

        try:
            target = await resolve_target_async(self.root_path)
        except ValidationError as e:
            log_with_context(
                self.logger,
                "error",
                "Invalid deletion target",
                {"root_path": str(self.root_path), "error": str(e), "error_type": type(e).__name__},
            )
            raise

        stats = StatsCollector()
        self.stats = stats
        deleter = EntryDeleter(stats, asyncio.Semaphore(self.concurrency_limit), self.logger, self.on_progress)
        traversal = TraversalEngine(
            deleter,
            asyncio.Semaphore(self.max_open_dirs),
            self.logger,
            batch_size=self.batch_size,
            max_concurrent_subdirs=self.max_concurrent_subdirs,
            concurrent_files=self.concurrent_files,
        )

        progress_task = asyncio.create_task(self._background_progress_reporter(stats))
        try:
            await traversal.process(target)
            await deleter.delete(FileSystemEntry(target, EntryKind.DIRECTORY))
        finally:
            progress_task.cancel()
            try:
                await progress_task
            except asyncio.CancelledError:
                pass

        summary = stats.snapshot()

        final_stats = summary.to_dict()
        final_stats["peak_memory_mb"] = round(get_memory_usage_mb(), 1)
        log_with_context(
            self.logger,
            "warning" if summary.errors_encountered else "info",
            "Deletion completed",
            final_stats,
        )

        return summary


async def delete_directory(
    input_path,
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrent_subdirs: int = DEFAULT_MAX_CONCURRENT_SUBDIRS,
    max_open_dirs: int | None = None,
    concurrent_files: bool = True,
    log_level: str = "INFO",
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
    on_progress: ProgressSink | None = None,
) -> DeletionSummary:
    """
    Delete input_path and everything below it.

    Args:
        input_path: Directory to delete
        concurrency_limit: Maximum removal requests in flight
        batch_size: Directory entries read per chunk
        max_concurrent_subdirs: Sibling subdirectories processed at once, per directory
        max_open_dirs: Maximum directory listings open at once (default: concurrency_limit)
        concurrent_files: Delete a directory's files concurrently
        log_level: Logging level
        progress_interval: Seconds between progress log records
        on_progress: Optional per-entry progress callback

    Returns:
        Summary of the run
    """
    engine = DeletionEngine(
        input_path,
        concurrency_limit=concurrency_limit,
        batch_size=batch_size,
        max_concurrent_subdirs=max_concurrent_subdirs,
        max_open_dirs=max_open_dirs,
        concurrent_files=concurrent_files,
        log_level=log_level,
        progress_interval=progress_interval,
        on_progress=on_progress,
    )
    return await engine.delete_directory()
