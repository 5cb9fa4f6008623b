"""Depth-first, post-order traversal that empties a directory tree."""

import asyncio
import logging
import os
from collections import deque
from pathlib import Path

from .deleter import EntryDeleter
from .logging import log_with_context
from .models import EntryKind, FileSystemEntry, OutcomeStatus
from .resolver import is_junction


# Only Windows stat results carry reparse tags; elsewhere a directory needs no extra stat
_CHECK_JUNCTIONS = os.name == "nt"


def _to_entry(dir_entry: os.DirEntry) -> FileSystemEntry:
    """Classify a scandir entry without following symlinks or junctions."""
    path = Path(dir_entry.path)
    try:
        if dir_entry.is_symlink():
            return FileSystemEntry(path, EntryKind.SYMLINK)
        if dir_entry.is_dir(follow_symlinks=False):
            # A junction is a link to another directory: unlink it, never descend
            if _CHECK_JUNCTIONS and is_junction(dir_entry.stat(follow_symlinks=False)):
                return FileSystemEntry(path, EntryKind.SYMLINK)
            return FileSystemEntry(path, EntryKind.DIRECTORY)
        size = dir_entry.stat(follow_symlinks=False).st_size
    except OSError:
        # Vanished or unreadable; the removal attempt will classify it
        size = 0
    return FileSystemEntry(path, EntryKind.FILE, size)


def _read_chunk(iterator, chunk_size: int) -> tuple[list[FileSystemEntry], bool]:
    """Pull up to chunk_size entries; the flag is True once the listing is exhausted."""
    chunk = []
    for dir_entry in iterator:
        chunk.append(_to_entry(dir_entry))
        if len(chunk) >= chunk_size:
            return chunk, False
    return chunk, True


class DirectoryStream:
    """
    Async iterator over a directory listing, in chunks of at most chunk_size entries.

    Only one chunk is held in memory at a time. Blocking scandir calls run in
    the event loop's default executor.
    """

    def __init__(self, directory: Path, chunk_size: int):
        self.directory = directory
        self.chunk_size = chunk_size
        # Executor round trips; more than one means entries were read after deletions began
        self.reads = 0
        self._iterator = None
        self._exhausted = False

    async def __aenter__(self) -> "DirectoryStream":
        loop = asyncio.get_running_loop()
        self._iterator = await loop.run_in_executor(None, os.scandir, self.directory)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._iterator is not None:
            self._iterator.close()
            self._iterator = None

    def __aiter__(self) -> "DirectoryStream":
        return self

    async def __anext__(self) -> list[FileSystemEntry]:
        if self._exhausted:
            raise StopAsyncIteration

        loop = asyncio.get_running_loop()
        chunk, self._exhausted = await loop.run_in_executor(None, _read_chunk, self._iterator, self.chunk_size)
        self.reads += 1
        if not chunk:
            raise StopAsyncIteration
        return chunk


class TraversalEngine:
    """
    Empty a directory tree, children before parents.

    Files of a directory are removed while its listing is streamed; its
    subdirectories are then emptied and removed, each as its own asyncio task so
    that tree depth never turns into call-stack depth.
    """

    def __init__(
        self,
        deleter: EntryDeleter,
        scan_semaphore: asyncio.Semaphore,
        logger: logging.Logger,
        batch_size: int = 1000,
        max_concurrent_subdirs: int = 16,
        concurrent_files: bool = True,
    ):
        """
        Args:
            deleter: Issues and accounts for every removal
            scan_semaphore: Bounds how many directory listings are open at once
            logger: Logger for traversal-level problems
            batch_size: Directory entries read (and file deletions dispatched) per chunk
            max_concurrent_subdirs: Sibling subdirectories processed at once, per directory
            concurrent_files: Delete the files of a chunk concurrently instead of one by one
        """
        self.deleter = deleter
        self.scan_semaphore = scan_semaphore
        self.logger = logger
        self.batch_size = batch_size
        self.max_concurrent_subdirs = max_concurrent_subdirs
        self.concurrent_files = concurrent_files

    async def process(self, directory: Path) -> None:
        """
        Delete everything below directory, leaving directory itself in place.

        Args:
            directory: Directory to empty
        """
        # Insertion-ordered set: a rescan lists subdirectories a second time
        subdirs: dict[Path, None] = {}
        failed: set[Path] = set()

        rescan = True
        while rescan:
            rescan = await self._scan_pass(directory, subdirs, failed)

        if subdirs:
            await self._process_subdirs(list(subdirs))

    async def _scan_pass(self, directory: Path, subdirs: dict[Path, None], failed: set[Path]) -> bool:
        """
        Stream one listing of directory, deleting files and collecting subdirectories.

        Returns:
            True if the listing should be read again. Files were removed while the
            listing was still open, and some filesystems skip entries in that case.
        """
        deleted = 0
        try:
            async with self.scan_semaphore:
                async with DirectoryStream(directory, self.batch_size) as stream:
                    async for chunk in stream:
                        files = []
                        for entry in chunk:
                            if entry.path in failed:
                                continue
                            if entry.is_directory:
                                subdirs[entry.path] = None
                            else:
                                files.append(entry)
                        deleted += await self._delete_files(files, failed)
                    reads = stream.reads
        except OSError as e:
            # Unreadable directory: its own removal will fail later and count separately
            self.deleter.fail(FileSystemEntry(directory, EntryKind.DIRECTORY), e)
            return False

        return reads > 1 and deleted > 0

    async def _delete_files(self, files: list[FileSystemEntry], failed: set[Path]) -> int:
        """Delete one chunk of files; returns how many were removed."""
        if not files:
            return 0

        if not self.concurrent_files:
            outcomes = [await self.deleter.delete(entry) for entry in files]
        else:
            # return_exceptions=True so one unexpected failure cannot cancel the rest
            outcomes = await asyncio.gather(*(self.deleter.delete(entry) for entry in files), return_exceptions=True)

        deleted = 0
        for entry, outcome in zip(files, outcomes):
            # CancelledError is a BaseException and can come back from gather too
            if isinstance(outcome, BaseException):
                log_with_context(
                    self.logger,
                    "error",
                    "Unexpected exception deleting file",
                    {"path": str(entry.path), "error": str(outcome), "error_type": type(outcome).__name__},
                )
                self.deleter.stats.record_error()
                failed.add(entry.path)
            elif outcome.status is OutcomeStatus.FAILED:
                failed.add(entry.path)
            elif outcome.status is OutcomeStatus.DELETED:
                deleted += 1

        self.logger.debug(f"Processed batch of {len(files)} files")
        return deleted

    async def _delete_subtree(self, directory: Path) -> None:
        await self.process(directory)
        await self.deleter.delete(FileSystemEntry(directory, EntryKind.DIRECTORY))

    async def _process_subdirs(self, subdirs: list[Path]) -> None:
        """
        Empty and remove sibling subdirectories through a sliding window of tasks.

        At most max_concurrent_subdirs tasks exist for this directory at any time;
        a new one starts as soon as another finishes.

        Args:
            subdirs: Subdirectories of a single directory
        """
        remaining = deque(subdirs)
        active: set[asyncio.Task] = set()

        try:
            while remaining or active:
                while len(active) < self.max_concurrent_subdirs and remaining:
                    active.add(asyncio.create_task(self._delete_subtree(remaining.popleft())))

                done, active = await asyncio.wait(active, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    try:
                        task.result()
                    except Exception as e:
                        # _delete_subtree absorbs OSErrors; anything else is a bug worth surfacing
                        log_with_context(
                            self.logger,
                            "error",
                            "Unexpected exception in subdirectory deletion",
                            {"error": str(e), "error_type": type(e).__name__},
                        )
                        self.deleter.stats.record_error()
        finally:
            for task in active:
                task.cancel()
