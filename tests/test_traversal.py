"""Tests for the depth-first traversal that empties directories."""

import asyncio
import logging
import os
import stat
from types import SimpleNamespace

import aiofiles.os
import pytest

from fastdel import traversal as traversal_module
from fastdel.deleter import EntryDeleter
from fastdel.models import EntryKind, OutcomeStatus, ProgressKind
from fastdel.stats import StatsCollector
from fastdel.traversal import DirectoryStream, TraversalEngine, _to_entry


def build_traversal(limit=10, batch_size=1000, max_concurrent_subdirs=4, concurrent_files=True):
    stats = StatsCollector()
    events = []
    logger = logging.getLogger("fastdel")
    deleter = EntryDeleter(stats, asyncio.Semaphore(limit), logger, events.append)
    traversal = TraversalEngine(
        deleter,
        asyncio.Semaphore(limit),
        logger,
        batch_size=batch_size,
        max_concurrent_subdirs=max_concurrent_subdirs,
        concurrent_files=concurrent_files,
    )
    return traversal, stats, events


@pytest.mark.asyncio
async def test_directory_stream_chunks(tree_root):
    """Test that listings arrive in chunks no larger than chunk_size."""
    for i in range(10):
        (tree_root / f"file{i}.txt").write_text("x")
    (tree_root / "sub").mkdir()

    chunks = []
    async with DirectoryStream(tree_root, 3) as stream:
        async for chunk in stream:
            chunks.append(chunk)

    assert all(len(chunk) <= 3 for chunk in chunks)
    entries = [entry for chunk in chunks for entry in chunk]
    assert len(entries) == 11
    kinds = {entry.path.name: entry.kind for entry in entries}
    assert kinds["sub"] is EntryKind.DIRECTORY
    assert kinds["file0.txt"] is EntryKind.FILE
    assert stream.reads >= 4


@pytest.mark.asyncio
async def test_directory_stream_records_file_sizes(tree_root):
    """Test that regular files carry their size."""
    (tree_root / "data.bin").write_bytes(b"\0" * 1234)

    async with DirectoryStream(tree_root, 100) as stream:
        entries = [entry async for chunk in stream for entry in chunk]

    assert entries[0].size == 1234


@pytest.mark.asyncio
async def test_directory_stream_missing_directory(temp_dir):
    """Test that opening a missing directory raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        async with DirectoryStream(temp_dir / "missing", 10):
            pass


@pytest.mark.asyncio
async def test_process_empties_but_keeps_directory(tree_root):
    """Test that process() removes contents and leaves the directory itself."""
    (tree_root / "a.txt").write_text("a")
    (tree_root / "sub" / "deeper").mkdir(parents=True)
    (tree_root / "sub" / "deeper" / "b.txt").write_text("bb")

    traversal, stats, _ = build_traversal()
    await traversal.process(tree_root)

    assert tree_root.exists()
    assert list(tree_root.iterdir()) == []
    assert stats.files_deleted == 2
    assert stats.dirs_deleted == 2
    assert stats.bytes_freed == 3
    assert stats.errors_encountered == 0


@pytest.mark.asyncio
async def test_post_order(tree_root):
    """Test that every child is processed before its parent directory."""
    (tree_root / "a" / "b" / "c").mkdir(parents=True)
    (tree_root / "a" / "b" / "c" / "leaf.txt").write_text("leaf")
    (tree_root / "a" / "mid.txt").write_text("mid")

    traversal, _, events = build_traversal()
    await traversal.process(tree_root)

    order = [event.path.name for event in events]
    assert order.index("leaf.txt") < order.index("c") < order.index("b") < order.index("a")
    assert order.index("mid.txt") < order.index("a")


@pytest.mark.asyncio
async def test_sequential_files_mode(tree_root):
    """Test that files are still all removed when deleted one by one."""
    for i in range(25):
        (tree_root / f"file{i}.txt").write_text("x")

    traversal, stats, _ = build_traversal(concurrent_files=False, batch_size=7)
    await traversal.process(tree_root)

    assert stats.files_deleted == 25
    assert list(tree_root.iterdir()) == []


@pytest.mark.asyncio
async def test_sequential_files_never_overlap(tree_root, monkeypatch):
    """Test that sequential mode keeps at most one file removal in flight."""
    for i in range(10):
        (tree_root / f"file{i}.txt").write_text("x")

    in_flight = 0
    peak = 0
    real_remove = aiofiles.os.remove

    async def tracked_remove(p, *args, **kwargs):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            await asyncio.sleep(0.005)
            return await real_remove(p, *args, **kwargs)
        finally:
            in_flight -= 1

    monkeypatch.setattr(aiofiles.os, "remove", tracked_remove)

    traversal, stats, _ = build_traversal(concurrent_files=False)
    await traversal.process(tree_root)

    assert peak == 1
    assert stats.files_deleted == 10


@pytest.mark.asyncio
async def test_small_batches_cover_whole_listing(tree_root):
    """Test that a listing bigger than the batch size is fully deleted."""
    for i in range(53):
        (tree_root / f"file{i}.txt").write_text("x")
    for i in range(5):
        (tree_root / f"dir{i}").mkdir()

    traversal, stats, _ = build_traversal(batch_size=4)
    await traversal.process(tree_root)

    assert stats.files_deleted == 53
    assert stats.dirs_deleted == 5
    assert list(tree_root.iterdir()) == []


@pytest.mark.asyncio
async def test_failed_file_counted_once_across_rescans(tree_root, monkeypatch):
    """Test that a file that cannot be deleted is not retried on a second listing."""
    for i in range(10):
        (tree_root / f"file{i}.txt").write_text("x")

    real_remove = aiofiles.os.remove
    attempts = []

    async def flaky_remove(p, *args, **kwargs):
        if os.path.basename(p) == "file3.txt":
            attempts.append(p)
            raise PermissionError(13, "Permission denied", str(p))
        return await real_remove(p, *args, **kwargs)

    monkeypatch.setattr(aiofiles.os, "remove", flaky_remove)

    traversal, stats, _ = build_traversal(batch_size=2)
    await traversal.process(tree_root)

    assert len(attempts) == 1
    assert stats.files_deleted == 9
    assert stats.errors_encountered == 1
    assert [p.name for p in tree_root.iterdir()] == ["file3.txt"]


@pytest.mark.asyncio
async def test_unreadable_directory_counts_one_error(tree_root, monkeypatch):
    """Test that a directory whose listing fails is recorded and skipped."""
    blocked = tree_root / "blocked"
    blocked.mkdir()
    (blocked / "inside.txt").write_text("x")
    (tree_root / "ok.txt").write_text("x")

    real_scandir = os.scandir

    def guarded_scandir(path):
        if os.path.basename(path) == "blocked":
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", guarded_scandir)

    traversal, stats, events = build_traversal()
    await traversal.process(tree_root)

    # One error for the listing, one for the failed rmdir of the still-populated directory
    assert stats.errors_encountered == 2
    assert stats.files_deleted == 1
    assert (blocked / "inside.txt").exists()
    blocked_events = [e for e in events if e.path.name == "blocked"]
    assert all(e.kind is ProgressKind.DIRECTORY for e in blocked_events)
    assert all(e.outcome is OutcomeStatus.FAILED for e in blocked_events)


@pytest.mark.asyncio
async def test_sibling_subdirectories_run_concurrently(tree_root, monkeypatch):
    """Test that sibling subtrees overlap but never exceed the per-directory window."""
    for i in range(12):
        sub = tree_root / f"dir{i}"
        sub.mkdir()
        (sub / "file.txt").write_text("x")

    in_flight = 0
    peak = 0
    real_remove = aiofiles.os.remove

    async def slow_remove(p, *args, **kwargs):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            await asyncio.sleep(0.02)
            return await real_remove(p, *args, **kwargs)
        finally:
            in_flight -= 1

    monkeypatch.setattr(aiofiles.os, "remove", slow_remove)

    traversal, stats, _ = build_traversal(limit=100, max_concurrent_subdirs=4)
    await traversal.process(tree_root)

    assert 1 < peak <= 4
    assert stats.files_deleted == 12
    assert stats.dirs_deleted == 12


@pytest.mark.asyncio
async def test_unexpected_subtree_exception_is_contained(tree_root, caplog):
    """Test that a bug in one subtree is logged and counted without stopping siblings."""
    for name in ("bad", "good1", "good2"):
        (tree_root / name).mkdir()
        (tree_root / name / "file.txt").write_text("x")

    traversal, stats, _ = build_traversal()
    original_process = traversal.process

    async def buggy_process(directory):
        if directory.name == "bad":
            raise RuntimeError("boom")
        await original_process(directory)

    traversal.process = buggy_process
    await original_process(tree_root)

    assert stats.errors_encountered == 1
    assert stats.dirs_deleted == 2
    assert (tree_root / "bad" / "file.txt").exists()
    assert not (tree_root / "good1").exists()
    assert any("Unexpected exception in subdirectory deletion" in r.message for r in caplog.records)


class FakeDirEntry:
    """Stand-in for os.DirEntry describing a directory with a given reparse tag."""

    def __init__(self, path, reparse_tag):
        self.path = str(path)
        self.reparse_tag = reparse_tag

    def is_symlink(self):
        return False

    def is_dir(self, follow_symlinks=True):
        return True

    def stat(self, follow_symlinks=True):
        return SimpleNamespace(st_size=0, st_mode=stat.S_IFDIR, st_reparse_tag=self.reparse_tag)


def test_junction_entries_are_links(tree_root, monkeypatch):
    """Test that a directory junction is classified as a link, not a directory to descend into."""
    monkeypatch.setattr(traversal_module, "_CHECK_JUNCTIONS", True)

    junction = _to_entry(FakeDirEntry(tree_root / "jx", stat.IO_REPARSE_TAG_MOUNT_POINT))
    plain = _to_entry(FakeDirEntry(tree_root / "dir", 0))

    assert junction.kind is EntryKind.SYMLINK
    assert plain.kind is EntryKind.DIRECTORY


@pytest.mark.asyncio
async def test_junction_is_unlinked_not_traversed(tree_root, monkeypatch):
    """Test that the contents behind a junction are never touched."""
    junction = tree_root / "jx"
    junction.mkdir()
    (junction / "outside.txt").write_text("keep me")

    monkeypatch.setattr(traversal_module, "_CHECK_JUNCTIONS", True)
    monkeypatch.setattr(traversal_module, "is_junction", lambda st: True)
    unlinked = []

    async def fake_remove(p, *args, **kwargs):
        # os.remove drops a junction on Windows; record it here instead
        unlinked.append(os.path.basename(p))

    monkeypatch.setattr(aiofiles.os, "remove", fake_remove)

    traversal, stats, _ = build_traversal()
    await traversal.process(tree_root)

    assert unlinked == ["jx"]
    assert (junction / "outside.txt").read_text() == "keep me"
    assert stats.files_deleted == 1
    assert stats.dirs_deleted == 0


@pytest.mark.asyncio
async def test_cancelled_file_deletion_is_counted(tree_root, caplog):
    """Test that a cancelled removal inside a gathered chunk is logged and counted as an error."""
    for i in range(3):
        (tree_root / f"file{i}.txt").write_text("x")

    traversal, stats, _ = build_traversal()
    real_delete = traversal.deleter.delete

    async def cancelling_delete(entry):
        if entry.path.name == "file1.txt":
            raise asyncio.CancelledError()
        return await real_delete(entry)

    traversal.deleter.delete = cancelling_delete
    await traversal.process(tree_root)

    assert stats.files_deleted == 2
    assert stats.errors_encountered == 1
    assert (tree_root / "file1.txt").exists()
    records = [r for r in caplog.records if "Unexpected exception deleting file" in r.message]
    assert records[0].extra_fields["error_type"] == "CancelledError"
