"""Pytest configuration and shared fixtures."""

import sys
import tempfile
from pathlib import Path

import pytest

# Make tests use the local source tree instead of an installed package
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def tree_root(temp_dir):
    """Directory a test deletes; lives inside temp_dir so cleanup never trips over it."""
    root = temp_dir / "root"
    root.mkdir()
    return root
