"""fastdel - Fast async deletion of large directory trees such as node_modules and build caches.

The public entry points are fastdel.engine.delete_directory and DeletionEngine;
the fastdel command wraps them.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fastdel")
except PackageNotFoundError:
    # Not installed, read the version straight from pyproject.toml
    try:
        import tomllib
        from pathlib import Path

        pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            with open(pyproject_path, "rb") as f:
                __version__ = tomllib.load(f)["project"]["version"]
        else:
            __version__ = "unknown"
    except (OSError, KeyError, ValueError):
        __version__ = "unknown"
