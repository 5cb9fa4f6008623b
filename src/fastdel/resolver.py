"""Turn a user-supplied path into a validated deletion target."""

import asyncio
import os
import stat
from pathlib import Path

from .errors import ProtectedPathError, TargetAccessDeniedError, TargetNotADirectoryError, TargetNotFoundError

# Deleting any of these would take the running system down with it
PROTECTED_PATHS = frozenset(
    {
        "/proc",
        "/sys",
        "/dev",
        "/run",
        "/var/run",
        "/boot",
        "/bin",
        "/sbin",
        "/lib",
        "/lib32",
        "/lib64",
        "/usr/bin",
        "/usr/sbin",
        "/usr/lib",
        "/etc",
    }
)

_WINDOWS_LONG_PREFIX = "\\\\?\\"
_WINDOWS_DEVICE_PREFIX = "\\\\.\\"

# stat.IO_REPARSE_TAG_MOUNT_POINT is only defined on Windows
_IO_REPARSE_TAG_MOUNT_POINT = 0xA0000003


def to_long_path(path: str, windows: bool | None = None) -> str:
    """
    Add the Windows extended-length prefix to an absolute path.

    Every path below the target is built from it, so the prefix is always added
    on Windows, however short the target itself is. UNC paths take the
    ``\\\\?\\UNC\\`` form. Elsewhere the input is returned unchanged.

    Args:
        path: Absolute, normalized path
        windows: Override platform detection; defaults to ``os.name == "nt"``
    """
    if windows is None:
        windows = os.name == "nt"
    if not windows or path.startswith((_WINDOWS_LONG_PREFIX, _WINDOWS_DEVICE_PREFIX)):
        return path
    if path.startswith("\\\\"):
        # \\server\share\... becomes \\?\UNC\server\share\...
        return _WINDOWS_LONG_PREFIX + "UNC\\" + path[2:]
    return _WINDOWS_LONG_PREFIX + path


def is_junction(st) -> bool:
    """True if an lstat result describes a Windows directory junction."""
    return getattr(st, "st_reparse_tag", None) == _IO_REPARSE_TAG_MOUNT_POINT


def canonicalize(input_path) -> Path:
    """
    Make input_path absolute and unambiguous without following its last component.

    Parent components are resolved through symlinks before any ``..`` is
    applied, the way the kernel walks a path, so ``link/../x`` names the sibling
    of the link's target. A symlink at the end of the path stays a symlink.
    """
    raw = os.path.expanduser(os.fspath(input_path))
    if not os.path.isabs(raw):
        raw = os.path.join(os.getcwd(), raw)

    drive, rest = os.path.splitdrive(raw)
    seps = os.sep + (os.altsep or "")
    # Keep a bare root separator
    rest = rest.rstrip(seps) or rest[:1]
    raw = drive + rest

    head, tail = os.path.split(raw)
    if tail in ("", os.curdir, os.pardir):
        absolute = os.path.realpath(raw)
    else:
        absolute = os.path.join(os.path.realpath(head), tail)
    return Path(to_long_path(absolute))


def check_protected(path: Path) -> None:
    """Raise ProtectedPathError if path is a filesystem root or a system directory."""
    if path.parent == path:
        raise ProtectedPathError(path, str(path))

    path_str = path.as_posix()
    for protected in PROTECTED_PATHS:
        if path_str == protected or path_str.startswith(protected + "/"):
            raise ProtectedPathError(path, protected)


def resolve_target(input_path) -> Path:
    """
    Resolve and validate the directory a run will delete.

    Args:
        input_path: Path to the directory, relative or absolute

    Returns:
        The canonical absolute path of the directory

    Raises:
        TargetNotFoundError: Nothing exists at the path
        TargetNotADirectoryError: The path is a file, a symlink, a junction or another non-directory
        TargetAccessDeniedError: The path cannot be inspected, e.g. a parent is not searchable
        ProtectedPathError: The path is a filesystem root or a protected system directory
    """
    target = canonicalize(input_path)
    check_protected(target)

    try:
        st = os.lstat(target)
    except (FileNotFoundError, NotADirectoryError):
        # NotADirectoryError: an intermediate component is a regular file
        raise TargetNotFoundError(target) from None
    except PermissionError as e:
        raise TargetAccessDeniedError(target, e.strerror or str(e)) from e

    if stat.S_ISLNK(st.st_mode):
        raise TargetNotADirectoryError(target, "symlink")
    if is_junction(st):
        raise TargetNotADirectoryError(target, "junction")
    if not stat.S_ISDIR(st.st_mode):
        raise TargetNotADirectoryError(target, "file")

    return target


async def resolve_target_async(input_path) -> Path:
    """Run resolve_target in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, resolve_target, input_path)
