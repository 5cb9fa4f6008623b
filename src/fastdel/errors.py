"""Errors raised before a deletion run starts."""

from pathlib import Path


class ValidationError(Exception):
    """The target path cannot be deleted; nothing on disk was touched."""

    def __init__(self, path, message: str):
        super().__init__(message)
        self.path = Path(path)


class TargetNotFoundError(ValidationError, FileNotFoundError):
    """Nothing exists at the target path."""

    def __init__(self, path):
        super().__init__(path, f"Target path does not exist: {path}")


class TargetNotADirectoryError(ValidationError, NotADirectoryError):
    """The target exists but is not a real directory (symlinks and junctions included)."""

    def __init__(self, path, kind: str = "file"):
        super().__init__(path, f"Target path is not a directory ({kind}): {path}")
        self.kind = kind


class ProtectedPathError(ValidationError):
    """The target is the filesystem root or inside a protected system directory."""

    def __init__(self, path, protected: str):
        super().__init__(
            path,
            f"Refusing to delete {path}: it is inside '{protected}', "
            "which holds files the operating system depends on",
        )
        self.protected = protected


class TargetAccessDeniedError(ValidationError, PermissionError):
    """The target cannot be inspected, usually because a parent directory is not searchable."""

    def __init__(self, path, reason: str = "Permission denied"):
        super().__init__(path, f"Cannot access target path ({reason}): {path}")
