"""Command-line interface for fastdel."""

import argparse
import asyncio
import os
import sys

from . import __version__
from .engine import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONCURRENCY_LIMIT,
    DEFAULT_MAX_CONCURRENT_SUBDIRS,
    delete_directory,
)
from .errors import ValidationError

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_INVALID_TARGET = 2
EXIT_INTERRUPTED = 130


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="fastdel",
        description="fastdel - Fast deletion of large directory trees (node_modules, caches, ...)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "path",
        help="Directory to delete, including the directory itself",
    )

    parser.add_argument(
        "--concurrency",
        type=int,
        default=int(os.getenv("FASTDEL_CONCURRENCY", str(DEFAULT_CONCURRENCY_LIMIT))),
        help="Maximum removal requests in flight",
    )

    parser.add_argument(
        "--batch-size",
        type=int,
        default=int(os.getenv("FASTDEL_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
        help="Directory entries read per chunk (bounds memory for huge directories)",
    )

    parser.add_argument(
        "--max-concurrent-subdirs",
        type=int,
        default=int(os.getenv("FASTDEL_MAX_CONCURRENT_SUBDIRS", str(DEFAULT_MAX_CONCURRENT_SUBDIRS))),
        help="Sibling subdirectories processed at once, per directory",
    )

    parser.add_argument(
        "--sequential-files",
        action="store_true",
        default=_env_flag("FASTDEL_SEQUENTIAL_FILES"),
        help="Delete the files of each directory one at a time instead of concurrently",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("FASTDEL_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"fastdel {__version__}",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    try:
        asyncio.run(
            delete_directory(
                args.path,
                concurrency_limit=args.concurrency,
                batch_size=args.batch_size,
                max_concurrent_subdirs=args.max_concurrent_subdirs,
                concurrent_files=not args.sequential_files,
                log_level=args.log_level,
            )
        )
    except ValidationError as e:
        print(f"Invalid target: {e}", file=sys.stderr)
        sys.exit(EXIT_INVALID_TARGET)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    # Per-entry errors are reported in the summary log, not the exit code
    sys.exit(EXIT_OK)


if __name__ == "__main__":
    main()
