"""Tabby CLI — tabby show / tabby open / tabby list / tabby clear.

Entry point for the ``tabby`` command-line interface.  Inspects the
datasets saved by ``debugbar_middleware``.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the tabby CLI."""
    parser = argparse.ArgumentParser(
        prog="tabby",
        description="Inspect request datasets collected by the tabby debug toolbar.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--dir",
        default=None,
        help="Storage directory (defaults to storage_dir from tabby.yaml, or the temp dir)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # tabby show
    show_parser = subparsers.add_parser("show", help="Print a stored dataset")
    show_parser.add_argument("id", help="Request id")

    # tabby open
    open_parser = subparsers.add_parser(
        "open",
        help="Print a stored dataset and delete it",
    )
    open_parser.add_argument("id", help="Request id")

    # tabby list
    list_parser = subparsers.add_parser("list", help="List stored datasets, newest first")
    list_parser.add_argument("--limit", type=int, default=20, help="Maximum entries")
    list_parser.add_argument("--offset", type=int, default=0, help="Entries to skip")

    # tabby clear
    subparsers.add_parser("clear", help="Delete every stored dataset")

    return parser


def _get_version() -> str:
    """Get the package version."""
    from tabby import __version__

    return __version__


def _storage_dir(option: str | None) -> Path:
    if option is not None:
        return Path(option)
    from tabby.config_loader import load_config

    return load_config(Path.cwd()).storage_dir


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from tabby._errors import TabbyError
    from tabby.middleware import open_handler
    from tabby.storage import FileStorage, TempFileStorage

    directory = _storage_dir(args.dir)
    try:
        if args.command == "show":
            print(open_handler(FileStorage(directory), args.id))
        elif args.command == "open":
            print(open_handler(TempFileStorage(directory), args.id))
        elif args.command == "list":
            for meta in FileStorage(directory).find(limit=args.limit, offset=args.offset):
                print(json.dumps(meta, default=str))
        elif args.command == "clear":
            removed = FileStorage(directory).clear()
            print(f"Removed {removed} dataset(s) from {directory}")
    except TabbyError as exc:
        print(f"tabby: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
