"""Command line interface."""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
from collections.abc import Sequence

from .commit import prepare_ostree_commit_in

# Present when running inside a container started by podman and friends.
CONTAINERENV = "/run/.containerenv"


def remount_sysroot(sysroot: str | os.PathLike[str]) -> None:
    """Remount *sysroot* writable when running inside a container.

    Outside a container this does nothing. A failing ``mount`` raises
    ``RuntimeError``.
    """
    if not os.path.exists(CONTAINERENV):
        return
    target = os.fspath(sysroot)
    print(f"Running in container, assuming we can remount {target} writable")
    result = subprocess.run(["mount", "-o", "remount,rw", target], check=False)
    if result.returncode != 0:
        raise RuntimeError(
            f"Remounting sysroot writable: Failed to remount {target}: "
            f"exit status {result.returncode}"
        )


def _container_commit(args: argparse.Namespace) -> None:
    prepare_ostree_commit_in(args.root)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the command line."""
    parser = argparse.ArgumentParser(
        prog="ostree-ext",
        description="Extended ostree functionality.",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    container = commands.add_parser(
        "container", help="Import and export to a container image"
    )
    container_commands = container.add_subparsers(
        dest="container_command", metavar="COMMAND"
    )
    container_commands.required = True

    commit = container_commands.add_parser(
        "commit",
        help="Perform build-time checking and canonicalization.",
        description=(
            "Perform build-time checking and canonicalization. "
            "This is presently an optional command, but may become required in the future."
        ),
    )
    commit.add_argument("--root", default="/", help=argparse.SUPPRESS)
    commit.set_defaults(func=_container_commit)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Parse *argv* and run the selected command; return the exit status."""
    logging.basicConfig(level=logging.WARNING)
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except (OSError, ValueError, RuntimeError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())