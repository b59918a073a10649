"""Build-time cleanup of a root filesystem before it becomes an ostree commit."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

# Directories whose content is always removed.
FORCE_CLEAN_PATHS = ("run", "tmp", "var/tmp", "var/cache")

_MAX_REPORTED_FILES = 20


def _remove_all_on_mount(path: Path, rootdev: int) -> bool:
    """Remove *path* recursively without crossing mount points.

    Returns whether anything was skipped because it lives on another device.
    """
    skipped = False
    with os.scandir(path) as it:
        entries = list(it)
    for entry in entries:
        st = entry.stat(follow_symlinks=False)
        if st.st_dev != rootdev:
            skipped = True
            continue
        child = path / entry.name
        if entry.is_dir(follow_symlinks=False):
            skipped |= _remove_all_on_mount(child, rootdev)
        else:
            child.unlink()
    if not skipped:
        path.rmdir()
    return skipped


def _clean_subdir(subdir: Path, rootdev: int) -> None:
    with os.scandir(subdir) as it:
        entries = list(it)
    for entry in entries:
        st = entry.stat(follow_symlinks=False)
        child = subdir / entry.name
        # Other filesystems, e.g. a container runtime's injected files.
        if st.st_dev != rootdev:
            logger.debug("Skipping entry in foreign dev %s", child)
            continue
        if os.path.ismount(child):
            logger.debug("Skipping mount point %s", child)
            continue
        if entry.is_dir(follow_symlinks=False):
            _remove_all_on_mount(child, rootdev)
        else:
            child.unlink()


def _clean_paths_in(root: Path, rootdev: int) -> None:
    for rel in FORCE_CLEAN_PATHS:
        subdir = root / rel
        if not subdir.exists() and not subdir.is_symlink():
            continue
        if not subdir.is_dir():
            raise NotADirectoryError(f"Cleaning {rel}: not a directory")
        _clean_subdir(subdir, rootdev)


class _VarScan:
    """Walk /var, pruning empty directories and reporting files."""

    def __init__(self, vardir: Path, rootdev: int) -> None:
        self.vardir = vardir
        self.rootdev = rootdev
        self.error_count = 0

    def walk(self, rel: str = "") -> bool:
        path = self.vardir / rel if rel else self.vardir
        validated = True
        with os.scandir(path) as it:
            entries = list(it)
        for entry in entries:
            st = entry.stat(follow_symlinks=False)
            if st.st_dev != self.rootdev:
                continue
            child = f"{rel}/{entry.name}" if rel else entry.name
            if entry.is_dir(follow_symlinks=False):
                if not self.walk(child):
                    validated = False
            else:
                validated = False
                self.error_count += 1
                if self.error_count < _MAX_REPORTED_FILES:
                    print(f"Found file: var/{child}", file=sys.stderr)
        if validated and rel and rel != "tmp":
            path.rmdir()
        return validated


def _process_var(root: Path, rootdev: int, strict: bool) -> None:
    vardir = root / "var"
    if not vardir.exists() and not vardir.is_symlink():
        return
    if not vardir.is_dir():
        raise NotADirectoryError("var: not a directory")
    if not _VarScan(vardir, rootdev).walk() and strict:
        raise ValueError("Found content in var")


def _prepare(root: str | os.PathLike[str], strict: bool) -> None:
    root_path = Path(root)
    rootdev = root_path.stat().st_dev
    _clean_paths_in(root_path, rootdev)
    _process_var(root_path, rootdev, strict)


def prepare_ostree_commit_in(root: str | os.PathLike[str]) -> None:
    """Clean a root filesystem for committing.

    The contents of /run, /tmp, /var/tmp and /var/cache are removed, empty
    directories under /var are pruned, and any file left in /var raises
    ``ValueError``.
    """
    _prepare(root, strict=True)


def prepare_ostree_commit_in_nonstrict(root: str | os.PathLike[str]) -> None:
    """Like :func:`prepare_ostree_commit_in`, but files in /var only warn."""
    _prepare(root, strict=False)