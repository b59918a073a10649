"""Helpers for locating the kernel in a bootable filesystem tree."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

MODULES = "usr/lib/modules"
VMLINUZ = "vmlinuz"


def find_kernel_dir_fs(root: str | os.PathLike[str]) -> PurePosixPath | None:
    """Find the kernel modules directory in a checked-out directory tree.

    The directory found holds a ``vmlinuz`` file for the kernel binary.
    The result is relative to *root*, or ``None`` if no such directory
    exists. More than one candidate raises ``ValueError``.
    """
    root_path = Path(root)
    try:
        entries = list(os.scandir(root_path / MODULES))
    except FileNotFoundError:
        return None

    found: PurePosixPath | None = None
    for entry in entries:
        if not entry.is_dir(follow_symlinks=False):
            continue
        candidate = PurePosixPath(MODULES, entry.name)
        if not (root_path / candidate / VMLINUZ).exists():
            continue
        if found is not None:
            raise ValueError(f"Found multiple subdirectories in {MODULES}")
        found = candidate
    return found