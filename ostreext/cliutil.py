"""Formatting and parsing helpers used by the command line interface."""

from __future__ import annotations

import dataclasses
import enum
import json
import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any

_SIZE_UNITS = ("kB", "MB", "GB", "TB", "PB", "EB")

# Container tools show 12 characters of a digest; add 7 for "sha256:".
_SHORT_DIGEST_LEN = 12 + 7

# Every column but the last is followed by at least this many spaces.
_COLUMN_GAP = 2


def format_size(size: int) -> str:
    """Render a byte count with decimal (SI) units, e.g. ``1.5 MB``."""
    if size < 0:
        raise ValueError(f"Negative size: {size}")
    if size < 1000:
        return "1 byte" if size == 1 else f"{size} bytes"
    value = float(size)
    for unit in _SIZE_UNITS:
        value /= 1000.0
        if value < 1000.0 or unit == _SIZE_UNITS[-1]:
            return f"{value:.1f} {unit}"
    raise AssertionError("unreachable")


class ProgressKind(enum.Enum):
    """The kind of event reported while fetching an image."""

    OSTREE_CHUNK_STARTED = "ostree-chunk-started"
    OSTREE_CHUNK_COMPLETED = "ostree-chunk-completed"
    DERIVED_LAYER_STARTED = "derived-layer-started"
    DERIVED_LAYER_COMPLETED = "derived-layer-completed"

    @property
    def is_starting(self) -> bool:
        """Whether the event marks the start of a fetch."""
        return self in (ProgressKind.OSTREE_CHUNK_STARTED, ProgressKind.DERIVED_LAYER_STARTED)

    @property
    def description(self) -> str:
        """What is being fetched."""
        if self in (ProgressKind.OSTREE_CHUNK_STARTED, ProgressKind.OSTREE_CHUNK_COMPLETED):
            return "ostree chunk"
        return "layer"


@dataclass(frozen=True)
class LayerProgress:
    """A progress notification about one image layer."""

    kind: ProgressKind
    digest: str
    size: int

    @property
    def is_starting(self) -> bool:
        return self.kind.is_starting


def layer_progress_format(progress: LayerProgress) -> str:
    """Render a layer progress notification as a line of text."""
    what = progress.kind.description
    short_digest = progress.digest[:_SHORT_DIGEST_LEN]
    if progress.is_starting:
        return f"Fetching {what} {short_digest} ({format_size(progress.size)})"
    return f"Fetched {what} {short_digest}"


def format_columns(cells: Sequence[str], widths: Sequence[int], width: int) -> str:
    """Lay out one row of a table within a terminal *width*.

    Each cell is cut to the space still left on the line. A cell whose column
    width is non-zero is padded to that width plus two spaces; a zero width
    marks the last, unpadded column. ``ValueError`` is raised when padding
    would overflow the line.
    """
    remaining = width
    parts: list[str] = []
    for cell, column_width in zip(cells, widths, strict=True):
        length = min(len(cell), remaining)
        parts.append(cell[:length])
        if column_width > 0:
            pad = max(column_width - length, 0) + _COLUMN_GAP
            parts.append(" " * pad)
            remaining -= length + pad
            if remaining < 0:
                raise ValueError(f"Row does not fit in {width} columns")
    return "".join(parts)


def parse_labels(labels: Iterable[str]) -> dict[str, str]:
    """Parse ``KEY=VALUE`` strings into a mapping sorted by key."""
    parsed: dict[str, str] = {}
    for label in labels:
        key, sep, value = label.partition("=")
        if not sep:
            raise ValueError(f"Missing '=' in label {label}")
        parsed[key] = value
    return dict(sorted(parsed.items()))


def _to_json(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, PurePath):
        return str(obj)
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"Cannot serialize {type(obj).__name__} to JSON")


def write_json(path: str | os.PathLike[str] | None, obj: Any) -> None:
    """Serialize *obj* as JSON to *path*; do nothing when *path* is ``None``."""
    if path is None:
        return
    try:
        with open(path, "w", encoding="utf-8") as out:
            json.dump(obj, out, default=_to_json)
    except OSError as e:
        raise OSError(f"Serializing to output file {os.fspath(path)}: {e}") from e