"""Split the content of a commit into chunks that map to container image layers."""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .packing import ObjectSourceMeta, ObjectSourceMetaSized, basic_packing

logger = logging.getLogger(__name__)

# Maximum number of layers (chunks) used; half of the usual limit of 128.
MAX_CHUNKS = 64

RESERVED_CHUNK_NAME = "Reserved for new packages"

_SIZE_UNITS = ("kB", "MB", "GB", "TB", "PB", "EB")


def _format_size(size: int) -> str:
    """Render a byte count with decimal (SI) units."""
    if size < 1000:
        return "1 byte" if size == 1 else f"{size} bytes"
    value = float(size)
    for unit in _SIZE_UNITS:
        value /= 1000.0
        if value < 1000.0 or unit == _SIZE_UNITS[-1]:
            return f"{value:.1f} {unit}"
    raise AssertionError("unreachable")


@dataclass
class ObjectMetaSized:
    """Content source metadata extended with the size of each source."""

    # Mapping from content object checksum to content source identifier.
    map: dict[str, str]
    # Sized content sources, in descending size order.
    sizes: list[ObjectSourceMetaSized]

    @classmethod
    def from_file_sizes(
        cls,
        mapping: Mapping[str, str],
        metas: Iterable[ObjectSourceMeta],
        file_sizes: Mapping[str, int],
    ) -> ObjectMetaSized:
        """Compute the total size of each content source.

        *mapping* maps object checksums to content identifiers, *metas*
        describes the content sources and *file_sizes* gives the size of
        each object. Only sources that own objects appear in the result.
        """
        by_id = {meta.identifier: meta for meta in metas}
        totals: dict[str, int] = {}
        for checksum, contentid in mapping.items():
            totals[contentid] = totals.get(contentid, 0) + file_sizes[checksum]
        sized = []
        for contentid, size in totals.items():
            meta = by_id.get(contentid)
            if meta is None:
                raise KeyError(f"Failed to find {contentid} in content set")
            sized.append(ObjectSourceMetaSized(meta=meta, size=size))
        sized.sort(key=lambda s: s.size, reverse=True)
        return cls(map=dict(mapping), sizes=sized)


@dataclass
class Chunk:
    """A group of content objects destined for one layer."""

    name: str = ""
    # checksum -> (object size, paths where the object appears)
    content: dict[str, tuple[int, list[str]]] = field(default_factory=dict)
    size: int = 0
    packages: list[str] = field(default_factory=list)

    def move_obj(self, dest: Chunk, checksum: str) -> bool:
        """Move an object into *dest*; return whether it was present here."""
        entry = self.content.pop(checksum, None)
        if entry is None:
            return False
        dest.content[checksum] = entry
        self.size -= entry[0]
        dest.size += entry[0]
        return True


def _bin_name(identifiers: list[str]) -> str:
    count = len(identifiers)
    if count == 0:
        return RESERVED_CHUNK_NAME
    if count <= 5:
        return " and ".join(identifiers)
    return f"{count} components"


@dataclass
class Chunking:
    """How the content of a commit is split into chunks."""

    remainder: Chunk = field(default_factory=Chunk)
    metadata_size: int = 0
    chunks: list[Chunk] = field(default_factory=list)
    max: int = 0
    n_provided_components: int = 0
    n_sized_components: int = 0
    _processed_mapping: bool = field(default=False, repr=False)

    def _remaining(self) -> int:
        return max(self.max - len(self.chunks), 0)

    def process_mapping(
        self,
        meta: ObjectMetaSized,
        max_layers: int | None = None,
        prior_build: Mapping | None = None,
    ) -> None:
        """Group the remainder's objects into chunks, one per packing bin.

        Raises ``RuntimeError`` if a mapping was already processed.
        """
        if max_layers is not None and max_layers <= 0:
            raise ValueError("max_layers must be positive")
        self.max = MAX_CHUNKS if max_layers is None else max_layers

        if self._processed_mapping:
            raise RuntimeError("A mapping was already processed")
        self._processed_mapping = True
        if self._remaining() == 0:
            return

        by_content: dict[str, list[str]] = {}
        for checksum, contentid in meta.map.items():
            by_content.setdefault(contentid, []).append(checksum)

        self.n_provided_components = len(meta.sizes)
        self.n_sized_components = sum(1 for s in meta.sizes if s.size > 0)

        start = time.monotonic()
        packing = basic_packing(meta.sizes, self.max, prior_build)
        logger.debug("Time elapsed in packing: %.6fs", time.monotonic() - start)

        for bin_ in packing:
            chunk = Chunk(name=_bin_name([s.meta.identifier for s in bin_]))
            chunk.packages = [s.meta.name for s in bin_]
            for sized in bin_:
                for checksum in by_content[sized.meta.identifier]:
                    self.remainder.move_obj(chunk, checksum)
            self.chunks.append(chunk)

        if self.remainder.content:
            raise ValueError(
                f"{len(self.remainder.content)} objects were not assigned to any chunk"
            )

    def take_chunks(self) -> list[Chunk]:
        """Remove and return the computed chunks."""
        chunks, self.chunks = self.chunks, []
        return chunks

    def format(self) -> str:
        """Describe the chunking as text."""
        lines = [f"Metadata: {_format_size(self.metadata_size)}"]
        if self.n_provided_components > 0:
            lines.append(
                f"Components: provided={self.n_provided_components} "
                f"sized={self.n_sized_components}"
            )
        for n, chunk in enumerate(self.chunks):
            lines.append(
                f'Chunk {n}: "{chunk.name}": objects:{len(chunk.content)} '
                f"size:{_format_size(chunk.size)}"
            )
        if self.remainder.content:
            lines.append(
                f'Remainder: "{self.remainder.name}": '
                f"objects:{len(self.remainder.content)} "
                f"size:{_format_size(self.remainder.size)}"
            )
        return "\n".join(lines)

    def print(self) -> None:
        """Write the description of the chunking to standard output."""
        out = sys.stdout
        for line in self.format().splitlines():
            out.write(line)
            out.write("\n")
        out.flush()