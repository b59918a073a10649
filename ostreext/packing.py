"""Assign content components to a bounded number of container image layers."""

from __future__ import annotations

import logging
import statistics
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Layer annotation that lists the components a layer holds.
CONTENT_ANNOTATION = "ostree.components"
# Separator between component names in CONTENT_ANNOTATION.
COMPONENT_SEPARATOR = ","

# Components that change on every build carry this frequency.
MAX_FREQUENCY = 2**32 - 1
# Fewest layers a chunked packing can use.
MIN_CHUNKED_LAYERS = 4

LOW_PARTITION = "2ls"
HIGH_PARTITION = "1hs"

_HIGH_SIZE_CUTOFF = 0.6


class PackingError(ValueError):
    """Raised when components cannot be packed into the requested layers."""


@dataclass
class ObjectSourceMeta:
    """Metadata about a content source such as a package."""

    identifier: str
    name: str
    srcid: str
    change_time_offset: int = 0
    change_frequency: int = 0


@dataclass(eq=False)
class ObjectSourceMetaSized:
    """Content source metadata together with the total size of its objects.

    Equality and hashing use only the identifier.
    """

    meta: ObjectSourceMeta
    size: int

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObjectSourceMetaSized):
            return NotImplemented
        return self.meta.identifier == other.meta.identifier

    def __hash__(self) -> int:
        return hash(self.meta.identifier)


Bin = list[ObjectSourceMetaSized]


def _median_absolute_deviation(data: Sequence[float]) -> tuple[float, float] | None:
    if not data:
        return None
    median = float(statistics.median(data))
    mad = float(statistics.median(abs(value - median) for value in data))
    return median, mad


def _mean_and_stddev(data: Sequence[int]) -> tuple[float, float] | None:
    if not data:
        return None
    return statistics.fmean(data), statistics.pstdev(data)


def get_partitions_with_threshold(
    components: Sequence[ObjectSourceMetaSized],
    limit_hs_bins: int,
    threshold: float,
) -> dict[str, Bin] | None:
    """Partition components by size and change frequency.

    Sizes are first split with the median and median absolute deviation into
    high, medium and low; the first *limit_hs_bins* high-size components form
    the high partition and the low-size ones form the low partition. The rest
    are classified by mean and standard deviation of both size and frequency.
    The result is keyed in sorted order, or ``None`` when there is too little
    data to compute the statistics. Components are expected in descending
    size order.
    """
    stats = _median_absolute_deviation([c.size for c in components])
    if stats is None:
        return None
    median_size, mad_size = stats

    # abs keeps the lower limit positive
    size_low_limit = 0.5 * abs(median_size - threshold * mad_size)
    size_high_limit = median_size + threshold * mad_size

    partitions: dict[str, Bin] = {}
    high_size: Bin = []
    med_size: Bin = []
    for pkg in components:
        if pkg.size >= size_high_limit:
            high_size.append(pkg)
        elif pkg.size <= size_low_limit:
            partitions.setdefault(LOW_PARTITION, []).append(pkg)
        else:
            med_size.append(pkg)

    if len(high_size) < limit_hs_bins:
        raise PackingError(
            f"Expected at least {limit_hs_bins} high-size components, found {len(high_size)}"
        )
    partitions[HIGH_PARTITION] = high_size[:limit_hs_bins]
    # Extra high-size components followed by medium ones stay size-descending.
    remaining = high_size[limit_hs_bins:] + med_size
    remaining.sort(key=lambda pkg: pkg.meta.change_frequency)

    freq_stats = _mean_and_stddev([pkg.meta.change_frequency for pkg in remaining])
    size_stats = _mean_and_stddev([pkg.size for pkg in remaining])
    if freq_stats is None or size_stats is None:
        return None
    mean_freq, stddev_freq = freq_stats
    mean_size, stddev_size = size_stats

    freq_low_limit = 0.5 * abs(mean_freq - threshold * stddev_freq)
    freq_high_limit = mean_freq + threshold * stddev_freq
    med_size_low_limit = 0.5 * abs(mean_size - threshold * stddev_size)
    med_size_high_limit = mean_size + threshold * stddev_size

    for pkg in remaining:
        if pkg.size >= med_size_high_limit:
            size_name = "hs"
        elif pkg.size <= med_size_low_limit:
            size_name = "ls"
        else:
            size_name = "ms"

        # Numbered so that sorting keeps high, medium, low frequency order.
        freq = pkg.meta.change_frequency
        if freq >= freq_high_limit:
            freq_name = "3hf"
        elif freq <= freq_low_limit:
            freq_name = "5lf"
        else:
            freq_name = "4mf"

        partitions.setdefault(f"{freq_name}_{size_name}", []).append(pkg)

    result = dict(sorted(partitions.items()))
    for name, pkgs in result.items():
        logger.debug("%s: %d", name, len(pkgs))
    return result


def _layer_components(layer: Mapping) -> list[str]:
    annotations = layer.get("annotations") or {}
    annotation = annotations.get(CONTENT_ANNOTATION)
    if annotation is None:
        raise PackingError(f"Missing {CONTENT_ANNOTATION} on prior build")
    return annotation.split(COMPONENT_SEPARATOR)


def basic_packing_with_prior_build(
    components: Sequence[ObjectSourceMetaSized],
    bin_size: int,
    prior_build: Mapping,
) -> list[Bin]:
    """Keep the layer structure of a prior build manifest.

    Components named in the prior build stay in their layers, removed ones are
    dropped, and new ones go into the last layer, which is reserved for them.
    """
    logger.debug("Keeping old package structure")

    # The first layer is the ostree commit, which differs on every build.
    curr_build = [_layer_components(layer) for layer in list(prior_build.get("layers", []))[1:]]
    if not curr_build:
        raise PackingError("No empty last bin for added packages")

    prev_names = {name for layer in curr_build for name in layer if name}
    curr_names = {pkg.meta.name for pkg in components}

    added = dict.fromkeys(
        pkg.meta.name for pkg in components if pkg.meta.name not in prev_names
    )
    curr_build[-1] = [name for name in curr_build[-1] if name] + list(added)

    removed = prev_names - curr_names
    curr_build = [[name for name in layer if name not in removed] for layer in curr_build]

    by_name: dict[str, ObjectSourceMetaSized] = {}
    for pkg in components:
        by_name.setdefault(pkg.meta.name, pkg)

    modified = [[by_name[name] for name in layer if name] for layer in curr_build]

    packed = sum(len(layer) for layer in modified)
    if packed != len(components):
        raise PackingError(
            f"Packed {packed} components but {len(components)} were provided"
        )
    if len(modified) > bin_size:
        raise PackingError(f"Prior build uses {len(modified)} layers, more than {bin_size}")
    return modified


def basic_packing(
    components: Sequence[ObjectSourceMetaSized],
    bin_size: int,
    prior_build: Mapping | None = None,
) -> list[Bin]:
    """Decide which components go into which of *bin_size* layers.

    One layer holds all components of maximal change frequency, one is left
    empty for new components, one holds the low-size components; of the rest,
    60% take single high-size components and 40% take medium-size ones, with
    medium layers merged from the end when over the limit. With *prior_build*
    (an OCI image manifest mapping) its structure is kept instead.
    Components are expected in descending size order.
    """
    if bin_size < MIN_CHUNKED_LAYERS:
        raise PackingError(f"number of bins should be >= {MIN_CHUNKED_LAYERS}")

    if prior_build is not None:
        return basic_packing_with_prior_build(components, bin_size, prior_build)

    logger.debug("Creating new packing structure")

    total = len(components)
    if total < bin_size:
        result = [[pkg] for pkg in components]
        if total > 0:
            result.append([])
        return result

    regular = [pkg for pkg in components if pkg.meta.change_frequency != MAX_FREQUENCY]
    max_freq = [pkg for pkg in components if pkg.meta.change_frequency == MAX_FREQUENCY]

    r: list[Bin] = []
    if regular:
        limit_ls_bins = 1
        limit_new_bins = 1
        limit_max_frequency_bins = min(len(max_freq), 1)
        low_and_other = limit_ls_bins + limit_new_bins + limit_max_frequency_bins
        limit_hs_bins = int(_HIGH_SIZE_CUTOFF * (bin_size - low_and_other))
        limit_ms_bins = bin_size - (limit_hs_bins + low_and_other)

        partitions = get_partitions_with_threshold(regular, limit_hs_bins, 2.0)
        if partitions is None:
            raise PackingError("Partitioning components into sets")

        low_count = len(partitions.get(LOW_PARTITION, []))
        if limit_ms_bins <= 0:
            raise PackingError(f"number of bins should be >= {MIN_CHUNKED_LAYERS}")
        per_ms_bin = (len(regular) - limit_hs_bins - low_count) // limit_ms_bins

        for partition, pkgs in partitions.items():
            if partition == HIGH_PARTITION:
                r.extend([pkg] for pkg in pkgs)
            elif partition == LOW_PARTITION:
                r.append(list(pkgs))
            else:
                current: Bin = []
                for pkg in pkgs:
                    if len(current) >= per_ms_bin:
                        r.append(current)
                        current = []
                    current.append(pkg)
                if current:
                    r.append(current)
        logger.debug("Bins before optimization: %d", len(r))

        # Merge medium-size bins pairwise from the end so that frequency
        # classes stay in order: high, medium, low.
        target = bin_size - limit_new_bins - limit_max_frequency_bins
        start = limit_ls_bins + limit_hs_bins
        while len(r) > target:
            indices = range(start, len(r) - 1, 2)
            if not indices:
                raise PackingError(f"Cannot reduce {len(r)} bins to {target}")
            for i in reversed(indices):
                if len(r) <= target:
                    break
                merged = r[i - 1] + r[i]
                del r[i - 1 : i + 1]
                r.insert(i, merged)
        logger.debug("Bins after optimization: %d", len(r))

    if max_freq:
        r.append(max_freq)

    # Reserved for new components.
    r.append([])

    packed = sum(len(b) for b in r)
    if packed != total:
        raise PackingError(f"Packed {packed} components but {total} were provided")
    if len(r) > bin_size:
        raise PackingError(f"Packing uses {len(r)} layers, more than {bin_size}")
    return r