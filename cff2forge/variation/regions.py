# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

"""
Region scalar calculation.

A region's scalar at a design coordinate is the product of one factor
per axis. Each factor is a tent function over (start, peak, end):

    coord outside [start, end]  -> 0.0 (and the whole region is 0.0)
    coord == peak               -> 1.0
    start <= coord < peak       -> (coord - start) / (peak - start)
    peak < coord <= end         -> (end - coord) / (end - peak)

A zero-width side of the tent yields 1.0. Axes absent from the
coordinate are taken at the neutral value 0.0.

Repeated glyph evaluation reuses one design point, so scalars are cached
per coordinate vector in a small lock-guarded LRU.
"""

import threading
from collections import OrderedDict
from collections.abc import Mapping, Sequence
from typing import Union

from .store import Region, RegionAxis, VariationStore

TAG_LENGTH = 4


class DesignCoordinate:
    """Normalized position in a font's design space.

    Holds the font's axis tags in order and one value in [-1.0, 1.0] per
    tag. Tags that were not given sit at the default 0.0.
    """

    __slots__ = ('axis_tags', '_values')

    def __init__(self, axis_tags: Sequence[str], values: Mapping[str, float] | None = None) -> None:
        tags = tuple(axis_tags)
        for tag in tags:
            if not isinstance(tag, str) or len(tag) != TAG_LENGTH:
                raise ValueError(f"Axis tag must be a 4-character string, got {tag!r}")
        if len(set(tags)) != len(tags):
            raise ValueError(f"Duplicate axis tags in {tags}")

        self.axis_tags = tags
        self._values = {tag: 0.0 for tag in tags}
        for tag, value in (values or {}).items():
            if tag not in self._values:
                raise ValueError(f"Unknown axis tag {tag!r}; font axes are {tags}")
            value = float(value)
            if not -1.0 <= value <= 1.0:
                raise ValueError(f"Normalized coordinate for {tag!r} must be in [-1, 1], got {value}")
            self._values[tag] = value

    def __getitem__(self, tag: str) -> float:
        return self._values[tag]

    def vector(self) -> tuple[float, ...]:
        """Values in axis order."""
        return tuple(self._values[tag] for tag in self.axis_tags)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DesignCoordinate):
            return NotImplemented
        return self.axis_tags == other.axis_tags and self.vector() == other.vector()

    def __hash__(self) -> int:
        return hash((self.axis_tags, self.vector()))

    def __repr__(self) -> str:
        inner = ', '.join(f"{tag}={self._values[tag]:g}" for tag in self.axis_tags)
        return f"DesignCoordinate({inner})"


Coordinates = Union[DesignCoordinate, Sequence[float]]


def coordinate_vector(coordinates: Coordinates | None) -> tuple[float, ...]:
    """Normalize either coordinate form to a tuple of floats in axis order."""
    if coordinates is None:
        return ()
    if isinstance(coordinates, DesignCoordinate):
        return coordinates.vector()
    return tuple(float(c) for c in coordinates)


def axis_factor(axis: RegionAxis, coord: float) -> float:
    """Tent-function factor of one axis at coord."""
    if coord < axis.start or coord > axis.end:
        return 0.0
    if coord == axis.peak:
        return 1.0
    if coord < axis.peak:
        span = axis.peak - axis.start
        if span == 0:
            return 1.0
        return (coord - axis.start) / span
    span = axis.end - axis.peak
    if span == 0:
        return 1.0
    return (axis.end - coord) / span


def region_scalar(region: Region, coordinates: Coordinates) -> float:
    """Scalar in [0, 1] that region contributes at coordinates."""
    vector = coordinate_vector(coordinates)
    scalar = 1.0
    for i, axis in enumerate(region.axes):
        coord = vector[i] if i < len(vector) else 0.0
        factor = axis_factor(axis, coord)
        if factor == 0.0:
            return 0.0
        scalar *= factor
    return scalar


def region_scalars(store: VariationStore | None, coordinates: Coordinates) -> list[float]:
    """One scalar per region of store; empty for a missing or empty store."""
    if store is None:
        return []
    vector = coordinate_vector(coordinates)
    return [region_scalar(region, vector) for region in store.regions]


class ScalarCache:
    """LRU cache of region scalar vectors keyed by coordinate vector.

    Thread Safety: guarded by a lock, so one cache can be shared by
    workers interpreting glyphs in parallel.
    """
    DEFAULT_MAX_ENTRIES = 256

    def __init__(self, max_entries: int | None = None) -> None:
        self._cache: OrderedDict[tuple, tuple[float, ...]] = OrderedDict()
        self._max_entries = max_entries or self.DEFAULT_MAX_ENTRIES
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: tuple) -> tuple[float, ...] | None:
        with self._lock:
            if key in self._cache:
                self._hits += 1
                self._cache.move_to_end(key)
                return self._cache[key]
            self._misses += 1
            return None

    def put(self, key: tuple, scalars: tuple[float, ...]) -> None:
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            elif len(self._cache) >= self._max_entries:
                self._cache.popitem(last=False)
            self._cache[key] = scalars

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                'entries': len(self._cache),
                'max_entries': self._max_entries,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / total if total > 0 else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


class RegionScalarCalculator:
    """Cached region scalars for one Variation Store.

    A missing store behaves as a store with zero regions.
    """

    def __init__(self, store: VariationStore | None, cache: ScalarCache | None = None) -> None:
        self.store = store
        self.cache = cache if cache is not None else ScalarCache()

    def scalars(self, coordinates: Coordinates) -> tuple[float, ...]:
        vector = coordinate_vector(coordinates)
        cached = self.cache.get(vector)
        if cached is not None:
            return cached
        result = tuple(region_scalars(self.store, vector))
        self.cache.put(vector, result)
        return result

    def scalar(self, region_index: int, coordinates: Coordinates) -> float:
        scalars = self.scalars(coordinates)
        if not 0 <= region_index < len(scalars):
            raise IndexError(f"Region index {region_index} out of range ({len(scalars)} regions)")
        return scalars[region_index]

    def active_regions(self, coordinates: Coordinates) -> list[int]:
        """Indices of regions with a non-zero scalar at coordinates."""
        return [i for i, s in enumerate(self.scalars(coordinates)) if s > 0.0]

    def stats(self) -> dict:
        return self.cache.stats()
