# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

"""
Item Variation Store decoder.

The store sits at the offset named by Top DICT operator 24 and holds:
- a region list: per region, one (start, peak, end) F2DOT14 triple per axis
- one or more ItemVariationData blocks: per block, a list of region
  indices and item_count delta rows, each row packing short_delta_count
  int16 deltas followed by int8 deltas for the remaining regions

Binary layout (big-endian):

    uint16 region_count
    region_count x { uint16 axis_count; axis_count x F2DOT14[3] }
    uint16 item_variation_data_count
    per block: uint16 item_count, uint16 short_delta_count,
               uint16 region_index_count, uint16 region_indices[...],
               item_count x delta row

The decoded store is read-only. The Builder copies its original bytes
verbatim, so the decoder also records where the structure starts and
how many bytes it occupies.
"""

from dataclasses import dataclass

from ..core.binary import read_card16, read_f2dot14, read_int8, read_int16
from ..core.error import FormatError, InconsistentAxisCount, RegionOrderError


@dataclass(frozen=True)
class RegionAxis:
    """Support interval of one region along one axis."""
    start: float
    peak: float
    end: float


@dataclass(frozen=True)
class Region:
    """A variation region: one support triple per font axis."""
    axes: tuple[RegionAxis, ...]

    @property
    def axis_count(self) -> int:
        return len(self.axes)

    @property
    def peaks(self) -> tuple[float, ...]:
        return tuple(axis.peak for axis in self.axes)


@dataclass(frozen=True)
class ItemVariationData:
    """Packed delta rows sharing one list of region indices."""
    item_count: int
    short_delta_count: int
    region_indices: tuple[int, ...]
    delta_sets: tuple[tuple[int, ...], ...]


class VariationStore:
    """Decoded Item Variation Store (immutable after decode)."""

    __slots__ = ('regions', 'item_variation_data', 'offset', 'length')

    def __init__(self, regions: tuple[Region, ...], item_variation_data: tuple[ItemVariationData, ...],
                 offset: int = 0, length: int = 0) -> None:
        self.regions = regions
        self.item_variation_data = item_variation_data
        self.offset = offset
        self.length = length

    @classmethod
    def decode(cls, data: bytes, offset: int = 0) -> VariationStore:
        """Decode a store starting at offset within data.

        Raises:
            UnexpectedEnd: the structure is truncated
            InconsistentAxisCount: regions disagree on their axis count
            RegionOrderError: an axis has start > peak or peak > end
            FormatError: a block references a missing region, or claims
                more short deltas than regions
        """
        start = offset
        regions, offset = _read_region_list(data, offset)
        if not regions and offset == len(data):
            # A region-less store may stop after its region count
            return cls((), (), start, offset - start)
        blocks, offset = _read_item_variation_data(data, offset, len(regions))
        return cls(tuple(regions), tuple(blocks), start, offset - start)

    # -------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------

    @property
    def region_count(self) -> int:
        return len(self.regions)

    @property
    def axis_count(self) -> int:
        if not self.regions:
            return 0
        return self.regions[0].axis_count

    @property
    def block_count(self) -> int:
        return len(self.item_variation_data)

    def region(self, index: int) -> Region:
        if not 0 <= index < len(self.regions):
            raise IndexError(f"Region index {index} out of range ({len(self.regions)} regions)")
        return self.regions[index]

    def _block(self, block: int) -> ItemVariationData:
        if not 0 <= block < len(self.item_variation_data):
            raise IndexError(
                f"ItemVariationData index {block} out of range ({len(self.item_variation_data)} blocks)")
        return self.item_variation_data[block]

    def region_indices(self, block: int = 0) -> tuple[int, ...]:
        return self._block(block).region_indices

    def item_count(self, block: int = 0) -> int:
        return self._block(block).item_count

    def deltas_for_item(self, block: int, item: int) -> tuple[int, ...]:
        data = self._block(block)
        if not 0 <= item < data.item_count:
            raise IndexError(f"Item {item} out of range in block {block} ({data.item_count} items)")
        return data.delta_sets[item]

    def has_data(self) -> bool:
        return bool(self.regions) and bool(self.item_variation_data)

    def encoded_bytes(self, data: bytes) -> bytes:
        """Return the exact bytes this store was decoded from."""
        return bytes(data[self.offset:self.offset + self.length])

    def validate(self) -> list[str]:
        """Report structural problems without raising.

        Decoding already rejects the fatal cases; this is for stores
        assembled by hand (tests, converters).
        """
        errors = []
        expected = self.axis_count
        for i, region in enumerate(self.regions):
            if region.axis_count != expected:
                errors.append(f"Region {i} has {region.axis_count} axes, expected {expected}")
            for j, axis in enumerate(region.axes):
                if not (axis.start <= axis.peak <= axis.end):
                    errors.append(
                        f"Region {i}, axis {j} has invalid ordering: "
                        f"{axis.start} / {axis.peak} / {axis.end}")

        for i, block in enumerate(self.item_variation_data):
            if len(block.delta_sets) != block.item_count:
                errors.append(
                    f"Item variation data {i} has {len(block.delta_sets)} delta sets, "
                    f"expected {block.item_count}")
            for j, deltas in enumerate(block.delta_sets):
                if len(deltas) != len(block.region_indices):
                    errors.append(
                        f"Delta set {j} in data {i} has {len(deltas)} deltas, "
                        f"expected {len(block.region_indices)}")
            for j, idx in enumerate(block.region_indices):
                if idx >= len(self.regions):
                    errors.append(
                        f"Region index {idx} at position {j} in data {i} "
                        f"exceeds region count {len(self.regions)}")
        return errors

    def __repr__(self) -> str:
        return (f"VariationStore(regions={len(self.regions)}, axes={self.axis_count}, "
                f"blocks={len(self.item_variation_data)}, offset={self.offset}, length={self.length})")


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------

def _read_region_list(data, offset):
    region_count, offset = read_card16(data, offset, 'region count')
    regions = []
    expected_axes = None

    for r in range(region_count):
        region_start = offset
        axis_count, offset = read_card16(data, offset, 'region axis count')
        if expected_axes is None:
            expected_axes = axis_count
        elif axis_count != expected_axes:
            raise InconsistentAxisCount(
                f"Region {r} has {axis_count} axes, first region has {expected_axes}", region_start)

        axes = []
        for a in range(axis_count):
            axis_offset = offset
            start, offset = read_f2dot14(data, offset, 'region start')
            peak, offset = read_f2dot14(data, offset, 'region peak')
            end, offset = read_f2dot14(data, offset, 'region end')
            if not (start <= peak <= end):
                raise RegionOrderError(
                    f"Region {r}, axis {a}: start {start} / peak {peak} / end {end} out of order", axis_offset)
            axes.append(RegionAxis(start, peak, end))
        regions.append(Region(tuple(axes)))

    return regions, offset


def _read_item_variation_data(data, offset, region_count):
    data_count, offset = read_card16(data, offset, 'item variation data count')
    blocks = []

    for _ in range(data_count):
        block_start = offset
        item_count, offset = read_card16(data, offset, 'item count')
        short_delta_count, offset = read_card16(data, offset, 'short delta count')
        region_index_count, offset = read_card16(data, offset, 'region index count')

        if short_delta_count > region_index_count:
            raise FormatError(
                f"short_delta_count {short_delta_count} exceeds region_index_count {region_index_count}",
                block_start)

        indices = []
        for _ in range(region_index_count):
            idx, offset = read_card16(data, offset, 'region index')
            if idx >= region_count:
                raise FormatError(
                    f"Region index {idx} exceeds region count {region_count}", offset - 2)
            indices.append(idx)

        delta_sets = []
        for _ in range(item_count):
            row = []
            for _ in range(short_delta_count):
                delta, offset = read_int16(data, offset, 'short delta')
                row.append(delta)
            for _ in range(region_index_count - short_delta_count):
                delta, offset = read_int8(data, offset, 'byte delta')
                row.append(delta)
            delta_sets.append(tuple(row))

        blocks.append(ItemVariationData(
            item_count, short_delta_count, tuple(indices), tuple(delta_sets)))

    return blocks, offset
