# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

"""
Blend evaluation.

A blended value is base + sum(delta[i] * scalar[i]). There are two ways
of pairing deltas with scalars and they must not be mixed:

- Blend groups captured from bytecode or DICT blend operators are
  positional: delta i pairs with entry i of an axis-aligned scalar
  vector (see blend_scalars).
- Store-backed item deltas pair delta i with the scalar of the region
  named by the block's region_indices[i].

Missing scalar entries contribute nothing. Results are never rounded.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from .regions import Coordinates, coordinate_vector, region_scalar
from .store import VariationStore


@dataclass(frozen=True)
class BlendGroup:
    """Base value plus one delta per axis, captured but not resolved."""
    base: float
    deltas: tuple[float, ...]
    axis_count: int

    @classmethod
    def from_values(cls, base: float, deltas: Iterable[float]) -> BlendGroup:
        deltas = tuple(deltas)
        return cls(base, deltas, len(deltas))

    @classmethod
    def constant(cls, value: float, axis_count: int) -> BlendGroup:
        """A group that does not vary."""
        return cls(value, (0,) * axis_count, axis_count)

    def scaled(self, factor: float) -> BlendGroup:
        return BlendGroup(self.base * factor, tuple(d * factor for d in self.deltas), self.axis_count)

    def __sub__(self, other):
        """Componentwise difference, used by DICT delta encoding."""
        if isinstance(other, BlendGroup):
            return BlendGroup(
                self.base - other.base,
                tuple(a - b for a, b in zip(self.deltas, other.deltas)),
                self.axis_count)
        return BlendGroup(self.base - other, self.deltas, self.axis_count)

    def __add__(self, other):
        if isinstance(other, BlendGroup):
            return BlendGroup(
                self.base + other.base,
                tuple(a + b for a, b in zip(self.deltas, other.deltas)),
                self.axis_count)
        return BlendGroup(self.base + other, self.deltas, self.axis_count)

    __radd__ = __add__

    def __rsub__(self, other):
        return BlendGroup(other - self.base, tuple(-d for d in self.deltas), self.axis_count)


def resolve(group: BlendGroup, scalars: Sequence[float]) -> float:
    """Resolve a blend group against an axis-aligned scalar vector."""
    result = float(group.base)
    n = len(scalars)
    for i, delta in enumerate(group.deltas):
        if i < n:
            result += delta * scalars[i]
    return result


def resolve_value(value, scalars: Sequence[float]) -> float:
    """Resolve a BlendGroup, or pass a plain number through as float."""
    if isinstance(value, BlendGroup):
        return resolve(value, scalars)
    return float(value)


def resolve_all(captures: Iterable, scalars: Sequence[float]) -> list[float]:
    """Resolve BlendGroups, or objects carrying one as .group, in order."""
    return [resolve(getattr(c, 'group', c), scalars) for c in captures]


def resolve_item(store: VariationStore | None, block: int, item: int, base: float,
                 region_scalars: Sequence[float]) -> float:
    """Resolve a store-backed item against per-region scalars.

    A missing store contributes no deltas.
    """
    if store is None:
        return float(base)
    deltas = store.deltas_for_item(block, item)
    indices = store.region_indices(block)
    n = len(region_scalars)
    result = float(base)
    for delta, region_index in zip(deltas, indices):
        if region_index < n:
            result += delta * region_scalars[region_index]
    return result


def blend_scalars(store: VariationStore | None, coordinates: Coordinates, vsindex: int = 0) -> list[float]:
    """Axis-aligned scalar vector for bytecode blend groups.

    Entry i is the scalar of the region listed at position i of the
    ItemVariationData block selected by vsindex. Without such a block,
    entry i is the scalar of region i.
    """
    if store is None:
        return []
    vector = coordinate_vector(coordinates)
    if 0 <= vsindex < len(store.item_variation_data):
        indices = store.item_variation_data[vsindex].region_indices
    else:
        indices = range(len(store.regions))
    return [region_scalar(store.regions[i], vector) for i in indices]


def blend_dict(dict_data: Mapping, scalars: Sequence[float]) -> dict:
    """Copy of a DICT mapping with every BlendGroup operand resolved."""
    result = {}
    for op, operands in dict_data.items():
        if isinstance(operands, list):
            result[op] = [resolve_value(v, scalars) if isinstance(v, BlendGroup) else v
                          for v in operands]
        else:
            result[op] = resolve_value(operands, scalars) if isinstance(operands, BlendGroup) else operands
    return result
