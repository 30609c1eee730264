# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

"""
Hint payloads and CharString hint injection.

A HintSet carries per-glyph hint directives and font-wide Private DICT
values. The HintInjector splices a glyph's directives into its program
using the operation list recorded by the interpreter, so every operator
it does not touch keeps its original bytes.

Stem operands are written the Type 2 way: within one stem operator each
edge pair is relative to the far edge of the previous pair. A stem whose
position or width varies gets one blend operator covering both of its
operands.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .charstring import DecodedCharString, Operator
from .dict_data import PRIVATE_DICT_OPERATORS, operator_for_name, parse_blend_array
from .encoding import encode_charstring_number, encode_operator
from .error import AxisCountMismatch, FormatError
from ..variation.blend import BlendGroup

STEM = 'stem'
STEM3 = 'stem3'
HINT_REPLACEMENT = 'hint_replacement'
COUNTER = 'counter'
DIRECTIVE_KINDS = frozenset({STEM, STEM3, HINT_REPLACEMENT, COUNTER})

HORIZONTAL = 'horizontal'
VERTICAL = 'vertical'


def as_hint_value(value):
    """Number, BlendGroup, or {'base': b, 'deltas': [...]} -> float or BlendGroup."""
    if isinstance(value, BlendGroup):
        return value
    if isinstance(value, Mapping):
        try:
            return BlendGroup.from_values(float(value['base']), (float(d) for d in value['deltas']))
        except KeyError as exc:
            raise ValueError(f"Blend value needs 'base' and 'deltas', got {dict(value)!r}") from exc
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Hint value must be a number or blend mapping, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class BlendArray:
    """Private DICT hint given as a flat run of base, delta_1..delta_N groups.

    The axis count is only known once the font is, so the split into
    BlendGroups happens when the DICT is written.
    """
    values: tuple[float, ...]

    def groups(self, axis_count: int) -> list[BlendGroup]:
        groups = parse_blend_array(list(self.values), axis_count)
        if groups is None:
            raise ValueError(
                f"Blend array of {len(self.values)} values does not split into groups of "
                f"{axis_count + 1} for a {axis_count}-axis font")
        return groups


def _as_mask(value) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    try:
        return bytes(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Hint mask must be a list of byte values, got {value!r}") from exc


@dataclass
class HintDirective:
    """One hint instruction for a glyph.

    kind is one of:
        stem              data: position, width, orientation
        stem3             data: stems (list of {position, width}), orientation
        hint_replacement  data: mask (byte values)
        counter           data: mask (byte values)
    """
    kind: str
    data: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in DIRECTIVE_KINDS:
            raise ValueError(f"Unknown hint directive {self.kind!r}")
        data = dict(self.data)
        if self.kind in (STEM, STEM3):
            orientation = data.get('orientation', HORIZONTAL)
            if orientation not in (HORIZONTAL, VERTICAL):
                raise ValueError(f"Stem orientation must be horizontal or vertical, got {orientation!r}")
            data['orientation'] = orientation
        if self.kind == STEM:
            if 'position' not in data or 'width' not in data:
                raise ValueError("Stem directive needs position and width")
            data['position'] = as_hint_value(data['position'])
            data['width'] = as_hint_value(data['width'])
        elif self.kind == STEM3:
            stems = data.get('stems') or []
            if len(stems) != 3:
                raise ValueError(f"stem3 directive needs 3 stems, got {len(stems)}")
            data['stems'] = [(as_hint_value(s['position']), as_hint_value(s['width'])) for s in stems]
        else:
            if 'mask' not in data:
                raise ValueError(f"{self.kind} directive needs a mask")
            data['mask'] = _as_mask(data['mask'])
        self.data = data

    @classmethod
    def stem(cls, position, width, orientation: str = HORIZONTAL) -> HintDirective:
        return cls(STEM, {'position': position, 'width': width, 'orientation': orientation})

    @classmethod
    def from_mapping(cls, obj: Mapping) -> HintDirective:
        """Build from decoded JSON: {'type': 'stem', 'position': ..., ...}."""
        data = dict(obj)
        kind = data.pop('type', None) or data.pop('kind', None)
        if kind is None:
            raise ValueError(f"Hint directive has no type: {obj!r}")
        return cls(kind, data)

    def stems(self) -> list[tuple[str, object, object]]:
        """(orientation, position, width) for every stem this directive declares."""
        if self.kind == STEM:
            return [(self.data['orientation'], self.data['position'], self.data['width'])]
        if self.kind == STEM3:
            return [(self.data['orientation'], pos, width) for pos, width in self.data['stems']]
        return []


class HintSet:
    """Hints to apply to a font: per-glyph directives and Private DICT values.

    Private DICT values are stored by operator with absolute values;
    delta-encoded keys are converted when the DICT is written. A value
    given as {'blend_array': [...]} is kept as a BlendArray until the
    font's axis count is known.
    """

    def __init__(self, glyph_hints: Mapping[int, Iterable[HintDirective]] | None = None,
                 private_dict_hints: Mapping | None = None) -> None:
        self.glyph_hints: dict[int, list[HintDirective]] = {}
        for gid, directives in (glyph_hints or {}).items():
            directives = list(directives)
            if directives:
                self.glyph_hints[int(gid)] = directives

        self.private_dict_hints: dict = {}
        for key, value in (private_dict_hints or {}).items():
            op = key if not isinstance(key, str) else operator_for_name(key, PRIVATE_DICT_OPERATORS)
            if op in (19, 22, 23):
                raise ValueError(f"Private DICT key {key!r} cannot be set by a hint payload")
            if isinstance(value, Mapping) and 'blend_array' in value:
                values = BlendArray(tuple(float(v) for v in value['blend_array']))
            elif isinstance(value, (list, tuple)):
                values = [as_hint_value(v) for v in value]
            else:
                values = [as_hint_value(value)]
            self.private_dict_hints[op] = values

    @classmethod
    def from_mapping(cls, obj: Mapping) -> HintSet:
        """Build from decoded JSON.

        Accepts {'glyphs': {gid: [directive, ...]}, 'private': {key: value}}
        (or the long names glyph_hints / private_dict_hints). Glyph ids
        may be strings.
        """
        glyphs = obj.get('glyphs', obj.get('glyph_hints')) or {}
        private = obj.get('private', obj.get('private_dict_hints')) or {}
        glyph_hints = {}
        for gid, directives in glyphs.items():
            glyph_hints[int(gid)] = [
                d if isinstance(d, HintDirective) else HintDirective.from_mapping(d)
                for d in directives
            ]
        return cls(glyph_hints, private)

    def hinted_glyph_ids(self) -> list[int]:
        return sorted(self.glyph_hints)

    def get_glyph_hints(self, glyph_id: int) -> list[HintDirective]:
        return self.glyph_hints.get(glyph_id, [])

    def has_font_level_hints(self) -> bool:
        return bool(self.private_dict_hints)

    def is_empty(self) -> bool:
        return not self.glyph_hints and not self.private_dict_hints

    def __repr__(self) -> str:
        return f"HintSet(glyphs={len(self.glyph_hints)}, private_keys={len(self.private_dict_hints)})"


# ---------------------------------------------------------------------------
# Injection
# ---------------------------------------------------------------------------

def resize_mask(mask: bytes, old_count: int, added: int, active: bool) -> bytes:
    """Extend a hint mask covering old_count stems by added trailing stems."""
    value = int.from_bytes(mask, 'big') if mask else 0
    value >>= len(mask) * 8 - old_count
    value <<= added
    if active:
        value |= (1 << added) - 1
    new_count = old_count + added
    n_bytes = (new_count + 7) // 8
    return (value << (n_bytes * 8 - new_count)).to_bytes(n_bytes, 'big')


def _fit_mask(mask: bytes, n_bytes: int) -> bytes:
    return mask[:n_bytes].ljust(n_bytes, b'\x00')


class HintInjector:
    """Splices hint directives into decoded glyph programs."""

    def __init__(self, axis_count: int = 0) -> None:
        self.axis_count = axis_count

    def _check_axes(self, value) -> None:
        if isinstance(value, BlendGroup) and value.axis_count != self.axis_count:
            raise AxisCountMismatch(self.axis_count, value.axis_count)

    def _as_group(self, value) -> BlendGroup:
        if isinstance(value, BlendGroup):
            return value
        return BlendGroup.constant(value, self.axis_count)

    def encode_stems(self, stems: list[tuple[str, object, object]], has_masks: bool) -> bytes:
        """Encode stems as hstem(hm) followed by vstem(hm) operators."""
        out = bytearray()
        for orientation, opcode in ((HORIZONTAL, Operator.HSTEMHM if has_masks else Operator.HSTEM),
                                    (VERTICAL, Operator.VSTEMHM if has_masks else Operator.VSTEM)):
            group = [(pos, width) for orient, pos, width in stems if orient == orientation]
            if not group:
                continue
            group.sort(key=lambda s: s[0].base if isinstance(s[0], BlendGroup) else s[0])
            previous_edge = 0.0
            for position, width in group:
                self._check_axes(position)
                self._check_axes(width)
                relative = position - previous_edge
                out += self._encode_pair(relative, width)
                previous_edge = position + width
            out += encode_operator(opcode)
        return bytes(out)

    def _encode_pair(self, first, second) -> bytes:
        if not isinstance(first, BlendGroup) and not isinstance(second, BlendGroup):
            return encode_charstring_number(first) + encode_charstring_number(second)
        out = bytearray()
        groups = [self._as_group(first), self._as_group(second)]
        for group in groups:
            out += encode_charstring_number(group.base)
            for delta in group.deltas:
                out += encode_charstring_number(delta)
        out += encode_charstring_number(len(groups))
        out += encode_charstring_number(self.axis_count)
        out += encode_operator(Operator.BLEND)
        return bytes(out)

    def inject(self, decoded: DecodedCharString, directives: Iterable[HintDirective]) -> bytes:
        """Return the glyph program with directives inserted.

        Raises:
            FormatError: the glyph keeps hint masks inside subroutines
                whose size would have to change
            AxisCountMismatch: a blended hint value has the wrong axis count
        """
        directives = list(directives)
        stems = [stem for d in directives for stem in d.stems()]
        masks = [d for d in directives if d.kind in (HINT_REPLACEMENT, COUNTER)]
        if not stems and not masks:
            return decoded.encode()

        ops = decoded.operations
        point = len(ops)
        for i, op in enumerate(ops):
            if (op.operator is None or op.draws or op.is_path or op.is_mask
                    or op.operator == Operator.ENDCHAR):
                point = i
                break

        # Operators before point that leave values on the stack (blend,
        # arithmetic, subroutine calls) feed point; new stems go before them
        start = point
        while start > 0 and ops[start - 1].stack_depth > 0:
            start -= 1

        at_mask = point < len(ops) and ops[point].is_mask
        implicit_vstems = at_mask and (start < point or bool(ops[point].operand_bytes))
        if at_mask:
            existing = ops[point].stem_count
        elif start > 0:
            existing = ops[start - 1].stem_count
        else:
            existing = 0
        added = len(stems)
        total = existing + added
        n_mask_bytes = (total + 7) // 8

        if decoded.subroutine_masks and n_mask_bytes != (existing + 7) // 8:
            raise FormatError(
                f"Glyph {decoded.glyph_id} has hint masks inside subroutines; "
                f"cannot grow them from {existing} to {total} stems")

        has_masks = decoded.has_hint_masks or bool(masks)
        out = bytearray()
        for op in ops[:start]:
            out += op.encode()

        resume = start
        if implicit_vstems:
            # Implicit vstems of the first mask become explicit so new stems follow them
            for op in ops[start:point]:
                out += op.encode()
            out += ops[point].operand_bytes + encode_operator(Operator.VSTEMHM)
            resume = point

        out += self.encode_stems(stems, has_masks)
        for directive in masks:
            opcode = Operator.HINTMASK if directive.kind == HINT_REPLACEMENT else Operator.CNTRMASK
            out += encode_operator(opcode) + _fit_mask(directive.data['mask'], n_mask_bytes)

        for i, op in enumerate(ops[resume:], resume):
            if not op.is_mask:
                out += op.encode()
                continue
            operands = b'' if (i == point and implicit_vstems) else op.operand_bytes
            mask = resize_mask(op.mask, op.stem_count, added, active=op.kind == Operator.HINTMASK)
            out += operands + encode_operator(op.operator) + mask

        return bytes(out)
