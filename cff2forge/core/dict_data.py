# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
CFF2 DICT codec.

A DICT is a stream of operands followed by an operator. Parsed DICTs are
plain ordered dicts mapping an operator (int, or (12, n) for escape
operators) to its operand list.

CFF2 adds a blend operator (23) to DICT data. It pops N (axis count) and
K (value count) and consumes K * (N + 1) operands laid out as K groups of
(base, delta_1 .. delta_N). Each group becomes one BlendGroup operand in
the position its base occupied, so a multi-value entry such as
BlueValues keeps every value's own deltas in its own slot and can be
written back in exactly the same order.

Based on: Adobe Technical Note #5176 (DICT data) and #5177 (CFF2)
"""

import struct

from .encoding import encode_dict_number, encode_operator
from .error import AxisCountMismatch, FormatError, UnexpectedEnd
from ..variation.blend import BlendGroup

BLEND_OPERATOR = 23

# ---------------------------------------------------------------------------
# DICT Operator Names  (op_byte or (12, sub_byte)) -> name
# ---------------------------------------------------------------------------
TOP_DICT_OPERATORS = {
    0: 'version', 1: 'Notice', 2: 'FullName', 3: 'FamilyName',
    4: 'Weight', 5: 'FontBBox', 13: 'UniqueID', 14: 'XUID',
    15: 'charset', 16: 'Encoding', 17: 'CharStrings', 18: 'Private',
    24: 'vstore', 25: 'maxstack',
    (12, 0): 'Copyright', (12, 1): 'isFixedPitch', (12, 2): 'ItalicAngle',
    (12, 3): 'UnderlinePosition', (12, 4): 'UnderlineThickness',
    (12, 5): 'PaintType', (12, 6): 'CharstringType', (12, 7): 'FontMatrix',
    (12, 8): 'StrokeWidth',
    (12, 36): 'FDArray', (12, 37): 'FDSelect', (12, 38): 'FontName',
}

PRIVATE_DICT_OPERATORS = {
    6: 'BlueValues', 7: 'OtherBlues', 8: 'FamilyBlues',
    9: 'FamilyOtherBlues', 10: 'StdHW', 11: 'StdVW',
    19: 'Subrs', 20: 'defaultWidthX', 21: 'nominalWidthX',
    22: 'vsindex', 23: 'blend',
    (12, 9): 'BlueScale', (12, 10): 'BlueShift', (12, 11): 'BlueFuzz',
    (12, 12): 'StemSnapH', (12, 13): 'StemSnapV', (12, 14): 'ForceBold',
    (12, 17): 'LanguageGroup', (12, 18): 'ExpansionFactor',
    (12, 19): 'initialRandomSeed',
}

# Private DICT entries stored as differences from the previous value
DELTA_ENCODED_OPERATORS = frozenset({6, 7, 8, 9, (12, 12), (12, 13)})

# Top DICT operators whose operands are table offsets / sizes
TOP_DICT_OFFSET_OPERATORS = frozenset({17, 18, 24, (12, 36), (12, 37)})


def _squash(name):
    return name.replace('_', '').lower()


def operator_for_name(name, table=PRIVATE_DICT_OPERATORS):
    """Look up an operator by DICT name ('BlueValues') or snake case ('blue_values')."""
    wanted = _squash(name)
    for op, op_name in table.items():
        if _squash(op_name) == wanted:
            return op
    raise KeyError(f"Unknown DICT key: {name!r}")


def operator_name(op, table=PRIVATE_DICT_OPERATORS):
    return table.get(op, str(op))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _read_real(data, i, length):
    """Decode a BCD real starting after the 30 prefix. Returns (value, i)."""
    start = i
    chars = []
    done = False
    while not done:
        if i >= length:
            raise UnexpectedEnd("Unterminated DICT real number", start)
        byte = data[i]
        i += 1
        for n in ((byte >> 4) & 0x0F, byte & 0x0F):
            if n <= 9:
                chars.append(str(n))
            elif n == 0x0A:
                chars.append('.')
            elif n == 0x0B:
                chars.append('E')
            elif n == 0x0C:
                chars.append('E-')
            elif n == 0x0E:
                chars.append('-')
            elif n == 0x0F:
                done = True
                break
            # 0x0D is reserved and skipped
    try:
        return float(''.join(chars)), i
    except ValueError:
        raise FormatError(f"Malformed DICT real number: {''.join(chars)!r}", start) from None


def _apply_blend(operands, axis_count, offset):
    if len(operands) < 2:
        raise FormatError("DICT blend needs axis and value counts", offset)
    n = int(operands.pop())
    k = int(operands.pop())
    if axis_count is not None and n != axis_count:
        raise AxisCountMismatch(axis_count, n, offset)
    required = k * (n + 1)
    if k < 0 or n < 0 or len(operands) < required:
        raise FormatError(f"DICT blend needs {required} operands, found {len(operands)}", offset)

    raw = operands[len(operands) - required:]
    del operands[len(operands) - required:]
    for i in range(k):
        group = raw[i * (n + 1):(i + 1) * (n + 1)]
        if any(isinstance(v, BlendGroup) for v in group):
            raise FormatError("Nested DICT blend", offset)
        operands.append(BlendGroup(group[0], tuple(group[1:]), n))


def parse_dict_data(data, axis_count=None):
    """Parse DICT bytes into {operator: [operands]}.

    Args:
        data: DICT bytes
        axis_count: when given, DICT blend operators must name this
            many axes

    Raises:
        UnexpectedEnd: a number or escape operator is truncated
        FormatError: malformed real, reserved byte, or bad blend
    """
    result = {}
    operands = []
    i = 0
    length = len(data)

    while i < length:
        b0 = data[i]

        if b0 <= 27 or b0 == 31:
            # Operator
            op_offset = i
            if b0 == 12:
                # Two-byte operator
                i += 1
                if i >= length:
                    raise UnexpectedEnd("Truncated DICT escape operator", op_offset)
                op = (12, data[i])
            else:
                op = b0
            i += 1
            if op == BLEND_OPERATOR:
                _apply_blend(operands, axis_count, op_offset)
                continue
            result[op] = operands
            operands = []

        elif b0 == 28:
            # 3-byte integer
            if i + 2 >= length:
                raise UnexpectedEnd("Truncated DICT int16", i)
            operands.append(struct.unpack_from('>h', data, i + 1)[0])
            i += 3

        elif b0 == 29:
            # 5-byte integer
            if i + 4 >= length:
                raise UnexpectedEnd("Truncated DICT int32", i)
            operands.append(struct.unpack_from('>i', data, i + 1)[0])
            i += 5

        elif b0 == 30:
            value, i = _read_real(data, i + 1, length)
            operands.append(value)

        elif 32 <= b0 <= 246:
            operands.append(b0 - 139)
            i += 1

        elif 247 <= b0 <= 250:
            if i + 1 >= length:
                raise UnexpectedEnd("Truncated DICT number", i)
            operands.append((b0 - 247) * 256 + data[i + 1] + 108)
            i += 2

        elif 251 <= b0 <= 254:
            if i + 1 >= length:
                raise UnexpectedEnd("Truncated DICT number", i)
            operands.append(-(b0 - 251) * 256 - data[i + 1] - 108)
            i += 2

        else:
            # 255 is reserved in DICT data
            raise FormatError(f"Reserved byte {b0} in DICT data", i)

    if operands:
        raise FormatError(f"DICT data ends with {len(operands)} operands and no operator", length)

    return result


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _encode_blend_run(run):
    out = bytearray()
    n = run[0].axis_count
    for group in run:
        out += encode_dict_number(group.base)
        for delta in group.deltas:
            out += encode_dict_number(delta)
    out += encode_dict_number(len(run))
    out += encode_dict_number(n)
    out += encode_operator(BLEND_OPERATOR)
    return out


def _encode_operands(operands, fixed_width):
    out = bytearray()
    run = []
    for value in operands:
        if isinstance(value, BlendGroup):
            if run and run[0].axis_count != value.axis_count:
                out += _encode_blend_run(run)
                run = []
            run.append(value)
            continue
        if run:
            out += _encode_blend_run(run)
            run = []
        out += encode_dict_number(value, fixed_width)
    if run:
        out += _encode_blend_run(run)
    return out


def serialize_dict(dict_data, fixed_width=()):
    """Serialize {operator: operands} back to DICT bytes.

    Operators in fixed_width get their operands in the 5-byte integer
    form, so their encoded size does not depend on their value.
    """
    out = bytearray()
    for op, operands in dict_data.items():
        if not isinstance(operands, (list, tuple)):
            operands = [operands]
        out += _encode_operands(operands, op in fixed_width)
        out += encode_operator(op)
    return bytes(out)


# ---------------------------------------------------------------------------
# Delta arrays and legacy blend arrays
# ---------------------------------------------------------------------------

def decode_delta(values):
    """Delta-encoded DICT array -> absolute values (BlendGroups included)."""
    result = []
    accum = 0
    for v in values:
        accum = accum + v
        result.append(accum)
    return result


def encode_delta(values):
    """Absolute values -> delta-encoded DICT array."""
    result = []
    prev = 0
    for v in values:
        result.append(v - prev)
        prev = v
    return result


def parse_blend_array(values, axis_count):
    """Interpret a flat array as consecutive (base, delta_1..delta_N) groups.

    This is the flattened layout some writers use instead of the blend
    operator. Returns a list of BlendGroups, or None when the length is
    not a multiple of axis_count + 1.
    """
    width = axis_count + 1
    if axis_count <= 0 or not values or len(values) % width:
        return None
    return [BlendGroup(values[i], tuple(values[i + 1:i + width]), axis_count)
            for i in range(0, len(values), width)]
