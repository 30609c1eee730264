# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Binary encoders: CharString numbers, DICT numbers, operators and INDEX
structures. These are the inverse of the readers in binary.py,
dict_data.py and charstring.py.
"""

import struct

from .error import FormatError


def _as_int(value):
    """Return value as int when it is integral, else None."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def encode_operator(op):
    """Encode a one-byte operator or a (12, n) escape operator."""
    if isinstance(op, tuple):
        return bytes(op)
    return bytes([op])


# ---------------------------------------------------------------------------
# CharString numbers (Type 2)
# ---------------------------------------------------------------------------

def encode_charstring_number(value):
    """Encode a CharString operand in its shortest Type 2 form.

    Integers use the 1, 2 or 3 byte forms; anything else becomes a 16.16
    fixed-point number behind the 255 prefix.
    """
    v = _as_int(value)
    if v is not None:
        if -107 <= v <= 107:
            return bytes([v + 139])
        if 108 <= v <= 1131:
            v -= 108
            return bytes([(v >> 8) + 247, v & 0xFF])
        if -1131 <= v <= -108:
            v = -v - 108
            return bytes([(v >> 8) + 251, v & 0xFF])
        if -32768 <= v <= 32767:
            return b'\x1c' + struct.pack('>h', v)

    fixed = int(round(float(value) * 65536.0))
    if not -0x80000000 <= fixed <= 0x7FFFFFFF:
        raise FormatError(f"CharString number out of range: {value}")
    return b'\xff' + struct.pack('>i', fixed)


# ---------------------------------------------------------------------------
# DICT numbers
# ---------------------------------------------------------------------------

def encode_dict_integer(value, fixed_width=False):
    """Encode a DICT integer; fixed_width forces the 5-byte form."""
    if fixed_width:
        return b'\x1d' + struct.pack('>i', value)
    if -107 <= value <= 107:
        return bytes([value + 139])
    if 108 <= value <= 1131:
        value -= 108
        return bytes([(value >> 8) + 247, value & 0xFF])
    if -1131 <= value <= -108:
        value = -value - 108
        return bytes([(value >> 8) + 251, value & 0xFF])
    if -32768 <= value <= 32767:
        return b'\x1c' + struct.pack('>h', value)
    return b'\x1d' + struct.pack('>i', value)


def encode_dict_real(value):
    """Encode a DICT real number as BCD nibbles behind the 30 prefix."""
    text = repr(float(value))
    if text.endswith('.0'):
        text = text[:-2]
    text = text.upper()

    nibbles = []
    i = 0
    while i < len(text):
        c = text[i]
        if c.isdigit():
            nibbles.append(int(c))
        elif c == '.':
            nibbles.append(0x0A)
        elif c == '-':
            nibbles.append(0x0E)
        elif c == 'E':
            if text[i + 1] == '-':
                nibbles.append(0x0C)
                i += 1
            else:
                nibbles.append(0x0B)
                if text[i + 1] == '+':
                    i += 1
        else:
            raise FormatError(f"Cannot encode DICT real: {value!r}")
        i += 1

    nibbles.append(0x0F)
    if len(nibbles) % 2:
        nibbles.append(0x0F)

    out = bytearray([30])
    for hi, lo in zip(nibbles[::2], nibbles[1::2]):
        out.append((hi << 4) | lo)
    return bytes(out)


def encode_dict_number(value, fixed_width=False):
    v = _as_int(value)
    if v is not None:
        return encode_dict_integer(v, fixed_width)
    if fixed_width:
        raise FormatError(f"Offset operand must be an integer, got {value!r}")
    return encode_dict_real(value)


# ---------------------------------------------------------------------------
# INDEX
# ---------------------------------------------------------------------------

def _off_size_for(largest):
    if largest < 0x100:
        return 1
    if largest < 0x10000:
        return 2
    if largest < 0x1000000:
        return 3
    return 4


def build_index(items, off_size=None):
    """Serialize a list of byte strings as an INDEX.

    off_size defaults to the smallest size that can hold the last offset.
    A requested off_size that is too small is widened.
    """
    if not items:
        return b'\x00\x00'
    if len(items) > 0xFFFF:
        raise FormatError(f"INDEX cannot hold {len(items)} items")

    offsets = [1]
    for item in items:
        offsets.append(offsets[-1] + len(item))

    needed = _off_size_for(offsets[-1])
    if off_size is None or off_size < needed:
        off_size = needed

    out = bytearray(struct.pack('>HB', len(items), off_size))
    for off in offsets:
        out += off.to_bytes(off_size, 'big')
    for item in items:
        out += item
    return bytes(out)
