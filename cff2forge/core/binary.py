# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Low-level big-endian readers shared by the table codec and the
Variation Store decoder.

Every reader takes (data, offset) and returns (value, offset_after), the
same calling convention the CFF parser has always used. Reads that would
run past the end of the buffer raise UnexpectedEnd instead of returning
short data.
"""

import struct

from .error import FormatError, UnexpectedEnd

F2DOT14_SCALE = 16384.0


def _need(data, offset, size, what):
    if offset < 0 or offset + size > len(data):
        raise UnexpectedEnd(f"Unexpected end of data while reading {what}", offset)


def read_card8(data, offset, what='card8'):
    _need(data, offset, 1, what)
    return data[offset], offset + 1


def read_card16(data, offset, what='card16'):
    _need(data, offset, 2, what)
    return struct.unpack_from('>H', data, offset)[0], offset + 2


def read_int8(data, offset, what='int8'):
    _need(data, offset, 1, what)
    return struct.unpack_from('>b', data, offset)[0], offset + 1


def read_int16(data, offset, what='int16'):
    _need(data, offset, 2, what)
    return struct.unpack_from('>h', data, offset)[0], offset + 2


def read_f2dot14(data, offset, what='F2DOT14'):
    value, offset = read_int16(data, offset, what)
    return value / F2DOT14_SCALE, offset


def read_offset(data, offset, off_size):
    _need(data, offset, off_size, 'INDEX offset')
    if off_size == 1:
        return data[offset], offset + 1
    elif off_size == 2:
        return struct.unpack_from('>H', data, offset)[0], offset + 2
    elif off_size == 3:
        b1, b2, b3 = data[offset], data[offset + 1], data[offset + 2]
        return (b1 << 16) | (b2 << 8) | b3, offset + 3
    elif off_size == 4:
        return struct.unpack_from('>I', data, offset)[0], offset + 4
    else:
        raise FormatError(f"Invalid offSize: {off_size}", offset)


def parse_index(data, offset):
    """Parse an INDEX structure at offset.

    Returns (list_of_bytes_objects, off_size, offset_after_index).
    An empty INDEX (count=0) is just the two count bytes and reports an
    off_size of 0.
    """
    start = offset
    count, offset = read_card16(data, offset, 'INDEX count')
    if count == 0:
        return [], 0, offset

    off_size, offset = read_card8(data, offset, 'INDEX offSize')
    if not 1 <= off_size <= 4:
        raise FormatError(f"Invalid offSize: {off_size}", offset - 1)

    offsets = []
    for _ in range(count + 1):
        val, offset = read_offset(data, offset, off_size)
        offsets.append(val)

    if offsets[0] != 1:
        raise FormatError(f"INDEX first offset must be 1, got {offsets[0]}", start)

    # Offsets are 1-based relative to the byte before the data region
    data_start = offset - 1
    end_offset = data_start + offsets[count]
    if end_offset > len(data):
        raise UnexpectedEnd("INDEX data runs past end of table", start)

    items = []
    for i in range(count):
        if offsets[i + 1] < offsets[i]:
            raise FormatError(f"INDEX offsets decrease at item {i}", start)
        items.append(bytes(data[data_start + offsets[i]:data_start + offsets[i + 1]]))

    return items, off_size, end_offset
