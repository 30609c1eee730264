# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Byte-level builders for test tables.

make_table() lays sections out in the same order the TableBuilder
writes them, with fixed-width offsets, so a rebuild of an unchanged
table reproduces it exactly.
"""

import struct

from cff2forge.core.charstring import EscapeOperator, Operator
from cff2forge.core.dict_data import serialize_dict
from cff2forge.core.encoding import build_index, encode_charstring_number, encode_operator
from cff2forge.variation.blend import BlendGroup


def f2dot14(value):
    return int(round(value * 16384))


def charstring(*tokens):
    """Assemble a program from numbers, operator names and raw bytes."""
    out = bytearray()
    for token in tokens:
        if isinstance(token, str):
            name = token.upper()
            if name in Operator.__members__:
                out += encode_operator(Operator[name])
            else:
                out += encode_operator((12, EscapeOperator[name]))
        elif isinstance(token, (bytes, bytearray)):
            out += token
        else:
            out += encode_charstring_number(token)
    return bytes(out)


def store_bytes(regions, blocks=()):
    """Encode a Variation Store.

    regions: list of regions, each a list of (start, peak, end) per axis
    blocks: list of (region_indices, rows, short_delta_count)
    """
    out = bytearray(struct.pack('>H', len(regions)))
    for region in regions:
        out += struct.pack('>H', len(region))
        for start, peak, end in region:
            out += struct.pack('>hhh', f2dot14(start), f2dot14(peak), f2dot14(end))
    out += struct.pack('>H', len(blocks))
    for indices, rows, short_count in blocks:
        out += struct.pack('>HHH', len(rows), short_count, len(indices))
        for idx in indices:
            out += struct.pack('>H', idx)
        for row in rows:
            for delta in row[:short_count]:
                out += struct.pack('>h', delta)
            for delta in row[short_count:]:
                out += struct.pack('>b', delta)
    return bytes(out)


TOP_FIXED = {17, 18, 24}


def make_table(charstrings, global_subrs=None, local_subrs=None, private=None,
               store=None, top_extra=None):
    """Assemble a CFF2 table.

    global_subrs=None leaves the Global Subr INDEX out entirely; [] writes
    an empty INDEX.
    """
    gsubrs = build_index(global_subrs) if global_subrs is not None else b''
    cs_index = build_index(charstrings)

    private = dict(private or {})
    lsubrs = b''
    if local_subrs:
        private[19] = [0]
        private[19] = [len(serialize_dict(private, {19}))]
        lsubrs = build_index(local_subrs)
    priv_bytes = serialize_dict(private, {19}) if private else b''

    top = {17: [0]}
    if priv_bytes:
        top[18] = [0, 0]
    if store is not None:
        top[24] = [0]
    top.update(top_extra or {})
    top_len = len(serialize_dict(top, TOP_FIXED))

    cs_off = 5 + top_len + len(gsubrs)
    priv_off = cs_off + len(cs_index)
    vs_off = priv_off + len(priv_bytes) + len(lsubrs)
    top[17] = [cs_off]
    if priv_bytes:
        top[18] = [len(priv_bytes), priv_off]
    if store is not None:
        top[24] = [vs_off]
    top_bytes = serialize_dict(top, TOP_FIXED)
    assert len(top_bytes) == top_len

    header = bytes([2, 0, 5]) + struct.pack('>H', top_len)
    return header + top_bytes + gsubrs + cs_index + priv_bytes + lsubrs + (store or b'')


# ---------------------------------------------------------------------------
# Sample glyphs for a one-axis font
# ---------------------------------------------------------------------------

GLYPH_NOTDEF = charstring('endchar')
GLYPH_BLEND = charstring(10, 20, 'rmoveto', 5, 2, 1, 1, 'blend', 0, 'rlineto', 'endchar')
GLYPH_SUBRS = charstring(100, 50, 'hstem', 0, 0, 'rmoveto', -107, 'callgsubr',
                         -107, 'callsubr', -50, 0, 'rlineto', 'endchar')
GLYPH_MASKS = charstring(100, 50, 'hstemhm', 200, 40, 'hstemhm', 'hintmask', b'\xc0',
                         0, 0, 'rmoveto', 10, 0, 'rlineto', 'hintmask', b'\x80',
                         0, 10, 'rlineto', 'endchar')

GLOBAL_SUBRS = [charstring(50, 0, 'rlineto', 'return')]
LOCAL_SUBRS = [charstring(0, 50, 'rlineto', 'return')]

# BlueValues -20 0 500 520 (delta encoded), StdHW blended 50 + 10 * s
PRIVATE = {
    6: [-20, 20, 480, 20],
    10: [BlendGroup(50, (10,), 1)],
}
