# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

"""
CFF2 Table Builder

Writes a CFF2 table back out with hints applied. Sections are laid out
in a fixed order:

    Header, Top DICT, Global Subr INDEX, CharStrings INDEX,
    Private DICT, Local Subr INDEX, Variation Store

The Global and Local Subr INDEXes and the Variation Store are copied
verbatim. Only glyphs named by the hint payload are regenerated.

Offsets in the Top DICT (CharStrings, Private, vstore) and the Private
DICT (Subrs) are written as 5-byte integers, so a DICT's length does not
depend on the offsets it holds. The Top DICT is measured with
placeholder offsets, every offset is derived from measured section
lengths, and the DICT is written again with the real values.
"""

import logging
import struct

from .dict_data import DELTA_ENCODED_OPERATORS, encode_delta, serialize_dict
from .encoding import build_index
from .error import AxisCountMismatch, FormatError
from .hints import BlendArray, HintInjector, HintSet
from .table_reader import OP_CHARSTRINGS, OP_PRIVATE, OP_SUBRS, OP_VSTORE, TableReader
from ..variation.blend import BlendGroup

logger = logging.getLogger(__name__)

TOP_DICT_FIXED_WIDTH = frozenset({OP_CHARSTRINGS, OP_PRIVATE, OP_VSTORE})
PRIVATE_DICT_FIXED_WIDTH = frozenset({OP_SUBRS})


class TableBuilder:
    """Rebuilds a CFF2 table from a TableReader and an optional HintSet."""

    def __init__(self, reader: TableReader, hint_set: HintSet | None = None) -> None:
        self.reader = reader
        self.hint_set = hint_set

    def has_payload(self) -> bool:
        return self.hint_set is not None and not self.hint_set.is_empty()

    def build(self) -> bytes:
        """Return the rebuilt table bytes.

        Without a payload the original bytes are returned unchanged.

        Raises:
            FormatError: the table cannot be relocated (FDArray fonts) or
                the Top DICT changed size between measurement and output
            AxisCountMismatch: a blended hint has the wrong axis count
            ValueError: the payload names a glyph the font does not have, or
                a blend array that does not fit the axis count
            InterpretationError: a hinted glyph's program is malformed
        """
        reader = self.reader
        if not self.has_payload():
            logger.debug("No hint payload; returning original table")
            return reader.data

        reader.load()
        if reader.has_font_dicts():
            raise FormatError("Rebuilding tables with FDArray/FDSelect is not supported")
        missing = [gid for gid in self.hint_set.hinted_glyph_ids() if not 0 <= gid < reader.glyph_count]
        if missing:
            raise ValueError(
                f"Hint payload names glyphs {missing} outside the font ({reader.glyph_count} glyphs)")

        header = reader.read_header()
        data = reader.data

        global_subrs = self._verbatim(reader.global_subrs_span)
        charstrings = self._build_charstrings()
        private = self._build_private_dict()
        local_subrs = self._verbatim(reader.local_subrs_span)
        store = reader.read_variation_store()
        vstore = store.encoded_bytes(data) if store is not None else b''

        top_dict = dict(reader.read_top_dict())
        has_private = private is not None
        if has_private:
            top_dict[OP_PRIVATE] = [0, 0]
        if store is not None:
            top_dict[OP_VSTORE] = [0]
        top_dict[OP_CHARSTRINGS] = [0]

        measured = len(serialize_dict(top_dict, TOP_DICT_FIXED_WIDTH))

        charstrings_offset = header.header_size + measured + len(global_subrs)
        private_offset = charstrings_offset + len(charstrings)
        private_size = len(private) if has_private else 0
        vstore_offset = private_offset + private_size + len(local_subrs)

        top_dict[OP_CHARSTRINGS] = [charstrings_offset]
        if has_private:
            top_dict[OP_PRIVATE] = [private_size, private_offset]
        if store is not None:
            top_dict[OP_VSTORE] = [vstore_offset]
        top_bytes = serialize_dict(top_dict, TOP_DICT_FIXED_WIDTH)
        if len(top_bytes) != measured:
            raise FormatError(
                f"Top DICT measured {measured} bytes but serialized to {len(top_bytes)}")
        logger.debug("Layout: top DICT %d bytes, CharStrings at %d, Private at %d (%d bytes), vstore at %d",
                     measured, charstrings_offset, private_offset, private_size, vstore_offset)

        out = bytearray(data[:header.header_size])
        struct.pack_into('>H', out, 3, len(top_bytes))
        out += top_bytes
        out += global_subrs
        out += charstrings
        if has_private:
            out += private
        out += local_subrs
        out += vstore

        logger.info("Rebuilt CFF2 table: %d glyphs hinted, %d -> %d bytes",
                    len(self.hint_set.hinted_glyph_ids()), len(data), len(out))
        return bytes(out)

    # -------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------

    def _verbatim(self, span) -> bytes:
        if span is None:
            return b''
        offset, length = span
        return self.reader.data[offset:offset + length]

    def _build_charstrings(self) -> bytes:
        reader = self.reader
        index = reader.read_charstrings()
        items = list(index.items)
        injector = HintInjector(reader.axis_count)
        for gid in self.hint_set.hinted_glyph_ids():
            decoded = reader.decode_glyph(gid)
            items[gid] = injector.inject(decoded, self.hint_set.get_glyph_hints(gid))
            logger.debug("Glyph %d: %d -> %d bytes", gid, len(index.items[gid]), len(items[gid]))
        return build_index(items, index.off_size or None)

    def _build_private_dict(self) -> bytes | None:
        """Private DICT bytes, or None when the font has no Private DICT."""
        reader = self.reader
        original = reader.read_private_dict()
        span = reader.private_span
        hints = self.hint_set.private_dict_hints
        subrs_offset = reader.local_subrs_offset

        if span is None and not hints:
            return None

        adjacent = subrs_offset is None or (span is not None and subrs_offset == span[0] + span[1])
        if not hints and adjacent:
            logger.debug("Copying Private DICT verbatim")
            return self._verbatim(span)

        private = dict(original)
        for op, values in hints.items():
            if isinstance(values, BlendArray):
                values = values.groups(reader.axis_count)
            for value in values:
                if isinstance(value, BlendGroup) and value.axis_count != reader.axis_count:
                    raise AxisCountMismatch(reader.axis_count, value.axis_count)
            private[op] = encode_delta(values) if op in DELTA_ENCODED_OPERATORS else list(values)

        if OP_SUBRS not in private:
            return serialize_dict(private, PRIVATE_DICT_FIXED_WIDTH)

        # Local subrs follow the Private DICT directly
        private[OP_SUBRS] = [0]
        size = len(serialize_dict(private, PRIVATE_DICT_FIXED_WIDTH))
        private[OP_SUBRS] = [size]
        encoded = serialize_dict(private, PRIVATE_DICT_FIXED_WIDTH)
        if len(encoded) != size:
            raise FormatError(f"Private DICT measured {size} bytes but serialized to {len(encoded)}")
        logger.debug("Rewrote Private DICT: %d bytes, %d hinted keys", size, len(hints))
        return encoded


def rebuild_table(data: bytes, hint_set: HintSet | None = None, axis_tags=None) -> bytes:
    """Decode data and write it back with hint_set applied."""
    return TableBuilder(TableReader(data, axis_tags), hint_set).build()
