# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

"""
CFF2 Table Reader

Decodes the offset-addressed sections of a CFF2 table:

    Header             5 bytes at offset 0
    Top DICT           header_size, top_dict_length bytes
    Global Subr INDEX  directly after the Top DICT
    CharStrings INDEX  Top DICT operator 17
    Private DICT       Top DICT operator 18 (size, offset)
    Local Subr INDEX   Private DICT operator 19, relative to the Private DICT
    Variation Store    Top DICT operator 24

Each section is decoded on first use and cached. Every section remembers
where it came from, so untouched sections can be copied byte-for-byte
when the table is rebuilt.

Based on: Adobe Technical Note #5177 and the OpenType CFF2 table
"""

import logging
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from .binary import parse_index, read_card8, read_card16
from .charstring import DEFAULT_MAX_STACK, CharStringInterpreter, DecodedCharString
from .dict_data import parse_dict_data
from .error import FormatError, InterpretationError, UnexpectedEnd, UnsupportedVersion
from ..variation.blend import blend_scalars as _blend_scalars
from ..variation.blend import resolve_value
from ..variation.regions import DesignCoordinate, RegionScalarCalculator, ScalarCache
from ..variation.store import VariationStore

logger = logging.getLogger(__name__)

HEADER_SIZE = 5

# Top DICT operators
OP_CHARSTRINGS = 17
OP_PRIVATE = 18
OP_VSTORE = 24
OP_MAXSTACK = 25
OP_FDARRAY = (12, 36)
OP_FDSELECT = (12, 37)

# Private DICT operators
OP_SUBRS = 19
OP_DEFAULT_WIDTH_X = 20

ON_ERROR_MODES = ('raise', 'skip', 'empty')


@dataclass(frozen=True)
class CFF2Header:
    major: int
    minor: int
    header_size: int
    top_dict_length: int


@dataclass(frozen=True)
class CharStringsIndex:
    """CharStrings INDEX items and where the INDEX sat in the table."""
    items: tuple[bytes, ...]
    offset: int
    length: int
    off_size: int

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, glyph_id: int) -> bytes:
        return self.items[glyph_id]


class TableReader:
    """Lazy, cached decoder for one CFF2 table.

    Args:
        data: raw CFF2 table bytes
        axis_tags: the font's axis tags in fvar order (optional; used for
            DesignCoordinate construction and as the axis count of a font
            without a Variation Store)
        scalar_cache_size: entries kept in the region scalar LRU

    Thread Safety: call load() (decode_glyphs does) before sharing a
    reader between threads. After that every cached section is read-only.
    """

    def __init__(self, data: bytes, axis_tags: Iterable[str] | None = None,
                 scalar_cache_size: int | None = None) -> None:
        self.data = bytes(data)
        self.axis_tags = tuple(axis_tags) if axis_tags else ()
        self._scalar_cache_size = scalar_cache_size

        self._header: CFF2Header | None = None
        self._top_dict: dict | None = None
        self._global_subrs: list[bytes] | None = None
        self._global_subrs_span: tuple[int, int] | None = None
        self._charstrings: CharStringsIndex | None = None
        self._private_dict: dict | None = None
        self._private_span: tuple[int, int] | None = None
        self._local_subrs: list[bytes] | None = None
        self._local_subrs_span: tuple[int, int] | None = None
        self._store: VariationStore | None = None
        self._store_loaded = False
        self._calculator: RegionScalarCalculator | None = None

    # -------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------

    def read_header(self) -> CFF2Header:
        if self._header is None:
            major, offset = read_card8(self.data, 0, 'header major version')
            minor, offset = read_card8(self.data, offset, 'header minor version')
            header_size, offset = read_card8(self.data, offset, 'header size')
            top_dict_length, offset = read_card16(self.data, offset, 'top DICT length')
            if (major, minor) != (2, 0):
                raise UnsupportedVersion(f"Unsupported CFF2 version {major}.{minor}", 0)
            if header_size < HEADER_SIZE:
                raise FormatError(f"Header size {header_size} is smaller than {HEADER_SIZE}", 2)
            self._header = CFF2Header(major, minor, header_size, top_dict_length)
            logger.debug("CFF2 header: %s", self._header)
        return self._header

    @property
    def top_dict_offset(self) -> int:
        return self.read_header().header_size

    def read_top_dict(self) -> dict:
        if self._top_dict is None:
            header = self.read_header()
            start = header.header_size
            end = start + header.top_dict_length
            if end > len(self.data):
                raise UnexpectedEnd(
                    f"Top DICT of {header.top_dict_length} bytes runs past the end of the table", start)
            self._top_dict = parse_dict_data(self.data[start:end])
            logger.debug("Top DICT at %d (%d bytes): %d entries",
                         start, header.top_dict_length, len(self._top_dict))
        return self._top_dict

    def _top_int(self, op, index: int = 0) -> int | None:
        operands = self.read_top_dict().get(op)
        if not operands or len(operands) <= index:
            return None
        return int(resolve_value(operands[index], ()))

    @property
    def charstrings_offset(self) -> int:
        offset = self._top_int(OP_CHARSTRINGS)
        if offset is None:
            raise FormatError("Top DICT has no CharStrings offset")
        return offset

    @property
    def private_size(self) -> int | None:
        return self._top_int(OP_PRIVATE, 0)

    @property
    def private_offset(self) -> int | None:
        return self._top_int(OP_PRIVATE, 1)

    @property
    def vstore_offset(self) -> int | None:
        return self._top_int(OP_VSTORE)

    @property
    def max_stack(self) -> int:
        value = self._top_int(OP_MAXSTACK)
        return value if value is not None else DEFAULT_MAX_STACK

    def has_font_dicts(self) -> bool:
        """True for fonts with FDArray / FDSelect (several Private DICTs)."""
        top = self.read_top_dict()
        return OP_FDARRAY in top or OP_FDSELECT in top

    def read_global_subrs(self) -> list[bytes]:
        """Global Subr INDEX, or [] when another section starts after the Top DICT."""
        if self._global_subrs is None:
            header = self.read_header()
            start = header.header_size + header.top_dict_length
            others = {self.charstrings_offset, self.private_offset, self.vstore_offset}
            if start in others or start >= len(self.data):
                self._global_subrs = []
                self._global_subrs_span = None
            else:
                items, _, end = parse_index(self.data, start)
                self._global_subrs = [bytes(item) for item in items]
                self._global_subrs_span = (start, end - start)
                logger.debug("Global Subr INDEX at %d: %d subroutines", start, len(items))
        return self._global_subrs

    def read_charstrings(self, offset: int | None = None) -> CharStringsIndex:
        if offset is not None and offset != self.charstrings_offset:
            items, off_size, end = parse_index(self.data, offset)
            return CharStringsIndex(tuple(bytes(i) for i in items), offset, end - offset, off_size)
        if self._charstrings is None:
            start = self.charstrings_offset
            items, off_size, end = parse_index(self.data, start)
            self._charstrings = CharStringsIndex(
                tuple(bytes(i) for i in items), start, end - start, off_size)
            logger.debug("CharStrings INDEX at %d: %d glyphs", start, len(items))
        return self._charstrings

    def read_private_dict(self, size: int | None = None, offset: int | None = None) -> dict:
        """Private DICT with blend groups in place; {} when the font has none."""
        explicit = size is not None or offset is not None
        if not explicit and self._private_dict is not None:
            return self._private_dict

        size = self.private_size if size is None else size
        offset = self.private_offset if offset is None else offset
        if size is None or offset is None:
            result = {}
        else:
            if offset < 0 or size < 0 or offset + size > len(self.data):
                raise UnexpectedEnd(f"Private DICT of {size} bytes runs past the end of the table", offset)
            axis_count = self.axis_count or None
            result = parse_dict_data(self.data[offset:offset + size], axis_count)

        if not explicit:
            self._private_dict = result
            self._private_span = (offset, size) if size is not None and offset is not None else None
            logger.debug("Private DICT at %s (%s bytes): %d entries", offset, size, len(result))
        return result

    @property
    def local_subrs_offset(self) -> int | None:
        private = self.read_private_dict()
        operands = private.get(OP_SUBRS)
        if not operands or self.private_offset is None:
            return None
        return self.private_offset + int(resolve_value(operands[0], ()))

    def read_local_subrs(self) -> list[bytes]:
        if self._local_subrs is None:
            start = self.local_subrs_offset
            if start is None:
                self._local_subrs = []
                self._local_subrs_span = None
            else:
                items, _, end = parse_index(self.data, start)
                self._local_subrs = [bytes(item) for item in items]
                self._local_subrs_span = (start, end - start)
                logger.debug("Local Subr INDEX at %d: %d subroutines", start, len(items))
        return self._local_subrs

    def read_variation_store(self) -> VariationStore | None:
        """Decoded Variation Store, or None when the Top DICT has no vstore."""
        if not self._store_loaded:
            offset = self.vstore_offset
            if offset is not None:
                self._store = VariationStore.decode(self.data, offset)
                logger.debug("Variation Store: %r", self._store)
            self._store_loaded = True
        return self._store

    def load(self) -> TableReader:
        """Decode every section now."""
        self.read_header()
        self.read_top_dict()
        self.read_variation_store()
        self.read_global_subrs()
        self.read_charstrings()
        self.read_private_dict()
        self.read_local_subrs()
        return self

    @property
    def global_subrs_span(self) -> tuple[int, int] | None:
        self.read_global_subrs()
        return self._global_subrs_span

    @property
    def private_span(self) -> tuple[int, int] | None:
        self.read_private_dict()
        return self._private_span

    @property
    def local_subrs_span(self) -> tuple[int, int] | None:
        self.read_local_subrs()
        return self._local_subrs_span

    # -------------------------------------------------------------------
    # Font-level facts
    # -------------------------------------------------------------------

    @property
    def axis_count(self) -> int:
        store = self.read_variation_store()
        if store is not None and store.axis_count:
            return store.axis_count
        return len(self.axis_tags)

    @property
    def glyph_count(self) -> int:
        return len(self.read_charstrings())

    @property
    def variation_store(self) -> VariationStore | None:
        return self.read_variation_store()

    def charstring(self, glyph_id: int) -> bytes:
        charstrings = self.read_charstrings()
        if not 0 <= glyph_id < len(charstrings):
            raise IndexError(f"Glyph id {glyph_id} out of range ({len(charstrings)} glyphs)")
        return charstrings[glyph_id]

    def _default_width(self) -> float | None:
        operands = self.read_private_dict().get(OP_DEFAULT_WIDTH_X)
        if not operands:
            return None
        return resolve_value(operands[0], ())

    # -------------------------------------------------------------------
    # Glyph decoding
    # -------------------------------------------------------------------

    def interpreter(self, scalars=None) -> CharStringInterpreter:
        return CharStringInterpreter(
            num_axes=self.axis_count,
            global_subrs=self.read_global_subrs(),
            local_subrs=self.read_local_subrs(),
            default_width=self._default_width(),
            max_stack=self.max_stack,
            scalars=scalars,
        )

    def decode_glyph(self, glyph_id: int, scalars=None, coordinates=None) -> DecodedCharString:
        """Interpret one glyph.

        Args:
            glyph_id: glyph index into the CharStrings INDEX
            scalars: optional scalar vector (see blend_scalars) or vsindex
                -> vector callable; blended values are resolved instead of
                left at their base
            coordinates: design coordinates to instance at; the scalars of
                whichever block the glyph selects with vsindex are used.
                Takes precedence over scalars.

        Raises:
            InterpretationError: the glyph's program is malformed
        """
        if coordinates is not None:
            scalars = self.scalar_source(coordinates)
        return self.interpreter(scalars).run(self.charstring(glyph_id), glyph_id)

    def decode_glyphs(self, glyph_ids: Iterable[int] | None = None, on_error: str = 'raise',
                      max_workers: int | None = None, scalars=None,
                      coordinates=None) -> dict[int, DecodedCharString]:
        """Interpret many glyphs.

        Args:
            glyph_ids: glyphs to decode (default: all)
            on_error: 'raise' propagates the first InterpretationError,
                'skip' leaves failing glyphs out, 'empty' maps them to an
                empty DecodedCharString
            max_workers: run on a thread pool when greater than 1
            scalars, coordinates: as for decode_glyph

        Returns:
            dict of glyph id -> DecodedCharString in glyph id order
        """
        if on_error not in ON_ERROR_MODES:
            raise ValueError(f"on_error must be one of {ON_ERROR_MODES}, got {on_error!r}")
        self.load()
        if glyph_ids is None:
            glyph_ids = range(self.glyph_count)
        glyph_ids = list(glyph_ids)
        if coordinates is not None:
            scalars = self.scalar_source(coordinates)

        def work(gid):
            try:
                return gid, self.decode_glyph(gid, scalars), None
            except InterpretationError as exc:
                if on_error == 'raise':
                    raise
                return gid, None, exc

        if max_workers is not None and max_workers > 1 and len(glyph_ids) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                outcomes = list(executor.map(work, glyph_ids))
        else:
            outcomes = [work(gid) for gid in glyph_ids]

        results = {}
        for gid, decoded, exc in sorted(outcomes, key=lambda o: o[0]):
            if exc is None:
                results[gid] = decoded
            elif on_error == 'skip':
                logger.warning("Skipping glyph %d: %s", gid, exc.reason)
            else:
                logger.warning("Substituting empty outline for glyph %d: %s", gid, exc.reason)
                results[gid] = DecodedCharString(glyph_id=gid)
        return results

    # -------------------------------------------------------------------
    # Variation
    # -------------------------------------------------------------------

    def coordinate(self, values: Mapping[str, float] | None = None) -> DesignCoordinate:
        """DesignCoordinate over this font's axis tags."""
        if not self.axis_tags:
            raise ValueError("Reader was created without axis tags")
        return DesignCoordinate(self.axis_tags, values)

    def _coordinates(self, coordinates):
        if isinstance(coordinates, Mapping):
            return self.coordinate(coordinates)
        return coordinates

    @property
    def scalar_calculator(self) -> RegionScalarCalculator:
        if self._calculator is None:
            self._calculator = RegionScalarCalculator(
                self.read_variation_store(), ScalarCache(self._scalar_cache_size))
        return self._calculator

    def region_scalars(self, coordinates) -> tuple[float, ...]:
        """One scalar per region at coordinates (cached)."""
        return self.scalar_calculator.scalars(self._coordinates(coordinates))

    def blend_scalars(self, coordinates, vsindex: int = 0) -> list[float]:
        """Axis-aligned scalar vector for resolving bytecode blend groups."""
        return _blend_scalars(self.read_variation_store(), self._coordinates(coordinates), vsindex)

    def scalar_source(self, coordinates):
        """Callable mapping a vsindex to its blend scalar vector at coordinates."""
        coordinates = self._coordinates(coordinates)
        vectors = {}

        def source(vsindex):
            if vsindex not in vectors:
                vectors[vsindex] = self.blend_scalars(coordinates, vsindex)
            return vectors[vsindex]
        return source

    # -------------------------------------------------------------------
    # Layout
    # -------------------------------------------------------------------

    def section_map(self) -> dict[str, tuple[int, int]]:
        """(offset, length) of every section present in the table."""
        self.load()
        header = self.read_header()
        sections = {
            'header': (0, header.header_size),
            'top_dict': (header.header_size, header.top_dict_length),
        }
        if self.global_subrs_span is not None:
            sections['global_subrs'] = self.global_subrs_span
        charstrings = self.read_charstrings()
        sections['charstrings'] = (charstrings.offset, charstrings.length)
        if self.private_span is not None:
            sections['private_dict'] = self.private_span
        if self.local_subrs_span is not None:
            sections['local_subrs'] = self.local_subrs_span
        store = self.read_variation_store()
        if store is not None:
            sections['variation_store'] = (store.offset, store.length)
        return sections

    def __repr__(self) -> str:
        return f"TableReader({len(self.data)} bytes)"
