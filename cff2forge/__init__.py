# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
CFF2Forge - Public API

Parse, interpret and rebuild the CFF2 table of variable OpenType fonts.

**Internal Module Organization:**
- core/binary.py, core/encoding.py: INDEX and number codecs
- core/dict_data.py: DICT codec with blend support
- core/charstring.py: CharString interpreter
- core/hints.py: hint payloads and injection
- core/table_reader.py, core/table_builder.py: table codec
- variation/: Variation Store, region scalars and blend evaluation

**Usage:**
```python
from cff2forge import TableReader, TableBuilder, HintSet

reader = TableReader(cff2_bytes, axis_tags=['wght'])
glyph = reader.decode_glyph(3)
scalars = reader.blend_scalars({'wght': 0.5})
values = glyph.resolved_blends(scalars)

hinted = TableBuilder(reader, HintSet.from_mapping(payload)).build()
```
"""

from .core.charstring import (
    BlendCapture, CharStringInterpreter, CharStringOperation, DecodedCharString,
    EscapeOperator, Operator, PathCommand, interpret_charstring,
)
from .core.dict_data import parse_dict_data, serialize_dict
from .core.error import (
    AxisCountMismatch, CFF2Error, ConsistencyError, FormatError, InconsistentAxisCount,
    InterpretationError, RegionOrderError, StackUnderflow, SubroutineError,
    TruncatedCharString, UnexpectedEnd, UnsupportedVersion,
)
from .core.hints import BlendArray, HintDirective, HintInjector, HintSet
from .core.table_builder import TableBuilder, rebuild_table
from .core.table_reader import CFF2Header, CharStringsIndex, TableReader
from .variation.blend import BlendGroup, blend_scalars, resolve, resolve_all, resolve_item
from .variation.regions import (
    DesignCoordinate, RegionScalarCalculator, ScalarCache, region_scalar, region_scalars,
)
from .variation.store import ItemVariationData, Region, RegionAxis, VariationStore

__version__ = '0.1.0'
