# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

import pytest

from builders import (
    GLOBAL_SUBRS, GLYPH_BLEND, GLYPH_MASKS, GLYPH_NOTDEF, GLYPH_SUBRS, LOCAL_SUBRS, PRIVATE,
    make_table, store_bytes,
)
from cff2forge.core.table_reader import TableReader


@pytest.fixture
def one_axis_store():
    """One region peaking at wght=1.0, one block with one item."""
    return store_bytes([[(0.0, 1.0, 1.0)]], [([0], [[10]], 0)])


@pytest.fixture
def two_axis_store():
    return store_bytes(
        [[(0.0, 1.0, 1.0), (-1.0, 0.0, 1.0)],
         [(-1.0, 0.0, 1.0), (0.0, 1.0, 1.0)]],
        [([0, 1], [[300, -5], [-200, 7]], 1)],
    )


@pytest.fixture
def table_bytes(one_axis_store):
    return make_table(
        [GLYPH_NOTDEF, GLYPH_BLEND, GLYPH_SUBRS, GLYPH_MASKS],
        global_subrs=GLOBAL_SUBRS,
        local_subrs=LOCAL_SUBRS,
        private=PRIVATE,
        store=one_axis_store,
    )


@pytest.fixture
def reader(table_bytes):
    return TableReader(table_bytes, axis_tags=['wght'])
