# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

import pytest

from cff2forge.core.binary import parse_index, read_card16, read_f2dot14
from cff2forge.core.encoding import (
    build_index, encode_charstring_number, encode_dict_number, encode_dict_real, encode_operator,
)
from cff2forge.core.error import FormatError, UnexpectedEnd


class TestCharStringNumbers:

    @pytest.mark.parametrize('value, encoded', [
        (0, b'\x8b'),
        (107, bytes([246])),
        (-107, bytes([32])),
        (108, bytes([247, 0])),
        (1131, bytes([250, 255])),
        (-108, bytes([251, 0])),
        (-1131, bytes([254, 255])),
        (2000, b'\x1c\x07\xd0'),
        (5.0, bytes([144])),
        (1.5, b'\xff\x00\x01\x80\x00'),
        (-0.5, b'\xff\xff\xff\x80\x00'),
    ])
    def test_shortest_form(self, value, encoded):
        assert encode_charstring_number(value) == encoded


class TestDictNumbers:

    def test_fixed_width(self):
        assert encode_dict_number(100, fixed_width=True) == b'\x1d\x00\x00\x00\x64'
        with pytest.raises(FormatError):
            encode_dict_number(1.5, fixed_width=True)

    def test_large_integer(self):
        assert encode_dict_number(100000) == b'\x1d\x00\x01\x86\xa0'

    @pytest.mark.parametrize('value, encoded', [
        (0.5, bytes([30, 0x0a, 0x5f])),
        (-2.25, bytes([30, 0xe2, 0xa2, 0x5f])),
        (1e-05, bytes([30, 0x1c, 0x05, 0xff])),
    ])
    def test_real(self, value, encoded):
        assert encode_dict_real(value) == encoded
        assert encode_dict_number(value) == encoded

    def test_operators(self):
        assert encode_operator(17) == b'\x11'
        assert encode_operator((12, 9)) == b'\x0c\x09'


class TestIndex:

    def test_empty(self):
        assert build_index([]) == b'\x00\x00'
        assert parse_index(b'\x00\x00', 0) == ([], 0, 2)

    def test_build_and_parse(self):
        data = build_index([b'ab', b'c'])
        assert data == b'\x00\x02\x01\x01\x03\x04abc'
        assert parse_index(data, 0) == ([b'ab', b'c'], 1, len(data))

    def test_off_size_widened(self):
        data = build_index([b'x' * 300], off_size=1)
        assert data[2] == 2

    def test_requested_off_size_kept(self):
        data = build_index([b'a'], off_size=3)
        assert data[:3] == b'\x00\x01\x03'
        items, off_size, _ = parse_index(data, 0)
        assert items == [b'a']
        assert off_size == 3

    def test_bad_first_offset(self):
        with pytest.raises(FormatError):
            parse_index(b'\x00\x01\x01\x02\x03ab', 0)

    def test_bad_off_size(self):
        with pytest.raises(FormatError):
            parse_index(b'\x00\x01\x05', 0)

    def test_data_past_end(self):
        with pytest.raises(UnexpectedEnd):
            parse_index(b'\x00\x01\x01\x01\x09ab', 0)

    def test_decreasing_offsets(self):
        with pytest.raises(FormatError):
            parse_index(b'\x00\x02\x01\x01\x03\x02abc', 0)


class TestReaders:

    @pytest.mark.parametrize('raw, value', [
        (b'\x40\x00', 1.0), (b'\xc0\x00', -1.0), (b'\x20\x00', 0.5), (b'\x00\x00', 0.0),
    ])
    def test_f2dot14(self, raw, value):
        assert read_f2dot14(raw, 0) == (value, 2)

    def test_truncated(self):
        with pytest.raises(UnexpectedEnd) as excinfo:
            read_card16(b'\x00', 0, 'count')
        assert excinfo.value.offset == 0
        assert 'count' in str(excinfo.value)
