# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

import pytest

from builders import GLYPH_BLEND, GLYPH_MASKS, GLYPH_SUBRS, GLOBAL_SUBRS, LOCAL_SUBRS, charstring
from cff2forge.core.charstring import Operator, interpret_charstring
from cff2forge.core.error import AxisCountMismatch, FormatError
from cff2forge.core.hints import BlendArray, HintDirective, HintInjector, HintSet, resize_mask
from cff2forge.variation.blend import BlendGroup


def decode(data, **kwargs):
    kwargs.setdefault('num_axes', 1)
    return interpret_charstring(data, global_subrs=GLOBAL_SUBRS, local_subrs=LOCAL_SUBRS, **kwargs)


class TestDirectives:

    def test_stem_defaults(self):
        d = HintDirective.stem(10, 5)
        assert d.data == {'position': 10.0, 'width': 5.0, 'orientation': 'horizontal'}
        assert d.stems() == [('horizontal', 10.0, 5.0)]

    def test_from_mapping_with_blend(self):
        d = HintDirective.from_mapping({
            'type': 'stem', 'orientation': 'vertical',
            'position': {'base': 100, 'deltas': [10]}, 'width': 20,
        })
        assert d.data['position'] == BlendGroup(100.0, (10.0,), 1)
        assert d.data['orientation'] == 'vertical'

    def test_stem3(self):
        d = HintDirective('stem3', {'stems': [{'position': p, 'width': 10} for p in (0, 100, 200)]})
        assert [s[1] for s in d.stems()] == [0.0, 100.0, 200.0]

    def test_mask(self):
        d = HintDirective('counter', {'mask': [0xC0]})
        assert d.data['mask'] == b'\xc0'
        assert d.stems() == []

    @pytest.mark.parametrize('kind, data', [
        ('serif', {}),
        ('stem', {'position': 1}),
        ('stem', {'position': 1, 'width': 2, 'orientation': 'diagonal'}),
        ('stem', {'position': 'x', 'width': 2}),
        ('stem', {'position': {'base': 1}, 'width': 2}),
        ('stem3', {'stems': [{'position': 0, 'width': 1}]}),
        ('hint_replacement', {}),
    ])
    def test_invalid(self, kind, data):
        with pytest.raises(ValueError):
            HintDirective(kind, data)


class TestHintSet:

    def test_from_mapping(self):
        hints = HintSet.from_mapping({
            'glyphs': {'2': [{'type': 'stem', 'position': 10, 'width': 5}]},
            'private': {'blue_values': [-20, 0], 'StdHW': {'base': 50, 'deltas': [5]}},
        })
        assert hints.hinted_glyph_ids() == [2]
        assert hints.get_glyph_hints(2)[0].kind == 'stem'
        assert hints.get_glyph_hints(7) == []
        assert hints.private_dict_hints == {6: [-20.0, 0.0], 10: [BlendGroup(50.0, (5.0,), 1)]}
        assert hints.has_font_level_hints()
        assert not hints.is_empty()

    def test_empty(self):
        assert HintSet().is_empty()
        assert HintSet({3: []}).is_empty()

    def test_structural_keys_rejected(self):
        with pytest.raises(ValueError):
            HintSet(private_dict_hints={'Subrs': 10})
        with pytest.raises(KeyError):
            HintSet(private_dict_hints={'NotAKey': 1})

    def test_blend_array(self):
        hints = HintSet.from_mapping({'private': {'StemSnapH': {'blend_array': [40, 4, 60, 6]}}})
        value = hints.private_dict_hints[(12, 12)]
        assert value == BlendArray((40.0, 4.0, 60.0, 6.0))
        assert value.groups(1) == [BlendGroup(40.0, (4.0,), 1), BlendGroup(60.0, (6.0,), 1)]
        with pytest.raises(ValueError):
            value.groups(2)


class TestResizeMask:

    @pytest.mark.parametrize('mask, old, added, active, expected', [
        (b'\xc0', 2, 1, True, b'\xe0'),
        (b'\x80', 2, 1, True, b'\xa0'),
        (b'\xc0', 2, 1, False, b'\xc0'),
        (b'\xff', 8, 1, False, b'\xff\x00'),
        (b'\xff', 8, 2, True, b'\xff\xc0'),
        (b'', 0, 3, True, b'\xe0'),
    ])
    def test_resize(self, mask, old, added, active, expected):
        assert resize_mask(mask, old, added, active) == expected


class TestInjector:

    def test_no_directives_keeps_program(self):
        decoded = decode(GLYPH_SUBRS)
        assert HintInjector(1).inject(decoded, []) == GLYPH_SUBRS

    def test_stems_before_first_path_op(self):
        directives = [HintDirective.stem(300, 20), HintDirective.stem(10, 5)]
        out = HintInjector(1).inject(decode(GLYPH_SUBRS), directives)
        expected = charstring(100, 50, 'hstem', 10, 5, 285, 20, 'hstem', 0, 0, 'rmoveto',
                              -107, 'callgsubr', -107, 'callsubr', -50, 0, 'rlineto', 'endchar')
        assert out == expected
        redecoded = decode(out)
        assert redecoded.stem_hint_count == 3
        assert redecoded.path == decode(GLYPH_SUBRS).path

    def test_existing_masks_are_resized(self):
        out = HintInjector(1).inject(decode(GLYPH_MASKS), [HintDirective.stem(300, 20, 'vertical')])
        expected = charstring(100, 50, 'hstemhm', 200, 40, 'hstemhm', 300, 20, 'vstemhm',
                              'hintmask', b'\xe0', 0, 0, 'rmoveto', 10, 0, 'rlineto',
                              'hintmask', b'\xa0', 0, 10, 'rlineto', 'endchar')
        assert out == expected

    def test_counter_masks_leave_new_stems_off(self):
        program = charstring(100, 50, 'hstemhm', 'cntrmask', b'\x80', 0, 0, 'rmoveto', 'endchar')
        out = HintInjector(1).inject(decode(program), [HintDirective.stem(300, 20)])
        assert out == charstring(100, 50, 'hstemhm', 300, 20, 'hstemhm', 'cntrmask', b'\x80',
                                 0, 0, 'rmoveto', 'endchar')

    def test_implicit_vstems_become_explicit(self):
        program = charstring(100, 50, 'hstemhm', 10, 20, 'hintmask', b'\xc0', 0, 0, 'rmoveto', 'endchar')
        out = HintInjector(1).inject(decode(program), [HintDirective.stem(300, 20)])
        assert out == charstring(100, 50, 'hstemhm', 10, 20, 'vstemhm', 300, 20, 'hstemhm',
                                 'hintmask', b'\xe0', 0, 0, 'rmoveto', 'endchar')
        assert decode(out).stem_hint_count == 3

    def test_blended_stem(self):
        position = BlendGroup(100, (10,), 1)
        out = HintInjector(1).inject(decode(GLYPH_BLEND), [HintDirective.stem(position, 50)])
        assert out == charstring(100, 10, 50, 0, 2, 1, 'blend', 'hstem') + GLYPH_BLEND
        redecoded = decode(out)
        assert redecoded.stem_hint_count == 1
        assert [c.group for c in redecoded.blends[:2]] == [
            BlendGroup(100, (10,), 1), BlendGroup(50, (0,), 1)]
        assert redecoded.path == decode(GLYPH_BLEND).path

    def test_mask_directive_switches_to_hm_operators(self):
        directives = [HintDirective.stem(300, 20), HintDirective('hint_replacement', {'mask': [0x40]})]
        out = HintInjector(1).inject(decode(GLYPH_SUBRS), directives)
        assert out.startswith(charstring(100, 50, 'hstem', 300, 20, 'hstemhm', 'hintmask', b'\x40'))
        assert decode(out).stem_hint_count == 2

    def test_axis_count_checked(self):
        stem = HintDirective.stem(BlendGroup(100, (1, 2), 2), 50)
        with pytest.raises(AxisCountMismatch):
            HintInjector(1).inject(decode(GLYPH_BLEND), [stem])

    def test_masks_inside_subroutines_cannot_grow(self):
        stems = [v for i in range(8) for v in (10, 10)]
        lsubrs = [charstring('hintmask', b'\xff', 'return')]
        program = charstring(*stems, 'hstemhm', -107, 'callsubr', 0, 0, 'rmoveto', 'endchar')
        decoded = interpret_charstring(program, local_subrs=lsubrs)
        assert decoded.subroutine_masks == 1
        with pytest.raises(FormatError):
            HintInjector(0).inject(decoded, [HintDirective.stem(500, 20)])

    def test_blended_moveto_keeps_its_operands(self):
        program = charstring(10, 1, 20, 2, 2, 1, 'blend', 'rmoveto', 5, 0, 'rlineto', 'endchar')
        out = HintInjector(1).inject(decode(program), [HintDirective.stem(300, 20)])
        assert out == charstring(300, 20, 'hstem') + program
        redecoded = decode(out)
        assert redecoded.stem_hint_count == 1
        assert redecoded.commands() == decode(program).commands()

    def test_blended_implicit_vstems_become_explicit(self):
        program = charstring(100, 50, 'hstemhm', 10, 1, 30, 2, 2, 1, 'blend',
                             'hintmask', b'\xc0', 0, 0, 'rmoveto', 'endchar')
        out = HintInjector(1).inject(decode(program), [HintDirective.stem(300, 20)])
        assert out == charstring(100, 50, 'hstemhm', 10, 1, 30, 2, 2, 1, 'blend', 'vstemhm',
                                 300, 20, 'hstemhm', 'hintmask', b'\xe0', 0, 0, 'rmoveto', 'endchar')
        redecoded = decode(out)
        assert redecoded.stem_hint_count == 3
        assert [op.kind for op in redecoded.operations if op.is_stem] == [
            Operator.HSTEMHM, Operator.VSTEMHM, Operator.HSTEMHM]

    def test_stems_precede_drawing_subroutine(self):
        lsubrs = [charstring(0, 0, 'rmoveto', 'return')]
        program = charstring(-107, 'callsubr', 10, 0, 'rlineto', 'endchar')
        decoded = interpret_charstring(program, local_subrs=lsubrs)
        out = HintInjector(0).inject(decoded, [HintDirective.stem(300, 20)])
        assert out == charstring(300, 20, 'hstem') + program
        redecoded = interpret_charstring(out, local_subrs=lsubrs)
        assert redecoded.stem_hint_count == 1
        assert redecoded.commands() == decoded.commands()

    def test_operands_left_by_subroutine_stay_with_their_operator(self):
        lsubrs = [charstring(0, 5, 'return')]
        program = charstring(-107, 'callsubr', 'rmoveto', 10, 0, 'rlineto', 'endchar')
        decoded = interpret_charstring(program, local_subrs=lsubrs)
        out = HintInjector(0).inject(decoded, [HintDirective.stem(300, 20)])
        assert out == charstring(300, 20, 'hstem') + program
        assert interpret_charstring(out, local_subrs=lsubrs).commands()[0] == ('move_to', 0.0, 5.0)
