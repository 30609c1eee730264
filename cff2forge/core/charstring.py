# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

"""
CFF2 CharString Interpreter

Executes Type 2 / CFF2 charstrings (Adobe TN#5177) and produces a glyph
outline as absolute path commands instead of drawing it.

CFF2 differs from CFF Type 2 in a few ways that matter here:
- No width operand and no endchar-based seac
- The blend operator (16) carries per-axis deltas for variable values
- vsindex (15) selects the ItemVariationData block for later blends

Blend is captured, not resolved: each (base, deltas) group is recorded
with the stack slot it came from, and the base value is pushed back so
path operators see a plain number. Given scalars, the interpreter
pushes the resolved value instead and still records the group. Scalars
are either one vector or a callable mapping a vsindex to the vector of
that ItemVariationData block; the callable is asked again whenever
vsindex runs.

Subroutines run against the same stack, current point and stem count as
their caller. Contours are not closed explicitly; the consumer closes
them at each moveto and at the end of the glyph.

Based on: Adobe Technical Note #5177 - The Type 2 Charstring Format
"""

import math
import struct
from dataclasses import dataclass, field
from enum import IntEnum

from .encoding import encode_operator
from .error import (
    AxisCountMismatch, InterpretationError, StackUnderflow, SubroutineError,
    TruncatedCharString,
)
from ..variation.blend import BlendGroup, resolve


class Operator(IntEnum):
    """One-byte CharString operators."""
    HSTEM = 1
    VSTEM = 3
    VMOVETO = 4
    RLINETO = 5
    HLINETO = 6
    VLINETO = 7
    RRCURVETO = 8
    CALLSUBR = 10
    RETURN = 11
    ESCAPE = 12
    ENDCHAR = 14
    VSINDEX = 15
    BLEND = 16
    HSTEMHM = 18
    HINTMASK = 19
    CNTRMASK = 20
    RMOVETO = 21
    HMOVETO = 22
    VSTEMHM = 23
    RCURVELINE = 24
    RLINECURVE = 25
    VVCURVETO = 26
    HHCURVETO = 27
    CALLGSUBR = 29
    VHCURVETO = 30
    HVCURVETO = 31


class EscapeOperator(IntEnum):
    """Two-byte (12, n) CharString operators."""
    DOTSECTION = 0
    AND = 3
    OR = 4
    NOT = 5
    ABS = 9
    ADD = 10
    SUB = 11
    DIV = 12
    NEG = 14
    EQ = 15
    DROP = 18
    PUT = 20
    GET = 21
    IFELSE = 22
    RANDOM = 23
    MUL = 24
    SQRT = 26
    DUP = 27
    EXCH = 28
    INDEX = 29
    ROLL = 30
    HFLEX = 34
    FLEX = 35
    HFLEX1 = 36
    FLEX1 = 37


STEM_OPERATORS = frozenset({Operator.HSTEM, Operator.VSTEM, Operator.HSTEMHM, Operator.VSTEMHM})
MASK_OPERATORS = frozenset({Operator.HINTMASK, Operator.CNTRMASK})
PATH_OPERATORS = frozenset({
    Operator.RMOVETO, Operator.HMOVETO, Operator.VMOVETO,
    Operator.RLINETO, Operator.HLINETO, Operator.VLINETO,
    Operator.RRCURVETO, Operator.RCURVELINE, Operator.RLINECURVE,
    Operator.VVCURVETO, Operator.HHCURVETO, Operator.VHCURVETO, Operator.HVCURVETO,
    (12, EscapeOperator.HFLEX), (12, EscapeOperator.FLEX),
    (12, EscapeOperator.HFLEX1), (12, EscapeOperator.FLEX1),
})

DEFAULT_MAX_STACK = 513
TRANSIENT_ARRAY_SIZE = 32


def decode_operator(code):
    """Map a raw operator code to its enum member, or None if unsupported."""
    if isinstance(code, tuple):
        try:
            return EscapeOperator(code[1])
        except ValueError:
            return None
    try:
        return Operator(code)
    except ValueError:
        return None


def _subr_bias(n_subrs: int) -> int:
    """Calculate subroutine bias (Adobe Technical Note #5177)."""
    if n_subrs < 1240:
        return 107
    elif n_subrs < 33900:
        return 1131
    else:
        return 32768


def scalars_for_vsindex(scalars, vsindex: int):
    """Scalar vector for vsindex from a vector or a vsindex -> vector callable."""
    if callable(scalars):
        return scalars(vsindex)
    return scalars


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PathCommand:
    """One outline segment with absolute points.

    move_to and line_to carry one point, curve_to carries the two control
    points followed by the end point.
    """
    kind: str
    points: tuple[tuple[float, float], ...]

    @property
    def end(self) -> tuple[float, float]:
        return self.points[-1]

    def as_tuple(self) -> tuple:
        flat = [coord for point in self.points for coord in point]
        return (self.kind, *flat)


@dataclass(frozen=True)
class BlendCapture:
    """A blend group and where it was produced."""
    group: BlendGroup
    stack_index: int    # Stack slot the base (or resolved value) went to
    byte_offset: int    # Offset of the blend operator in its program
    depth: int = 0      # Subroutine nesting level, 0 = glyph program


@dataclass(frozen=True)
class CharStringOperation:
    """One operator of the glyph program with the operand bytes before it.

    operand_bytes + encoded operator + mask reproduces the source bytes.
    operator is None for trailing operands with no operator after them.
    draws is set when path commands were emitted while the operator ran,
    including from inside a called subroutine.
    """
    operator: int | tuple | None
    operand_bytes: bytes
    mask: bytes = b''
    stem_count: int = 0     # Stems declared once this operator has run
    offset: int = 0
    stack_depth: int = 0    # Operands left on the stack afterwards
    draws: bool = False

    def encode(self) -> bytes:
        op = b'' if self.operator is None else encode_operator(self.operator)
        return self.operand_bytes + op + self.mask

    @property
    def kind(self):
        if self.operator is None:
            return None
        return decode_operator(self.operator)

    @property
    def is_path(self) -> bool:
        if isinstance(self.operator, tuple):
            return self.operator in PATH_OPERATORS
        return self.kind in PATH_OPERATORS

    @property
    def is_mask(self) -> bool:
        return not isinstance(self.operator, tuple) and self.kind in MASK_OPERATORS

    @property
    def is_stem(self) -> bool:
        return not isinstance(self.operator, tuple) and self.kind in STEM_OPERATORS


@dataclass
class DecodedCharString:
    """Outline, blend recipe and hint bookkeeping of one glyph."""
    path: list[PathCommand] = field(default_factory=list)
    blends: list[BlendCapture] = field(default_factory=list)
    advance_width: float | None = None
    stem_hint_count: int = 0
    vsindex: int = 0
    operations: list[CharStringOperation] = field(default_factory=list)
    subroutine_masks: int = 0   # hintmask/cntrmask executed inside subroutines
    glyph_id: int | None = None

    def commands(self) -> list[tuple]:
        return [cmd.as_tuple() for cmd in self.path]

    def resolved_blends(self, scalars) -> list[float]:
        """Blend groups resolved against a scalar vector.

        scalars may also be a callable taking a vsindex, as accepted by
        CharStringInterpreter; it is called with this glyph's vsindex.
        """
        vector = scalars_for_vsindex(scalars, self.vsindex)
        return [resolve(capture.group, vector) for capture in self.blends]

    @property
    def has_hint_masks(self) -> bool:
        return self.subroutine_masks > 0 or any(op.is_mask for op in self.operations)

    def encode(self) -> bytes:
        """Reassemble the glyph program from its recorded operations."""
        return b''.join(op.encode() for op in self.operations)


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------

class CharStringInterpreter:
    """CFF2 CharString execution engine.

    One instance can run many glyphs; each run() starts from a fresh
    state. Subroutine lists are only read, so an instance's inputs can be
    shared between threads as long as each thread uses its own
    interpreter.
    """
    MAX_SUBR_DEPTH = 10

    def __init__(self, num_axes: int = 0, global_subrs: list[bytes] | tuple = (),
                 local_subrs: list[bytes] | tuple = (), default_width: float | None = None,
                 max_stack: int = DEFAULT_MAX_STACK, scalars=None) -> None:
        self.num_axes = num_axes
        self.global_subrs = global_subrs
        self.local_subrs = local_subrs
        self.default_width = default_width
        self.max_stack = max_stack
        self.scalars = scalars

        self._dispatch = {
            Operator.HSTEM: self._op_stem,
            Operator.VSTEM: self._op_stem,
            Operator.HSTEMHM: self._op_stem,
            Operator.VSTEMHM: self._op_stem,
            Operator.RMOVETO: self._op_rmoveto,
            Operator.HMOVETO: self._op_hmoveto,
            Operator.VMOVETO: self._op_vmoveto,
            Operator.RLINETO: self._op_rlineto,
            Operator.HLINETO: self._op_hlineto,
            Operator.VLINETO: self._op_vlineto,
            Operator.RRCURVETO: self._op_rrcurveto,
            Operator.HHCURVETO: self._op_hhcurveto,
            Operator.VVCURVETO: self._op_vvcurveto,
            Operator.HVCURVETO: self._op_hvcurveto,
            Operator.VHCURVETO: self._op_vhcurveto,
            Operator.RCURVELINE: self._op_rcurveline,
            Operator.RLINECURVE: self._op_rlinecurve,
            Operator.VSINDEX: self._op_vsindex,
            Operator.BLEND: self._op_blend,
            (12, EscapeOperator.DOTSECTION): self._op_noop,
            (12, EscapeOperator.AND): self._op12_and,
            (12, EscapeOperator.OR): self._op12_or,
            (12, EscapeOperator.NOT): self._op12_not,
            (12, EscapeOperator.ABS): self._op12_abs,
            (12, EscapeOperator.ADD): self._op12_add,
            (12, EscapeOperator.SUB): self._op12_sub,
            (12, EscapeOperator.DIV): self._op12_div,
            (12, EscapeOperator.NEG): self._op12_neg,
            (12, EscapeOperator.EQ): self._op12_eq,
            (12, EscapeOperator.DROP): self._op12_drop,
            (12, EscapeOperator.PUT): self._op12_put,
            (12, EscapeOperator.GET): self._op12_get,
            (12, EscapeOperator.IFELSE): self._op12_ifelse,
            (12, EscapeOperator.RANDOM): self._op12_random,
            (12, EscapeOperator.MUL): self._op12_mul,
            (12, EscapeOperator.SQRT): self._op12_sqrt,
            (12, EscapeOperator.DUP): self._op12_dup,
            (12, EscapeOperator.EXCH): self._op12_exch,
            (12, EscapeOperator.INDEX): self._op12_index,
            (12, EscapeOperator.ROLL): self._op12_roll,
            (12, EscapeOperator.HFLEX): self._op12_hflex,
            (12, EscapeOperator.FLEX): self._op12_flex,
            (12, EscapeOperator.HFLEX1): self._op12_hflex1,
            (12, EscapeOperator.FLEX1): self._op12_flex1,
        }

    def _reset(self) -> None:
        self.stack = []
        self.x = 0.0
        self.y = 0.0
        self.stem_hint_count = 0
        self.vsindex = 0
        self.path = []
        self.blends = []
        self.operations = []
        self.subroutine_masks = 0
        self.transient_array = [0.0] * TRANSIENT_ARRAY_SIZE
        self.depth = 0
        self.ended = False
        self._op_offset = 0
        self._blend_scalars = scalars_for_vsindex(self.scalars, 0)

    def run(self, data: bytes, glyph_id: int | None = None) -> DecodedCharString:
        """Execute one glyph program.

        Raises:
            InterpretationError: bad bytecode in this glyph (recoverable)
            SubroutineError: missing or out-of-range subroutine (fatal)
            AxisCountMismatch: blend names a different axis count (fatal)
        """
        self._reset()
        try:
            self._execute_bytes(data)
        except InterpretationError as exc:
            if glyph_id is not None:
                exc.with_glyph(glyph_id)
            raise
        return DecodedCharString(
            path=self.path,
            blends=self.blends,
            advance_width=self.default_width,
            stem_hint_count=self.stem_hint_count,
            vsindex=self.vsindex,
            operations=self.operations,
            subroutine_masks=self.subroutine_masks,
            glyph_id=glyph_id,
        )

    # -------------------------------------------------------------------
    # Byte loop
    # -------------------------------------------------------------------

    def _push(self, value: float, offset: int) -> None:
        if len(self.stack) >= self.max_stack:
            raise InterpretationError(f"Operand stack exceeds {self.max_stack} entries", offset=offset)
        self.stack.append(value)

    def _execute_bytes(self, data: bytes) -> None:
        """Execute a charstring byte stream until its end, return or endchar."""
        i = 0
        length = len(data)
        segment_start = 0
        top_level = self.depth == 0

        while i < length:
            b0 = data[i]

            if b0 <= 27 or (29 <= b0 <= 31):
                # Operator (bytes 0-27, 29-31; byte 28 is a number)
                op_start = i
                if b0 == 12:
                    if i + 1 >= length:
                        raise TruncatedCharString("Truncated escape operator", offset=i)
                    code = (12, data[i + 1])
                    i += 2
                else:
                    code = b0
                    i += 1
                self._op_offset = op_start
                path_before = len(self.path)

                mask_start = i
                if b0 == Operator.HINTMASK or b0 == Operator.CNTRMASK:
                    i = self._handle_hint_mask(data, i)
                elif b0 == Operator.RETURN:
                    if top_level:
                        # Harmless in a glyph program; nothing to return from
                        self.stack.clear()
                    else:
                        return
                elif b0 == Operator.ENDCHAR:
                    self.stack.clear()
                    self.ended = True
                elif b0 == Operator.CALLSUBR:
                    self._call_subr(self.local_subrs, 'local')
                elif b0 == Operator.CALLGSUBR:
                    self._call_subr(self.global_subrs, 'global')
                else:
                    self._execute_operator(code)

                if top_level:
                    self.operations.append(CharStringOperation(
                        operator=code,
                        operand_bytes=bytes(data[segment_start:op_start]),
                        mask=bytes(data[mask_start:i]),
                        stem_count=self.stem_hint_count,
                        offset=segment_start,
                        stack_depth=len(self.stack),
                        draws=len(self.path) > path_before,
                    ))
                    segment_start = i
                if self.ended:
                    return

            elif 32 <= b0 <= 246:
                self._push(float(b0 - 139), i)
                i += 1

            elif 247 <= b0 <= 250:
                if i + 1 >= length:
                    raise TruncatedCharString("Truncated 2-byte number", offset=i)
                self._push(float((b0 - 247) * 256 + data[i + 1] + 108), i)
                i += 2

            elif 251 <= b0 <= 254:
                if i + 1 >= length:
                    raise TruncatedCharString("Truncated 2-byte number", offset=i)
                self._push(float(-(b0 - 251) * 256 - data[i + 1] - 108), i)
                i += 2

            elif b0 == 255:
                # 16.16 fixed-point number
                if i + 4 >= length:
                    raise TruncatedCharString("Truncated 16.16 fixed number", offset=i)
                raw = struct.unpack_from('>i', data, i + 1)[0]
                self._push(raw / 65536.0, i)
                i += 5

            else:
                # 28: 3-byte signed integer
                if i + 2 >= length:
                    raise TruncatedCharString("Truncated 16-bit number", offset=i)
                self._push(float(struct.unpack_from('>h', data, i + 1)[0]), i)
                i += 3

        if top_level and segment_start < length:
            self.operations.append(CharStringOperation(
                operator=None,
                operand_bytes=bytes(data[segment_start:length]),
                stem_count=self.stem_hint_count,
                offset=segment_start,
                stack_depth=len(self.stack),
            ))

    def _execute_operator(self, code) -> None:
        handler = self._dispatch.get(code)
        if handler is None:
            # Unsupported operator: clear the stack and carry on
            self.stack.clear()
            return
        handler()

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _require(self, count: int, name: str) -> None:
        if len(self.stack) < count:
            raise StackUnderflow(
                f"{name} needs {count} operands, stack has {len(self.stack)}", offset=self._op_offset)

    def _take_all(self, minimum: int, name: str) -> list[float]:
        self._require(minimum, name)
        args = self.stack[:]
        self.stack.clear()
        return args

    def _do_moveto(self, dx: float, dy: float) -> None:
        self.x += dx
        self.y += dy
        self.path.append(PathCommand('move_to', ((self.x, self.y),)))

    def _do_lineto(self, dx: float, dy: float) -> None:
        self.x += dx
        self.y += dy
        self.path.append(PathCommand('line_to', ((self.x, self.y),)))

    def _do_curveto(self, dx1: float, dy1: float, dx2: float, dy2: float, dx3: float, dy3: float) -> None:
        x1 = self.x + dx1
        y1 = self.y + dy1
        x2 = x1 + dx2
        y2 = y1 + dy2
        self.x = x2 + dx3
        self.y = y2 + dy3
        self.path.append(PathCommand('curve_to', ((x1, y1), (x2, y2), (self.x, self.y))))

    # -------------------------------------------------------------------
    # Hints
    # -------------------------------------------------------------------

    def _op_stem(self) -> None:
        """hstem / vstem / hstemhm / vstemhm: count stem pairs."""
        self.stem_hint_count += len(self.stack) // 2
        self.stack.clear()

    def _handle_hint_mask(self, data: bytes, i: int) -> int:
        """hintmask / cntrmask: implicit vstems, then skip the mask bytes."""
        if self.stack:
            self.stem_hint_count += len(self.stack) // 2
            self.stack.clear()
        if self.depth > 0:
            self.subroutine_masks += 1
        n_mask_bytes = (self.stem_hint_count + 7) // 8
        if i + n_mask_bytes > len(data):
            raise TruncatedCharString(
                f"Hint mask needs {n_mask_bytes} bytes, {len(data) - i} left", offset=i)
        return i + n_mask_bytes

    # -------------------------------------------------------------------
    # Path construction
    # -------------------------------------------------------------------

    def _op_rmoveto(self) -> None:
        """rmoveto: dx dy"""
        self._require(2, 'rmoveto')
        dy = self.stack.pop()
        dx = self.stack.pop()
        self.stack.clear()
        self._do_moveto(dx, dy)

    def _op_hmoveto(self) -> None:
        self._require(1, 'hmoveto')
        dx = self.stack.pop()
        self.stack.clear()
        self._do_moveto(dx, 0.0)

    def _op_vmoveto(self) -> None:
        self._require(1, 'vmoveto')
        dy = self.stack.pop()
        self.stack.clear()
        self._do_moveto(0.0, dy)

    def _op_rlineto(self) -> None:
        """rlineto: {dx dy}+"""
        args = self._take_all(2, 'rlineto')
        i = 0
        while i + 1 < len(args):
            self._do_lineto(args[i], args[i + 1])
            i += 2

    def _op_hlineto(self) -> None:
        """hlineto: alternating horizontal/vertical lines, starting horizontal."""
        args = self._take_all(1, 'hlineto')
        horizontal = True
        for val in args:
            if horizontal:
                self._do_lineto(val, 0.0)
            else:
                self._do_lineto(0.0, val)
            horizontal = not horizontal

    def _op_vlineto(self) -> None:
        args = self._take_all(1, 'vlineto')
        vertical = True
        for val in args:
            if vertical:
                self._do_lineto(0.0, val)
            else:
                self._do_lineto(val, 0.0)
            vertical = not vertical

    def _op_rrcurveto(self) -> None:
        """rrcurveto: {dx1 dy1 dx2 dy2 dx3 dy3}+"""
        args = self._take_all(6, 'rrcurveto')
        i = 0
        while i + 5 < len(args):
            self._do_curveto(*args[i:i + 6])
            i += 6

    def _op_hhcurveto(self) -> None:
        """hhcurveto: dy1? {dxa dxb dyb dxc}+"""
        args = self._take_all(4, 'hhcurveto')
        i = 0
        dy1_extra = 0.0
        if len(args) % 4 != 0:
            dy1_extra = args[0]
            i = 1

        while i + 3 < len(args):
            self._do_curveto(args[i], dy1_extra, args[i + 1], args[i + 2], args[i + 3], 0.0)
            dy1_extra = 0.0
            i += 4

    def _op_vvcurveto(self) -> None:
        """vvcurveto: dx1? {dya dxb dyb dyc}+"""
        args = self._take_all(4, 'vvcurveto')
        i = 0
        dx1_extra = 0.0
        if len(args) % 4 != 0:
            dx1_extra = args[0]
            i = 1

        while i + 3 < len(args):
            self._do_curveto(dx1_extra, args[i], args[i + 1], args[i + 2], 0.0, args[i + 3])
            dx1_extra = 0.0
            i += 4

    def _op_hvcurveto(self) -> None:
        args = self._take_all(4, 'hvcurveto')
        self._alternating_curves(args, start_horizontal=True)

    def _op_vhcurveto(self) -> None:
        args = self._take_all(4, 'vhcurveto')
        self._alternating_curves(args, start_horizontal=False)

    def _alternating_curves(self, args: list[float], start_horizontal: bool) -> None:
        """Shared logic for hvcurveto / vhcurveto."""
        i = 0
        phase = start_horizontal
        n = len(args)

        while i + 3 < n:
            remaining = n - i
            has_final = remaining == 5

            if phase:
                # H-start curve: dx1 dx2 dy2 dy3 [dxf]
                dxf = args[i + 4] if has_final else 0.0
                self._do_curveto(args[i], 0.0, args[i + 1], args[i + 2], dxf, args[i + 3])
            else:
                # V-start curve: dy1 dx2 dy2 dx3 [dyf]
                dyf = args[i + 4] if has_final else 0.0
                self._do_curveto(0.0, args[i], args[i + 1], args[i + 2], args[i + 3], dyf)
            i += 5 if has_final else 4
            phase = not phase

    def _op_rcurveline(self) -> None:
        """rcurveline: {dx1 dy1 dx2 dy2 dx3 dy3}+ dxl dyl"""
        args = self._take_all(8, 'rcurveline')
        i = 0
        curve_end = len(args) - 2
        while i + 6 <= curve_end:
            self._do_curveto(*args[i:i + 6])
            i += 6
        self._do_lineto(args[curve_end], args[curve_end + 1])

    def _op_rlinecurve(self) -> None:
        """rlinecurve: {dx dy}+ dx1 dy1 dx2 dy2 dx3 dy3"""
        args = self._take_all(8, 'rlinecurve')
        curve_start = len(args) - 6
        i = 0
        while i + 2 <= curve_start:
            self._do_lineto(args[i], args[i + 1])
            i += 2
        self._do_curveto(*args[curve_start:curve_start + 6])

    # -------------------------------------------------------------------
    # Variation operators
    # -------------------------------------------------------------------

    def _op_vsindex(self) -> None:
        self._require(1, 'vsindex')
        self.vsindex = int(self.stack.pop())
        self.stack.clear()
        self._blend_scalars = scalars_for_vsindex(self.scalars, self.vsindex)

    def _op_blend(self) -> None:
        """blend: {base delta_1..delta_N}*K K N

        Leaves K values on the stack and records K blend groups.
        """
        self._require(2, 'blend')
        n = int(self.stack.pop())
        k = int(self.stack.pop())
        if n != self.num_axes:
            raise AxisCountMismatch(self.num_axes, n, self._op_offset)
        if k < 0:
            raise InterpretationError(f"blend value count {k} is negative", offset=self._op_offset)
        required = k * (n + 1)
        self._require(required, 'blend')

        raw = self.stack[len(self.stack) - required:]
        del self.stack[len(self.stack) - required:]
        for j in range(k):
            base = raw[j * (n + 1)]
            group = BlendGroup(base, tuple(raw[j * (n + 1) + 1:(j + 1) * (n + 1)]), n)
            self.blends.append(BlendCapture(group, len(self.stack), self._op_offset, self.depth))
            self.stack.append(resolve(group, self._blend_scalars) if self._blend_scalars is not None else base)

    # -------------------------------------------------------------------
    # Subroutines
    # -------------------------------------------------------------------

    def _call_subr(self, subrs, kind: str) -> None:
        """callsubr / callgsubr: pop index, apply bias, run on shared state."""
        self._require(1, f'call {kind} subr')
        idx = int(self.stack.pop())
        biased = idx + _subr_bias(len(subrs))
        if not 0 <= biased < len(subrs):
            raise SubroutineError(
                f"{kind.capitalize()} subroutine {idx} (biased {biased}) out of range "
                f"({len(subrs)} subroutines)", self._op_offset)
        if self.depth >= self.MAX_SUBR_DEPTH:
            raise InterpretationError(
                f"Subroutine nesting exceeds {self.MAX_SUBR_DEPTH}", offset=self._op_offset)

        self.depth += 1
        saved_offset = self._op_offset
        try:
            self._execute_bytes(subrs[biased])
        finally:
            self.depth -= 1
            self._op_offset = saved_offset

    # -------------------------------------------------------------------
    # Flex operators (12, 34-37)
    # -------------------------------------------------------------------

    def _op12_hflex(self) -> None:
        """hflex: dx1 dx2 dy2 dx3 dx4 dx5 dx6"""
        self._require(7, 'hflex')
        dx1, dx2, dy2, dx3, dx4, dx5, dx6 = self.stack[-7:]
        self.stack.clear()
        self._do_curveto(dx1, 0.0, dx2, dy2, dx3, 0.0)
        self._do_curveto(dx4, 0.0, dx5, -dy2, dx6, 0.0)

    def _op12_flex(self) -> None:
        """flex: dx1 dy1 dx2 dy2 dx3 dy3 dx4 dy4 dx5 dy5 dx6 dy6 fd"""
        self._require(13, 'flex')
        args = self.stack[-13:]
        self.stack.clear()
        self._do_curveto(*args[0:6])
        self._do_curveto(*args[6:12])

    def _op12_hflex1(self) -> None:
        """hflex1: dx1 dy1 dx2 dy2 dx3 dx4 dx5 dy5 dx6"""
        self._require(9, 'hflex1')
        dx1, dy1, dx2, dy2, dx3, dx4, dx5, dy5, dx6 = self.stack[-9:]
        self.stack.clear()
        self._do_curveto(dx1, dy1, dx2, dy2, dx3, 0.0)
        self._do_curveto(dx4, 0.0, dx5, dy5, dx6, -(dy1 + dy2 + dy5))

    def _op12_flex1(self) -> None:
        """flex1: dx1 dy1 dx2 dy2 dx3 dy3 dx4 dy4 dx5 dy5 d6

        d6 is dx6 or dy6 depending on the dominant direction.
        """
        self._require(11, 'flex1')
        dx1, dy1, dx2, dy2, dx3, dy3, dx4, dy4, dx5, dy5, d6 = self.stack[-11:]
        self.stack.clear()

        sum_dx = dx1 + dx2 + dx3 + dx4 + dx5
        sum_dy = dy1 + dy2 + dy3 + dy4 + dy5
        if abs(sum_dx) > abs(sum_dy):
            dx6, dy6 = d6, -sum_dy
        else:
            dx6, dy6 = -sum_dx, d6

        self._do_curveto(dx1, dy1, dx2, dy2, dx3, dy3)
        self._do_curveto(dx4, dy4, dx5, dy5, dx6, dy6)

    # -------------------------------------------------------------------
    # Arithmetic, logic, stack and storage operators (12, N)
    # -------------------------------------------------------------------

    def _op_noop(self) -> None:
        pass

    def _pop2(self, name: str) -> tuple[float, float]:
        self._require(2, name)
        b = self.stack.pop()
        a = self.stack.pop()
        return a, b

    def _op12_abs(self) -> None:
        self._require(1, 'abs')
        self.stack[-1] = abs(self.stack[-1])

    def _op12_add(self) -> None:
        a, b = self._pop2('add')
        self.stack.append(a + b)

    def _op12_sub(self) -> None:
        a, b = self._pop2('sub')
        self.stack.append(a - b)

    def _op12_div(self) -> None:
        a, b = self._pop2('div')
        self.stack.append(a / b if b != 0 else 0.0)

    def _op12_neg(self) -> None:
        self._require(1, 'neg')
        self.stack[-1] = -self.stack[-1]

    def _op12_mul(self) -> None:
        a, b = self._pop2('mul')
        self.stack.append(a * b)

    def _op12_sqrt(self) -> None:
        self._require(1, 'sqrt')
        self.stack[-1] = math.sqrt(abs(self.stack[-1]))

    def _op12_random(self) -> None:
        # Any value in (0, 1] is allowed; a constant keeps decoding deterministic
        self._push(1.0, self._op_offset)

    def _op12_and(self) -> None:
        a, b = self._pop2('and')
        self.stack.append(1.0 if (a != 0 and b != 0) else 0.0)

    def _op12_or(self) -> None:
        a, b = self._pop2('or')
        self.stack.append(1.0 if (a != 0 or b != 0) else 0.0)

    def _op12_not(self) -> None:
        self._require(1, 'not')
        a = self.stack.pop()
        self.stack.append(1.0 if a == 0 else 0.0)

    def _op12_eq(self) -> None:
        a, b = self._pop2('eq')
        self.stack.append(1.0 if a == b else 0.0)

    def _op12_ifelse(self) -> None:
        """ifelse: s1 s2 v1 v2 -> s1 if v1 <= v2, else s2"""
        self._require(4, 'ifelse')
        v2 = self.stack.pop()
        v1 = self.stack.pop()
        s2 = self.stack.pop()
        s1 = self.stack.pop()
        self.stack.append(s1 if v1 <= v2 else s2)

    def _op12_drop(self) -> None:
        self._require(1, 'drop')
        self.stack.pop()

    def _op12_dup(self) -> None:
        self._require(1, 'dup')
        self._push(self.stack[-1], self._op_offset)

    def _op12_exch(self) -> None:
        self._require(2, 'exch')
        self.stack[-1], self.stack[-2] = self.stack[-2], self.stack[-1]

    def _op12_index(self) -> None:
        """index: i -> copy of the ith element below the top"""
        self._require(1, 'index')
        idx = max(int(self.stack.pop()), 0)
        self._require(idx + 1, 'index')
        self.stack.append(self.stack[-(idx + 1)])

    def _op12_roll(self) -> None:
        """roll: n j -> roll the top n elements by j positions"""
        self._require(2, 'roll')
        j = int(self.stack.pop())
        n = int(self.stack.pop())
        if n <= 0:
            return
        self._require(n, 'roll')
        subset = self.stack[-n:]
        j = j % n
        self.stack[-n:] = subset[-j:] + subset[:-j] if j else subset

    def _op12_put(self) -> None:
        """put: val i -> transient[i] = val"""
        self._require(2, 'put')
        i = int(self.stack.pop())
        val = self.stack.pop()
        if 0 <= i < TRANSIENT_ARRAY_SIZE:
            self.transient_array[i] = val

    def _op12_get(self) -> None:
        """get: i -> transient[i]"""
        self._require(1, 'get')
        i = int(self.stack.pop())
        if 0 <= i < TRANSIENT_ARRAY_SIZE:
            self.stack.append(self.transient_array[i])
        else:
            self.stack.append(0.0)


def interpret_charstring(data: bytes, num_axes: int = 0, global_subrs=(), local_subrs=(),
                         glyph_id: int | None = None, scalars=None) -> DecodedCharString:
    """Run one charstring with a throwaway interpreter."""
    interpreter = CharStringInterpreter(num_axes, global_subrs, local_subrs, scalars=scalars)
    return interpreter.run(data, glyph_id)
