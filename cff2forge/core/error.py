# CFF2Forge - CFF2 Variable Font Table Toolkit
# Copyright (c) 2025-2026 Scott Bowman
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

"""
Error taxonomy for CFF2 decoding, interpretation and rebuilding.

- FormatError: malformed or truncated binary input. Fatal to the
  operation that detected it.
- InterpretationError: bad bytecode inside one glyph. Recoverable at
  glyph granularity; the caller decides to skip, substitute or abort.
- ConsistencyError: variation data that cannot be trusted. Fatal.
"""


class CFF2Error(Exception):
    """Base class for all CFF2 errors."""
    pass


class FormatError(CFF2Error):
    """Malformed or truncated binary data."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.offset = offset
        if offset is not None:
            message = f"{message} (at byte offset {offset})"
        super().__init__(message)


class UnexpectedEnd(FormatError):
    """Input ended in the middle of a structure."""
    pass


class UnsupportedVersion(FormatError):
    """Header version is not 2.0."""
    pass


class InconsistentAxisCount(FormatError):
    """Regions in one Variation Store disagree on their axis count."""
    pass


class SubroutineError(FormatError):
    """Missing or out-of-range subroutine index."""
    pass


class InterpretationError(CFF2Error):
    """Bad bytecode within a single CharString."""

    def __init__(self, message: str, glyph_id: int | None = None, offset: int | None = None) -> None:
        self.glyph_id = glyph_id
        self.offset = offset
        self.reason = message
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [self.reason]
        if self.glyph_id is not None:
            parts.append(f"glyph {self.glyph_id}")
        if self.offset is not None:
            parts.append(f"byte {self.offset}")
        if len(parts) == 1:
            return parts[0]
        return f"{parts[0]} ({', '.join(parts[1:])})"

    def with_glyph(self, glyph_id: int) -> InterpretationError:
        """Attach the glyph id once the caller knows it."""
        self.glyph_id = glyph_id
        self.args = (self._format(),)
        return self


class StackUnderflow(InterpretationError):
    """An operator needed more operands than the stack held."""
    pass


class TruncatedCharString(InterpretationError):
    """A number or hint mask ran past the end of the program."""
    pass


class ConsistencyError(CFF2Error):
    """Variation data contradicts itself or the font's declared axes."""
    pass


class AxisCountMismatch(ConsistencyError, FormatError):
    """A blend operator names a different axis count than the font."""

    def __init__(self, expected: int, actual: int, offset: int | None = None) -> None:
        self.expected = expected
        self.actual = actual
        FormatError.__init__(
            self, f"Blend axis count {actual} does not match font axis count {expected}", offset)


class RegionOrderError(ConsistencyError):
    """A region axis violates start <= peak <= end."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.offset = offset
        if offset is not None:
            message = f"{message} (at byte offset {offset})"
        super().__init__(message)
