"""Sheet geometry for N-up composition.

Everything here is pure: sheet multipliers and slot rectangles depend only on
the pages-per-sheet value and the size of one source page (the *cell*).

Slot rectangles use PDF sheet coordinates: the origin is the bottom-left
corner of the sheet and ``y`` grows upward. :meth:`Rect.to_fitz` converts to
the top-left origin PyMuPDF draws with.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Tuple

import fitz  # PyMuPDF

from .exceptions import UnsupportedModeError


class PagesPerSheet(enum.IntEnum):
    """Supported pages-per-sheet values."""

    ONE = 1
    TWO = 2
    FOUR = 4

    @classmethod
    def coerce(cls, value: object) -> "PagesPerSheet":
        """Return the member for *value* or raise :class:`UnsupportedModeError`.

        Integers and decimal strings (as posted by a form) are accepted.
        """

        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise UnsupportedModeError(value)
        candidate = value
        if isinstance(value, str):
            try:
                candidate = int(value.strip())
            except ValueError:
                raise UnsupportedModeError(value) from None
        try:
            return cls(candidate)
        except ValueError:
            raise UnsupportedModeError(value) from None

    @property
    def multiplier(self) -> "SheetMultiplier":
        return _MULTIPLIERS[self]


@dataclass(frozen=True)
class SheetMultiplier:
    """How many cell widths (columns) and heights (rows) a sheet spans."""

    columns: int
    rows: int


_MULTIPLIERS = MappingProxyType(
    {
        PagesPerSheet.ONE: SheetMultiplier(1, 1),
        PagesPerSheet.TWO: SheetMultiplier(2, 1),
        PagesPerSheet.FOUR: SheetMultiplier(2, 2),
    }
)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in PDF sheet coordinates (origin bottom-left)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def top(self) -> float:
        return self.y + self.height

    def to_fitz(self, sheet_height: float) -> fitz.Rect:
        """Return the equivalent :class:`fitz.Rect` on a sheet of *sheet_height*."""

        return fitz.Rect(
            self.x,
            sheet_height - self.top,
            self.right,
            sheet_height - self.y,
        )


@dataclass(frozen=True)
class Layout:
    """Resolved geometry for one pages-per-sheet value and cell size."""

    mode: PagesPerSheet
    multiplier: SheetMultiplier
    slots: Tuple[Rect, ...]

    @property
    def sheet_width(self) -> float:
        return self.slots[0].width * self.multiplier.columns

    @property
    def sheet_height(self) -> float:
        return self.slots[0].height * self.multiplier.rows

    def sheet_size(self) -> Tuple[float, float]:
        return self.sheet_width, self.sheet_height


def _slots(mode: PagesPerSheet, w: float, h: float) -> Tuple[Rect, ...]:
    if mode is PagesPerSheet.ONE:
        return (Rect(0, 0, w, h),)
    if mode is PagesPerSheet.TWO:
        return (Rect(0, 0, w, h), Rect(w, 0, w, h))
    if mode is PagesPerSheet.FOUR:
        # Pages 1-2 of a group take the y=h row, pages 3-4 the y=0 row.
        return (
            Rect(0, h, w, h),
            Rect(w, h, w, h),
            Rect(0, 0, w, h),
            Rect(w, 0, w, h),
        )
    raise UnsupportedModeError(mode)


def resolve_layout(mode: object, cell_width: float, cell_height: float) -> Layout:
    """Return the :class:`Layout` for *mode* with cells of the given size.

    Args:
        mode: Pages per sheet; one of 1, 2 or 4.
        cell_width: Width of one source page in points.
        cell_height: Height of one source page in points.

    Raises:
        UnsupportedModeError: If *mode* is not a supported value.
        ValueError: If a cell dimension is not positive.
    """

    pages_per_sheet = PagesPerSheet.coerce(mode)
    if cell_width <= 0 or cell_height <= 0:
        raise ValueError(
            f"Cell dimensions must be positive, got {cell_width!r} x {cell_height!r}"
        )
    return Layout(
        mode=pages_per_sheet,
        multiplier=pages_per_sheet.multiplier,
        slots=_slots(pages_per_sheet, float(cell_width), float(cell_height)),
    )


def sheet_count(page_count: int, mode: object) -> int:
    """Number of sheets needed for *page_count* pages at *mode* pages per sheet."""

    if page_count < 0:
        raise ValueError(f"Page count cannot be negative: {page_count}")
    return math.ceil(page_count / PagesPerSheet.coerce(mode))


__all__ = [
    "PagesPerSheet",
    "SheetMultiplier",
    "Rect",
    "Layout",
    "resolve_layout",
    "sheet_count",
]
