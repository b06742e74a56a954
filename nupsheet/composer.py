"""Compose N-up output documents from a source PDF."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import fitz  # PyMuPDF

from .document import SourceDocument, embed_pages, load_source
from .exceptions import DocumentProcessingError, NupSheetError
from .layout import PagesPerSheet, Rect, resolve_layout

LOGGER = logging.getLogger("nupsheet.composer")


@dataclass(frozen=True)
class Placement:
    """One source page drawn into one slot of a sheet."""

    page_index: int
    slot_index: int
    rect: Rect


@dataclass
class Sheet:
    """An output page holding up to ``pages_per_sheet`` source pages."""

    index: int
    width: float
    height: float
    placements: List[Placement] = field(default_factory=list)

    @property
    def page_indices(self) -> List[int]:
        return [placement.page_index for placement in self.placements]


class OutputDocument:
    """A freshly composed N-up PDF and the sheets it contains."""

    def __init__(
        self,
        doc: fitz.Document,
        sheets: List[Sheet],
        pages_per_sheet: PagesPerSheet,
        *,
        compress: bool = True,
    ) -> None:
        self._doc = doc
        self.sheets = sheets
        self.pages_per_sheet = pages_per_sheet
        self.compress = compress

    @property
    def doc(self) -> fitz.Document:
        return self._doc

    @property
    def sheet_count(self) -> int:
        return len(self.sheets)

    def slot_of(self, page_index: int) -> Optional[tuple[int, int]]:
        """Return ``(sheet_index, slot_index)`` for a source page, if placed."""

        for sheet in self.sheets:
            for placement in sheet.placements:
                if placement.page_index == page_index:
                    return sheet.index, placement.slot_index
        return None

    async def to_bytes(self) -> bytes:
        """Serialize the document. An output without sheets yields ``b""``."""

        if not self.sheets:
            return b""
        await asyncio.sleep(0)
        try:
            # Fixed trailer ID keeps repeated runs byte-identical.
            self._doc.xref_set_key(-1, "ID", "null")
            if self.compress:
                return self._doc.tobytes(garbage=4, deflate=True, no_new_id=True)
            return self._doc.tobytes(no_new_id=True)
        except Exception as exc:  # PyMuPDF raises several error types here
            LOGGER.error("Failed to serialize output document: %s", exc)
            raise DocumentProcessingError(f"Unable to serialize PDF: {exc}") from exc

    def close(self) -> None:
        if not self._doc.is_closed:
            self._doc.close()

    def __enter__(self) -> "OutputDocument":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"OutputDocument(pages_per_sheet={int(self.pages_per_sheet)}, "
            f"sheets={self.sheet_count})"
        )


async def compose(
    source: SourceDocument,
    mode: object,
    *,
    compress: bool = True,
) -> OutputDocument:
    """Lay the pages of *source* out ``mode`` to a sheet.

    Args:
        source: The parsed input document. It is only read.
        mode: Pages per sheet; one of 1, 2 or 4.
        compress: Serialize with garbage collection and deflate.

    Returns:
        A new :class:`OutputDocument`. A source without pages gives an output
        without sheets.

    Raises:
        UnsupportedModeError: Before any document work if *mode* is invalid.
        DocumentProcessingError: If PyMuPDF fails while embedding or drawing.
            The partial output is discarded.
    """

    pages_per_sheet = PagesPerSheet.coerce(mode)
    target = fitz.open()

    if source.page_count == 0:
        LOGGER.info("Source has no pages; producing an empty output")
        return OutputDocument(target, [], pages_per_sheet, compress=compress)

    try:
        cell_width, cell_height = source.cell_size()
        embedded = embed_pages(target, source)
        await asyncio.sleep(0)

        layout = resolve_layout(pages_per_sheet, cell_width, cell_height)
        sheet_width, sheet_height = layout.sheet_size()

        sheets: List[Sheet] = []
        slot_cursor = 0
        current: Optional[fitz.Page] = None
        for page in embedded:
            if slot_cursor == 0:
                current = target.new_page(width=sheet_width, height=sheet_height)
                sheets.append(Sheet(len(sheets), sheet_width, sheet_height))
                LOGGER.debug(
                    "Opened sheet %d (%.1f x %.1f)", len(sheets) - 1, sheet_width, sheet_height
                )
            slot = layout.slots[slot_cursor]
            page.draw(current, slot.to_fitz(sheet_height))
            sheets[-1].placements.append(Placement(page.index, slot_cursor, slot))
            LOGGER.debug("Placed page %d in slot %d", page.index, slot_cursor)
            slot_cursor = (slot_cursor + 1) % pages_per_sheet
    except NupSheetError:
        target.close()
        raise
    except Exception as exc:  # PyMuPDF raises several error types here
        target.close()
        LOGGER.error("Failed to compose %d-up document: %s", pages_per_sheet, exc)
        raise DocumentProcessingError(f"Unable to compose PDF: {exc}") from exc

    LOGGER.info(
        "Composed %d pages onto %d sheets at %d per sheet",
        source.page_count,
        len(sheets),
        pages_per_sheet,
    )
    return OutputDocument(target, sheets, pages_per_sheet, compress=compress)


async def compose_bytes(data: bytes, mode: object, *, compress: bool = True) -> bytes:
    """Load *data*, compose it ``mode`` to a sheet and return the PDF bytes."""

    pages_per_sheet = PagesPerSheet.coerce(mode)
    with await load_source(data) as source:
        with await compose(source, pages_per_sheet, compress=compress) as output:
            return await output.to_bytes()


__all__ = ["Placement", "Sheet", "OutputDocument", "compose", "compose_bytes"]
