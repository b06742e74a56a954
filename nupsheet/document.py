"""Source documents and page embedding on top of PyMuPDF."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import fitz  # PyMuPDF

from .exceptions import DocumentProcessingError

LOGGER = logging.getLogger("nupsheet.document")


@dataclass(frozen=True)
class Page:
    """Size of one source page in points."""

    index: int
    width: float
    height: float


class SourceDocument:
    """Read-only view of a parsed PDF used as composition input.

    The wrapped :class:`fitz.Document` is owned by this object; call
    :meth:`close` (or use it as a context manager) when it is no longer
    needed.
    """

    def __init__(self, doc: fitz.Document, name: str = "") -> None:
        if not doc.is_pdf:
            raise DocumentProcessingError("Source document is not a PDF")
        self._doc = doc
        self.name = name

    @property
    def doc(self) -> fitz.Document:
        return self._doc

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    @property
    def pages(self) -> List[Page]:
        return [self.page(index) for index in range(self.page_count)]

    def page(self, index: int) -> Page:
        rect = self._doc[index].rect
        return Page(index=index, width=rect.width, height=rect.height)

    def cell_size(self) -> Tuple[float, float]:
        """Size of the first page, used as the uniform cell size."""

        first = self.page(0)
        return first.width, first.height

    @property
    def is_closed(self) -> bool:
        return self._doc.is_closed

    def close(self) -> None:
        if not self._doc.is_closed:
            self._doc.close()

    def __enter__(self) -> "SourceDocument":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        return self.page_count

    def __repr__(self) -> str:
        return f"SourceDocument(name={self.name!r}, pages={self.page_count})"


@dataclass(frozen=True)
class EmbeddedPage:
    """A source page prepared for drawing into a specific output document."""

    target: fitz.Document
    source: fitz.Document
    index: int
    width: float
    height: float

    def draw(self, sheet: fitz.Page, rect: fitz.Rect) -> None:
        """Stretch the page's full content onto *sheet* to fill *rect*."""

        if sheet.parent != self.target:
            raise DocumentProcessingError(
                f"Embedded page {self.index} belongs to a different output document"
            )
        sheet.show_pdf_page(rect, self.source, self.index, keep_proportion=False)


def _open_pdf(data: bytes, name: str) -> fitz.Document:
    if not data:
        raise DocumentProcessingError("No PDF data provided")
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:  # PyMuPDF raises several error types here
        LOGGER.error("Failed to parse PDF %s: %s", name or "<bytes>", exc)
        raise DocumentProcessingError(f"Unable to read PDF: {exc}") from exc

    if doc.needs_pass:
        LOGGER.debug("Attempting to open encrypted PDF %s", name or "<bytes>")
        if not doc.authenticate(""):
            doc.close()
            raise DocumentProcessingError(
                "PDF is encrypted and cannot be opened without a password"
            )
    if not doc.is_pdf:
        doc.close()
        raise DocumentProcessingError("Data is not a PDF document")
    return doc


async def load_source(data: bytes, name: Optional[str] = None) -> SourceDocument:
    """Parse *data* into a :class:`SourceDocument`.

    Raises:
        DocumentProcessingError: If the bytes are empty, malformed, not a PDF
            or password protected.
    """

    doc = _open_pdf(data, name or "")
    await asyncio.sleep(0)
    source = SourceDocument(doc, name=name or "")
    LOGGER.info("Loaded %s with %d pages", name or "PDF", source.page_count)
    return source


def embed_pages(target: fitz.Document, source: SourceDocument) -> List[EmbeddedPage]:
    """Prepare every page of *source*, in order, for drawing into *target*.

    PyMuPDF copies the page objects into *target* when a page is first drawn
    and keeps one graft map per source document, so resources shared between
    pages are copied once.
    """

    if target is source.doc:
        raise DocumentProcessingError("Cannot embed a document into itself")
    if not target.is_pdf:
        raise DocumentProcessingError("Embedding target is not a PDF document")

    embedded = []
    for page in source.pages:
        LOGGER.debug("Embedding page %d (%.1f x %.1f)", page.index, page.width, page.height)
        embedded.append(
            EmbeddedPage(
                target=target,
                source=source.doc,
                index=page.index,
                width=page.width,
                height=page.height,
            )
        )
    return embedded


__all__ = [
    "Page",
    "SourceDocument",
    "EmbeddedPage",
    "load_source",
    "embed_pages",
]
