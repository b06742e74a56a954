"""
nupsheet - repack PDF pages onto larger sheets, 1, 2 or 4 to a sheet.

Quick Start:
    >>> import asyncio
    >>> from nupsheet import compose_bytes
    >>> nup = asyncio.run(compose_bytes(pdf_bytes, 4))

Main entry points:
    - resolve_layout: sheet multiplier and slot rectangles for a mode
    - load_source: parse PDF bytes into a SourceDocument
    - compose: build an OutputDocument from a SourceDocument
    - PreviewSession: regenerate the output whenever source or mode changes
"""

from nupsheet.composer import OutputDocument, Placement, Sheet, compose, compose_bytes
from nupsheet.config import Settings
from nupsheet.document import EmbeddedPage, Page, SourceDocument, embed_pages, load_source
from nupsheet.exceptions import DocumentProcessingError, NupSheetError, UnsupportedModeError
from nupsheet.layout import (
    Layout,
    PagesPerSheet,
    Rect,
    SheetMultiplier,
    resolve_layout,
    sheet_count,
)
from nupsheet.session import PreviewSession, RenderedOutput

__version__ = "1.0.0"

__all__ = [
    # Layout
    "PagesPerSheet",
    "SheetMultiplier",
    "Rect",
    "Layout",
    "resolve_layout",
    "sheet_count",
    # Documents
    "Page",
    "SourceDocument",
    "EmbeddedPage",
    "load_source",
    "embed_pages",
    # Composition
    "Placement",
    "Sheet",
    "OutputDocument",
    "compose",
    "compose_bytes",
    # Sessions
    "PreviewSession",
    "RenderedOutput",
    # Configuration
    "Settings",
    # Exceptions
    "NupSheetError",
    "UnsupportedModeError",
    "DocumentProcessingError",
    "__version__",
]
