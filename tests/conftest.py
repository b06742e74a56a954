from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Sequence
import sys

import fitz  # PyMuPDF
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from nupsheet import SourceDocument, load_source  # noqa: E402

PAGE_WIDTH = 200
PAGE_HEIGHT = 300


def page_label(index: int) -> str:
    return f"page-{index + 1:03d}"


def build_pdf(
    count: int,
    width: float = PAGE_WIDTH,
    height: float = PAGE_HEIGHT,
    sizes: Sequence[tuple[float, float]] | None = None,
) -> bytes:
    """Return PDF bytes with *count* labelled pages."""

    doc = fitz.open()
    for index in range(count):
        page_width, page_height = sizes[index] if sizes else (width, height)
        page = doc.new_page(width=page_width, height=page_height)
        page.insert_text((20, 40), page_label(index), fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture()
def pdf_factory() -> Callable[..., bytes]:
    return build_pdf


@pytest.fixture()
def sample_pdf() -> bytes:
    return build_pdf(5)


@pytest.fixture()
def source_factory() -> Callable[..., SourceDocument]:
    opened: list[SourceDocument] = []

    def _create(count: int, **kwargs: object) -> SourceDocument:
        source = asyncio.run(load_source(build_pdf(count, **kwargs), name="sample.pdf"))
        opened.append(source)
        return source

    yield _create

    for source in opened:
        source.close()


@pytest.fixture()
def empty_source() -> SourceDocument:
    source = SourceDocument(fitz.open(), name="empty.pdf")
    yield source
    source.close()


@pytest.fixture()
def client():
    import app as web_app

    web_app.app.config["TESTING"] = True
    settings = web_app.app.config["NUPSHEET_SETTINGS"]
    with web_app.app.test_client() as test_client:
        yield test_client
    web_app.app.config["NUPSHEET_SETTINGS"] = settings
    for session in web_app.SESSIONS.values():
        session.close()
    web_app.SESSIONS.clear()
    web_app.LAST_SEEN.clear()
