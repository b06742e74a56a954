"""Regenerate-on-change driver for interactive front ends.

A :class:`PreviewSession` holds the current source document and
pages-per-sheet value and recomposes the whole output whenever either one
changes. Runs are not cancelled; every run takes a generation number and only
the latest generation may publish its result. Each published output gets a
fresh reference, and the previous reference stops resolving.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from .composer import compose
from .document import SourceDocument, load_source
from .exceptions import NupSheetError
from .layout import PagesPerSheet

LOGGER = logging.getLogger("nupsheet.session")


@dataclass(frozen=True)
class RenderedOutput:
    """Serialized output published by a session."""

    reference: str
    data: bytes
    pages_per_sheet: PagesPerSheet
    page_count: int
    sheet_count: int

    @property
    def is_empty(self) -> bool:
        return self.sheet_count == 0


class PreviewSession:
    """Keeps one composed output current for a source and pages-per-sheet value."""

    def __init__(self, mode: object = PagesPerSheet.ONE, *, compress: bool = True) -> None:
        self._mode = PagesPerSheet.coerce(mode)
        self.compress = compress
        self._source: Optional[SourceDocument] = None
        self._current: Optional[RenderedOutput] = None
        self._generation = 0
        self._source_generation = 0
        self._in_flight = 0
        self._retired: List[SourceDocument] = []
        self.last_error: Optional[NupSheetError] = None

    @property
    def mode(self) -> PagesPerSheet:
        return self._mode

    @property
    def source(self) -> Optional[SourceDocument]:
        return self._source

    @property
    def current(self) -> Optional[RenderedOutput]:
        return self._current

    @property
    def is_processing(self) -> bool:
        return self._in_flight > 0

    def lookup(self, reference: str) -> Optional[bytes]:
        """Return the bytes behind *reference* while it is still current."""

        if self._current is None or self._current.reference != reference:
            return None
        return self._current.data

    async def set_source(self, data: bytes, name: Optional[str] = None) -> Optional[RenderedOutput]:
        """Replace the source document and regenerate.

        Returns ``None`` if a newer source arrived while this one was loading.
        """

        self._source_generation += 1
        generation = self._source_generation
        self._in_flight += 1
        try:
            source = await load_source(data, name)
        except NupSheetError as exc:
            if generation == self._source_generation:
                self._current = None
                self.last_error = exc
                raise
            LOGGER.warning("Ignoring failed load of superseded source: %s", exc)
            return None
        finally:
            self._in_flight -= 1

        if generation != self._source_generation:
            LOGGER.warning("Discarding superseded source %s", source)
            source.close()
            return None

        return await self._install(source)

    async def use_source(self, source: SourceDocument) -> Optional[RenderedOutput]:
        """Adopt an already parsed *source* and regenerate.

        The session takes ownership and closes it when it is replaced.
        """

        self._source_generation += 1
        return await self._install(source)

    async def _install(self, source: SourceDocument) -> Optional[RenderedOutput]:
        if self._source is not None:
            self._retired.append(self._source)
        self._source = source
        return await self.regenerate()

    async def set_mode(self, mode: object) -> Optional[RenderedOutput]:
        """Change pages per sheet and regenerate.

        The value is validated before any document work.
        """

        self._mode = PagesPerSheet.coerce(mode)
        return await self.regenerate()

    async def regenerate(self) -> Optional[RenderedOutput]:
        """Compose and serialize the current source with the current mode.

        Returns the published output, or ``None`` when there is no source or a
        newer run started before this one finished.
        """

        if self._source is None:
            return None

        self._generation += 1
        generation = self._generation
        source, mode = self._source, self._mode
        self._in_flight += 1
        LOGGER.debug("Starting run %d: %s at %d per sheet", generation, source, mode)
        try:
            with await compose(source, mode, compress=self.compress) as output:
                data = await output.to_bytes()
                sheet_count = output.sheet_count
                page_count = source.page_count
        except NupSheetError as exc:
            if generation != self._generation:
                LOGGER.warning("Ignoring failure of stale run %d: %s", generation, exc)
                return None
            self._current = None
            self.last_error = exc
            raise
        finally:
            self._in_flight -= 1
            self._release_retired()

        if generation != self._generation:
            LOGGER.warning(
                "Discarding stale result of run %d (latest is %d)", generation, self._generation
            )
            return None

        self._current = RenderedOutput(
            reference=uuid.uuid4().hex,
            data=data,
            pages_per_sheet=mode,
            page_count=page_count,
            sheet_count=sheet_count,
        )
        self.last_error = None
        LOGGER.info(
            "Published run %d as %s (%d sheets)", generation, self._current.reference, sheet_count
        )
        return self._current

    def _release_retired(self) -> None:
        if self._in_flight:
            return
        while self._retired:
            self._retired.pop().close()

    def close(self) -> None:
        """Drop the current output and close every held document."""

        self._current = None
        if self._source is not None:
            self._retired.append(self._source)
            self._source = None
        self._release_retired()


__all__ = ["PreviewSession", "RenderedOutput"]
