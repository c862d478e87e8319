from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from ..util.errors import ExportError

LOG = logging.getLogger(__name__)

TOC_CAPTION = "Table of Contents"

Heading = Tuple[str, int]


class DocumentBackend(Protocol):
    """
    Document-editing surface the assembler drives. Content is always appended
    at the end of the document.
    """

    def open(self, *, landscape: bool) -> None: ...
    def add_title(self, text: str) -> None: ...
    def add_heading(self, text: str, level: int) -> None: ...
    def add_paragraph(self, text: str, *, bold: bool = False, italic: bool = False) -> None: ...
    def add_page_break(self) -> None: ...
    def set_header_footer(self, header: Optional[str], footer: Optional[str]) -> None: ...
    def add_table(self, headers: Optional[Sequence[str]], rows: Sequence[Sequence[str]], style: str) -> None: ...
    def move_to_end(self) -> None: ...
    def insert_toc_placeholder(self, depth: int) -> None: ...
    def update_toc(self, entries: Sequence[Heading]) -> None: ...
    def save_as(self, path: Path) -> None: ...
    def close(self) -> None: ...


class DocumentAssembler:
    """
    Owns document-level state: title page, ToC placeholder, the ordered
    heading list and persistence.

    The ToC is written in two phases. start() inserts a placeholder and
    resolve_toc() recomputes it from the headings written so far, so it must
    run after the last section. Resolving again with an unchanged heading set
    does nothing.
    """

    def __init__(self, backend: DocumentBackend, *, landscape: bool = True, toc_depth: int = 1) -> None:
        self.backend = backend
        self.landscape = landscape
        self.toc_depth = toc_depth
        self.headings: List[Heading] = []
        self._started = False
        self._resolved: Optional[Tuple[Heading, ...]] = None
        self._closed = False

    def __enter__(self) -> "DocumentAssembler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(
        self,
        title: str,
        *,
        subtitle_lines: Sequence[str] = (),
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> None:
        if self._started:
            raise ExportError("Document already started")
        self.backend.open(landscape=self.landscape)
        self.backend.set_header_footer(header, footer)
        self.backend.add_title(title)
        for line in subtitle_lines:
            self.backend.add_paragraph(line)
        self.backend.add_paragraph(TOC_CAPTION, bold=True)
        self.backend.insert_toc_placeholder(self.toc_depth)
        self.backend.add_page_break()
        self._started = True

    def _require_started(self) -> None:
        if not self._started:
            raise ExportError("Document has not been started")

    def add_section(self, heading: str, level: int = 1) -> None:
        self._require_started()
        self.backend.add_heading(heading, level)
        self.headings.append((heading, level))

    def add_text(self, text: str, *, italic: bool = False) -> None:
        self._require_started()
        self.backend.add_paragraph(text, italic=italic)

    def insert_page_break(self) -> None:
        self._require_started()
        self.backend.add_page_break()

    def toc_entries(self) -> List[Heading]:
        return [(text, level) for text, level in self.headings if level <= self.toc_depth]

    def resolve_toc(self) -> bool:
        """
        Recompute the ToC from the final heading set. Returns False when the
        entries were already current.
        """
        self._require_started()
        entries = tuple(self.toc_entries())
        if self._resolved == entries:
            return False
        self.backend.update_toc(entries)
        self._resolved = entries
        LOG.debug("Resolved table of contents", extra={"entries": len(entries)})
        return True

    def save(self, path: Path) -> Path:
        self._require_started()
        if self._resolved != tuple(self.toc_entries()):
            LOG.warning("Saving with a table of contents that does not reflect the final headings")
        try:
            self.backend.save_as(path)
        except ExportError:
            raise
        except OSError as e:
            raise ExportError(f"Failed to write report to {path}: {e}") from e
        return path

    def finalize(self, path: Path) -> Path:
        self.resolve_toc()
        return self.save(path)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.backend.close()
