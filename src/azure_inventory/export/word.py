from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from docx import Document
from docx.enum.section import WD_ORIENT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt
from docx.text.paragraph import Paragraph

from ..util.errors import ExportError

TOC_PLACEHOLDER_TEXT = "Right-click and choose Update Field to refresh the table of contents."
TOC_INDENT_PT = 12


def _toc_instruction(depth: int) -> str:
    return f'TOC \\o "1-{depth}" \\h \\z \\u'


def _field_char(kind: str) -> Any:
    el = OxmlElement("w:fldChar")
    el.set(qn("w:fldCharType"), kind)
    return el


def _instr_text(instruction: str) -> Any:
    el = OxmlElement("w:instrText")
    el.set(qn("xml:space"), "preserve")
    el.text = instruction
    return el


def _cell_bold(cell: Any, size: int = 10) -> None:
    for p in cell.paragraphs:
        for r in p.runs:
            r.bold = True
            r.font.size = Pt(size)


class DocxBackend:
    """
    python-docx document backend.

    The table of contents is a Word TOC complex field. Its cached result (the
    paragraphs between the "separate" and "end" field characters) is rewritten
    by update_toc() so the saved file lists the final headings even before Word
    refreshes the field; w:updateFields makes Word recompute page numbers on
    open.
    """

    def __init__(self) -> None:
        self._doc: Any = None
        self._toc_paragraphs: List[Any] = []
        self._toc_depth = 1
        self.toc_entries: List[Tuple[str, int]] = []

    @property
    def document(self) -> Any:
        if self._doc is None:
            raise ExportError("Document backend is not open")
        return self._doc

    def open(self, *, landscape: bool) -> None:
        self._doc = Document()
        if landscape:
            section = self._doc.sections[0]
            section.orientation = WD_ORIENT.LANDSCAPE
            section.page_width, section.page_height = section.page_height, section.page_width

    def add_title(self, text: str) -> None:
        self.document.add_heading(text, level=0)

    def add_heading(self, text: str, level: int) -> None:
        self.document.add_heading(text, level=level)

    def add_paragraph(self, text: str, *, bold: bool = False, italic: bool = False) -> None:
        p = self.document.add_paragraph()
        r = p.add_run(text)
        r.bold = bold
        r.italic = italic

    def add_page_break(self) -> None:
        self.document.add_page_break()

    def set_header_footer(self, header: Optional[str], footer: Optional[str]) -> None:
        section = self.document.sections[0]
        if header:
            section.header.paragraphs[0].text = header
        if footer:
            section.footer.paragraphs[0].text = footer

    def add_table(self, headers: Optional[Sequence[str]], rows: Sequence[Sequence[str]], style: str) -> None:
        cols = len(headers) if headers is not None else (len(rows[0]) if rows else 0)
        if cols == 0:
            raise ExportError("Cannot render a table without columns")
        t = self.document.add_table(rows=0, cols=cols)
        t.style = style
        if headers is not None:
            hdr = t.add_row().cells
            for i, h in enumerate(headers):
                hdr[i].text = str(h)
                _cell_bold(hdr[i])
        for r in rows:
            cells = t.add_row().cells
            for i, v in enumerate(r):
                cells[i].text = "" if v is None else str(v)

    def move_to_end(self) -> None:
        # Word merges adjacent tables unless a paragraph separates them.
        self.document.add_paragraph()

    def _new_paragraph(self) -> Paragraph:
        return Paragraph(OxmlElement("w:p"), self.document._body)

    def _build_toc(self, entries: Sequence[Tuple[str, int]]) -> List[Any]:
        """
        Build the field paragraphs: begin/instr/separate open the first one,
        each entry is one paragraph of cached result, "end" closes the last.
        """
        lines: List[Tuple[str, int]] = list(entries) or [(TOC_PLACEHOLDER_TEXT, 1)]
        out: List[Any] = []
        for idx, (text, level) in enumerate(lines):
            para = self._new_paragraph()
            if idx == 0:
                run = para.add_run()
                run._r.append(_field_char("begin"))
                run._r.append(_instr_text(_toc_instruction(self._toc_depth)))
                run._r.append(_field_char("separate"))
            para.add_run(text)
            if level > 1:
                para.paragraph_format.left_indent = Pt(TOC_INDENT_PT * (level - 1))
            if idx == len(lines) - 1:
                para.add_run()._r.append(_field_char("end"))
            out.append(para._p)
        return out

    def insert_toc_placeholder(self, depth: int) -> None:
        self._toc_depth = depth
        body = self.document.element.body
        sect_pr = body.find(qn("w:sectPr"))
        self._toc_paragraphs = self._build_toc([])
        for p in self._toc_paragraphs:
            if sect_pr is not None:
                sect_pr.addprevious(p)
            else:
                body.append(p)
        self._request_field_update()

    def update_toc(self, entries: Sequence[Tuple[str, int]]) -> None:
        if not self._toc_paragraphs:
            raise ExportError("Table of contents placeholder was never inserted")
        anchor = self._toc_paragraphs[0]
        fresh = self._build_toc(entries)
        for p in fresh:
            anchor.addprevious(p)
        for old in self._toc_paragraphs:
            old.getparent().remove(old)
        self._toc_paragraphs = fresh
        self.toc_entries = list(entries)

    def _request_field_update(self) -> None:
        settings = self.document.settings.element
        if settings.find(qn("w:updateFields")) is None:
            el = OxmlElement("w:updateFields")
            el.set(qn("w:val"), "true")
            settings.append(el)

    def save_as(self, path: Path) -> None:
        path = Path(path)
        if path.suffix.lower() != ".docx":
            raise ExportError(f"Report must be saved as .docx: {path}")
        path.parent.mkdir(parents=True, exist_ok=True)
        self.document.save(str(path))

    def close(self) -> None:
        self._doc = None
        self._toc_paragraphs = []
