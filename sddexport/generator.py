"""Editable document generation.

:class:`DocumentModelBuilder` turns an :class:`ExportRequest` into the flat
element sequence of the editable target (cover, one page break, then every
section heading followed by its converted body).  :class:`DocumentGenerator`
writes such a sequence into a python-docx document, drawing typography and
colours from the :class:`DesignSystem`.

Usage::

    from sddexport.generator import DocumentGenerator, DocumentModelBuilder

    elements = DocumentModelBuilder(design).build(request)
    data = DocumentGenerator(design).generate_bytes(elements, project_name="Atlas")
"""

from __future__ import annotations

import io
import logging
from dataclasses import replace
from typing import Any, Iterable, TYPE_CHECKING

from docx import Document as new_docx
from docx.enum.table import WD_CELL_VERTICAL_ALIGNMENT, WD_TABLE_ALIGNMENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.image.exceptions import UnrecognizedImageError
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Emu, Mm, Pt, RGBColor, Twips

from sddexport.cover import CoverBuilder
from sddexport.design import DesignSystem
from sddexport.markup import parse_markup
from sddexport.models import (
    Alignment,
    DocumentElement,
    ExportRequest,
    Heading,
    Image,
    ListItem,
    PageBreak,
    Paragraph,
    SectionDescriptor,
    Table,
    TextRun,
)
from sddexport.sections import numbered_title, remove_duplicate_section_title
from sddexport.toc import EMPTY_TOC_MARKUP, generate_table_of_contents
from sddexport.visitor import BlockLayout, ImageBounds, Palette, convert

if TYPE_CHECKING:
    from docx.document import Document
    from docx.text.paragraph import Paragraph as DocxParagraph
    from docx.text.run import Run

logger = logging.getLogger(__name__)

PENDING_CONTENT_TEXT = "Content pending generation."
SECTION_ERROR_TEXT = "Error loading content for this section."
UNEMBEDDABLE_IMAGE_TEXT = "[Image omitted: the image data could not be embedded]"

EMU_PER_PX = 9525

_ALIGNMENTS = {
    Alignment.LEFT: WD_ALIGN_PARAGRAPH.LEFT,
    Alignment.CENTER: WD_ALIGN_PARAGRAPH.CENTER,
    Alignment.RIGHT: WD_ALIGN_PARAGRAPH.RIGHT,
    Alignment.JUSTIFY: WD_ALIGN_PARAGRAPH.JUSTIFY,
}

_TABLE_EDGES = ("top", "left", "bottom", "right", "insideH", "insideV")

_VERTICAL_ALIGNMENTS = {
    "top": WD_CELL_VERTICAL_ALIGNMENT.TOP,
    "middle": WD_CELL_VERTICAL_ALIGNMENT.CENTER,
    "center": WD_CELL_VERTICAL_ALIGNMENT.CENTER,
    "bottom": WD_CELL_VERTICAL_ALIGNMENT.BOTTOM,
}

# ---------------------------------------------------------------------------
# OXML helpers
# ---------------------------------------------------------------------------


def _hex_to_rgb(hex_color: str) -> RGBColor:
    """Convert a ``RRGGBB`` hex string (``#`` optional) to an *RGBColor*."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) != 6:
        raise ValueError(f"Invalid hex color: #{hex_color}")
    return RGBColor.from_string(hex_color.upper())


def _shading_element(hex_color: str) -> Any:
    shading = OxmlElement("w:shd")
    shading.set(qn("w:val"), "clear")
    shading.set(qn("w:color"), "auto")
    shading.set(qn("w:fill"), hex_color.lstrip("#").upper())
    return shading


def _set_cell_shading(cell: Any, hex_color: str) -> None:
    """Apply a solid background fill to a table *cell*."""
    cell._tc.get_or_add_tcPr().append(_shading_element(hex_color))


def _set_paragraph_shading(para: DocxParagraph, hex_color: str) -> None:
    """Apply a solid background fill behind a whole paragraph."""
    para._p.get_or_add_pPr().append(_shading_element(hex_color))


def _set_table_borders(table: Any, color: str = "333333", size: int = 4) -> None:
    """Apply uniform single borders to every edge of a docx *table*.

    *color* is a bare hex string and *size* is in eighth-points.
    """
    line = {"w:val": "single", "w:sz": str(size), "w:space": "0", "w:color": color.lstrip("#").upper()}
    borders = OxmlElement("w:tblBorders")
    for edge in _TABLE_EDGES:
        borders.append(OxmlElement(f"w:{edge}", attrs={qn(k): v for k, v in line.items()}))
    table._tbl.tblPr.append(borders)


def _wrap_in_hyperlink(para: DocxParagraph, run: Run, href: str) -> None:
    """Move *run* inside a ``w:hyperlink`` pointing at *href*.

    ``#anchor`` targets become internal bookmark links; anything else is
    stored as an external relationship.
    """
    hyperlink = OxmlElement("w:hyperlink")
    if href.startswith("#"):
        hyperlink.set(qn("w:anchor"), href[1:])
    else:
        r_id = para.part.relate_to(href, RT.HYPERLINK, is_external=True)
        hyperlink.set(qn("r:id"), r_id)
    run._r.addprevious(hyperlink)
    hyperlink.append(run._r)


# ---------------------------------------------------------------------------
# DocumentModelBuilder
# ---------------------------------------------------------------------------


class DocumentModelBuilder:
    """Builds the element sequence of the editable target.

    Parameters
    ----------
    design : DesignSystem
        Source of the heading colour, fixed palette and image bounds handed
        to the visitor.
    cover : CoverBuilder or None, optional
        Builder for the structural cover used when no cover raster is given.
    """

    def __init__(self, design: DesignSystem, cover: CoverBuilder | None = None) -> None:
        self._design = design
        self._cover = cover or CoverBuilder(design)
        bounds = design.get_image_bounds()
        self._bounds = ImageBounds(
            content_width=int(design.get_page_config().get("content_width_px", 520)),
            **bounds,
        )
        self._palette = Palette(
            heading=design.heading_color,
            link=design.hex(design.get_component_style("link")["color"]),
            header_fill=design.hex(design.get_component_style("table")["header_bg"]),
            quote_fill=design.hex(design.get_component_style("blockquote")["background"]),
            code_fill=design.hex(design.get_component_style("code")["background"]),
            placeholder=design.hex(design.get_component_style("placeholder")["color"]),
            code_font=design.get_component_style("code").get("font") or design.get_font("code"),
        )
        self._layout = BlockLayout(
            list_indent=int(design.get_component_style("list").get("indent_left", 360)),
            quote_indent=int(design.get_component_style("blockquote").get("indent_left", 360)),
        )
        self._section_title = design.get_component_style("section_title")

    @staticmethod
    def _notice(text: str) -> Paragraph:
        return Paragraph(runs=[TextRun(text=text, italic=True)], spacing_after=120)

    def section_heading(self, section: SectionDescriptor) -> Heading:
        color = self._section_title.get("color")
        return Heading(
            level=2,
            runs=[TextRun(
                text=numbered_title(section),
                color=self._design.hex(color) if color else self._palette.heading,
            )],
            spacing_before=self._section_title.get("spacing_before"),
            spacing_after=self._section_title.get("spacing_after"),
        )

    def section_body(
        self,
        section: SectionDescriptor,
        request: ExportRequest,
        sections: list[SectionDescriptor],
    ) -> list[DocumentElement]:
        """Converted body of one section, or the pending notice."""
        if section.id == "table-of-contents":
            content = generate_table_of_contents(sections, request.generated_content)
            content = content.strip() or EMPTY_TOC_MARKUP
        else:
            content = request.content_for(section.id)

        if not content:
            return [self._notice(PENDING_CONTENT_TEXT)]

        cleaned = remove_duplicate_section_title(content, section.title)
        return convert(
            parse_markup(cleaned),
            self._palette.heading,
            palette=self._palette,
            image_bounds=self._bounds,
            layout=self._layout,
        )

    def build(
        self,
        request: ExportRequest,
        cover_image: Image | None = None,
    ) -> list[DocumentElement]:
        """Return cover, page break and all sections as one element list.

        *cover_image* is an already-rendered raster of the custom cover; when
        it is ``None`` the structural cover is used instead.
        """
        if cover_image is not None:
            elements: list[DocumentElement] = [cover_image, PageBreak()]
        else:
            elements = self._cover.elements(request.project_context, request.cover_page_settings)

        sections = list(request.sections)
        for section in sections:
            if section.id == "cover-page":
                continue
            elements.append(self.section_heading(section))
            try:
                elements.extend(self.section_body(section, request, sections))
            except Exception:
                logger.exception("Error processing section '%s'", section.id)
                elements.append(self._notice(SECTION_ERROR_TEXT))

        logger.info(
            "Built %d element(s) for %d section(s)", len(elements), len(sections),
        )
        return elements


# ---------------------------------------------------------------------------
# DocumentGenerator
# ---------------------------------------------------------------------------


class DocumentGenerator:
    """Writes document elements into a styled python-docx document.

    Parameters
    ----------
    design_system : DesignSystem or None, optional
        An already-loaded design system.  When ``None`` a default
        :class:`DesignSystem` is created (optionally with *theme_path*).
    theme_path : str or None, optional
        Theme overlay YAML, only used when *design_system* is ``None``.
    """

    def __init__(
        self,
        design_system: DesignSystem | None = None,
        theme_path: str | None = None,
    ) -> None:
        if design_system is not None:
            self._design = design_system
        else:
            self._design = DesignSystem(theme_path=theme_path)

        self._body = self._design.get_body_style()
        self._table_style = self._design.get_component_style("table")
        self._list_style = self._design.get_component_style("list")
        self._placeholder_color = self._design.hex(
            self._design.get_component_style("placeholder")["color"]
        )

    # ── Public API ────────────────────────────────────────────────────

    def generate(
        self,
        elements: Iterable[DocumentElement],
        *,
        project_name: str = "",
        creator: str | None = None,
    ) -> Document:
        """Render *elements* into a new python-docx document."""
        doc = new_docx()
        self._setup_page(doc)
        self._setup_body_style(doc)
        self._set_core_properties(doc, project_name, creator)

        count = 0
        for element in elements:
            self._render_element(doc, element)
            count += 1

        logger.info("Rendered %d element(s) into the document", count)
        return doc

    def generate_bytes(self, elements: Iterable[DocumentElement], **kwargs: Any) -> bytes:
        """Like :meth:`generate` but return the serialized ``.docx`` bytes."""
        doc = self.generate(elements, **kwargs)
        buffer = io.BytesIO()
        doc.save(buffer)
        return buffer.getvalue()

    # ── Document setup ────────────────────────────────────────────────

    def _setup_page(self, doc: Document) -> None:
        section = doc.sections[0]
        section.page_width = Mm(self._design.page_width_mm)
        section.page_height = Mm(self._design.page_height_mm)

    def _setup_body_style(self, doc: Document) -> None:
        normal = doc.styles["Normal"]
        normal.font.name = self._body.get("font", "Arial")
        normal.font.size = Pt(self._body.get("size", 11))

    def _set_core_properties(self, doc: Document, project_name: str, creator: str | None) -> None:
        export_cfg = self._design.get_export_config()
        props = doc.core_properties
        props.author = creator or export_cfg.get("creator", "")
        props.title = export_cfg.get("document_title", "Solution Architecture Design Document")
        props.comments = f"Solution Design Document for {project_name}"

    # ── Element dispatch ──────────────────────────────────────────────

    def _render_element(self, doc: Document, element: DocumentElement) -> None:
        match element:
            case Heading():
                self._render_heading(doc, element)
            case Paragraph():
                self._render_paragraph(doc, element)
            case ListItem():
                self._render_list_item(doc, element)
            case Table():
                self._render_table(doc, element)
            case Image():
                self._render_image(doc, element)
            case PageBreak():
                doc.add_page_break()
            case _:
                logger.warning("Unsupported element type: %s", type(element).__name__)

    # ── Runs ──────────────────────────────────────────────────────────

    def _add_runs(
        self,
        para: DocxParagraph,
        runs: Iterable[TextRun],
        *,
        font_name: str | None = None,
        size_pt: float | None = None,
        bold: bool = False,
    ) -> None:
        for text_run in runs:
            run = para.add_run(text_run.text)
            run.bold = text_run.bold or bold or None
            if text_run.italic:
                run.italic = True
            if text_run.underline or text_run.is_link:
                run.underline = True

            name = text_run.font_family or font_name
            if name:
                run.font.name = name
            size = text_run.font_size_pt or size_pt
            if size:
                run.font.size = Pt(size)
            if text_run.color:
                run.font.color.rgb = _hex_to_rgb(text_run.color)

            if text_run.is_link and text_run.href:
                _wrap_in_hyperlink(para, run, text_run.href)

    @staticmethod
    def _apply_alignment(para: DocxParagraph, alignment: Alignment) -> None:
        para.alignment = _ALIGNMENTS.get(alignment, WD_ALIGN_PARAGRAPH.LEFT)

    # ── Headings ──────────────────────────────────────────────────────

    def _render_heading(self, doc: Document, heading: Heading) -> None:
        style = self._design.get_heading_style(heading.level)
        para = doc.add_paragraph(style=f"Heading {heading.level}")
        self._apply_alignment(para, heading.alignment)
        before = heading.spacing_before
        after = heading.spacing_after
        para.paragraph_format.space_before = Twips(
            before if before is not None else style.get("spacing_before", 240)
        )
        para.paragraph_format.space_after = Twips(
            after if after is not None else style.get("spacing_after", 120)
        )
        para.paragraph_format.keep_with_next = True

        color = style.get("color", "#000000")
        runs = [
            run if run.color else replace(run, color=color.lstrip("#"))
            for run in heading.runs
        ]
        self._add_runs(
            para, runs, font_name=style.get("font"), size_pt=style.get("size"), bold=True,
        )
        logger.debug("Rendered H%d: '%s'", heading.level, heading.text[:60])

    # ── Paragraphs and list items ─────────────────────────────────────

    def _render_paragraph(self, doc: Document, paragraph: Paragraph) -> None:
        para = doc.add_paragraph()
        fmt = para.paragraph_format
        self._apply_alignment(para, paragraph.alignment)

        if paragraph.indent is not None:
            if paragraph.indent.left is not None:
                fmt.left_indent = Twips(paragraph.indent.left)
            if paragraph.indent.first_line is not None:
                fmt.first_line_indent = Twips(paragraph.indent.first_line)
        if paragraph.spacing_before is not None:
            fmt.space_before = Twips(paragraph.spacing_before)
        if paragraph.spacing_after is not None:
            fmt.space_after = Twips(paragraph.spacing_after)
        if paragraph.shading:
            _set_paragraph_shading(para, paragraph.shading)

        self._add_runs(para, paragraph.runs)

    def _render_list_item(self, doc: Document, item: ListItem) -> None:
        para = doc.add_paragraph()
        para.paragraph_format.left_indent = Twips(item.indent)
        para.paragraph_format.space_after = Twips(self._list_style.get("spacing_after", 60))

        prefix = para.add_run(item.prefix)
        prefix.bold = True
        self._add_runs(para, item.runs)

    # ── Tables ────────────────────────────────────────────────────────

    def _render_table(self, doc: Document, table: Table) -> None:
        col_count = table.column_count
        if col_count == 0 or not table.rows:
            logger.warning("Skipping empty table")
            return

        docx_table = doc.add_table(rows=len(table.rows), cols=col_count)
        docx_table.alignment = WD_TABLE_ALIGNMENT.CENTER
        _set_table_borders(
            docx_table,
            color=self._table_style.get("border_color", "#333333"),
            size=self._table_style.get("border_size", 4),
        )

        for row_idx, row in enumerate(table.rows):
            for col_idx, cell in enumerate(row.cells):
                docx_cell = docx_table.cell(row_idx, col_idx)
                if cell.shading:
                    _set_cell_shading(docx_cell, cell.shading)
                if cell.vertical_align in _VERTICAL_ALIGNMENTS:
                    docx_cell.vertical_alignment = _VERTICAL_ALIGNMENTS[cell.vertical_align]

                para = docx_cell.paragraphs[0]
                self._apply_alignment(para, cell.alignment)
                para.paragraph_format.space_before = Twips(0)
                para.paragraph_format.space_after = Twips(0)
                self._add_runs(para, cell.runs, bold=cell.is_header)

        logger.debug("Rendered table: %d row(s) x %d col(s)", len(table.rows), col_count)

    # ── Images ────────────────────────────────────────────────────────

    def _render_image(self, doc: Document, image: Image) -> None:
        para = doc.add_paragraph()
        self._apply_alignment(para, image.alignment)
        try:
            para.add_run().add_picture(
                io.BytesIO(image.data),
                width=Emu(image.width * EMU_PER_PX),
                height=Emu(image.height * EMU_PER_PX),
            )
        except (UnrecognizedImageError, OSError, ValueError) as exc:
            logger.warning("Could not embed image (%d bytes): %s", len(image.data), exc)
            # Drop the half-built run and leave a visible placeholder instead.
            for run_el in list(para._p.findall(qn("w:r"))):
                para._p.remove(run_el)
            self._add_runs(para, [TextRun(
                text=UNEMBEDDABLE_IMAGE_TEXT,
                italic=True,
                color=self._placeholder_color,
            )])
            return
        logger.debug("Rendered image %dx%d px", image.width, image.height)
