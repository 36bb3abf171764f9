"""Data models for the SDD export pipeline.

These models describe the parsed rich-text input, the target-agnostic
document elements produced from it, and the section/cover records the
export adapters consume.  All of them are created per export and discarded
afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class Alignment(Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    JUSTIFY = "justify"


# ── Parsed markup ───────────────────────────────────────────────────


@dataclass(frozen=True)
class TextNode:
    """A run of character data inside the markup tree."""
    content: str


@dataclass(frozen=True)
class ElementNode:
    """A tagged element with its attributes and ordered children."""
    tag: str
    attributes: dict[str, str] = field(default_factory=dict, hash=False)
    children: tuple[RichTextNode, ...] = ()

    def get(self, name: str, default: str = "") -> str:
        return self.attributes.get(name, default)

    @property
    def style(self) -> str:
        return self.attributes.get("style", "")

    def text_content(self) -> str:
        """Concatenated character data of the whole subtree."""
        parts: list[str] = []
        for child in self.children:
            if isinstance(child, TextNode):
                parts.append(child.content)
            else:
                parts.append(child.text_content())
        return "".join(parts)

    def iter_elements(self, *tags: str):
        """Yield descendant elements in document order, optionally by tag."""
        for child in self.children:
            if isinstance(child, ElementNode):
                if not tags or child.tag in tags:
                    yield child
                yield from child.iter_elements(*tags)


RichTextNode = Union[TextNode, ElementNode]


# ── Inline formatting ───────────────────────────────────────────────


@dataclass(frozen=True)
class StyleAttributes:
    """Normalized view of an inline ``style`` declaration.

    Colours are six uppercase hex digits without ``#``; indents are twips.
    """
    color: Optional[str] = None
    background_color: Optional[str] = None
    font_size_pt: Optional[float] = None
    font_family: Optional[str] = None
    alignment: Optional[Alignment] = None
    indent_left: Optional[int] = None
    indent_first_line: Optional[int] = None


@dataclass
class TextRun:
    """A contiguous run of text sharing the same inline formatting."""
    text: str
    bold: bool = False
    italic: bool = False
    underline: bool = False
    color: Optional[str] = None
    font_size_pt: Optional[float] = None
    font_family: Optional[str] = None
    is_link: bool = False
    href: Optional[str] = None


@dataclass(frozen=True)
class Indent:
    """Paragraph indentation in twips."""
    left: Optional[int] = None
    first_line: Optional[int] = None


# ── Block-level elements ────────────────────────────────────────────


@dataclass
class Heading:
    level: int = 1
    runs: list[TextRun] = field(default_factory=list)
    alignment: Alignment = Alignment.LEFT
    # Twips; None keeps the heading style's own spacing.
    spacing_before: Optional[int] = None
    spacing_after: Optional[int] = None

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


@dataclass
class Paragraph:
    """A body paragraph composed of styled text runs."""
    runs: list[TextRun] = field(default_factory=list)
    alignment: Alignment = Alignment.LEFT
    indent: Optional[Indent] = None
    shading: Optional[str] = None
    spacing_after: Optional[int] = None  # twips
    spacing_before: Optional[int] = None

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


@dataclass
class ListItem:
    """A flattened list entry carrying its own bullet or ordinal prefix."""
    prefix: str = "• "
    runs: list[TextRun] = field(default_factory=list)
    indent: int = 360

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


@dataclass
class TableCell:
    runs: list[TextRun] = field(default_factory=list)
    is_header: bool = False
    alignment: Alignment = Alignment.LEFT
    shading: Optional[str] = None
    vertical_align: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


@dataclass
class TableRow:
    cells: list[TableCell] = field(default_factory=list)


@dataclass
class Table:
    rows: list[TableRow] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return max((len(r.cells) for r in self.rows), default=0)


@dataclass
class Image:
    """An embedded image; width and height are in pixels."""
    data: bytes = b""
    width: int = 520
    height: int = 320
    alignment: Alignment = Alignment.CENTER


@dataclass
class PageBreak:
    """An explicit page break."""
    pass


DocumentElement = Heading | Paragraph | ListItem | Table | Image | PageBreak


# ── Sections ────────────────────────────────────────────────────────


@dataclass
class Subsection:
    number: str = ""
    title: str = ""
    description: str = ""


@dataclass
class CustomSection:
    """A user-defined section appended after the standard ones."""
    id: str
    title: str
    subsections: list[Subsection] = field(default_factory=list)
    order: Optional[int] = None


@dataclass
class SectionDescriptor:
    """A section positioned in the document.

    ``display_number`` is the only numbering ever shown; ``original_number``
    keeps whatever numeral a legacy stored title carried.
    """
    id: str
    title: str
    display_number: int = 0
    subsections: list[Subsection] = field(default_factory=list)
    raw_content: str = ""
    original_number: str = ""
    is_custom: bool = False


# ── Export inputs / outputs ─────────────────────────────────────────


@dataclass
class CoverPageSettings:
    version: str = "1.0"
    date: str = ""
    show_organization: bool = True
    organization_name: str = ""
    footer_text: str = ""
    show_orange_line: bool = True
    logo_text: str = ""
    show_project_name: bool = True
    description: str = ""


@dataclass
class ExportRequest:
    """Everything one export invocation needs."""
    sections: list[SectionDescriptor] = field(default_factory=list)
    generated_content: dict[str, str] = field(default_factory=dict)
    project_context: str = ""
    cover_page_settings: CoverPageSettings = field(default_factory=CoverPageSettings)
    cover_html: Optional[str] = None

    def content_for(self, section_id: str) -> str:
        return self.generated_content.get(section_id) or ""

    def custom_cover_html(self) -> str:
        return self.cover_html or self.content_for("cover-page")


@dataclass(frozen=True)
class PageBand:
    """One page-height slice of the full-document raster."""
    image_data: bytes
    offset_mm: float
    height_mm: float
