"""Conversion of rich-text trees into target-agnostic document elements.

The visitor walks a :class:`RichTextNode` tree produced by
:func:`sddexport.markup.parse_markup` and emits a flat list of
:class:`DocumentElement` values.  Block tags are routed through a dispatch
table; inline formatting is carried down the recursion as an immutable
:class:`InlineFormat` and resolved into :class:`TextRun` values at the text
leaves.

Conversion never raises.  Unsupported content degrades to a plain-text
paragraph, a placeholder run, or is dropped.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, replace
from typing import Callable, Optional

from sddexport.models import (
    Alignment,
    DocumentElement,
    ElementNode,
    Heading,
    Image,
    Indent,
    ListItem,
    Paragraph,
    RichTextNode,
    Table,
    TableCell,
    TableRow,
    TextNode,
    TextRun,
)
from sddexport.styles import dimension_px, parse_color, parse_declarations, resolve

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Palette:
    """Fixed colours (bare hex) and fonts applied during conversion."""
    heading: str = "8B1A1A"
    link: str = "0563C1"
    header_fill: str = "F0F0F0"
    quote_fill: str = "F9F9F9"
    code_fill: str = "F5F5F5"
    placeholder: str = "666666"
    code_font: str = "Courier New"


@dataclass(frozen=True)
class ImageBounds:
    """Pixel bounds applied to embedded images."""
    default_width: int = 520
    default_height: int = 320
    min_width: int = 80
    max_width: int = 640
    min_height: int = 80
    max_height: int = 900
    content_width: int = 520


@dataclass(frozen=True)
class BlockLayout:
    """Indents in twips applied to lists and quotes."""
    list_indent: int = 360
    quote_indent: int = 360


DEFAULT_PALETTE = Palette()
DEFAULT_IMAGE_BOUNDS = ImageBounds()
DEFAULT_LAYOUT = BlockLayout()

EXTERNAL_IMAGE_PLACEHOLDER = (
    "[Image omitted: external image sources are not embedded in Word exports]"
)

_HEADING_LEVELS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4}
_CONTAINER_TAGS = frozenset({"div", "section", "article", "body", "main"})
_LIST_TAGS = frozenset({"ul", "ol"})
_LEADING_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")

PARAGRAPH_SPACING_AFTER = 120


# ── Inline formatting ──────────────────────────────────────────────────


@dataclass(frozen=True)
class InlineFormat:
    """Formatting inherited from ancestor elements."""
    bold: bool = False
    italic: bool = False
    underline: bool = False
    color: Optional[str] = None
    font_size_pt: Optional[float] = None
    font_family: Optional[str] = None

    def derive(self, element: ElementNode) -> InlineFormat:
        """Return the format in effect inside *element*."""
        fmt = self
        tag = element.tag
        if tag in ("strong", "b"):
            fmt = replace(fmt, bold=True)
        elif tag in ("em", "i"):
            fmt = replace(fmt, italic=True)
        elif tag == "u":
            fmt = replace(fmt, underline=True)

        attrs = resolve(element.style)
        if attrs.color:
            fmt = replace(fmt, color=attrs.color)
        if attrs.font_size_pt:
            fmt = replace(fmt, font_size_pt=attrs.font_size_pt)
        if attrs.font_family:
            fmt = replace(fmt, font_family=attrs.font_family)
        return fmt

    def run(self, text: str, **overrides) -> TextRun:
        run = TextRun(
            text=text,
            bold=self.bold,
            italic=self.italic,
            underline=self.underline,
            color=self.color,
            font_size_pt=self.font_size_pt,
            font_family=self.font_family,
        )
        for key, value in overrides.items():
            setattr(run, key, value)
        return run


def _text(element: ElementNode) -> str:
    return element.text_content().strip()


def inline_runs(
    element: ElementNode,
    fmt: InlineFormat = InlineFormat(),
    *,
    link_color: str = DEFAULT_PALETTE.link,
    keep_blank: bool = True,
    skip_tags: frozenset[str] = frozenset(),
) -> list[TextRun]:
    """Collect the styled runs of *element*'s subtree.

    An anchor with an ``href`` collapses into a single run carrying the
    anchor's own text (or the href when it has none).  Whitespace-only text
    is dropped unless *keep_blank* is set.
    """
    runs: list[TextRun] = []
    for child in element.children:
        if isinstance(child, TextNode):
            text = child.content
            if text and (keep_blank or text.strip()):
                runs.append(fmt.run(text))
            continue

        if child.tag in skip_tags:
            continue

        child_fmt = fmt.derive(child)
        href = child.get("href") if child.tag == "a" else ""
        if href:
            runs.append(child_fmt.run(
                _text(child) or href,
                color=child_fmt.color or link_color,
                font_size_pt=None,
                font_family=None,
                is_link=True,
                href=href,
            ))
        else:
            runs.extend(inline_runs(
                child, child_fmt,
                link_color=link_color,
                keep_blank=keep_blank,
                skip_tags=skip_tags,
            ))
    return runs


# ── Block converters ───────────────────────────────────────────────────


@dataclass(frozen=True)
class _Context:
    heading_color: str
    palette: Palette
    bounds: ImageBounds
    layout: BlockLayout


def _alignment(style: str, default: Alignment = Alignment.LEFT) -> Alignment:
    return resolve(style).alignment or default


def _indent(style: str) -> Optional[Indent]:
    attrs = resolve(style)
    if attrs.indent_left is None and attrs.indent_first_line is None:
        return None
    return Indent(left=attrs.indent_left, first_line=attrs.indent_first_line)


def _convert_heading(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    attrs = resolve(element.style)
    color = attrs.color or ctx.heading_color
    runs = inline_runs(
        element, InlineFormat(color=color), link_color=color, keep_blank=False,
    )
    if not runs:
        text = _text(element)
        if not text:
            return []
        runs = [TextRun(text=text, color=color)]
    return [Heading(
        level=_HEADING_LEVELS[element.tag],
        runs=runs,
        alignment=attrs.alignment or Alignment.LEFT,
    )]


def _convert_paragraph(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    dropped = sum(1 for _ in element.iter_elements("img"))
    if dropped:
        # Paragraphs carry runs only; images must sit at block level.
        logger.warning("Dropping %d image(s) nested inside a paragraph", dropped)
    runs = inline_runs(element, link_color=ctx.palette.link) or [TextRun(text="")]
    return [Paragraph(
        runs=runs,
        alignment=_alignment(element.style),
        indent=_indent(element.style),
        spacing_after=PARAGRAPH_SPACING_AFTER,
    )]


def _convert_list(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    ordered = element.tag == "ol"
    indent = resolve(element.style).indent_left or ctx.layout.list_indent
    items: list[DocumentElement] = []
    for index, item in enumerate(element.iter_elements("li")):
        prefix = f"{index + 1}. " if ordered else "• "
        runs = inline_runs(item, link_color=ctx.palette.link, skip_tags=_LIST_TAGS)
        items.append(ListItem(prefix=prefix, runs=runs, indent=indent))
    return items


def _table_rows(table: ElementNode):
    """Yield the ``tr`` elements of *table*, skipping nested tables."""
    def walk(node: ElementNode):
        for child in node.children:
            if not isinstance(child, ElementNode) or child.tag == "table":
                continue
            if child.tag == "tr":
                yield child
            else:
                yield from walk(child)
    yield from walk(table)


def _convert_table(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    rows: list[TableRow] = []
    for tr in _table_rows(element):
        cells: list[TableCell] = []
        for cell in tr.children:
            if not isinstance(cell, ElementNode) or cell.tag not in ("th", "td"):
                continue
            is_header = cell.tag == "th"
            style = cell.style
            attrs = resolve(style)
            runs = inline_runs(cell, link_color=ctx.palette.link)
            if not runs:
                runs = [TextRun(text=_text(cell))]
            cells.append(TableCell(
                runs=runs,
                is_header=is_header,
                alignment=attrs.alignment or Alignment.LEFT,
                shading=ctx.palette.header_fill if is_header else attrs.background_color,
                vertical_align=parse_declarations(style).get("vertical-align"),
            ))
        if cells:
            rows.append(TableRow(cells=cells))

    if not rows:
        logger.debug("Dropping table without rows")
        return []
    return [Table(rows=rows)]


def decode_data_uri(src: str) -> Optional[bytes]:
    """Decode a base64 ``data:`` URI, returning ``None`` when it is unusable."""
    header, sep, payload = src.partition(",")
    if not sep or ";base64" not in header.lower():
        return None
    try:
        data = base64.b64decode(payload.strip(), validate=False)
    except (binascii.Error, ValueError):
        return None
    return data or None


def _leading_number(value: str) -> Optional[float]:
    match = _LEADING_NUMBER_RE.match(value or "")
    if not match:
        return None
    number = float(match.group(1))
    return number or None


def image_dimensions(element: ElementNode, bounds: ImageBounds = DEFAULT_IMAGE_BOUNDS) -> tuple[int, int]:
    """Width and height in pixels, from attributes or style, clamped to *bounds*."""
    style = element.style
    width = (
        _leading_number(element.get("width"))
        or dimension_px(style, "width", bounds.content_width)
        or bounds.default_width
    )
    height = (
        _leading_number(element.get("height"))
        or dimension_px(style, "height", bounds.content_width)
        or bounds.default_height
    )
    width = max(bounds.min_width, min(width, bounds.max_width))
    height = max(bounds.min_height, min(height, bounds.max_height))
    return round(width), round(height)


def _convert_image(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    src = element.get("src").strip()
    if not src:
        return []

    if not src.lower().startswith("data:image"):
        logger.warning("Skipping non-embedded image source: %.80s", src)
        return [Paragraph(
            runs=[TextRun(
                text=EXTERNAL_IMAGE_PLACEHOLDER,
                italic=True,
                color=ctx.palette.placeholder,
            )],
            spacing_after=PARAGRAPH_SPACING_AFTER,
        )]

    data = decode_data_uri(src)
    if data is None:
        logger.warning("Dropping image with undecodable data URI")
        return []

    width, height = image_dimensions(element, ctx.bounds)
    alignment = Alignment.CENTER
    if "text-align" in parse_declarations(element.style):
        alignment = _alignment(element.style)
    return [Image(data=data, width=width, height=height, alignment=alignment)]


def _convert_container(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    elements: list[DocumentElement] = []
    for child in element.children:
        elements.extend(_convert_node(child, ctx))
    return elements


def _convert_blockquote(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    runs = inline_runs(element, link_color=ctx.palette.link)
    if not runs:
        runs = [TextRun(text=_text(element), italic=True)]
    return [Paragraph(
        runs=runs,
        indent=Indent(left=ctx.layout.quote_indent),
        shading=ctx.palette.quote_fill,
    )]


def _convert_code(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    runs = inline_runs(element, link_color=ctx.palette.link)
    if not runs:
        runs = [TextRun(text=_text(element), font_family=ctx.palette.code_font)]
    return [Paragraph(
        runs=runs,
        shading=ctx.palette.code_fill,
        spacing_after=PARAGRAPH_SPACING_AFTER,
    )]


def _convert_fallback(element: ElementNode, ctx: _Context) -> list[DocumentElement]:
    text = _text(element)
    if not text:
        return []
    return [Paragraph(runs=[TextRun(text=text)])]


_Converter = Callable[[ElementNode, _Context], list[DocumentElement]]

_DISPATCH: dict[str, _Converter] = {
    **{tag: _convert_heading for tag in _HEADING_LEVELS},
    "p": _convert_paragraph,
    "ul": _convert_list,
    "ol": _convert_list,
    "table": _convert_table,
    "img": _convert_image,
    "blockquote": _convert_blockquote,
    "pre": _convert_code,
    "code": _convert_code,
    **{tag: _convert_container for tag in _CONTAINER_TAGS},
}


def _convert_node(node: RichTextNode, ctx: _Context) -> list[DocumentElement]:
    if isinstance(node, TextNode):
        text = node.content.strip()
        return [Paragraph(runs=[TextRun(text=text)])] if text else []

    handler = _DISPATCH.get(node.tag, _convert_fallback)
    try:
        return handler(node, ctx)
    except Exception:
        # A malformed node degrades to its text rather than failing the export.
        logger.warning("Failed to convert <%s>; using plain text", node.tag, exc_info=True)
        return _convert_fallback(node, ctx)


# ── Public API ─────────────────────────────────────────────────────────


def _normalize_color(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    return parse_color(value) or parse_color(f"#{value}")


def convert(
    tree: RichTextNode,
    default_color: Optional[str] = None,
    *,
    palette: Palette = DEFAULT_PALETTE,
    image_bounds: ImageBounds = DEFAULT_IMAGE_BOUNDS,
    layout: BlockLayout = DEFAULT_LAYOUT,
) -> list[DocumentElement]:
    """Convert a parsed rich-text tree into document elements.

    The root element itself is treated as a container.  *default_color* is
    the emphasis colour applied to headings that carry no colour of their
    own: any CSS colour, or bare hex digits.  It falls back to the palette's
    heading colour when absent or unrecognised.
    """
    ctx = _Context(
        heading_color=_normalize_color(default_color) or palette.heading,
        palette=palette,
        bounds=image_bounds,
        layout=layout,
    )
    if isinstance(tree, TextNode):
        return _convert_node(tree, ctx)
    elements = _convert_container(tree, ctx)
    logger.debug("Converted <%s> into %d element(s)", tree.tag, len(elements))
    return elements
