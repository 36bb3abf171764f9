"""Parsing of rich-text markup into :class:`RichTextNode` trees.

Section bodies arrive as HTML fragments.  lxml's HTML parser is lenient
enough for editor output; the parsed tree is copied into immutable
:class:`ElementNode` / :class:`TextNode` values so nothing downstream
touches lxml objects.
"""

from __future__ import annotations

import logging

from lxml import etree
from lxml import html as lxml_html

from sddexport.models import ElementNode, RichTextNode, TextNode

logger = logging.getLogger(__name__)

ROOT_TAG = "div"


def _convert(element) -> ElementNode:
    children: list[RichTextNode] = []
    if element.text:
        children.append(TextNode(element.text))

    for child in element:
        # Comments and processing instructions carry a callable tag; only
        # their tail text belongs to the document.
        if isinstance(child.tag, str):
            children.append(_convert(child))
        if child.tail:
            children.append(TextNode(child.tail))

    tag = etree.QName(element.tag).localname.lower()
    return ElementNode(
        tag=tag,
        attributes={str(k).lower(): str(v) for k, v in element.attrib.items()},
        children=tuple(children),
    )


def parse_markup(markup: str | None) -> ElementNode:
    """Parse an HTML fragment and return it wrapped in a root ``div``.

    Never raises: empty or unparseable markup yields an empty root.
    """
    if not markup or not markup.strip():
        return ElementNode(tag=ROOT_TAG)

    try:
        root = lxml_html.fragment_fromstring(markup, create_parent=ROOT_TAG)
    except (etree.ParserError, etree.ParseError, ValueError) as exc:
        logger.warning("Could not parse markup (%d chars): %s", len(markup), exc)
        return ElementNode(tag=ROOT_TAG)

    return _convert(root)
