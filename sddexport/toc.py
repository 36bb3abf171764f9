"""Table of contents fragment generation.

The table of contents is produced as a markup fragment so that both export
targets can treat it like any other section body: the editable target feeds
it through the visitor, the image target embeds it in the composed page.
"""

from __future__ import annotations

import html
import logging
from typing import Mapping, Sequence

from sddexport.models import SectionDescriptor
from sddexport.sections import numbered_title

logger = logging.getLogger(__name__)

EXCLUDED_SECTION_IDS = frozenset({"cover-page", "table-of-contents"})

EMPTY_TOC_MARKUP = (
    "<p><em>Table of Contents will be generated once sections are created.</em></p>"
)

_ENTRY_COLOR = "#1f2937"
_SUBENTRY_COLOR = "#4b5563"


def section_anchor(section_id: str, subsection_number: str | None = None) -> str:
    """Anchor id of a section, or of one of its numbered subsections."""
    if subsection_number is None:
        return f"section-{section_id}"
    return f"section-{section_id}-{subsection_number.replace('.', '-')}"


def _entry(section: SectionDescriptor) -> str:
    title = html.escape(numbered_title(section))
    return (
        '<span style="display: inline-flex; align-items: center;">'
        f'<a href="#{section_anchor(section.id)}" '
        f'style="text-decoration: none; color: {_ENTRY_COLOR}; font-weight: 600;">'
        f"{title}</a></span>"
    )


def _subentry(section: SectionDescriptor, number: str, title: str) -> str:
    return (
        '<span style="display: inline-flex; align-items: center; '
        f'font-size: 0.92em; color: {_SUBENTRY_COLOR};">'
        f'<a href="#{section_anchor(section.id, number)}" '
        'style="text-decoration: none; color: inherit;">'
        f"{html.escape(number)} {html.escape(title)}</a></span>"
    )


def generate_table_of_contents(
    sections: Sequence[SectionDescriptor],
    generated_content: Mapping[str, str],
) -> str:
    """Build the table of contents fragment for *sections*.

    The cover page and the table of contents itself are never listed, nor is
    any section whose body has not been generated yet.  Subsection numbers
    are recomputed from the section's display number without modifying
    *sections*.
    """
    listed = [
        s for s in sections
        if s.id not in EXCLUDED_SECTION_IDS and generated_content.get(s.id)
    ]
    if not listed:
        return EMPTY_TOC_MARKUP

    parts = [
        '<div class="table-of-contents" style="font-size: 14px;">',
        '<div style="display: flex; flex-wrap: wrap; gap: 12px 24px; align-items: center;">',
    ]
    for section in listed:
        parts.append(_entry(section))
        for index, subsection in enumerate(section.subsections, start=1):
            number = f"{section.display_number}.{index}"
            parts.append(_subentry(section, number, subsection.title))
    parts.append("</div></div>")

    logger.debug("Table of contents lists %d section(s)", len(listed))
    return "".join(parts)
