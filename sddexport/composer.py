"""Full-document markup composition for the paginated image target.

The whole document (cover plus every section) is laid out as one long page
of fixed virtual width; :mod:`sddexport.rendering` rasterizes it and
:mod:`sddexport.pagination` slices the result into pages.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Sequence

from sddexport.cover import CoverBuilder
from sddexport.design import DesignSystem
from sddexport.models import ExportRequest, SectionDescriptor
from sddexport.sections import numbered_title, remove_duplicate_section_title
from sddexport.toc import EMPTY_TOC_MARKUP, generate_table_of_contents, section_anchor

logger = logging.getLogger(__name__)

PENDING_CONTENT_TEXT = "Content pending generation."
SECTION_ERROR_TEXT = "Error loading content for this section."

ROOT_ELEMENT_ID = "export-root"

_EMPTY_PARAGRAPH_RE = re.compile(r"<p>\s*</p>", re.IGNORECASE)
_EMPTY_DIV_RE = re.compile(r"<div[^>]*>\s*</div>", re.IGNORECASE)
_INTER_TAG_SPACE_RE = re.compile(r">\s+<")
_BLANK_LINES_RE = re.compile(r"\n\s*\n\s*\n+")

_PRINT_CSS = """
* {{ box-sizing: border-box; }}
body {{
  font-family: '{body_font}', 'Calibri', sans-serif;
  font-size: 11pt; line-height: 1.5; color: #000000;
  margin: 0; padding: 0; background-color: #FFFFFF; width: 100%;
}}
.page-container {{
  width: {width}px; min-height: {min_height}px; padding: {padding}px;
  background-color: #FFFFFF; margin: 0;
}}
h1 {{ color: #{h1}; font-size: 24pt; font-weight: bold; margin-top: 0; margin-bottom: 12pt; }}
h2 {{ color: #{h2}; font-size: 18pt; font-weight: bold; margin-top: 24pt; margin-bottom: 12pt; }}
h2:first-of-type {{ margin-top: 0; }}
h3 {{ color: #{h3}; font-size: 14pt; font-weight: bold; margin-top: 16pt; margin-bottom: 8pt; }}
h4 {{ color: #{h4}; font-size: 12pt; font-weight: bold; margin-top: 12pt; margin-bottom: 6pt; }}
p {{ font-size: 11pt; margin-top: 0; margin-bottom: 12pt; text-align: justify; }}
ul, ol {{ margin-top: 0; margin-bottom: 12pt; padding-left: 36pt; }}
li {{ font-size: 11pt; margin-top: 0; margin-bottom: 6pt; line-height: 1.5; }}
table {{ border-collapse: collapse; width: 100%; margin-top: 12pt; margin-bottom: 12pt; }}
th, td {{
  border: 1px solid #{border}; padding: 6pt; text-align: left;
  font-size: 10pt; vertical-align: top;
}}
th {{ background-color: #{header_fill}; font-weight: bold; text-align: center; }}
.section-container {{ margin-top: 24pt; margin-bottom: 24pt; }}
.section-content {{ margin-top: 12pt; }}
blockquote {{
  margin: 12pt 24pt; padding-left: 12pt;
  border-left: 3px solid #{quote_border}; font-style: italic;
}}
code {{
  font-family: '{code_font}', monospace; font-size: 10pt;
  background-color: #{code_fill}; padding: 2pt 4pt;
}}
pre {{
  font-family: '{code_font}', monospace; font-size: 10pt;
  background-color: #{code_fill}; padding: 12pt; border: 1px solid #ddd;
  overflow-x: auto; margin-top: 0; margin-bottom: 12pt;
}}
img {{ max-width: 100%; height: auto; }}
"""


def format_content_for_pdf(content: str) -> str:
    """Drop empty paragraphs and divs and collapse whitespace between tags."""
    if not content:
        return ""
    cleaned = content.strip()
    cleaned = _EMPTY_PARAGRAPH_RE.sub("", cleaned)
    cleaned = _INTER_TAG_SPACE_RE.sub("><", cleaned)
    cleaned = _BLANK_LINES_RE.sub("\n", cleaned)
    cleaned = _EMPTY_DIV_RE.sub("", cleaned)
    return cleaned.strip()


class HtmlComposer:
    """Composes the single page rasterized by the image target."""

    def __init__(self, design: DesignSystem, cover: CoverBuilder | None = None) -> None:
        self._design = design
        self._cover = cover or CoverBuilder(design)

    def stylesheet(self) -> str:
        page = self._design.get_page_config()
        h = self._design.get_heading_style
        return _PRINT_CSS.format(
            body_font=self._design.get_font("body"),
            code_font=self._design.get_component_style("code").get("font") or self._design.get_font("code"),
            width=page.get("virtual_width_px", 794),
            min_height=page.get("virtual_height_px", 1123),
            padding=page.get("padding_px", 76),
            h1=h(1)["color"].lstrip("#"),
            h2=h(2)["color"].lstrip("#"),
            h3=h(3)["color"].lstrip("#"),
            h4=h(4)["color"].lstrip("#"),
            border=self._design.get_component_style("table")["border_color"].lstrip("#"),
            header_fill=self._design.get_component_style("table")["header_bg"].lstrip("#"),
            quote_border=self._design.get_component_style("blockquote")["border_color"].lstrip("#"),
            code_fill=self._design.get_component_style("code")["background"].lstrip("#"),
        )

    def _section_heading(self, section: SectionDescriptor) -> str:
        title_color = self._design.get_component_style("section_title").get("color")
        color = self._design.hex(title_color) if title_color else self._design.heading_color
        return (
            f'<h2 id="{section_anchor(section.id)}" style="color: #{color}; font-size: 18pt; '
            'font-weight: bold; margin-top: 24px; margin-bottom: 12px;">'
            f"{html.escape(numbered_title(section))}</h2>"
        )

    def _section_body(
        self,
        section: SectionDescriptor,
        request: ExportRequest,
        sections: Sequence[SectionDescriptor],
    ) -> str:
        if section.id == "table-of-contents":
            content = generate_table_of_contents(sections, request.generated_content)
            content = content.strip() or EMPTY_TOC_MARKUP
        else:
            content = request.content_for(section.id)

        formatted = ""
        if content:
            formatted = format_content_for_pdf(
                remove_duplicate_section_title(content, section.title)
            )
        if not formatted:
            return (
                '<p style="color: #666; font-style: italic;">'
                f"{PENDING_CONTENT_TEXT}</p>"
            )
        return f'<div class="section-content" style="line-height: 1.6;">{formatted}</div>'

    def section_markup(
        self,
        section: SectionDescriptor,
        request: ExportRequest,
        sections: Sequence[SectionDescriptor],
    ) -> str:
        """Markup of one section container; the cover-page section yields ``""``."""
        if section.id == "cover-page":
            return ""
        try:
            body = self._section_body(section, request, sections)
            return (
                f'<div class="section-container" data-section-id="{html.escape(section.id)}" '
                'style="margin-bottom: 30px; padding-bottom: 20px; border-bottom: 1px solid #e5e5e5;">'
                f"{self._section_heading(section)}{body}</div>"
            )
        except Exception:
            # One broken section must not abort the whole document.
            logger.exception("Error composing section '%s'", section.id)
            return (
                f'<div class="section-container" data-section-id="{html.escape(section.id)}" '
                'style="margin-bottom: 30px;">'
                f"{self._section_heading(section)}"
                f'<p style="color: #d00; font-style: italic;">{SECTION_ERROR_TEXT}</p></div>'
            )

    def cover_markup(self, request: ExportRequest) -> str:
        custom = request.custom_cover_html().strip()
        if custom:
            return f'<div class="cover-page">{custom}</div>'
        return self._cover.html(request.project_context, request.cover_page_settings)

    def compose(self, request: ExportRequest) -> str:
        """Return the complete HTML document for *request*."""
        sections = list(request.sections)
        body = "\n".join(
            markup for markup in (
                self.section_markup(section, request, sections) for section in sections
            ) if markup
        )
        document = (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
            f"<style>{self.stylesheet()}</style></head><body>"
            f'<div id="{ROOT_ELEMENT_ID}" class="page-container">'
            f"{self.cover_markup(request)}"
            f'<div style="margin-top: 0;">{body}</div>'
            "</div></body></html>"
        )
        logger.info(
            "Composed %d section(s) into %d characters of markup", len(sections), len(document),
        )
        return document
