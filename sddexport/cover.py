"""Cover page construction for both export targets.

The editable target either embeds a raster of the caller's custom cover
markup or falls back to a structural cover (spacer, centered title, optional
details).  The image target always embeds cover markup at the top of the
composed page: the custom markup when supplied, otherwise the markup built
here from the :class:`CoverPageSettings`.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime

from sddexport.design import DesignSystem
from sddexport.models import (
    Alignment,
    CoverPageSettings,
    DocumentElement,
    Heading,
    PageBreak,
    Paragraph,
    TextRun,
)

logger = logging.getLogger(__name__)


def default_cover_date(now: datetime | None = None) -> str:
    """Today's date in long day-month-year form, e.g. ``"07 March 2025"``."""
    return (now or datetime.now()).strftime("%d %B %Y")


class CoverBuilder:
    """Builds cover content from the cover settings and the design system.

    Parameters
    ----------
    design : DesignSystem
        Provides the cover defaults (organization, logo text, colours,
        spacing) and the raster bounds used when the cover is embedded as an
        image.
    """

    def __init__(self, design: DesignSystem) -> None:
        self._design = design
        self._config = design.get_cover_config()

    def _title(self, project_name: str) -> str:
        return project_name.strip() or self._config.get("default_title", "Solution Design Document")

    def _organization(self, settings: CoverPageSettings) -> str:
        return settings.organization_name or self._config.get("organization_name", "")

    def _logo_text(self, settings: CoverPageSettings) -> str:
        return settings.logo_text or self._config.get("logo_text", "")

    # ── Structural cover (editable target) ─────────────────────────

    def elements(
        self,
        project_name: str,
        settings: CoverPageSettings | None = None,
    ) -> list[DocumentElement]:
        """Structural cover elements, ending with the cover/body page break."""
        settings = settings or CoverPageSettings()
        muted = self._design.hex("muted_gray")
        elements: list[DocumentElement] = [
            Paragraph(runs=[TextRun(text="")], spacing_before=self._config.get("top_spacer", 1440)),
        ]

        if settings.show_project_name:
            elements.append(Heading(
                level=1,
                runs=[TextRun(text=self._title(project_name))],
                alignment=Alignment.CENTER,
            ))
            if settings.description:
                elements.append(Paragraph(
                    runs=[TextRun(text=settings.description)],
                    alignment=Alignment.CENTER,
                    spacing_after=self._config.get("description_spacing_after", 480),
                ))

        if settings.show_organization and self._organization(settings):
            elements.append(Paragraph(
                runs=[TextRun(text=self._organization(settings), bold=True)],
                alignment=Alignment.CENTER,
            ))

        details = f"Version {settings.version or '1.0'} | {settings.date or default_cover_date()}"
        elements.append(Paragraph(
            runs=[TextRun(text=details, color=muted)],
            alignment=Alignment.CENTER,
        ))
        if settings.footer_text:
            elements.append(Paragraph(
                runs=[TextRun(text=settings.footer_text, italic=True, color=muted)],
                alignment=Alignment.CENTER,
            ))

        elements.append(PageBreak())
        logger.debug("Structural cover: %d element(s)", len(elements))
        return elements

    # ── Cover markup (image target) ────────────────────────────────

    def html(
        self,
        project_name: str,
        settings: CoverPageSettings | None = None,
    ) -> str:
        """Cover markup for the composed page."""
        settings = settings or CoverPageSettings()
        esc = html.escape
        accent = self._config.get("accent_line_color", "#FF6B35")
        title_color = self._config.get("title_color", "#1F2937")
        subtitle_color = self._config.get("subtitle_color", "#4B5563")

        parts = [
            '<div class="cover-page" style="min-height: 800px; display: flex; '
            "flex-direction: column; align-items: center; justify-content: center; "
            'position: relative; background-color: #FFFFFF; padding: 40px; margin-bottom: 40px;">'
        ]
        if settings.show_orange_line:
            parts.append(
                '<div style="position: absolute; top: 0; bottom: 0; right: 20%; '
                f'width: 4px; background-color: {accent};"></div>'
            )
        if settings.show_organization:
            logo = self._logo_text(settings)
            if logo:
                parts.append(
                    f'<div style="font-size: 28pt; font-weight: bold; color: {accent}; '
                    f'letter-spacing: 4px; margin-bottom: 24pt;">{esc(logo)}</div>'
                )
        if settings.show_project_name:
            parts.append(
                '<div style="text-align: center; margin-bottom: 40pt; width: 80%; max-width: 600px;">'
                f'<h2 style="font-size: 36pt; font-weight: bold; color: {title_color}; '
                f'margin-bottom: 16pt; margin-top: 0;">{esc(self._title(project_name))}</h2>'
            )
            if settings.description:
                parts.append(
                    f'<p style="font-size: 20pt; color: {subtitle_color}; margin-bottom: 24pt;">'
                    f"{esc(settings.description)}</p>"
                )
            parts.append("</div>")
        if settings.show_organization and self._organization(settings):
            parts.append(
                f'<p style="font-size: 14pt; color: {title_color}; margin: 0;">'
                f"{esc(self._organization(settings))}</p>"
            )
        parts.append(
            f'<p style="font-size: 12pt; color: {subtitle_color};">'
            f"Version {esc(settings.version or '1.0')} | "
            f"{esc(settings.date or default_cover_date())}</p>"
        )
        if settings.footer_text:
            parts.append(
                f'<p style="font-size: 10pt; color: {subtitle_color}; font-style: italic;">'
                f"{esc(settings.footer_text)}</p>"
            )
        parts.append("</div>")
        return "".join(parts)

    # ── Cover raster (editable target) ─────────────────────────────

    def raster_markup(self, cover_html: str) -> str:
        """Standalone page wrapping custom cover markup for rasterization."""
        width = self._design.virtual_width_px
        padding = self._config.get("raster_padding_px", 32)
        font = self._design.get_font("display")
        return (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
            '<body style="margin: 0; background: #ffffff;">'
            f'<div id="export-root" style="width: {width}px; padding: {padding}px; '
            f"background: #ffffff; font-family: '{font}', Arial, sans-serif; "
            f'box-sizing: border-box;">{cover_html}</div>'
            "</body></html>"
        )

    def raster_size(self, width_px: int, height_px: int) -> tuple[int, int]:
        """Embedded size of a cover raster: capped width, minimum box."""
        rendering = self._design.get_rendering_config()
        max_width = rendering.get("cover_max_width_px", 620)
        scale = max_width / width_px if width_px > max_width else 1
        width = max(rendering.get("cover_min_width_px", 320), round(width_px * scale))
        height = max(rendering.get("cover_min_height_px", 240), round(height_px * scale))
        return width, height
