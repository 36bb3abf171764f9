"""Slicing of one full-document bitmap into fixed-size PDF pages.

Pagination is purely arithmetic: the bitmap height is converted to
millimetres at the output page width, then cut into consecutive bands of one
page height.  Content is not inspected, so a heading or a table row may be
split across two pages.
"""

from __future__ import annotations

import io
import logging
from typing import Sequence

from PIL import Image as PILImage

from sddexport.errors import RenderError
from sddexport.models import PageBand

logger = logging.getLogger(__name__)

A4_WIDTH_MM = 210.0
A4_HEIGHT_MM = 297.0
MM_PER_INCH = 25.4

# Residue below this is float noise, not another page.
_EPSILON_MM = 1e-6


def paginate(
    height_px: int,
    width_px: int,
    page_width_mm: float = A4_WIDTH_MM,
    page_height_mm: float = A4_HEIGHT_MM,
) -> list[tuple[float, float]]:
    """Return ``(offset_mm, height_mm)`` for every page of the bitmap.

    >>> paginate(594, 210)
    [(0.0, 297.0), (297.0, 297.0)]

    Raises
    ------
    RenderError
        If either bitmap dimension is zero.
    """
    if width_px <= 0 or height_px <= 0:
        raise RenderError(f"Captured bitmap is empty: width={width_px}, height={height_px}")

    total_mm = height_px * page_width_mm / width_px
    bands: list[tuple[float, float]] = []
    offset = 0.0
    height_left = total_mm
    while height_left > _EPSILON_MM:
        bands.append((offset, min(page_height_mm, height_left)))
        offset += page_height_mm
        height_left -= page_height_mm

    logger.debug("%.1f mm of content -> %d page(s)", total_mm, len(bands))
    return bands


class PaginationEngine:
    """Cuts a bitmap into :class:`PageBand` values and writes them as a PDF.

    Parameters
    ----------
    page_width_mm, page_height_mm : float
        Output page size; A4 portrait by default.
    """

    def __init__(
        self,
        page_width_mm: float = A4_WIDTH_MM,
        page_height_mm: float = A4_HEIGHT_MM,
    ) -> None:
        self.page_width_mm = page_width_mm
        self.page_height_mm = page_height_mm

    def _px_per_mm(self, width_px: int) -> float:
        return width_px / self.page_width_mm

    def slice_bands(self, bitmap: PILImage.Image) -> list[PageBand]:
        """Crop *bitmap* into one PNG-encoded band per page."""
        width, height = bitmap.size
        px_per_mm = self._px_per_mm(width) if width else 0.0
        bands: list[PageBand] = []
        for offset_mm, height_mm in paginate(
            height, width, self.page_width_mm, self.page_height_mm,
        ):
            top = round(offset_mm * px_per_mm)
            bottom = min(height, round((offset_mm + height_mm) * px_per_mm))
            buffer = io.BytesIO()
            bitmap.crop((0, top, width, max(bottom, top + 1))).save(buffer, format="PNG")
            bands.append(PageBand(
                image_data=buffer.getvalue(),
                offset_mm=offset_mm,
                height_mm=height_mm,
            ))
        return bands

    def render_pdf(self, bands: Sequence[PageBand], width_px: int) -> bytes:
        """Place each band at the top of a white page and encode the PDF."""
        if not bands:
            return b""
        px_per_mm = self._px_per_mm(width_px)
        page_size = (width_px, round(self.page_height_mm * px_per_mm))
        dpi = px_per_mm * MM_PER_INCH

        pages: list[PILImage.Image] = []
        for band in bands:
            page = PILImage.new("RGB", page_size, "white")
            with PILImage.open(io.BytesIO(band.image_data)) as slice_img:
                page.paste(slice_img.convert("RGB"), (0, 0))
            pages.append(page)

        buffer = io.BytesIO()
        pages[0].save(
            buffer,
            format="PDF",
            save_all=True,
            append_images=pages[1:],
            resolution=dpi,
        )
        logger.info("Rendered %d PDF page(s) at %.0f dpi", len(pages), dpi)
        return buffer.getvalue()

    def to_pdf(self, bitmap: PILImage.Image) -> bytes:
        return self.render_pdf(self.slice_bands(bitmap), bitmap.width)
