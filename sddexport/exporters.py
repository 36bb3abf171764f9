"""Export adapters for the editable and the paginated image targets.

Both adapters share one surface: ``export_to_word`` and ``export_to_pdf``.
Each adapter implements exactly one of them and rejects the other with
:class:`WrongExportMethodError`.  An export walks the states

    IDLE -> COMPOSING -> (RENDERING) -> ASSEMBLING -> EMITTED

and ends in FAILED from whichever state an error interrupts.  The public
methods are synchronous; the rendering surface is driven with
:func:`asyncio.run`.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from sddexport.composer import HtmlComposer
from sddexport.cover import CoverBuilder
from sddexport.design import DesignSystem
from sddexport.errors import AssemblyError, ExportError, SaveError, WrongExportMethodError
from sddexport.generator import DocumentGenerator, DocumentModelBuilder
from sddexport.models import ExportRequest, Image
from sddexport.pagination import PaginationEngine
from sddexport.rendering import PlaywrightRasterizer, Rasterizer

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")

MIN_DOCUMENT_MARKUP_LENGTH = 100


class ExportState(Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    RENDERING = "rendering"
    ASSEMBLING = "assembling"
    EMITTED = "emitted"
    FAILED = "failed"


_TRANSITIONS: dict[ExportState, frozenset[ExportState]] = {
    ExportState.IDLE: frozenset({ExportState.COMPOSING}),
    ExportState.COMPOSING: frozenset({ExportState.RENDERING, ExportState.ASSEMBLING}),
    ExportState.RENDERING: frozenset({ExportState.ASSEMBLING}),
    ExportState.ASSEMBLING: frozenset({ExportState.EMITTED}),
    ExportState.EMITTED: frozenset(),
    ExportState.FAILED: frozenset(),
}


def sanitize_file_name(name: str) -> str:
    """Make *name* safe for a file name.

    >>> sanitize_file_name("Core Banking / Phase 2")
    'Core_Banking__Phase_2'
    """
    cleaned = _UNSAFE_CHARS_RE.sub("", _WHITESPACE_RE.sub("_", (name or "").strip()))
    return cleaned or "Document"


class ExportAdapter:
    """Shared state handling and file output for the export targets.

    Parameters
    ----------
    design : DesignSystem or None, optional
        Design system shared by every stage; a default one is loaded when
        omitted.
    rasterizer : Rasterizer or None, optional
        Rendering surface; defaults to :class:`PlaywrightRasterizer`.
    output_dir : str or Path, optional
        Directory receiving the exported file.
    """

    target_label = ""
    extension = ""
    method_name = ""

    def __init__(
        self,
        design: DesignSystem | None = None,
        rasterizer: Rasterizer | None = None,
        output_dir: str | Path = ".",
    ) -> None:
        self._design = design or DesignSystem()
        self._rasterizer = rasterizer
        self.output_dir = Path(output_dir)
        self.state = ExportState.IDLE
        self.history: list[ExportState] = [ExportState.IDLE]

    # ── Public surface ────────────────────────────────────────────────

    def export_to_word(self, request: ExportRequest, project_name: str) -> Path:
        raise WrongExportMethodError(self.method_name, self.target_label)

    def export_to_pdf(self, request: ExportRequest, project_name: str) -> Path:
        raise WrongExportMethodError(self.method_name, self.target_label)

    # ── Helpers ───────────────────────────────────────────────────────

    @property
    def rasterizer(self) -> Rasterizer:
        if self._rasterizer is None:
            self._rasterizer = PlaywrightRasterizer(self._design)
        return self._rasterizer

    def output_path(self, project_name: str) -> Path:
        prefix = self._design.get_export_config().get("file_prefix", "Solution_Architecture_Design_")
        return self.output_dir / f"{prefix}{sanitize_file_name(project_name)}.{self.extension}"

    def _transition(self, state: ExportState) -> None:
        if state is not ExportState.FAILED and state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid export transition {self.state.value} -> {state.value}")
        logger.debug("%s export: %s -> %s", self.target_label, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _write(self, data: bytes, project_name: str) -> Path:
        if not data:
            raise AssemblyError("Generated document is empty", target=self.target_label)

        path = self.output_path(project_name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise SaveError(f"Failed to save {path}: {exc}", target=self.target_label) from exc

        logger.info("%s export saved to %s (%d bytes)", self.target_label, path, len(data))
        return path

    def _run(self, export: Callable[[], Awaitable[Path]]) -> Path:
        self.state = ExportState.IDLE
        self.history = [ExportState.IDLE]
        try:
            path = asyncio.run(export())
        except ExportError as exc:
            exc.target = exc.target or self.target_label
            self._transition(ExportState.FAILED)
            logger.error("%s (%s)", exc, exc.hint)
            raise
        except Exception:
            self._transition(ExportState.FAILED)
            raise
        self._transition(ExportState.EMITTED)
        return path


class WordExportAdapter(ExportAdapter):
    """Produces the editable ``.docx`` target."""

    target_label = "Word"
    extension = "docx"
    method_name = "export_to_word"

    def __init__(self, design: DesignSystem | None = None, **kwargs) -> None:
        super().__init__(design, **kwargs)
        self._cover = CoverBuilder(self._design)
        self._builder = DocumentModelBuilder(self._design, self._cover)
        self._generator = DocumentGenerator(self._design)

    async def _render_cover(self, cover_html: str) -> Image | None:
        """Rasterize custom cover markup; ``None`` means use the structural cover."""
        scale = self._design.get_rendering_config().get("cover_scale", 2)
        try:
            bitmap = await self.rasterizer.rasterize(self._cover.raster_markup(cover_html), scale=scale)
        except Exception as exc:
            logger.warning("Failed to render cover page as image, using fallback: %s", exc)
            return None

        buffer = io.BytesIO()
        bitmap.save(buffer, format="PNG")
        width, height = self._cover.raster_size(bitmap.width, bitmap.height)
        return Image(data=buffer.getvalue(), width=width, height=height)

    async def _export(self, request: ExportRequest, project_name: str) -> Path:
        self._transition(ExportState.COMPOSING)
        logger.info(
            "Word export: %d section(s), %d with content",
            len(request.sections),
            sum(1 for s in request.sections if request.content_for(s.id)),
        )

        cover_image = None
        cover_html = request.custom_cover_html().strip()
        if cover_html:
            self._transition(ExportState.RENDERING)
            cover_image = await self._render_cover(cover_html)

        self._transition(ExportState.ASSEMBLING)
        try:
            elements = self._builder.build(request, cover_image)
            data = self._generator.generate_bytes(
                elements,
                project_name=project_name,
                creator=request.cover_page_settings.organization_name or None,
            )
        except ExportError:
            raise
        except Exception as exc:
            raise AssemblyError(f"Failed to generate Word document: {exc}") from exc
        return self._write(data, project_name)

    def export_to_word(self, request: ExportRequest, project_name: str) -> Path:
        """Write the ``.docx`` for *request* and return its path.

        Raises
        ------
        ExportError
            ``AssemblyError`` for an empty or failed build, ``SaveError``
            when the file cannot be written.
        """
        return self._run(lambda: self._export(request, project_name))


class PdfExportAdapter(ExportAdapter):
    """Produces the paginated image ``.pdf`` target."""

    target_label = "PDF"
    extension = "pdf"
    method_name = "export_to_pdf"

    def __init__(self, design: DesignSystem | None = None, **kwargs) -> None:
        super().__init__(design, **kwargs)
        self._composer = HtmlComposer(self._design)
        self._pagination = PaginationEngine(
            self._design.page_width_mm, self._design.page_height_mm,
        )

    async def _export(self, request: ExportRequest, project_name: str) -> Path:
        self._transition(ExportState.COMPOSING)
        markup = self._composer.compose(request)
        if len(markup) < MIN_DOCUMENT_MARKUP_LENGTH:
            raise AssemblyError("Generated HTML content is too short or empty")

        self._transition(ExportState.RENDERING)
        bitmap = await self.rasterizer.rasterize(markup)

        self._transition(ExportState.ASSEMBLING)
        try:
            data = self._pagination.to_pdf(bitmap)
        except ExportError:
            raise
        except Exception as exc:
            raise AssemblyError(f"Failed to assemble PDF pages: {exc}") from exc
        return self._write(data, project_name)

    def export_to_pdf(self, request: ExportRequest, project_name: str) -> Path:
        """Write the paginated ``.pdf`` for *request* and return its path.

        Raises
        ------
        ExportError
            ``RenderError`` when nothing renders, ``AssemblyError`` or
            ``SaveError`` as for the Word target.
        """
        return self._run(lambda: self._export(request, project_name))
