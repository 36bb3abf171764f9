"""Test suite for the export adapters, the rendering surface, project loading
and the command-line entry point.

No test launches a real browser: the adapters receive a fake rasterizer and
the Playwright surface is exercised against a stubbed ``async_playwright``.
"""

from __future__ import annotations

import io
import re
import textwrap

import pytest
from docx import Document as open_docx
from docx.shared import Emu
from PIL import Image as PILImage

from sddexport.models import CoverPageSettings, ExportRequest


def _request(**kwargs) -> ExportRequest:
    from sddexport.sections import assemble, load_section_catalog

    sections = assemble(
        ["cover-page", "table-of-contents", "introduction", "security"],
        catalog=load_section_catalog(),
    ).all_sections
    kwargs.setdefault("generated_content", {
        "introduction": "<h2>Introduction</h2><p>The platform replaces the legacy core.</p>",
    })
    return ExportRequest(sections=sections, project_context="Atlas", **kwargs)


def _pdf_page_count(data: bytes) -> int:
    return len(re.findall(rb"/Type\s*/Page(?![a-zA-Z])", data))


class FakeRasterizer:
    """Returns a fixed bitmap, or raises, and records every call."""

    def __init__(self, size=(794, 2000), error: Exception | None = None):
        self.size = size
        self.error = error
        self.calls: list[tuple[str, float | None]] = []

    async def rasterize(self, markup, *, scale=None):
        self.calls.append((markup, scale))
        if self.error is not None:
            raise self.error
        return PILImage.new("RGB", self.size, "white")


# ── Adapters ────────────────────────────────────────────────────────


class TestSanitizeFileName:
    @pytest.mark.parametrize("name, expected", [
        ("My Project", "My_Project"),
        ("Core Banking / Phase 2", "Core_Banking__Phase_2"),
        ("  spaced   out  ", "spaced_out"),
        ("v1.2-final", "v1.2-final"),
        ("***", "Document"),
        ("", "Document"),
    ])
    def test_sanitize(self, name, expected):
        from sddexport.exporters import sanitize_file_name

        assert sanitize_file_name(name) == expected


class TestWordExportAdapter:
    def test_structural_cover_export(self, tmp_path):
        from sddexport.exporters import ExportState, WordExportAdapter

        rasterizer = FakeRasterizer()
        adapter = WordExportAdapter(rasterizer=rasterizer, output_dir=tmp_path)
        path = adapter.export_to_word(_request(), "My Project")

        assert path == tmp_path / "Solution_Architecture_Design_My_Project.docx"
        assert path.is_file()
        assert rasterizer.calls == []
        assert adapter.state is ExportState.EMITTED
        assert adapter.history == [
            ExportState.IDLE, ExportState.COMPOSING, ExportState.ASSEMBLING, ExportState.EMITTED,
        ]

        doc = open_docx(str(path))
        texts = [p.text for p in doc.paragraphs]
        assert "Atlas" in texts
        assert "3. Introduction" in texts
        assert "The platform replaces the legacy core." in texts
        assert "Introduction" not in texts
        assert doc.core_properties.comments == "Solution Design Document for My Project"

    def test_custom_cover_is_rasterized(self, tmp_path):
        from sddexport.exporters import ExportState, WordExportAdapter

        rasterizer = FakeRasterizer(size=(1588, 1000))
        adapter = WordExportAdapter(rasterizer=rasterizer, output_dir=tmp_path)
        path = adapter.export_to_word(_request(cover_html="<h1>Bespoke</h1>"), "Atlas")

        assert len(rasterizer.calls) == 1
        markup, scale = rasterizer.calls[0]
        assert "<h1>Bespoke</h1>" in markup
        assert scale == 2
        assert ExportState.RENDERING in adapter.history

        doc = open_docx(str(path))
        assert len(doc.inline_shapes) == 1
        assert doc.inline_shapes[0].width == Emu(620 * 9525)
        assert doc.inline_shapes[0].height == Emu(390 * 9525)
        assert "Atlas" not in [p.text for p in doc.paragraphs]

    def test_cover_render_failure_falls_back(self, tmp_path):
        from sddexport.errors import RenderError
        from sddexport.exporters import ExportState, WordExportAdapter

        rasterizer = FakeRasterizer(error=RenderError("no browser"))
        adapter = WordExportAdapter(rasterizer=rasterizer, output_dir=tmp_path)
        path = adapter.export_to_word(_request(cover_html="<h1>Bespoke</h1>"), "Atlas")

        assert adapter.state is ExportState.EMITTED
        doc = open_docx(str(path))
        assert len(doc.inline_shapes) == 0
        assert "Atlas" in [p.text for p in doc.paragraphs]

    def test_rejects_pdf_method(self, tmp_path):
        from sddexport.errors import WrongExportMethodError
        from sddexport.exporters import WordExportAdapter

        adapter = WordExportAdapter(rasterizer=FakeRasterizer(), output_dir=tmp_path)
        with pytest.raises(WrongExportMethodError) as excinfo:
            adapter.export_to_pdf(_request(), "Atlas")
        assert str(excinfo.value) == "Use export_to_word method for Word export"
        assert list(tmp_path.iterdir()) == []

    def test_unwritable_output_is_a_save_error(self, tmp_path):
        from sddexport.errors import ExportFailureCause, SaveError
        from sddexport.exporters import ExportState, WordExportAdapter

        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        adapter = WordExportAdapter(rasterizer=FakeRasterizer(), output_dir=blocker / "out")

        with pytest.raises(SaveError) as excinfo:
            adapter.export_to_word(_request(), "Atlas")
        assert excinfo.value.cause is ExportFailureCause.SAVE
        assert excinfo.value.target == "Word"
        assert "write permissions" in excinfo.value.hint
        assert adapter.state is ExportState.FAILED

    def test_adapter_is_reusable(self, tmp_path):
        from sddexport.exporters import ExportState, WordExportAdapter

        adapter = WordExportAdapter(rasterizer=FakeRasterizer(), output_dir=tmp_path)
        first = adapter.export_to_word(_request(), "One")
        second = adapter.export_to_word(_request(), "Two")
        assert first.is_file() and second.is_file()
        assert adapter.history[0] is ExportState.IDLE
        assert adapter.history[-1] is ExportState.EMITTED


class TestPdfExportAdapter:
    def test_export(self, tmp_path):
        from sddexport.exporters import ExportState, PdfExportAdapter

        rasterizer = FakeRasterizer(size=(794, 2000))
        adapter = PdfExportAdapter(rasterizer=rasterizer, output_dir=tmp_path)
        path = adapter.export_to_pdf(_request(), "My Project")

        assert path == tmp_path / "Solution_Architecture_Design_My_Project.pdf"
        data = path.read_bytes()
        assert data.startswith(b"%PDF")
        assert _pdf_page_count(data) == 2
        assert adapter.history == [
            ExportState.IDLE, ExportState.COMPOSING, ExportState.RENDERING,
            ExportState.ASSEMBLING, ExportState.EMITTED,
        ]

        markup, scale = rasterizer.calls[0]
        assert scale is None
        assert 'id="export-root"' in markup
        assert "The platform replaces the legacy core." in markup

    def test_render_failure(self, tmp_path):
        from sddexport.errors import ExportFailureCause, RenderError
        from sddexport.exporters import ExportState, PdfExportAdapter

        adapter = PdfExportAdapter(
            rasterizer=FakeRasterizer(error=RenderError("Content has no height")),
            output_dir=tmp_path,
        )
        with pytest.raises(RenderError) as excinfo:
            adapter.export_to_pdf(_request(), "Atlas")

        assert excinfo.value.cause is ExportFailureCause.RENDER
        assert excinfo.value.target == "PDF"
        assert str(excinfo.value).startswith("PDF export failed (render)")
        assert adapter.state is ExportState.FAILED
        assert adapter.history[-2] is ExportState.RENDERING
        assert list(tmp_path.iterdir()) == []

    def test_rejects_word_method(self, tmp_path):
        from sddexport.errors import WrongExportMethodError
        from sddexport.exporters import PdfExportAdapter

        adapter = PdfExportAdapter(rasterizer=FakeRasterizer(), output_dir=tmp_path)
        with pytest.raises(WrongExportMethodError) as excinfo:
            adapter.export_to_word(_request(), "Atlas")
        assert str(excinfo.value) == "Use export_to_pdf method for PDF export"


# ── Playwright surface ──────────────────────────────────────────────


def _png(width: int = 40, height: int = 60) -> bytes:
    buffer = io.BytesIO()
    PILImage.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


class _FakeElement:
    def __init__(self, loaded: bool):
        self.loaded = loaded

    async def evaluate(self, script):
        return self.loaded


class _FakeLocator:
    def __init__(self, images):
        self.images = images

    async def count(self):
        return len(self.images)

    def nth(self, index):
        return _FakeElement(self.images[index])


class _FakePage:
    def __init__(self, browser):
        self.browser = browser

    async def set_content(self, markup, wait_until=None):
        self.browser.content = markup

    def locator(self, selector):
        return _FakeLocator(self.browser.images)

    async def evaluate(self, script, arg=None):
        if arg is not None:
            self.browser.placeholder = arg
            return sum(1 for loaded in self.browser.images if not loaded)
        return self.browser.height

    async def screenshot(self, full_page=False, type="png"):
        return _png()


class _FakeContext:
    def __init__(self, browser):
        self.browser = browser

    async def new_page(self):
        return _FakePage(self.browser)


class _FakeBrowser:
    def __init__(self, height=500, images=()):
        self.height = height
        self.images = list(images)
        self.closed = False
        self.content = None
        self.placeholder = None
        self.context_options = None

    async def new_context(self, **options):
        self.context_options = options
        return _FakeContext(self)

    async def close(self):
        self.closed = True


class _FakeChromium:
    def __init__(self, browser, error=None):
        self.browser = browser
        self.error = error

    async def launch(self, **options):
        if self.error is not None:
            raise self.error
        return self.browser


class _FakePlaywrightManager:
    def __init__(self, chromium):
        self.chromium = chromium

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


def _install_browser(monkeypatch, browser, error=None):
    import sddexport.rendering as rendering

    monkeypatch.setattr(
        rendering, "async_playwright", lambda: _FakePlaywrightManager(_FakeChromium(browser, error)),
    )


def _rasterizer():
    from sddexport.rendering import PlaywrightRasterizer

    rasterizer = PlaywrightRasterizer()
    rasterizer.image_settle_delay = 0
    rasterizer.reflow_delay = 0
    rasterizer.capture_delay = 0
    rasterizer.image_timeout = 0.1
    return rasterizer


class TestPlaywrightRasterizer:
    def test_capture(self, monkeypatch):
        import asyncio

        browser = _FakeBrowser()
        _install_browser(monkeypatch, browser)

        bitmap = asyncio.run(_rasterizer().rasterize("<p>hello</p>"))
        assert bitmap.size == (40, 60)
        assert browser.content == "<p>hello</p>"
        assert browser.context_options == {
            "viewport": {"width": 794, "height": 1123},
            "device_scale_factor": 1.5,
        }
        assert browser.closed

    def test_scale_override(self, monkeypatch):
        import asyncio

        browser = _FakeBrowser()
        _install_browser(monkeypatch, browser)

        asyncio.run(_rasterizer().rasterize("<p>cover</p>", scale=2))
        assert browser.context_options["device_scale_factor"] == 2

    def test_broken_images_get_placeholder(self, monkeypatch):
        import asyncio

        from sddexport.rendering import BROKEN_IMAGE_PLACEHOLDER

        browser = _FakeBrowser(images=[True, False])
        _install_browser(monkeypatch, browser)

        asyncio.run(_rasterizer().rasterize("<img src='a'><img src='b'>"))
        assert browser.placeholder == BROKEN_IMAGE_PLACEHOLDER
        assert BROKEN_IMAGE_PLACEHOLDER.startswith("data:image/svg+xml;base64,")

    def test_zero_height_is_a_render_error(self, monkeypatch):
        import asyncio

        from sddexport.errors import RenderError

        browser = _FakeBrowser(height=0)
        _install_browser(monkeypatch, browser)

        with pytest.raises(RenderError):
            asyncio.run(_rasterizer().rasterize("<div></div>"))
        assert browser.closed

    def test_browser_errors_are_wrapped(self, monkeypatch):
        import asyncio

        from playwright.async_api import Error as PlaywrightError

        from sddexport.errors import ExportFailureCause, RenderError

        _install_browser(monkeypatch, _FakeBrowser(), error=PlaywrightError("Executable doesn't exist"))

        with pytest.raises(RenderError) as excinfo:
            asyncio.run(_rasterizer().rasterize("<p>x</p>"))
        assert excinfo.value.cause is ExportFailureCause.RENDER
        assert "Executable doesn't exist" in str(excinfo.value)


# ── Project files ───────────────────────────────────────────────────


def _write_project(tmp_path, body: str):
    path = tmp_path / "project.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


class TestProjectLoader:
    def test_load_project(self, tmp_path):
        from sddexport.project import load_project

        (tmp_path / "content").mkdir()
        (tmp_path / "content" / "intro.html").write_text("<p>From file</p>", encoding="utf-8")
        path = _write_project(tmp_path, """
            name: Core Banking
            selected_sections: [table-of-contents, introduction, security]
            custom_sections:
              - {id: custom-risks, title: "9. Risk Register", order: 1}
            content_files:
              introduction: content/intro.html
              security: content/intro.html
            generated_content:
              security: "<p>Inline wins</p>"
            cover_page_settings:
              version: 2.1
              showOrangeLine: false
              footerText: Confidential
              unknownKey: ignored
        """)

        project = load_project(path)
        request = project.request

        assert project.name == "Core Banking"
        assert request.project_context == "Core Banking"
        assert [s.id for s in request.sections] == [
            "table-of-contents", "introduction", "security", "custom-risks",
        ]
        assert request.sections[-1].title == "Risk Register"
        assert request.sections[-1].display_number == 4
        assert request.content_for("introduction") == "<p>From file</p>"
        assert request.content_for("security") == "<p>Inline wins</p>"

        settings = request.cover_page_settings
        assert settings.version == "2.1"
        assert settings.show_orange_line is False
        assert settings.footer_text == "Confidential"

    def test_empty_selection_means_every_section(self, tmp_path):
        from sddexport.project import load_project
        from sddexport.sections import load_section_catalog

        path = _write_project(tmp_path, "name: Atlas\n")
        project = load_project(path)
        assert [s.id for s in project.request.sections] == list(load_section_catalog())

        path = _write_project(tmp_path, "name: Atlas\nselected_sections: [introduction]\n")
        assert len(load_project(path, all_sections=True).request.sections) == len(load_section_catalog())

    def test_cover_settings_keys(self):
        from sddexport.project import parse_cover_settings

        settings = parse_cover_settings({
            "show_organization": False, "logoText": "ACME", "date": None,
        })
        assert settings == CoverPageSettings(show_organization=False, logo_text="ACME")

    @pytest.mark.parametrize("body", [
        "- a\n- b\n",
        "selected_sections: [introduction]\n",
        "name: Atlas\ncustom_sections:\n  - {title: No id}\n",
    ])
    def test_invalid_projects(self, tmp_path, body):
        from sddexport.project import load_project

        with pytest.raises(ValueError):
            load_project(_write_project(tmp_path, body))

    def test_missing_files(self, tmp_path):
        from sddexport.project import load_project

        with pytest.raises(FileNotFoundError):
            load_project(tmp_path / "absent.yaml")

        path = _write_project(tmp_path, """
            name: Atlas
            content_files:
              introduction: content/missing.html
        """)
        with pytest.raises(FileNotFoundError):
            load_project(path)


# ── Command line ────────────────────────────────────────────────────


class TestCli:
    def test_word_export(self, tmp_path, monkeypatch, capsys):
        from main import main

        monkeypatch.chdir(tmp_path)
        path = _write_project(tmp_path, """
            name: My Project
            selected_sections: [introduction]
            generated_content:
              introduction: "<p>Hello</p>"
        """)

        main([str(path), "--format", "docx", "-o", str(tmp_path / "out")])

        output = tmp_path / "out" / "Solution_Architecture_Design_My_Project.docx"
        assert output.is_file()
        assert f"Exported: {output}" in capsys.readouterr().out
        assert (tmp_path / "logs" / "sdd-export.log").is_file()

    def test_output_defaults_to_project_directory(self, tmp_path, monkeypatch):
        from main import main

        monkeypatch.chdir(tmp_path)
        path = _write_project(tmp_path, "name: Atlas\nselected_sections: [introduction]\n")

        main([str(path), "--format", "docx"])
        assert (tmp_path / "Solution_Architecture_Design_Atlas.docx").is_file()

    def test_missing_project_exits_with_1(self, tmp_path, monkeypatch, capsys):
        from main import main

        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as excinfo:
            main([str(tmp_path / "absent.yaml"), "--format", "docx"])
        assert excinfo.value.code == 1
        assert "Project file not found" in capsys.readouterr().err

    def test_invalid_format_is_rejected(self, tmp_path, monkeypatch):
        from main import main

        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as excinfo:
            main(["project.yaml", "--format", "odt"])
        assert excinfo.value.code == 2
