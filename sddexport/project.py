"""Loading of project files into export requests.

A project file is YAML (or JSON, which PyYAML reads as well)::

    name: Core Banking Modernisation
    selected_sections: [document-control, table-of-contents, introduction]
    custom_sections:
      - {id: custom-risks, title: "Risk Register", order: 1}
    custom_section_subsections:
      introduction:
        - {title: Glossary, description: Key terms}
    generated_content:
      introduction: "<h2>Introduction</h2><p>...</p>"
    content_files:
      document-control: content/document-control.html
    cover_page_settings:
      version: "2.1"
      showOrangeLine: false
    cover_html: null

``content_files`` paths are relative to the project file; inline
``generated_content`` wins when both name the same section.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from sddexport.models import CoverPageSettings, CustomSection, ExportRequest, SectionDescriptor, Subsection
from sddexport.sections import assemble, load_section_catalog, parse_subsections

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")
_COVER_FIELDS = frozenset(f.name for f in fields(CoverPageSettings))


@dataclass
class Project:
    name: str
    request: ExportRequest


def _snake_case(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def parse_cover_settings(raw: Mapping[str, Any] | None) -> CoverPageSettings:
    """Build :class:`CoverPageSettings`, accepting snake_case or camelCase keys.

    Unknown keys are ignored.
    """
    values: dict[str, Any] = {}
    for key, value in (raw or {}).items():
        name = _snake_case(str(key))
        if name not in _COVER_FIELDS:
            logger.debug("Ignoring unknown cover setting '%s'", key)
            continue
        if value is None:
            continue
        field_default = getattr(CoverPageSettings, name, None)
        values[name] = bool(value) if isinstance(field_default, bool) else str(value)
    return CoverPageSettings(**values)


def _parse_custom_sections(raw: Any) -> list[CustomSection]:
    sections: list[CustomSection] = []
    for entry in raw or []:
        if not isinstance(entry, Mapping) or not entry.get("id") or not entry.get("title"):
            raise ValueError(f"Custom sections need an 'id' and a 'title': {entry!r}")
        order = entry.get("order")
        sections.append(CustomSection(
            id=str(entry["id"]),
            title=str(entry["title"]),
            subsections=parse_subsections(entry.get("subsections")),
            order=int(order) if order is not None else None,
        ))
    return sections


def _load_content(raw: Mapping[str, Any], base_dir: Path) -> dict[str, str]:
    content: dict[str, str] = {}
    for section_id, rel_path in (raw.get("content_files") or {}).items():
        path = base_dir / str(rel_path)
        if not path.is_file():
            raise FileNotFoundError(f"Content file for '{section_id}' not found: {path}")
        content[str(section_id)] = path.read_text(encoding="utf-8")

    for section_id, markup in (raw.get("generated_content") or {}).items():
        if markup:
            content[str(section_id)] = str(markup)
    return content


def load_project(
    path: str | Path,
    *,
    all_sections: bool = False,
    catalog: Mapping[str, SectionDescriptor] | None = None,
) -> Project:
    """Read a project file and assemble its :class:`ExportRequest`.

    Parameters
    ----------
    path : str or Path
        Project YAML/JSON file.
    all_sections : bool, optional
        Export every catalog section instead of ``selected_sections``.  Also
        the behaviour when the file selects nothing.
    catalog : mapping, optional
        Section catalog; defaults to ``config/sections.yaml``.

    Raises
    ------
    FileNotFoundError
        If the project file or one of its content files does not exist.
    ValueError
        If the file is not a mapping or lacks a project name.
    """
    project_path = Path(path)
    if not project_path.is_file():
        raise FileNotFoundError(f"Project file not found: {project_path}")

    with open(project_path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    if not isinstance(raw, dict):
        raise ValueError(f"Expected a mapping at the top level in {project_path}")
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ValueError(f"Project file {project_path} has no 'name'")

    if catalog is None:
        catalog = load_section_catalog()

    selected = [str(s) for s in raw.get("selected_sections") or []]
    if all_sections or not selected:
        selected = list(catalog)

    overrides: dict[str, list[Subsection]] = {
        str(section_id): parse_subsections(subs)
        for section_id, subs in (raw.get("custom_section_subsections") or {}).items()
    }
    assembled = assemble(
        selected,
        _parse_custom_sections(raw.get("custom_sections")),
        overrides,
        catalog=catalog,
    )

    request = ExportRequest(
        sections=assembled.all_sections,
        generated_content=_load_content(raw, project_path.parent),
        project_context=str(raw.get("project_context") or name),
        cover_page_settings=parse_cover_settings(raw.get("cover_page_settings")),
        cover_html=raw.get("cover_html") or None,
    )
    logger.info(
        "Loaded project '%s': %d section(s), %d with content",
        name, len(request.sections), len(request.generated_content),
    )
    return Project(name=name, request=request)
