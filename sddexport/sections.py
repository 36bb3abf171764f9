"""Section assembly: catalog lookup, numbering and duplicate-title removal.

The standard section catalog lives in ``config/sections.yaml``.  A document
is the caller's selection of catalog sections followed by any custom
sections; display numbers are assigned purely by position, so numerals
stored in legacy titles are stripped and never shown.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping, NamedTuple, Sequence

import yaml

from sddexport.models import CustomSection, SectionDescriptor, Subsection

logger = logging.getLogger(__name__)

_DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "config" / "sections.yaml"

_LEADING_NUMERAL_RE = re.compile(r"^\s*(\d+)\.\s*")


class AssembledSections(NamedTuple):
    standard: list[SectionDescriptor]
    custom: list[SectionDescriptor]
    all_sections: list[SectionDescriptor]


# ── Catalog ────────────────────────────────────────────────────────────


def parse_subsections(raw: Any) -> list[Subsection]:
    subsections: list[Subsection] = []
    for entry in raw or []:
        if isinstance(entry, str):
            subsections.append(Subsection(title=entry))
        elif isinstance(entry, Mapping):
            subsections.append(Subsection(
                number=str(entry.get("number", "")),
                title=str(entry.get("title", "")),
                description=str(entry.get("description", "")),
            ))
    return subsections


def load_section_catalog(path: str | Path | None = None) -> dict[str, SectionDescriptor]:
    """Load the standard section catalog keyed by section id.

    Raises
    ------
    FileNotFoundError
        If the catalog file does not exist.
    ValueError
        If the file is not a mapping with a ``sections`` list.
    """
    catalog_path = Path(path) if path else _DEFAULT_CATALOG_PATH
    if not catalog_path.is_file():
        raise FileNotFoundError(f"Section catalog not found: {catalog_path}")

    with open(catalog_path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if not isinstance(data, dict) or not isinstance(data.get("sections"), list):
        raise ValueError(f"Expected a 'sections' list in {catalog_path}")

    catalog: dict[str, SectionDescriptor] = {}
    for entry in data["sections"]:
        if not isinstance(entry, Mapping) or not entry.get("id"):
            logger.warning("Skipping malformed catalog entry: %r", entry)
            continue
        section_id = str(entry["id"])
        catalog[section_id] = SectionDescriptor(
            id=section_id,
            title=str(entry.get("title", section_id)),
            subsections=parse_subsections(entry.get("subsections")),
        )

    logger.debug("Loaded %d catalog section(s) from %s", len(catalog), catalog_path)
    return catalog


# ── Numbering ──────────────────────────────────────────────────────────


def split_numeral(title: str) -> tuple[str, str]:
    """Split a leading ``"N. "`` numeral off *title*.

    >>> split_numeral("4. Introduction")
    ('4', 'Introduction')
    """
    match = _LEADING_NUMERAL_RE.match(title)
    if not match:
        return "", title.strip()
    return match.group(1), title[match.end():].strip()


def renumber_subsections(section: SectionDescriptor) -> SectionDescriptor:
    """Number *section*'s subsections ``{display_number}.{index}`` in place."""
    for index, subsection in enumerate(section.subsections, start=1):
        subsection.number = f"{section.display_number}.{index}"
    return section


def numbered_title(section: SectionDescriptor) -> str:
    return f"{section.display_number}. {section.title}"


def _descriptor(
    section_id: str,
    title: str,
    subsections: Sequence[Subsection],
    *,
    is_custom: bool,
) -> SectionDescriptor:
    original_number, bare_title = split_numeral(title)
    return SectionDescriptor(
        id=section_id,
        title=bare_title,
        # Copies keep the catalog reusable across exports.
        subsections=[Subsection(s.number, s.title, s.description) for s in subsections],
        original_number=original_number,
        is_custom=is_custom,
    )


def assemble(
    selected_ids: Sequence[str],
    custom_sections: Sequence[CustomSection] = (),
    custom_subsection_overrides: Mapping[str, Sequence[Subsection]] | None = None,
    catalog: Mapping[str, SectionDescriptor] | None = None,
) -> AssembledSections:
    """Resolve, number and order the sections of one document.

    Parameters
    ----------
    selected_ids : sequence of str
        Standard section ids in document order.  Ids missing from the
        catalog are skipped.
    custom_sections : sequence of CustomSection
        User-defined sections, placed after the standard ones and sorted by
        ``order`` (unordered entries last, insertion order otherwise).
    custom_subsection_overrides : mapping, optional
        Extra subsections per standard section id, appended after the
        built-in ones.
    catalog : mapping, optional
        Section catalog; defaults to :func:`load_section_catalog`.

    Returns
    -------
    AssembledSections
        ``standard``, ``custom`` and ``all_sections`` ordered by display
        number.
    """
    if catalog is None:
        catalog = load_section_catalog()
    overrides = custom_subsection_overrides or {}

    standard: list[SectionDescriptor] = []
    for section_id in selected_ids:
        entry = catalog.get(section_id)
        if entry is None:
            logger.debug("Skipping unknown section id '%s'", section_id)
            continue
        subsections = list(entry.subsections) + list(overrides.get(section_id, ()))
        standard.append(_descriptor(entry.id, entry.title, subsections, is_custom=False))

    ordered_custom = sorted(
        custom_sections,
        key=lambda s: (s.order is None, s.order if s.order is not None else 0),
    )
    custom = [
        _descriptor(s.id, s.title, s.subsections, is_custom=True) for s in ordered_custom
    ]

    for number, section in enumerate(standard + custom, start=1):
        section.display_number = number
        renumber_subsections(section)

    all_sections = sorted(standard + custom, key=lambda s: s.display_number)
    logger.info(
        "Assembled %d standard and %d custom section(s)", len(standard), len(custom),
    )
    return AssembledSections(standard, custom, all_sections)


# ── Duplicate title removal ────────────────────────────────────────────


def _heading_pattern(title_regex: str) -> re.Pattern[str]:
    return re.compile(
        rf"<h([123])(?:\s[^>]*)?>\s*{title_regex}\s*</h\1>",
        re.IGNORECASE,
    )


def remove_duplicate_section_title(content: str, section_title: str) -> str:
    """Drop an ``h1``-``h3`` heading that repeats the section's own title.

    Three headings are recognised: the full title as given, any ``"N. "``
    numeral followed by the bare title, and the bare title alone.  Only the
    first match of each form is removed.

    >>> remove_duplicate_section_title("<h2>4. Introduction</h2><p>Text</p>", "Introduction")
    '<p>Text</p>'
    """
    if not content or not section_title:
        return (content or "").strip()

    _, bare_title = split_numeral(section_title)
    full = re.escape(section_title.strip())
    bare = re.escape(bare_title)

    patterns: list[str] = []
    for candidate in (full, rf"\d+\.\s*{bare}", bare):
        if candidate not in patterns:
            patterns.append(candidate)

    for candidate in patterns:
        content = _heading_pattern(candidate).sub("", content, count=1)
    return content.strip()
