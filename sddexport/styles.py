"""Inline style resolution.

Parses the ``style`` attribute of rich-text elements into a normalized
:class:`StyleAttributes` bag.  Only the handful of properties the export
targets understand are recognised; everything else, and every malformed
value, is ignored rather than guessed.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Mapping, Optional

from sddexport.models import Alignment, StyleAttributes

# ── Lookup tables ──────────────────────────────────────────────────────

NAMED_COLORS: Mapping[str, str] = MappingProxyType({
    "lightgray": "D3D3D3",
    "lightgrey": "D3D3D3",
    "gray": "808080",
    "grey": "808080",
    "white": "FFFFFF",
    "black": "000000",
    "red": "FF0000",
    "green": "008000",
    "blue": "0000FF",
})

# Length unit -> twips.
INDENT_UNIT_RATIOS: Mapping[str, float] = MappingProxyType({
    "px": 15.0,
    "em": 240.0,
    "pt": 20.0,
})

PX_PER_PT = 1.33

_ALIGNMENTS: Mapping[str, Alignment] = MappingProxyType({
    "left": Alignment.LEFT,
    "center": Alignment.CENTER,
    "right": Alignment.RIGHT,
    "justify": Alignment.JUSTIFY,
})

_HEX_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_RGB_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*[\d.]+\s*)?\)$",
    re.IGNORECASE,
)
_LENGTH_RE = re.compile(r"^(-?\d+(?:\.\d+)?)\s*(px|em|pt|%)$", re.IGNORECASE)


# ── Helpers ────────────────────────────────────────────────────────────


def parse_declarations(style: str) -> dict[str, str]:
    """Split a ``style`` string into a ``{property: value}`` dict.

    Property names are lower-cased; later declarations win.
    """
    declarations: dict[str, str] = {}
    if not style:
        return declarations
    for chunk in style.split(";"):
        name, sep, value = chunk.partition(":")
        if not sep:
            continue
        name = name.strip().lower()
        value = value.strip()
        if name and value:
            declarations[name] = value
    return declarations


def parse_color(value: str) -> Optional[str]:
    """Normalize a CSS colour to six uppercase hex digits, or ``None``."""
    value = value.strip()
    match = _HEX_RE.match(value)
    if match:
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        return digits.upper()

    match = _RGB_RE.match(value)
    if match:
        channels = [int(c) for c in match.groups()]
        if any(c > 255 for c in channels):
            return None
        return "".join(f"{c:02x}" for c in channels).upper()

    return NAMED_COLORS.get(value.lower())


def _parse_length(value: str) -> Optional[tuple[float, str]]:
    match = _LENGTH_RE.match(value.strip())
    if not match:
        return None
    return float(match.group(1)), match.group(2).lower()


def _font_size_pt(value: str) -> Optional[float]:
    parsed = _parse_length(value)
    if parsed is None:
        return None
    number, unit = parsed
    if unit == "pt":
        return number
    if unit == "px":
        return number / PX_PER_PT
    return None


def _font_family(value: str) -> Optional[str]:
    first = value.split(",")[0].strip().replace('"', "").replace("'", "")
    return first or None


def _indent_twips(value: str) -> Optional[int]:
    parsed = _parse_length(value)
    if parsed is None:
        return None
    number, unit = parsed
    ratio = INDENT_UNIT_RATIOS.get(unit)
    if ratio is None:
        return None
    return round(number * ratio)


def dimension_px(style: str, prop: str, content_width: float) -> Optional[float]:
    """Read a ``width``/``height`` declaration as pixels.

    ``pt`` converts at 4/3 and ``%`` is a fraction of *content_width*.
    """
    value = parse_declarations(style).get(prop)
    if value is None:
        return None
    parsed = _parse_length(value)
    if parsed is None:
        return None
    number, unit = parsed
    if unit == "px":
        return number
    if unit == "pt":
        return number * (4 / 3)
    if unit == "%":
        return number / 100 * content_width
    return None


# ── Public API ─────────────────────────────────────────────────────────


def resolve(style: str) -> StyleAttributes:
    """Resolve an inline style declaration into :class:`StyleAttributes`.

    >>> resolve("color: rgb(255,0,0); font-weight: bold").color
    'FF0000'
    """
    declarations = parse_declarations(style)

    def _get(name, parser):
        raw = declarations.get(name)
        return parser(raw) if raw is not None else None

    alignment = None
    if "text-align" in declarations:
        alignment = _ALIGNMENTS.get(declarations["text-align"].lower())

    return StyleAttributes(
        color=_get("color", parse_color),
        background_color=_get("background-color", parse_color),
        font_size_pt=_get("font-size", _font_size_pt),
        font_family=_get("font-family", _font_family),
        alignment=alignment,
        indent_left=_get("margin-left", _indent_twips),
        indent_first_line=_get("text-indent", _indent_twips),
    )
