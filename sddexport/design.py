"""Design tokens shared by both export targets.

``config/design-system.yaml`` holds the palette, heading typography,
component colours, page geometry, image bounds, rendering timings, cover
defaults and output naming.  A theme file may override any subset of it.

Palette entries can alias one another (``heading_color: brand_red``), so
every colour-valued setting is handed out already resolved to ``#RRGGBB``.
"""

from __future__ import annotations

import logging
import re
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "design-system.yaml"

# Setting names holding a palette reference rather than a literal.
_COLOR_KEY_RE = re.compile(r"(^|_)(color|bg|background|fill)$")


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise FileNotFoundError(f"Design-system configuration not found: {path}")
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a YAML mapping, got {type(data).__name__}")
    return data


def _overlay(base: Mapping[str, Any], theme: Mapping[str, Any]) -> dict[str, Any]:
    """Merge *theme* onto a copy of *base*; nested mappings merge key by key."""
    merged = deepcopy(dict(base))
    for key, value in theme.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _overlay(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


class DesignSystem:
    """Read-only view over the design-system configuration.

    Parameters
    ----------
    config_path : str or Path, optional
        Base configuration; ``config/design-system.yaml`` by default.
    theme_path : str or Path, optional
        Theme overlay merged on top of the base configuration.

    Raises
    ------
    FileNotFoundError
        If either file is missing.
    ValueError
        If either file does not hold a YAML mapping.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        theme_path: str | Path | None = None,
    ) -> None:
        path = Path(config_path) if config_path else _CONFIG_PATH
        self._data = _read_yaml(path)
        if theme_path is not None:
            self._data = _overlay(self._data, _read_yaml(Path(theme_path)))
            logger.info("Theme %s applied over %s", theme_path, path)
        logger.debug(
            "Design system: %d palette colour(s), %d component(s)",
            len(self._table("colors")), len(self._table("components")),
        )

    def _table(self, name: str) -> dict[str, Any]:
        value = self._data.get(name)
        return value if isinstance(value, dict) else {}

    # ── Colours ────────────────────────────────────────────────────

    def resolve_color(self, name: str) -> str:
        """Follow palette aliases until a ``#hex`` literal is reached.

        Raises
        ------
        KeyError
            If *name* is neither a hex literal nor a palette entry, or the
            aliases form a loop.
        """
        if not name:
            return "#000000"
        palette = self._table("colors")
        seen: list[str] = []
        value = name
        while not _HEX_RE.match(value):
            if value not in palette or value in seen:
                raise KeyError(f"Unknown color name: '{name}'")
            seen.append(value)
            value = str(palette[value])
        return value

    def hex(self, name: str) -> str:
        """:meth:`resolve_color` as six uppercase digits without ``#``."""
        digits = self.resolve_color(name)[1:]
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        return digits.upper()

    def _with_colors(self, settings: Mapping[str, Any]) -> dict[str, Any]:
        resolved: dict[str, Any] = {}
        for key, value in settings.items():
            if isinstance(value, dict):
                resolved[key] = self._with_colors(value)
            elif isinstance(value, str) and _COLOR_KEY_RE.search(key):
                try:
                    resolved[key] = self.resolve_color(value)
                except KeyError:
                    logger.warning("Setting '%s' names unknown colour '%s'", key, value)
                    resolved[key] = value
            else:
                resolved[key] = value
        return resolved

    # ── Typography ─────────────────────────────────────────────────

    def get_font(self, role: str = "body") -> str:
        """Font for ``"body"``, ``"display"`` or ``"code"`` text."""
        typography = self._table("typography")
        font = typography.get(f"{role}_font")
        if font:
            return font
        fallbacks = typography.get("fallback_fonts") or ["Arial"]
        return fallbacks[0]

    def get_heading_style(self, level: int) -> dict[str, Any]:
        """Size, colour, spacing and font of heading *level*; level 4 covers deeper ones."""
        typography = self._table("typography")
        settings = typography.get(f"heading{level}")
        if not settings:
            logger.warning("No heading style for level %d; using level 4", level)
            settings = typography.get("heading4", {})
        style = self._with_colors(settings)
        style["font"] = self.get_font("display")
        style["level"] = level
        return style

    def get_body_style(self) -> dict[str, Any]:
        style = self._with_colors(self._table("typography").get("body", {}))
        style["font"] = self.get_font("body")
        return style

    @property
    def heading_color(self) -> str:
        """Emphasis colour for section and body headings, as bare hex."""
        return self.hex(self._table("typography").get("heading_color", "brand_red"))

    # ── Components ─────────────────────────────────────────────────

    def get_component_style(self, component: str) -> dict[str, Any]:
        """Settings of a named component (``table``, ``link``, ...).

        Raises
        ------
        KeyError
            If the component is not configured.
        """
        settings = self._table("components").get(component)
        if settings is None:
            raise KeyError(f"Unknown component: '{component}'")
        return self._with_colors(settings)

    # ── Page, images and rendering ─────────────────────────────────

    def get_page_config(self) -> dict[str, Any]:
        return deepcopy(self._table("page"))

    @property
    def page_width_mm(self) -> float:
        return float(self._table("page").get("width_mm", 210))

    @property
    def page_height_mm(self) -> float:
        return float(self._table("page").get("height_mm", 297))

    @property
    def virtual_width_px(self) -> int:
        return int(self._table("page").get("virtual_width_px", 794))

    def get_image_bounds(self) -> dict[str, int]:
        images = self._table("images")
        defaults = {
            "default_width": 520, "default_height": 320,
            "min_width": 80, "max_width": 640,
            "min_height": 80, "max_height": 900,
        }
        return {key: int(images.get(f"{key}_px", value)) for key, value in defaults.items()}

    def get_rendering_config(self) -> dict[str, Any]:
        return deepcopy(self._table("rendering"))

    # ── Cover and output ───────────────────────────────────────────

    def get_cover_config(self) -> dict[str, Any]:
        return self._with_colors(self._table("cover"))

    def get_export_config(self) -> dict[str, Any]:
        return deepcopy(self._table("export"))
