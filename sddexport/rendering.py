"""Off-screen rendering surface backed by headless Chromium (Playwright).

A surface is created per capture: the markup is loaded into a fresh page of
fixed virtual width, images are given a capped time to load, broken images
are swapped for a placeholder, layout is forced and allowed to settle, and
the full page is captured as a single bitmap.  The browser is closed on
every exit path.
"""

from __future__ import annotations

import io
import logging
from typing import Any, Protocol

from PIL import Image as PILImage
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from sddexport.design import DesignSystem
from sddexport.errors import RenderError
from sddexport.waiting import settle, wait_all_settled

logger = logging.getLogger(__name__)

# Grey "Image not available" tile substituted for images that fail to load.
BROKEN_IMAGE_PLACEHOLDER = (
    "data:image/svg+xml;base64,PHN2ZyB3aWR0aD0iMTAwIiBoZWlnaHQ9IjEwMCIgeG1sbnM9Imh0dHA6Ly93d3cudzMub3JnLz"
    "IwMDAvc3ZnIj48cmVjdCB3aWR0aD0iMTAwIiBoZWlnaHQ9IjEwMCIgZmlsbD0iI2VlZSIvPjx0ZXh0IHg9IjUwJSIgeT0iNTAlIiBm"
    "b250LWZhbWlseT0iQXJpYWwiIGZvbnQtc2l6ZT0iMTQiIGZpbGw9IiM5OTkiIHRleHQtYW5jaG9yPSJtaWRkbGUiIGR5PSIuM2VtIj5J"
    "bWFnZSBub3QgYXZhaWxhYmxlPC90ZXh0Pjwvc3ZnPg=="
)

_IMAGE_LOADED_JS = """
img => img.complete ? img.naturalWidth > 0 : new Promise(resolve => {
  img.addEventListener('load', () => resolve(true), { once: true });
  img.addEventListener('error', () => resolve(false), { once: true });
})
"""

_REPLACE_BROKEN_IMAGES_JS = """
placeholder => {
  let replaced = 0;
  for (const img of document.images) {
    if (!img.complete || !img.naturalWidth) {
      img.src = placeholder;
      replaced += 1;
    }
  }
  return replaced;
}
"""

_FORCE_REFLOW_JS = """
() => {
  const el = document.body;
  void el.offsetHeight;
  void el.offsetWidth;
  void el.scrollWidth;
  return el.scrollHeight;
}
"""


class Rasterizer(Protocol):
    """Anything able to turn a standalone HTML document into a bitmap."""

    async def rasterize(self, markup: str, *, scale: float | None = None) -> PILImage.Image:
        ...


class PlaywrightRasterizer:
    """Rasterizes markup with a throw-away headless Chromium instance.

    Parameters
    ----------
    design : DesignSystem, optional
        Source of the virtual page width and the rendering timings.
    launch_options : dict, optional
        Extra keyword arguments for ``chromium.launch``.
    """

    def __init__(
        self,
        design: DesignSystem | None = None,
        launch_options: dict[str, Any] | None = None,
    ) -> None:
        design = design or DesignSystem()
        rendering = design.get_rendering_config()
        page = design.get_page_config()

        self.width_px = int(page.get("virtual_width_px", 794))
        self.height_px = int(page.get("virtual_height_px", 1123))
        self.scale = float(rendering.get("scale", 1.5))
        self.image_timeout = float(rendering.get("image_timeout_s", 5.0))
        self.image_settle_delay = float(rendering.get("image_settle_delay_s", 0.3))
        self.reflow_delay = float(rendering.get("reflow_delay_s", 0.2))
        self.capture_delay = float(rendering.get("capture_delay_s", 1.0))
        self._launch_options = launch_options or {}

    async def _wait_for_images(self, page) -> None:
        images = page.locator("img")
        count = await images.count()
        if count:
            results = await wait_all_settled(
                (images.nth(i).evaluate(_IMAGE_LOADED_JS) for i in range(count)),
                self.image_timeout,
            )
            logger.debug(
                "%d/%d image(s) loaded", sum(1 for r in results if r.ok and r.value), count,
            )
        await settle(self.image_settle_delay)

    async def _force_layout(self, page) -> int:
        await page.evaluate(_FORCE_REFLOW_JS)
        await settle(self.reflow_delay)
        return int(await page.evaluate(_FORCE_REFLOW_JS))

    async def _capture(self, browser, markup: str, scale: float) -> bytes:
        context = await browser.new_context(
            viewport={"width": self.width_px, "height": self.height_px},
            device_scale_factor=scale,
        )
        page = await context.new_page()
        await page.set_content(markup, wait_until="load")

        await self._wait_for_images(page)
        replaced = await page.evaluate(_REPLACE_BROKEN_IMAGES_JS, BROKEN_IMAGE_PLACEHOLDER)
        if replaced:
            logger.warning("Replaced %d broken image(s) with a placeholder", replaced)

        height = await self._force_layout(page)
        if height <= 0:
            raise RenderError("Content has no height; nothing was rendered")
        logger.debug("Rendered content height: %d px", height)

        await settle(self.capture_delay)
        return await page.screenshot(full_page=True, type="png")

    async def rasterize(self, markup: str, *, scale: float | None = None) -> PILImage.Image:
        """Render *markup* and return the captured bitmap.

        Raises
        ------
        RenderError
            If the browser fails or the content renders with no height.
        """
        scale = scale or self.scale
        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(**self._launch_options)
                try:
                    png = await self._capture(browser, markup, scale)
                finally:
                    await browser.close()
        except PlaywrightError as exc:
            raise RenderError(f"Browser rendering failed: {exc}") from exc

        bitmap = PILImage.open(io.BytesIO(png))
        bitmap.load()
        logger.info("Captured %dx%d bitmap at scale %.2f", bitmap.width, bitmap.height, scale)
        return bitmap
