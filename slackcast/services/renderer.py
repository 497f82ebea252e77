"""Headless Chromium renderer: HTML -> PNG bytes via Playwright."""

from __future__ import annotations

import logging
import time

from slackcast import metrics
from slackcast.config import settings
from slackcast.errors import DependencyError

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--no-zygote",
    "--disable-gpu",
]

_WRAP = """<meta charset="utf-8"/>
<style>
  *{{box-sizing:border-box}}
  body{{margin:0;padding:24px;background:#fff}}
  table{{border-collapse:collapse;table-layout:auto;width:max-content;max-width:unset}}
</style>
{inner}
"""


def render_html_to_png(html: str, timeout_ms: int | None = None) -> bytes:
    """Render *html* to a PNG sized to its content.

    Raises DependencyError on any browser failure or when the whole render
    exceeds *timeout_ms*.
    """
    from playwright.sync_api import Error as PlaywrightError
    from playwright.sync_api import sync_playwright

    budget_ms = timeout_ms or settings.RENDER_TIMEOUT_MS
    started = time.monotonic()
    max_dim = settings.RENDER_MAX_DIMENSION

    def _remaining_ms() -> float:
        remaining = budget_ms - (time.monotonic() - started) * 1000
        if remaining <= 0:
            raise DependencyError("renderer", f"Render exceeded {budget_ms}ms")
        return remaining

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(
                headless=True,
                args=LAUNCH_ARGS,
                executable_path=settings.CHROMIUM_EXECUTABLE_PATH or None,
                timeout=_remaining_ms(),
            )
            try:
                page = browser.new_page(
                    viewport={"width": 1200, "height": 800}, device_scale_factor=2
                )
                page.set_content(
                    _WRAP.format(inner=html),
                    wait_until="networkidle",
                    timeout=min(settings.RENDER_PAGE_TIMEOUT_MS, _remaining_ms()),
                )
                size = page.evaluate(
                    "() => ({w: Math.ceil(document.documentElement.scrollWidth),"
                    " h: Math.ceil(document.documentElement.scrollHeight)})"
                )
                page.set_viewport_size(
                    {"width": min(size["w"], max_dim), "height": min(size["h"], max_dim)}
                )
                png = page.screenshot(type="png", timeout=_remaining_ms())
            finally:
                browser.close()
    except DependencyError:
        metrics.dependency_failures.labels("renderer").inc()
        raise
    except PlaywrightError as exc:
        metrics.dependency_failures.labels("renderer").inc()
        raise DependencyError("renderer", str(exc)) from exc

    logger.info("Rendered %d byte PNG in %.0fms", len(png), (time.monotonic() - started) * 1000)
    return png
