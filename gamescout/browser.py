"""Playwright-backed render collaborator.

``PlaywrightRenderer`` owns one Chromium instance for the life of the process and
hands out isolated ``RenderContext`` objects (one browser context and one page each).
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable
from urllib.parse import urljoin

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Response,
    async_playwright,
)

from gamescout.extractors.markup import identity_from_url
from gamescout.logging_config import get_logger
from gamescout.playwright_env import (
    close_browser,
    context_options,
    default_timeout_ms,
    launch_browser,
)

LOGGER = get_logger(__name__)

_LINK_EVAL = """(anchors) => anchors.map((a) => ({
    href: a.getAttribute('href') || '',
    title: a.getAttribute('title') || (a.textContent || '').trim(),
}))"""


async def _read_json(response: Response) -> Any | None:
    try:
        return await response.json()
    except Exception:
        pass
    try:
        return json.loads(await response.text())
    except Exception:
        return None


class RenderContext:
    """One isolated browsing context with a single page."""

    def __init__(self, context: BrowserContext, page: Page) -> None:
        self._context = context
        self._page = page
        self._json_responses: list[Response] = []
        self._json_arrived = asyncio.Event()
        self._released = False
        # Listen before navigation so payloads fetched during rendering are kept.
        page.on("response", self._on_response)

    def _on_response(self, response: Response) -> None:
        content_type = (response.headers.get("content-type") or "").lower()
        if "application/json" in content_type:
            self._json_responses.append(response)
            self._json_arrived.set()

    async def render(
        self,
        url: str,
        *,
        wait_until: str = "domcontentloaded",
        timeout_ms: int = 30000,
    ) -> tuple[str, str]:
        """Navigate to *url* and return ``(final_url, page_title)``."""

        await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        return self._page.url, await self._page.title()

    async def observe_json_response(
        self,
        predicate: Callable[[str], bool],
        timeout_s: float,
    ) -> Any | None:
        """Return the first JSON body whose response URL satisfies *predicate*."""

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        checked = 0
        while True:
            while checked < len(self._json_responses):
                response = self._json_responses[checked]
                checked += 1
                if not predicate(response.url):
                    continue
                payload = await _read_json(response)
                if payload is not None:
                    return payload

            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            self._json_arrived.clear()
            if checked < len(self._json_responses):
                continue
            try:
                await asyncio.wait_for(self._json_arrived.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return None

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except Exception:
            return False

    async def extract_by_css(self, selector: str) -> list[dict[str, str]]:
        """Return ``{identity, title, href}`` for every anchor matching *selector*."""

        raw_items = await self._page.eval_on_selector_all(selector, _LINK_EVAL)
        base = self._page.url
        items: list[dict[str, str]] = []
        for raw in raw_items or []:
            href = str(raw.get("href") or "").strip()
            if not href:
                continue
            absolute = urljoin(base, href)
            items.append(
                {
                    "identity": identity_from_url(absolute),
                    "title": str(raw.get("title") or "").strip(),
                    "href": absolute,
                }
            )
        return items

    async def content(self) -> str:
        return await self._page.content()

    async def release(self) -> None:
        """Close the browsing context; safe to call more than once."""

        if self._released:
            return
        self._released = True
        try:
            await self._context.close()
        except Exception as exc:
            LOGGER.debug("Ignoring error while closing browser context: %s", exc)


class PlaywrightRenderer:
    """Launches Chromium lazily and relaunches it when it disconnects."""

    def __init__(self) -> None:
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        if self._browser is not None and not self._browser.is_connected():
            LOGGER.warning("Browser disconnected; relaunching")
            await close_browser(self._browser)
            self._browser = None
        if self._browser is None:
            self._browser = await launch_browser(self._playwright)
            LOGGER.info("Browser launched")
        return self._browser

    async def acquire_context(self) -> RenderContext:
        async with self._lock:
            browser = await self._ensure_browser()
        context = await browser.new_context(**context_options())
        try:
            page = await context.new_page()
        except Exception:
            await context.close()
            raise
        timeout = default_timeout_ms()
        page.set_default_timeout(timeout)
        page.set_default_navigation_timeout(timeout)
        return RenderContext(context, page)

    async def close(self) -> None:
        async with self._lock:
            await close_browser(self._browser)
            self._browser = None
            if self._playwright is not None:
                try:
                    await self._playwright.stop()
                finally:
                    self._playwright = None
        LOGGER.info("Browser closed")

    async def __aenter__(self) -> "PlaywrightRenderer":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
