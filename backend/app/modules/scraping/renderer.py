"""Headless page renderer.

Owns one Chromium process (started lazily, closed explicitly) and hands out
a fresh browser context per render. At most ``max_concurrent_pages``
contexts are open at once; context creation is serialized on the browser.

Usage:
    async with PageRenderer() as renderer:
        outcome = await renderer.render("https://example.com")
        if isinstance(outcome, RenderFailure):
            ...

Dependencies:
    pip install playwright
    playwright install chromium
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from app.core.config import Settings, settings as default_settings
from app.modules.scraping.schemas import PageContent, RenderFailure

logger = structlog.get_logger()

# Runs in the page: drop non-content nodes, then snapshot title/html/text
_SNAPSHOT_JS = """
() => {
    document.querySelectorAll('script, style, noscript').forEach(el => el.remove());
    return {
        title: document.title || '',
        html: document.documentElement ? document.documentElement.outerHTML : '',
        text: document.body ? (document.body.innerText || '') : '',
    };
}
"""

_NETWORK_MARKERS = (
    "net::err_name_not_resolved",
    "net::err_connection",
    "net::err_internet_disconnected",
    "net::err_address_unreachable",
    "net::err_network",
    "net::err_timed_out",
    "net::err_ssl",
    "net::err_cert",
)


def classify_render_error(url: str, exc: BaseException) -> RenderFailure:
    """Map a Playwright/asyncio exception to a typed RenderFailure."""
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, (PlaywrightTimeoutError, asyncio.TimeoutError, TimeoutError)):
        kind = "timeout"
    elif isinstance(exc, PlaywrightError):
        lowered = message.lower()
        if any(marker in lowered for marker in _NETWORK_MARKERS):
            kind = "network"
        elif "browser has been closed" in lowered or "target closed" in lowered:
            kind = "browser"
        else:
            kind = "navigation"
    else:
        kind = "browser"
    return RenderFailure(url=url, kind=kind, message=message[:500])


class BrowserLaunchError(RuntimeError):
    """Chromium could not be started."""


class PageRenderer:
    """Render-and-settle a URL in headless Chromium."""

    def __init__(
        self,
        config: Settings | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.config = config or default_settings
        self._playwright_factory = playwright_factory
        self._pw: Any = None
        self._browser: Any = None
        self._lock = asyncio.Lock()
        self._slots = asyncio.Semaphore(max(1, self.config.scraper_max_concurrent_pages))

    # ------------------------------------------------------------------
    # Browser lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    def _needs_launch(self) -> bool:
        return self._browser is None or not self._browser.is_connected()

    async def _ensure_browser(self) -> Any:
        if self._needs_launch():
            async with self._lock:
                if self._browser is not None and not self._browser.is_connected():
                    # Crashed or killed Chromium; drop it and start over
                    logger.warning("browser_disconnected")
                    self._browser = None
                    await self._stop_playwright()
                if self._browser is None:
                    self._pw = await self._playwright_factory().start()
                    try:
                        self._browser = await self._pw.chromium.launch(
                            headless=self.config.scraper_headless,
                            args=list(self.config.scraper_browser_args),
                        )
                    except Exception as e:
                        await self._stop_playwright()
                        raise BrowserLaunchError(str(e) or e.__class__.__name__) from e
                    except BaseException:
                        await self._stop_playwright()
                        raise
                    logger.info("browser_started", headless=self.config.scraper_headless)
        return self._browser

    async def close(self) -> None:
        """Close the browser process. Safe to call more than once."""
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
                logger.info("browser_closed")
            await self._stop_playwright()

    async def _stop_playwright(self) -> None:
        if self._pw is not None:
            await self._pw.stop()
            self._pw = None

    async def __aenter__(self) -> PageRenderer:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @asynccontextmanager
    async def page_context(self) -> AsyncIterator[Any]:
        """Acquire a pool slot and a fresh page; release both on every exit path."""
        async with self._slots:
            browser = await self._ensure_browser()
            async with self._lock:
                context = await browser.new_context(
                    user_agent=self.config.scraper_user_agent,
                    java_script_enabled=True,
                )
            try:
                page = await context.new_page()
                yield page
            finally:
                await context.close()

    # ------------------------------------------------------------------
    # Render
    # ------------------------------------------------------------------

    async def _render(self, url: str) -> PageContent:
        async with self.page_context() as page:
            await page.goto(
                url,
                wait_until="networkidle",
                timeout=self.config.scraper_navigation_timeout_seconds * 1000,
            )
            await asyncio.sleep(self.config.scraper_settle_delay_seconds)
            snapshot = await page.evaluate(_SNAPSHOT_JS)

        return PageContent(
            url=url,
            title=str(snapshot.get("title") or ""),
            raw_text=str(snapshot.get("text") or ""),
            rendered_html=str(snapshot.get("html") or ""),
        )

    async def render(self, url: str) -> PageContent | RenderFailure:
        """Render ``url``; any failure comes back as a RenderFailure value."""
        start = time.monotonic()
        # Hard ceiling over navigation + settle + snapshot
        deadline = (
            self.config.scraper_navigation_timeout_seconds
            + self.config.scraper_settle_delay_seconds
            + 5.0
        )
        try:
            content = await asyncio.wait_for(self._render(url), timeout=deadline)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            failure = classify_render_error(url, exc)
            logger.warning(
                "render_failed",
                url=url,
                kind=failure.kind,
                error=failure.message,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            return failure

        logger.info(
            "page_rendered",
            url=url,
            title=content.title[:80],
            html_chars=len(content.rendered_html),
            text_chars=len(content.raw_text),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return content
