"""Headless browser capture.

Every capture launches its own Chromium through Playwright and tears it down
on every exit path. The browser class is injectable so tests can substitute
a stub renderer.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..models.capture import (
    BrowserLaunchConfig,
    CaptureError,
    CaptureFailure,
    CapturedImage,
)
from .image_processor import ThumbnailProcessor

logger = logging.getLogger(__name__)


def classify_browser_error(exc: BaseException) -> CaptureFailure:
    """Map an error raised while driving the browser to a failure kind."""
    if isinstance(exc, (PlaywrightTimeoutError, asyncio.TimeoutError)):
        return CaptureFailure.NAVIGATION_TIMEOUT
    if "net::ERR_" in str(exc):
        return CaptureFailure.CONNECTION_FAILED
    return CaptureFailure.RENDER_CRASH


class PlaywrightBrowser:
    """One Chromium instance driven by Playwright.

    Usage:
        browser = PlaywrightBrowser(config)
        await browser.start()
        try:
            png = await browser.screenshot("https://example.com")
        finally:
            await browser.close()
    """

    def __init__(self, config: BrowserLaunchConfig):
        self.config = config
        self._playwright = None
        self._browser = None

    async def start(self) -> None:
        logger.debug("Launching headless Chromium")
        self._playwright = await async_playwright().start()
        launch_kwargs = {"headless": self.config.headless, "args": list(self.config.args)}
        if self.config.executable_path:
            launch_kwargs["executable_path"] = self.config.executable_path
        self._browser = await self._playwright.chromium.launch(**launch_kwargs)

    async def screenshot(self, url: str) -> bytes:
        """Navigate to ``url`` and return a PNG of the viewport."""
        if self._browser is None:
            raise RuntimeError("Browser not started")

        context = await self._browser.new_context(
            viewport={
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            },
            device_scale_factor=self.config.device_scale_factor,
            user_agent=self.config.user_agent,
        )
        page = await context.new_page()
        await page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self.config.navigation_timeout_seconds * 1000,
        )
        # Let late scripts and web fonts paint
        await asyncio.sleep(self.config.settle_delay_seconds)
        return await page.screenshot(type="png", full_page=False)

    async def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        try:
            if browser is not None:
                await browser.close()
        finally:
            if playwright is not None:
                await playwright.stop()


BrowserFactory = Callable[[BrowserLaunchConfig], PlaywrightBrowser]


class CaptureEngine:
    """Renders a URL into a thumbnail within a fixed time budget."""

    def __init__(
        self,
        config: Optional[BrowserLaunchConfig] = None,
        browser_factory: BrowserFactory = PlaywrightBrowser,
        processor: Optional[ThumbnailProcessor] = None,
    ):
        """Initialize capture engine.

        Args:
            config: Browser launch settings and time budgets
            browser_factory: Builds the browser for one capture
            processor: Thumbnail post-processor (default 350px JPEG q80)
        """
        self.config = config or BrowserLaunchConfig()
        self.browser_factory = browser_factory
        self.processor = processor or ThumbnailProcessor()

    @asynccontextmanager
    async def browser_session(self) -> AsyncIterator[PlaywrightBrowser]:
        """Launch a browser exclusively for the caller and always close it."""
        browser = self.browser_factory(self.config)
        try:
            try:
                await browser.start()
            except Exception as e:
                logger.error(f"Browser launch failed: {e}")
                raise CaptureError(CaptureFailure.RENDER_CRASH, f"launch failed: {e}") from e
            yield browser
        finally:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"Error while closing browser: {e}")

    async def capture(self, url: str) -> CapturedImage:
        """Render ``url`` and return the post-processed thumbnail.

        Browser startup, rendering and post-processing share one deadline of
        ``capture_budget_seconds``.

        Raises:
            CaptureError: NAVIGATION_TIMEOUT, CONNECTION_FAILED, RENDER_CRASH
                or ENCODING_FAILED
        """
        try:
            return await asyncio.wait_for(
                self._capture(url), timeout=self.config.capture_budget_seconds
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Capture of {url} exceeded {self.config.capture_budget_seconds}s budget"
            )
            raise CaptureError(
                CaptureFailure.NAVIGATION_TIMEOUT,
                f"capture budget of {self.config.capture_budget_seconds}s exceeded",
            ) from e

    async def _capture(self, url: str) -> CapturedImage:
        raw = await self._render(url)
        return await asyncio.to_thread(self.processor.process, raw)

    async def _render(self, url: str) -> bytes:
        async with self.browser_session() as browser:
            try:
                raw = await browser.screenshot(url)
            except CaptureError:
                raise
            except Exception as e:
                kind = classify_browser_error(e)
                logger.warning(f"Browser failed on {url} ({kind.value}): {e}")
                raise CaptureError(kind, str(e)) from e

        logger.info(f"Rendered {url} ({len(raw)} bytes)")
        return raw
