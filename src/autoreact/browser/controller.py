from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    async_playwright,
)

from ..errors import BrowserError

logger = logging.getLogger(__name__)

PageListener = Callable[[Page], None]


class BrowserController:
    """Owns the Playwright browser hosting the page being automated."""

    def __init__(
        self,
        headless: bool = False,
        user_data_dir: Path | None = None,
        navigation_timeout_s: int = 30,
    ) -> None:
        self._headless = headless
        self._user_data_dir = user_data_dir.expanduser() if user_data_dir else None
        self._navigation_timeout_ms = navigation_timeout_s * 1000
        self._playwright = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._page_listeners: list[PageListener] = []
        self._closed = asyncio.Event()

    async def __aenter__(self) -> "BrowserController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.stop()

    async def start(self) -> None:
        if self._page is not None:
            return
        try:
            playwright = await async_playwright().start()
        except PlaywrightError as exc:
            raise BrowserError(f"Unable to start Playwright: {exc}") from exc
        self._playwright = playwright

        if self._user_data_dir is not None:
            self._user_data_dir.mkdir(parents=True, exist_ok=True)
            context = await playwright.chromium.launch_persistent_context(
                str(self._user_data_dir),
                headless=self._headless,
            )
            page = context.pages[0] if context.pages else await context.new_page()
            browser = context.browser
        else:
            browser = await playwright.chromium.launch(headless=self._headless)
            context = await browser.new_context()
            page = await context.new_page()

        self._browser = browser
        self._context = context
        self._page = page
        self._closed.clear()
        self._attach_page_listeners(page)
        context.on("page", self._handle_new_page)

    async def stop(self) -> None:
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
        self._closed.set()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserError("Browser not started")
        return self._page

    def on_page_change(self, listener: PageListener) -> None:
        """Register a callback invoked whenever the active tab changes."""

        self._page_listeners.append(listener)

    async def wait_closed(self) -> None:
        """Block until every tab has been closed or :meth:`stop` ran."""

        await self._closed.wait()

    async def open_url(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms)
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to open {url}: {exc}") from exc
        logger.info("Opened %s", url)

    def _set_active_page(self, page: Page) -> None:
        self._page = page
        for listener in self._page_listeners:
            listener(page)

    def _handle_new_page(self, page: Page) -> None:
        logger.info("New tab opened; switching context")
        self._attach_page_listeners(page)
        self._set_active_page(page)
        loop = asyncio.get_running_loop()
        loop.create_task(self._prepare_new_page(page))

    async def _prepare_new_page(self, page: Page) -> None:
        try:
            await page.bring_to_front()
            await page.wait_for_load_state("domcontentloaded", timeout=self._navigation_timeout_ms)
        except PlaywrightError:
            logger.debug("Failed to prepare new tab", exc_info=True)

    def _attach_page_listeners(self, page: Page) -> None:
        page.on("close", lambda _: self._handle_page_close(page))

    def _handle_page_close(self, page: Page) -> None:
        if self._page is None or self._page != page:
            return
        fallback = self._select_fallback_page()
        if fallback is not None:
            logger.info("Active tab closed; falling back to %s", fallback.url)
            self._set_active_page(fallback)
        else:
            logger.info("Last tab closed")
            self._closed.set()

    def _select_fallback_page(self) -> Page | None:
        if self._context is None:
            return None
        for candidate in reversed(self._context.pages):
            if not candidate.is_closed():
                return candidate
        return None
