from __future__ import annotations

import logging
from typing import Iterable

from playwright.async_api import ElementHandle, Error as PlaywrightError, Page

from ..errors import BrowserError

logger = logging.getLogger(__name__)

# Programmatic click on the node itself; visibility and enabled state were
# already checked by the probe, so Playwright's actionability wait is skipped.
_CLICK_SCRIPT = "(node) => node.click()"
_COUNT_CHILDREN_SCRIPT = (
    "(node, tag) => Array.from(node.children)"
    ".filter((child) => child.tagName.toLowerCase() === tag).length"
)


class ElementProbe:
    """Single point-in-time reads of the live page.

    Nothing here waits or retries. Returned handles are only meaningful until
    the next await on the page and must be released by the caller.
    """

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def page(self) -> Page:
        return self._page

    def bind(self, page: Page) -> None:
        self._page = page

    async def probe(self, selector: str) -> ElementHandle | None:
        try:
            return await self._page.query_selector(selector)
        except PlaywrightError as exc:
            raise BrowserError(f"Query for {selector} failed: {exc}") from exc

    async def probe_all(self, selector: str) -> list[ElementHandle]:
        try:
            return list(await self._page.query_selector_all(selector))
        except PlaywrightError as exc:
            raise BrowserError(f"Query for {selector} failed: {exc}") from exc

    async def is_present(self, selector: str) -> bool:
        handle = await self.probe(selector)
        if handle is None:
            return False
        await self.release([handle])
        return True

    async def is_interactable(self, handle: ElementHandle) -> bool:
        try:
            return await handle.is_visible() and await handle.is_enabled()
        except PlaywrightError as exc:
            raise BrowserError(f"Element state check failed: {exc}") from exc

    async def count_children(self, selector: str, tag: str = "div") -> int | None:
        handle = await self.probe(selector)
        if handle is None:
            return None
        try:
            count = await handle.evaluate(_COUNT_CHILDREN_SCRIPT, tag.lower())
        except PlaywrightError as exc:
            raise BrowserError(f"Counting children of {selector} failed: {exc}") from exc
        finally:
            await self.release([handle])
        return int(count)

    async def activate(self, handle: ElementHandle) -> None:
        try:
            await handle.evaluate(_CLICK_SCRIPT)
        except PlaywrightError as exc:
            raise BrowserError(f"Click failed: {exc}") from exc

    async def release(self, handles: Iterable[ElementHandle]) -> None:
        for handle in handles:
            try:
                await handle.dispose()
            except PlaywrightError:
                logger.debug("Handle already detached", exc_info=True)
