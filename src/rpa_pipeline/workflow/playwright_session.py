# ABOUTME: Playwright-backed automation session for live workflow runs
# ABOUTME: Installed with the "browser" extra; imported only when a live worker starts

from collections.abc import Sequence

from playwright.async_api import Browser, Page, Playwright, async_playwright

from rpa_pipeline.utils.logging import get_logger, suppress_library_output
from rpa_pipeline.workflow.session import SelectorNotFoundError


class PlaywrightSession:
    """Chromium page wrapper that resolves selector fallback lists."""

    def __init__(self, playwright: Playwright, browser: Browser, page: Page, base_url: str):
        self._playwright = playwright
        self._browser = browser
        self._page = page
        self.base_url = base_url
        self.logger = get_logger(__name__)

    async def _first(self, selectors: Sequence[str]):
        for selector in selectors:
            try:
                element = await self._page.query_selector(selector)
            except Exception as e:
                self.logger.debug("Selector lookup failed", selector=selector, error=str(e))
                continue
            if element is not None:
                return selector, element
        raise SelectorNotFoundError(selectors)

    async def goto(self, url: str, *, timeout: float | None = None) -> None:
        await self._page.goto(url, timeout=None if timeout is None else timeout * 1000)

    async def click_first(self, selectors: Sequence[str]) -> str:
        selector, element = await self._first(selectors)
        await element.click()
        await self._page.wait_for_load_state()
        return selector

    async def fill_first(self, selectors: Sequence[str], value: str) -> str:
        selector, element = await self._first(selectors)
        await element.fill(value)
        return selector

    async def select_first(self, selectors: Sequence[str], value: str) -> str:
        selector, element = await self._first(selectors)
        await element.select_option(label=value)
        return selector

    async def is_present(self, selectors: Sequence[str]) -> bool:
        try:
            await self._first(selectors)
        except SelectorNotFoundError:
            return False
        return True

    async def read_text(self, selectors: Sequence[str]) -> str | None:
        try:
            _, element = await self._first(selectors)
        except SelectorNotFoundError:
            return None
        return await element.inner_text()

    async def evaluate(self, script: str) -> None:
        await self._page.evaluate(script)

    async def wait(self, seconds: float) -> None:
        await self._page.wait_for_timeout(seconds * 1000)

    async def screenshot(self) -> bytes:
        return await self._page.screenshot(full_page=True)

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightSessionFactory:
    def __init__(self, base_url: str, *, headless: bool = True, slow_mo_ms: int = 0, timeout_ms: int = 30000):
        self.base_url = base_url
        self.headless = headless
        self.slow_mo_ms = slow_mo_ms
        self.timeout_ms = timeout_ms

    async def open(self) -> PlaywrightSession:
        # Browser start-up prints driver banners straight to stdout
        with suppress_library_output():
            playwright = await async_playwright().start()
        try:
            with suppress_library_output():
                browser = await playwright.chromium.launch(headless=self.headless, slow_mo=self.slow_mo_ms)
            page = await browser.new_page(viewport={"width": 1920, "height": 1080})
            page.set_default_timeout(self.timeout_ms)
        except BaseException:
            await playwright.stop()
            raise
        return PlaywrightSession(playwright, browser, page, self.base_url)
