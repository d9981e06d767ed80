"""Browser driver backed by the Playwright sync API (Chromium by default)."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from playwright.sync_api import Browser, Page, Playwright, Route
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .config import EngineConfig, PdfOptions
from .errors import EngineLaunchError, EngineProtocolError, RenderTimeoutError
from .log import get_logger

logger = get_logger(__name__)

READY_STATE_COMPLETE = '() => document.readyState === "complete"'


@contextmanager
def translate_errors() -> Iterator[None]:
    try:
        yield
    except PlaywrightTimeoutError as exc:
        raise RenderTimeoutError(str(exc)) from exc
    except PlaywrightError as exc:
        raise EngineProtocolError(str(exc)) from exc


class PlaywrightPage:
    def __init__(self, page: Page) -> None:
        self.page = page
        page.on("pageerror", lambda err: logger.warning("Render page script error: %s", err))
        page.on("crash", lambda _: logger.warning("Render page crashed"))

    def block_resources(self, resource_types: Sequence[str]) -> None:
        blocked = frozenset(resource_types)
        if not blocked:
            return

        def handle(route: Route) -> None:
            if route.request.resource_type in blocked:
                route.abort()
            else:
                route.continue_()

        with translate_errors():
            self.page.route("**/*", handle)

    def set_content(self, markup: str, timeout_ms: int) -> None:
        with translate_errors():
            self.page.set_content(markup, wait_until="domcontentloaded", timeout=timeout_ms)

    def wait_for_ready(self, timeout_ms: int) -> None:
        with translate_errors():
            self.page.wait_for_function(READY_STATE_COMPLETE, timeout=timeout_ms)

    def settle(self, delay_ms: int) -> None:
        with translate_errors():
            self.page.wait_for_timeout(delay_ms)

    def export_pdf(self, options: PdfOptions, timeout_ms: int) -> bytes:
        # page.pdf() takes no timeout of its own; it honours the page default.
        with translate_errors():
            self.page.set_default_timeout(timeout_ms)
            return self.page.pdf(
                format=options.format,
                print_background=options.print_background,
                margin=options.margin_dict(),
            )

    def is_closed(self) -> bool:
        return self.page.is_closed()

    def close(self) -> None:
        with translate_errors():
            self.page.close()


class PlaywrightBrowser:
    def __init__(self, playwright: Playwright, browser: Browser) -> None:
        self.playwright = playwright
        self.browser = browser

    def new_page(self, default_timeout_ms: int) -> PlaywrightPage:
        with translate_errors():
            page = self.browser.new_page()
            page.set_default_timeout(default_timeout_ms)
            page.set_default_navigation_timeout(default_timeout_ms)
        return PlaywrightPage(page)

    def close(self) -> None:
        try:
            with translate_errors():
                self.browser.close()
        finally:
            self.playwright.stop()


class PlaywrightDriver:
    def __init__(self, browser_type: str = "chromium", executable_path: Optional[str] = None) -> None:
        self.browser_type = browser_type
        self.executable_path = executable_path

    def launch(self, config: EngineConfig) -> PlaywrightBrowser:
        try:
            playwright = sync_playwright().start()
        except PlaywrightError as exc:
            raise EngineLaunchError(f"Playwright failed to start: {exc}") from exc

        try:
            browser = getattr(playwright, self.browser_type).launch(
                headless=config.headless,
                args=list(config.launch_args),
                timeout=config.launch_timeout_ms,
                executable_path=self.executable_path,
            )
        except Exception as exc:
            playwright.stop()
            raise EngineLaunchError(f"Browser launch failed: {exc}") from exc

        logger.debug("Launched %s for %s render", self.browser_type, config.name)
        return PlaywrightBrowser(playwright, browser)
