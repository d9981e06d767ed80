"""Render engine session: one browser process and one page per attempt.

The browser is reached through three small protocols so any headless
renderer that can launch, open a page, set content, export a PDF and close
can be plugged in. ``playwright_driver`` provides the production driver;
tests script their own.
"""

from __future__ import annotations

from enum import Enum
from typing import NoReturn, Optional, Protocol, Sequence

from .config import EngineConfig, PdfOptions
from .errors import (
    STAGE_LAUNCH,
    STAGE_NAVIGATE,
    STAGE_RENDER,
    EngineLaunchError,
    EngineProtocolError,
    RenderTimeoutError,
    SessionError,
)
from .log import get_logger

logger = get_logger(__name__)


class PageHandle(Protocol):
    def block_resources(self, resource_types: Sequence[str]) -> None:
        ...

    def set_content(self, markup: str, timeout_ms: int) -> None:
        ...

    def wait_for_ready(self, timeout_ms: int) -> None:
        ...

    def settle(self, delay_ms: int) -> None:
        ...

    def export_pdf(self, options: PdfOptions, timeout_ms: int) -> bytes:
        ...

    def is_closed(self) -> bool:
        ...

    def close(self) -> None:
        ...


class BrowserHandle(Protocol):
    def new_page(self, default_timeout_ms: int) -> PageHandle:
        ...

    def close(self) -> None:
        ...


class BrowserDriver(Protocol):
    def launch(self, config: EngineConfig) -> BrowserHandle:
        ...


class SessionState(str, Enum):
    UNOPENED = "unopened"
    LAUNCHING = "launching"
    READY = "ready"
    RENDERING = "rendering"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLOSED = "closed"


def as_session_error(exc: BaseException, stage: str) -> SessionError:
    """Map any exception raised by a driver onto the session taxonomy."""
    if stage == STAGE_LAUNCH:
        if isinstance(exc, EngineLaunchError):
            return exc
        return EngineLaunchError(str(exc) or type(exc).__name__)
    if isinstance(exc, SessionError):
        if exc.stage is None:
            exc.stage = stage
        return exc
    if isinstance(exc, TimeoutError):
        return RenderTimeoutError(str(exc) or "operation timed out", stage)
    return EngineProtocolError(str(exc) or type(exc).__name__, stage)


def _raise_mapped(exc: Exception, stage: str) -> NoReturn:
    mapped = as_session_error(exc, stage)
    if mapped is exc:
        raise mapped
    raise mapped from exc


class RenderSession:
    def __init__(self, driver: BrowserDriver, config: EngineConfig) -> None:
        self.driver = driver
        self.config = config
        self.state = SessionState.UNOPENED
        self.outcome: Optional[SessionState] = None
        self.browser: Optional[BrowserHandle] = None
        self.page: Optional[PageHandle] = None

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    def open(self) -> "RenderSession":
        if self.state is not SessionState.UNOPENED:
            raise EngineLaunchError(f"Session cannot be opened from state '{self.state.value}'.")

        self.state = SessionState.LAUNCHING
        logger.debug("Launching %s render engine", self.config.name)
        try:
            self.browser = self.driver.launch(self.config)
            self.page = self.browser.new_page(self.config.protocol_timeout_ms)
            self.page.block_resources(self.config.blocked_resources)
        except Exception as exc:
            self.state = self.outcome = SessionState.FAILED
            _raise_mapped(exc, STAGE_LAUNCH)

        self.state = SessionState.READY
        return self

    def render_to_binary(self, markup: str) -> bytes:
        if self.state is not SessionState.READY or self.page is None:
            raise EngineProtocolError(
                f"Session cannot render from state '{self.state.value}'.", STAGE_RENDER
            )

        self.state = SessionState.RENDERING
        config = self.config
        stage = STAGE_NAVIGATE
        try:
            self.page.set_content(markup, config.content_timeout_ms)
            self.page.wait_for_ready(config.ready_timeout_ms)
            if config.settle_delay_ms > 0:
                self.page.settle(config.settle_delay_ms)

            stage = STAGE_RENDER
            content = self.page.export_pdf(config.pdf, config.export_timeout_ms)
        except Exception as exc:
            self.state = self.outcome = SessionState.FAILED
            _raise_mapped(exc, stage)

        if not content:
            self.state = self.outcome = SessionState.FAILED
            raise EngineProtocolError("PDF export returned an empty document.", STAGE_RENDER)

        self.state = self.outcome = SessionState.SUCCEEDED
        return bytes(content)

    def close(self) -> None:
        """Close the page, then the browser. Never raises."""
        if self.state is SessionState.CLOSED:
            return

        page, browser = self.page, self.browser
        self.page = None
        self.browser = None

        if page is not None:
            try:
                if not page.is_closed():
                    page.close()
            except Exception as exc:
                logger.warning("Closing %s render page failed: %s", self.config.name, exc)

        if browser is not None:
            try:
                browser.close()
            except Exception as exc:
                logger.warning("Closing %s render engine failed: %s", self.config.name, exc)

        self.state = SessionState.CLOSED

    def __enter__(self) -> "RenderSession":
        try:
            return self.open()
        except BaseException:
            self.close()
            raise

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_session(driver: BrowserDriver, config: EngineConfig) -> RenderSession:
    """Launch a session; on failure it is already closed when this raises."""
    session = RenderSession(driver, config)
    try:
        return session.open()
    except BaseException:
        session.close()
        raise
