"""Scripted stand-ins for the browser driver protocols."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from invoice_pdf.models import InvoiceData

FAKE_PDF = b"%PDF-1.4\n% fake invoice\n%%EOF"


def sample_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "invoiceNumber": "INV-001",
        "invoiceDate": "2026-01-15",
        "dueDate": "2026-02-15",
        "contributor": {
            "name": "Awa Diallo",
            "email": "awa@example.com",
            "address": {
                "street": "12 Rue des Jardins",
                "city": "Dakar",
                "postalCode": "10200",
                "country": "Senegal",
            },
        },
        "subscription": {
            "packageName": "Premium",
            "startDate": "2026-01-15",
            "endDate": "2026-02-14",
            "duration": "30 days",
            "isFreeTrial": False,
        },
        "billing": {
            "subtotal": 833.33,
            "tax": 166.67,
            "total": 1000,
            "currency": "XOF",
            "paymentStatus": "paid",
        },
    }
    payload.update(overrides)
    return payload


def sample_invoice(**overrides: Any) -> InvoiceData:
    return InvoiceData.from_dict(sample_payload(**overrides))


@dataclass
class Script:
    """How one launched browser behaves.

    ``fail_at`` names the driver call that raises ``error``: one of
    launch, new_page, block_resources, set_content, wait_for_ready,
    settle, export_pdf.
    """

    fail_at: Optional[str] = None
    error: Optional[BaseException] = None
    content: bytes = FAKE_PDF
    page_close_error: Optional[BaseException] = None
    browser_close_error: Optional[BaseException] = None
    page_closed_early: bool = False


class FakePage:
    def __init__(self, browser: "FakeBrowser", script: Script) -> None:
        self.browser = browser
        self.script = script
        self.closed = script.page_closed_early
        self.close_calls = 0
        self.blocked: Tuple[str, ...] = ()
        self.markup: Optional[str] = None
        self.export_options: Any = None
        self.settle_delays: List[int] = []

    def _step(self, name: str) -> None:
        self.browser.driver.events.append((self.browser.index, name))
        if self.script.fail_at == name:
            raise self.script.error or RuntimeError(f"{name} failed")

    def block_resources(self, resource_types: Any) -> None:
        self._step("block_resources")
        self.blocked = tuple(resource_types)

    def set_content(self, markup: str, timeout_ms: int) -> None:
        self._step("set_content")
        self.markup = markup

    def wait_for_ready(self, timeout_ms: int) -> None:
        self._step("wait_for_ready")

    def settle(self, delay_ms: int) -> None:
        self._step("settle")
        self.settle_delays.append(delay_ms)

    def export_pdf(self, options: Any, timeout_ms: int) -> bytes:
        self._step("export_pdf")
        self.export_options = options
        return self.script.content

    def is_closed(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.close_calls += 1
        self.browser.driver.events.append((self.browser.index, "page_close"))
        if self.script.page_close_error is not None:
            raise self.script.page_close_error
        self.closed = True


class FakeBrowser:
    def __init__(self, driver: "FakeDriver", index: int, script: Script) -> None:
        self.driver = driver
        self.index = index
        self.script = script
        self.closed = False
        self.pages: List[FakePage] = []

    def new_page(self, default_timeout_ms: int) -> FakePage:
        self.driver.events.append((self.index, "new_page"))
        if self.script.fail_at == "new_page":
            raise self.script.error or RuntimeError("new_page failed")
        page = FakePage(self, self.script)
        self.pages.append(page)
        return page

    def close(self) -> None:
        self.driver.events.append((self.index, "browser_close"))
        if self.script.browser_close_error is not None:
            raise self.script.browser_close_error
        self.closed = True


@dataclass
class FakeDriver:
    scripts: List[Script] = field(default_factory=list)
    events: List[Tuple[int, str]] = field(default_factory=list)
    configs: List[Any] = field(default_factory=list)
    browsers: List[FakeBrowser] = field(default_factory=list)

    def launch(self, config: Any) -> FakeBrowser:
        index = len(self.configs)
        self.configs.append(config)
        script = self.scripts[index] if index < len(self.scripts) else Script()
        self.events.append((index, "launch"))
        if script.fail_at == "launch":
            raise script.error or RuntimeError("launch failed")
        browser = FakeBrowser(self, index, script)
        self.browsers.append(browser)
        return browser

    @property
    def pages(self) -> List[FakePage]:
        return [page for browser in self.browsers for page in browser.pages]

    def all_released(self) -> bool:
        return all(browser.closed for browser in self.browsers) and all(
            page.closed or page.close_calls for page in self.pages
        )
