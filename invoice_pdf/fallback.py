"""Primary render with a single degraded fallback attempt."""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Union

from .config import ENVIRONMENT, TAX_RATE, EngineConfig, render_profiles
from .engine import BrowserDriver, RenderSession
from .errors import (
    STAGE_RENDER,
    AllRenderMethodsFailedError,
    DependencyError,
    InvoiceRenderError,
    SessionError,
)
from .log import get_logger
from .markup import render as render_markup
from .models import InvoiceData, RenderFailure, RenderResult, Variant

logger = get_logger(__name__)

AttemptHook = Callable[[Variant], None]


def load_default_driver() -> BrowserDriver:
    try:
        from .playwright_driver import PlaywrightDriver
    except ModuleNotFoundError as exc:
        if exc.name and exc.name.startswith("playwright"):
            raise DependencyError(
                "Missing dependency 'playwright'. Install it with 'pip install playwright' "
                "and run 'playwright install chromium'."
            ) from exc
        raise
    return PlaywrightDriver()


def failure_from(exc: SessionError, variant: Variant) -> RenderFailure:
    return RenderFailure(stage=exc.stage or STAGE_RENDER, message=str(exc), variant=variant)


class FallbackOrchestrator:
    """Render with the full profile; on failure, once more with the degraded one.

    The second attempt never reuses the first session: the first is closed
    before the degraded markup is even built.
    """

    def __init__(
        self,
        driver: Optional[BrowserDriver] = None,
        full_config: Optional[EngineConfig] = None,
        degraded_config: Optional[EngineConfig] = None,
        on_attempt: Optional[AttemptHook] = None,
        tax_rate: float = TAX_RATE,
    ) -> None:
        default_full, default_degraded = render_profiles(ENVIRONMENT)
        self.driver = driver if driver is not None else load_default_driver()
        self.full_config = full_config or default_full
        self.degraded_config = degraded_config or default_degraded
        self.on_attempt = on_attempt
        self.tax_rate = tax_rate

    def _attempt(self, variant: Variant, config: EngineConfig, markup: str) -> bytes:
        if self.on_attempt is not None:
            self.on_attempt(variant)
        session = RenderSession(self.driver, config)
        try:
            session.open()
            return session.render_to_binary(markup)
        finally:
            session.close()

    def generate(self, data: InvoiceData) -> RenderResult:
        markup = render_markup(data, Variant.FULL, self.tax_rate)
        try:
            content = self._attempt(Variant.FULL, self.full_config, markup)
        except SessionError as exc:
            primary = failure_from(exc, Variant.FULL)
            logger.warning(
                "Primary render of %s failed at %s: %s; trying degraded render",
                data.invoice_number,
                primary.stage,
                primary.message,
            )
        else:
            logger.info("Rendered %s (%d bytes)", data.invoice_number, len(content))
            return RenderResult(content=content, variant=Variant.FULL)

        markup = render_markup(data, Variant.DEGRADED, self.tax_rate)
        try:
            content = self._attempt(Variant.DEGRADED, self.degraded_config, markup)
        except SessionError as exc:
            fallback = failure_from(exc, Variant.DEGRADED)
            error = AllRenderMethodsFailedError(primary, fallback)
            logger.error("All render methods failed for %s: %s", data.invoice_number, error)
            raise error from exc

        logger.info("Rendered %s with degraded profile (%d bytes)", data.invoice_number, len(content))
        return RenderResult(content=content, variant=Variant.DEGRADED, primary_failure=primary)


def generate_invoice(
    data: Union[InvoiceData, Mapping[str, Any]],
    orchestrator: Optional[FallbackOrchestrator] = None,
) -> Dict[str, Any]:
    """Render an invoice and wrap the outcome in the success envelope."""
    try:
        invoice = data if isinstance(data, InvoiceData) else InvoiceData.from_dict(data)
        if orchestrator is None:
            orchestrator = FallbackOrchestrator()
        result = orchestrator.generate(invoice)
    except (InvoiceRenderError, DependencyError) as exc:
        return {
            "success": False,
            "message": "Invoice PDF generation failed",
            "error": str(exc),
        }

    message = "Invoice PDF generated"
    if result.used_fallback:
        message = "Invoice PDF generated with the degraded renderer"
    return {
        "success": True,
        "message": message,
        "data": {"binaryContent": result.content, "filename": invoice.filename},
    }
