"""HTML markup for invoices, in a full and a degraded variant."""

from __future__ import annotations

from datetime import date

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from .config import COMPANY_NAME, COMPANY_WEBSITE, TAX_RATE
from .errors import InvalidInputData
from .formatting import fmt_money
from .models import InvoiceData, Variant

TEMPLATE_NAMES = {
    Variant.FULL: "invoice_full.html",
    Variant.DEGRADED: "invoice_degraded.html",
}

jinja_env = Environment(
    loader=PackageLoader("invoice_pdf", "templates"),
    undefined=StrictUndefined,
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
jinja_env.filters["money"] = fmt_money


def _check_required(data: InvoiceData) -> None:
    if not isinstance(data, InvoiceData):
        raise InvalidInputData(f"Expected InvoiceData, got {type(data).__name__}.")
    missing = [
        path
        for path, value in (
            ("invoiceNumber", data.invoice_number),
            ("contributor.name", data.contributor.name),
            ("subscription.packageName", data.subscription.package_name),
            ("billing.currency", data.billing.currency),
        )
        if not str(value or "").strip()
    ]
    if missing:
        raise InvalidInputData(f"Missing required field(s): {', '.join(missing)}.")


def render(data: InvoiceData, variant: Variant = Variant.FULL, tax_rate: float = TAX_RATE) -> str:
    _check_required(data)
    template = jinja_env.get_template(TEMPLATE_NAMES[Variant(variant)])
    try:
        return template.render(
            invoice=data,
            company_name=COMPANY_NAME,
            company_website=COMPANY_WEBSITE,
            tax_percent=f"{tax_rate * 100:g}",
            current_year=date.today().year,
        )
    except TemplateError as exc:
        raise InvalidInputData(f"Invoice template could not be rendered: {exc}") from exc
