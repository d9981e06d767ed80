"""Assemble InvoiceData from subscription, contributor and package records."""

from __future__ import annotations

import base64
import os
from datetime import date
from typing import Any, Mapping, Optional

from .config import DEFAULT_CURRENCY, TAX_RATE
from .errors import InvalidInputData
from .formatting import fmt_date, fmt_duration, parse_flag, safe_float
from .log import get_logger
from .models import Address, BillingTotals, Contributor, InvoiceData, SubscriptionTerms

logger = get_logger(__name__)


def invoice_number_for(subscription_id: Any) -> str:
    text = str(subscription_id or "").strip()
    if not text:
        raise InvalidInputData("Missing required field 'subscription.id'.")
    return f"INV-{text[-8:].upper()}"


def split_total(total: float, tax_rate: float, is_free_trial: bool) -> BillingTotals:
    """Split a tax-inclusive total into subtotal and tax."""
    if is_free_trial:
        total = 0.0
    subtotal = round(total / (1.0 + tax_rate), 2)
    tax = round(total - subtotal, 2)
    return BillingTotals(subtotal=subtotal, tax=tax, total=round(total, 2), currency="")


def load_logo_base64(path: str) -> str:
    if not path or not os.path.exists(path):
        return ""
    try:
        with open(path, "rb") as handle:
            return base64.b64encode(handle.read()).decode("ascii")
    except OSError as exc:
        logger.warning("Logo %s unreadable, rendering without it: %s", path, exc)
        return ""


def build_invoice_data(
    subscription: Mapping[str, Any],
    contributor: Mapping[str, Any],
    package: Mapping[str, Any],
    tax_rate: float = TAX_RATE,
    today: Optional[date] = None,
    logo_base64: str = "",
) -> InvoiceData:
    subscription_id = subscription.get("_id", subscription.get("id"))
    name = str(contributor.get("name") or "").strip()
    if not name:
        raise InvalidInputData("Missing required field 'contributor.name'.")
    package_name = str(package.get("name") or "").strip()
    if not package_name:
        raise InvalidInputData("Missing required field 'package.name'.")

    address = contributor.get("address") or {}
    if not isinstance(address, Mapping):
        raise InvalidInputData("'contributor.address' must be an object.")
    try:
        is_free_trial = parse_flag(subscription.get("isFreeTrial"))
    except ValueError as exc:
        raise InvalidInputData("'subscription.isFreeTrial' must be true or false.") from exc
    totals = split_total(safe_float(subscription.get("amount"), 0.0), tax_rate, is_free_trial)
    issued = fmt_date(today or date.today())

    return InvoiceData(
        invoice_number=invoice_number_for(subscription_id),
        invoice_date=issued,
        due_date=issued,
        contributor=Contributor(
            name=name,
            email=str(contributor.get("email") or "").strip(),
            address=Address(
                street=str(address.get("street") or "").strip(),
                city=str(address.get("city") or "").strip(),
                postal_code=str(address.get("postalCode") or "").strip(),
                country=str(address.get("country") or "").strip(),
            ),
        ),
        subscription=SubscriptionTerms(
            package_name=package_name,
            start_date=fmt_date(subscription.get("startDate")),
            end_date=fmt_date(subscription.get("endDate")),
            duration=fmt_duration(package.get("duration", ""), str(package.get("durationUnit") or "")),
            is_free_trial=is_free_trial,
        ),
        billing=BillingTotals(
            subtotal=totals.subtotal,
            tax=totals.tax,
            total=totals.total,
            currency=str(subscription.get("currency") or DEFAULT_CURRENCY).strip().upper(),
            payment_status=str(subscription.get("paymentStatus") or "pending").strip(),
        ),
        logo_base64=logo_base64,
    )
