"""Value types passed through the rendering pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidInputData
from .formatting import fmt_date, parse_flag, safe_float


class Variant(str, Enum):
    FULL = "full"
    DEGRADED = "degraded"


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    if value is None:
        raise InvalidInputData(f"Missing required field '{key}'.")
    if not isinstance(value, Mapping):
        raise InvalidInputData(f"'{key}' must be an object.")
    return value


def _required_text(section: Mapping[str, Any], key: str, path: str) -> str:
    value = section.get(key)
    text = "" if value is None else str(value).strip()
    if not text:
        raise InvalidInputData(f"Missing required field '{path}'.")
    return text


def _optional_text(section: Mapping[str, Any], key: str) -> str:
    value = section.get(key)
    return "" if value is None else str(value).strip()


def _flag(section: Mapping[str, Any], key: str, path: str) -> bool:
    try:
        return parse_flag(section.get(key))
    except ValueError as exc:
        raise InvalidInputData(f"'{path}' must be true or false.") from exc


def _required_amount(section: Mapping[str, Any], key: str, path: str) -> float:
    value = section.get(key)
    if value is None or value == "":
        raise InvalidInputData(f"Missing required field '{path}'.")
    if isinstance(value, bool):
        raise InvalidInputData(f"'{path}' must be a number.")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputData(f"'{path}' must be a number.") from exc


@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""

    @property
    def city_line(self) -> str:
        return ", ".join(part for part in (self.city, self.postal_code) if part)


@dataclass(frozen=True)
class Contributor:
    name: str
    email: str = ""
    address: Address = Address()


@dataclass(frozen=True)
class SubscriptionTerms:
    package_name: str
    start_date: str = ""
    end_date: str = ""
    duration: str = ""
    is_free_trial: bool = False

    @property
    def subscription_type(self) -> str:
        return "Free trial" if self.is_free_trial else "Paid subscription"


@dataclass(frozen=True)
class BillingTotals:
    subtotal: float
    tax: float
    total: float
    currency: str
    payment_status: str = "pending"


@dataclass(frozen=True)
class InvoiceData:
    invoice_number: str
    invoice_date: str
    contributor: Contributor
    subscription: SubscriptionTerms
    billing: BillingTotals
    due_date: str = ""
    logo_base64: str = ""

    @property
    def filename(self) -> str:
        return f"invoice-{self.invoice_number}.pdf"

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "InvoiceData":
        if not isinstance(payload, Mapping):
            raise InvalidInputData("Invoice data must be an object.")

        contributor = _section(payload, "contributor")
        address = contributor.get("address") or {}
        if not isinstance(address, Mapping):
            raise InvalidInputData("'contributor.address' must be an object.")
        subscription = _section(payload, "subscription")
        billing = _section(payload, "billing")

        total = _required_amount(billing, "total", "billing.total")
        subtotal = safe_float(billing.get("subtotal"), total)
        tax = safe_float(billing.get("tax"), total - subtotal)

        return cls(
            invoice_number=_required_text(payload, "invoiceNumber", "invoiceNumber"),
            invoice_date=fmt_date(_required_text(payload, "invoiceDate", "invoiceDate")),
            due_date=fmt_date(_optional_text(payload, "dueDate")),
            contributor=Contributor(
                name=_required_text(contributor, "name", "contributor.name"),
                email=_optional_text(contributor, "email"),
                address=Address(
                    street=_optional_text(address, "street"),
                    city=_optional_text(address, "city"),
                    postal_code=_optional_text(address, "postalCode"),
                    country=_optional_text(address, "country"),
                ),
            ),
            subscription=SubscriptionTerms(
                package_name=_required_text(subscription, "packageName", "subscription.packageName"),
                start_date=fmt_date(_optional_text(subscription, "startDate")),
                end_date=fmt_date(_optional_text(subscription, "endDate")),
                duration=_optional_text(subscription, "duration"),
                is_free_trial=_flag(subscription, "isFreeTrial", "subscription.isFreeTrial"),
            ),
            billing=BillingTotals(
                subtotal=subtotal,
                tax=tax,
                total=total,
                currency=_required_text(billing, "currency", "billing.currency"),
                payment_status=_optional_text(billing, "paymentStatus") or "pending",
            ),
            logo_base64=_optional_text(payload, "logoBase64"),
        )

    def to_dict(self) -> Dict[str, Any]:
        address = self.contributor.address
        return {
            "invoiceNumber": self.invoice_number,
            "invoiceDate": self.invoice_date,
            "dueDate": self.due_date,
            "contributor": {
                "name": self.contributor.name,
                "email": self.contributor.email,
                "address": {
                    "street": address.street,
                    "city": address.city,
                    "postalCode": address.postal_code,
                    "country": address.country,
                },
            },
            "subscription": {
                "packageName": self.subscription.package_name,
                "startDate": self.subscription.start_date,
                "endDate": self.subscription.end_date,
                "duration": self.subscription.duration,
                "isFreeTrial": self.subscription.is_free_trial,
            },
            "billing": {
                "subtotal": self.billing.subtotal,
                "tax": self.billing.tax,
                "total": self.billing.total,
                "currency": self.billing.currency,
                "paymentStatus": self.billing.payment_status,
            },
            "logoBase64": self.logo_base64,
        }


@dataclass(frozen=True)
class RenderFailure:
    stage: str
    message: str
    variant: Variant = Variant.FULL

    def describe(self) -> str:
        return f"{self.stage}: {self.message}"


@dataclass(frozen=True)
class RenderResult:
    content: bytes
    variant: Variant = Variant.FULL
    primary_failure: Optional[RenderFailure] = None

    @property
    def byte_length(self) -> int:
        return len(self.content)

    @property
    def used_fallback(self) -> bool:
        return self.variant is Variant.DEGRADED
