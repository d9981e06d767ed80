"""Formatting helpers for invoice values."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from dateutil import parser as dateutil_parser


def fmt_money(amount: float, currency: str) -> str:
    return f"{amount:,.2f} {currency}"


def safe_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except Exception:
        return default


def parse_date(raw: Any) -> Optional[datetime]:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    text = str(raw or "").strip()
    if not text:
        return None
    try:
        return dateutil_parser.parse(text)
    except (ValueError, OverflowError):
        return None


def fmt_date(raw: Any) -> str:
    """Parse a date and return it formatted as 'Mar 14, 2025'.

    Unparseable strings are returned unchanged so pre-formatted dates
    coming from the caller survive.
    """
    parsed = parse_date(raw)
    if parsed is None:
        return str(raw or "").strip()
    return parsed.strftime("%b %d, %Y")


def fmt_duration(value: Any, unit: str) -> str:
    text = str(value).strip()
    try:
        number = float(text)
        if number.is_integer():
            text = str(int(number))
    except ValueError:
        pass
    return f"{text} {unit}".strip()


TRUE_WORDS = {"true", "yes", "y", "on", "1"}
FALSE_WORDS = {"false", "no", "n", "off", "0", ""}


def parse_flag(value: Any, default: bool = False) -> bool:
    """Read a JSON flag; strings such as "false" or "0" are false."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean flag: {value!r}")
