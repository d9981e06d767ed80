"""Public package API for invoice PDF generation."""

from __future__ import annotations

from typing import Any, Dict, Mapping


def generate_invoice(data: Mapping[str, Any]) -> Dict[str, Any]:
    from .fallback import generate_invoice as _generate_invoice

    return _generate_invoice(data)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = ["generate_invoice", "run"]
