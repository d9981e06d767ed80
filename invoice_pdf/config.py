"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Tuple


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name, "").strip()
    return raw or default


@dataclass(frozen=True)
class PdfOptions:
    format: str = "A4"
    print_background: bool = True
    margin: Tuple[str, str, str, str] = ("20mm", "20mm", "20mm", "20mm")

    def margin_dict(self) -> Dict[str, str]:
        top, right, bottom, left = self.margin
        return {"top": top, "right": right, "bottom": bottom, "left": left}


@dataclass(frozen=True)
class EngineConfig:
    """Everything one render attempt needs to know about the browser.

    All timeouts are milliseconds. ``settle_delay_ms`` is a heuristic pause
    after the ready-state signal, not a correctness guarantee.
    """

    name: str
    launch_args: Tuple[str, ...]
    launch_timeout_ms: int
    protocol_timeout_ms: int
    content_timeout_ms: int
    ready_timeout_ms: int
    settle_delay_ms: int
    export_timeout_ms: int
    blocked_resources: Tuple[str, ...]
    pdf: PdfOptions = field(default_factory=PdfOptions)
    headless: bool = True


# Required on every launch: no sandbox, no GPU, one process.
BASE_LAUNCH_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--single-process",
    "--no-zygote",
    "--disable-dev-shm-usage",
)

FULL_LAUNCH_ARGS: Tuple[str, ...] = BASE_LAUNCH_ARGS + (
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-ipc-flooding-protection",
)

FULL_BLOCKED_RESOURCES: Tuple[str, ...] = ("image", "font", "media", "stylesheet")
DEGRADED_BLOCKED_RESOURCES: Tuple[str, ...] = FULL_BLOCKED_RESOURCES + ("script",)

FULL_PROFILE = EngineConfig(
    name="full",
    launch_args=FULL_LAUNCH_ARGS,
    launch_timeout_ms=60000,
    protocol_timeout_ms=60000,
    content_timeout_ms=30000,
    ready_timeout_ms=30000,
    settle_delay_ms=2000,
    export_timeout_ms=30000,
    blocked_resources=FULL_BLOCKED_RESOURCES,
    pdf=PdfOptions(print_background=True, margin=("20mm", "20mm", "20mm", "20mm")),
)

DEGRADED_PROFILE = EngineConfig(
    name="degraded",
    launch_args=BASE_LAUNCH_ARGS,
    launch_timeout_ms=30000,
    protocol_timeout_ms=30000,
    content_timeout_ms=15000,
    ready_timeout_ms=15000,
    settle_delay_ms=1000,
    export_timeout_ms=15000,
    blocked_resources=DEGRADED_BLOCKED_RESOURCES,
    pdf=PdfOptions(print_background=False, margin=("10mm", "10mm", "10mm", "10mm")),
)

# Protocol-call timeout per deployment environment. The degraded profile
# keeps half of it so the fallback always finishes sooner than the primary.
ENVIRONMENT_PROTOCOL_TIMEOUTS_MS: Dict[str, int] = {
    "development": 30000,
    "test": 60000,
    "production": 120000,
    "docker": 120000,
}


def render_profiles(environment: str = "production") -> Tuple[EngineConfig, EngineConfig]:
    """Return the (full, degraded) engine configs for an environment."""
    protocol_timeout = ENVIRONMENT_PROTOCOL_TIMEOUTS_MS.get(
        environment, ENVIRONMENT_PROTOCOL_TIMEOUTS_MS["development"]
    )
    settle_override = env_int("INVOICE_SETTLE_DELAY_MS", -1, minimum=0)

    full = replace(FULL_PROFILE, protocol_timeout_ms=protocol_timeout)
    degraded = replace(DEGRADED_PROFILE, protocol_timeout_ms=max(1000, protocol_timeout // 2))
    if settle_override >= 0:
        full = replace(full, settle_delay_ms=settle_override)
        degraded = replace(degraded, settle_delay_ms=min(settle_override, degraded.settle_delay_ms))
    return full, degraded


ENVIRONMENT = env_str("INVOICE_ENV", "production")

DEFAULT_MAX_CONCURRENT_RENDERS = max(1, min(8, (os.cpu_count() or 2) // 2))
MAX_CONCURRENT_RENDERS = env_int(
    "INVOICE_MAX_CONCURRENT_RENDERS",
    DEFAULT_MAX_CONCURRENT_RENDERS,
    minimum=1,
)
MAX_INFLIGHT_RENDERS = env_int(
    "INVOICE_MAX_INFLIGHT_RENDERS",
    max(16, MAX_CONCURRENT_RENDERS * 4),
    minimum=1,
)
RENDER_QUEUE_TIMEOUT_MS = env_int("INVOICE_RENDER_QUEUE_TIMEOUT_MS", 120000, minimum=0)
RENDER_TIMEOUT_MS = env_int("INVOICE_RENDER_TIMEOUT_MS", 300000, minimum=1000)

MAX_BODY_BYTES = env_int("INVOICE_MAX_BODY_BYTES", 1024 * 1024, minimum=1024)
LISTEN_BACKLOG = env_int("INVOICE_LISTEN_BACKLOG", 512, minimum=1)

STORAGE_DIR = env_str("INVOICE_STORAGE_DIR", "invoices")
AUTO_SAVE = env_str("INVOICE_AUTO_SAVE", "1") not in ("0", "false", "no")
CLEANUP_AFTER_DAYS = env_int("INVOICE_CLEANUP_AFTER_DAYS", 30, minimum=1)

TAX_RATE = env_float("INVOICE_TAX_RATE", 0.2, minimum=0.0)
DEFAULT_CURRENCY = env_str("INVOICE_DEFAULT_CURRENCY", "XOF")
COMPANY_NAME = env_str("INVOICE_COMPANY_NAME", "Contrib")
COMPANY_WEBSITE = env_str("INVOICE_COMPANY_WEBSITE", "www.contrib.com")
LOGO_PATH = env_str("INVOICE_LOGO_PATH", os.path.join("public", "logo.png"))

LOG_LEVEL = env_str("INVOICE_LOG_LEVEL", "INFO")
