"""HTTP server entrypoints for invoice rendering and storage."""

from __future__ import annotations

import atexit
import errno
import json
import multiprocessing as mp
import threading
from concurrent.futures import Future, ProcessPoolExecutor, TimeoutError as FutureTimeoutError
from concurrent.futures.process import BrokenProcessPool
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote

from .billing import build_invoice_data, load_logo_base64
from .config import (
    AUTO_SAVE,
    CLEANUP_AFTER_DAYS,
    LISTEN_BACKLOG,
    LOG_LEVEL,
    LOGO_PATH,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    MAX_CONCURRENT_RENDERS,
    MAX_INFLIGHT_RENDERS,
    RENDER_QUEUE_TIMEOUT_MS,
    RENDER_TIMEOUT_MS,
    STORAGE_DIR,
)
from .errors import DependencyError, InvalidInputData
from .log import get_logger, setup_logger
from .markup import render as render_markup
from .models import InvoiceData, Variant
from .storage import InvoiceNotFound, InvoiceStore

logger = get_logger(__name__)

RENDER_INFLIGHT_SEMAPHORE = threading.BoundedSemaphore(MAX_INFLIGHT_RENDERS)
RENDER_EXECUTOR_LOCK = threading.Lock()
RENDER_EXECUTOR: Optional[ProcessPoolExecutor] = None
ValidationError = Tuple[int, Dict[str, Any]]

INVOICES_PREFIX = "/invoices/"
BY_NUMBER_PREFIX = "/invoices/by-number/"
POST_ROUTES = ("/invoice", "/generate", "/invoice/preview", "/invoice/subscription", "/invoices/cleanup")

DISCONNECT_ERRNOS = {errno.EPIPE, errno.ECONNRESET, errno.ETIMEDOUT}

# Per worker process; each worker renders one invoice at a time.
_WORKER_ORCHESTRATOR = None


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def render_job(invoice: InvoiceData) -> Dict[str, Any]:
    """Runs inside a pool worker; returns the success envelope."""
    global _WORKER_ORCHESTRATOR
    from .fallback import FallbackOrchestrator, generate_invoice

    setup_logger(LOG_LEVEL)
    if _WORKER_ORCHESTRATOR is None:
        _WORKER_ORCHESTRATOR = FallbackOrchestrator()
    return generate_invoice(invoice, _WORKER_ORCHESTRATOR)


def check_render_dependencies() -> None:
    from .fallback import load_default_driver

    load_default_driver()


def create_render_executor() -> ProcessPoolExecutor:
    return ProcessPoolExecutor(
        max_workers=MAX_CONCURRENT_RENDERS,
        mp_context=mp.get_context("spawn"),
    )


def get_render_executor() -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def restart_render_executor(previous: ProcessPoolExecutor) -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is previous:
            try:
                previous.shutdown(wait=False, cancel_futures=True)
            except Exception as exc:
                logger.warning("Shutting down broken render pool failed: %s", exc)
            RENDER_EXECUTOR = create_render_executor()
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def submit_render_job(invoice: InvoiceData) -> "Future[Dict[str, Any]]":
    executor = get_render_executor()
    try:
        return executor.submit(render_job, invoice)
    except BrokenProcessPool:
        logger.warning("Render pool broken on submit; restarting")
        return restart_render_executor(executor).submit(render_job, invoice)


def shutdown_render_executor() -> None:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        executor = RENDER_EXECUTOR
        RENDER_EXECUTOR = None
    if executor is not None:
        try:
            executor.shutdown(wait=False, cancel_futures=True)
        except Exception as exc:
            logger.warning("Render pool shutdown failed: %s", exc)


atexit.register(shutdown_render_executor)


def parse_json_object(body: bytes) -> Tuple[Optional[Dict[str, Any]], Optional[ValidationError]]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        return None, (
            400,
            {"error": "invalid_encoding", "detail": "Body must be UTF-8 encoded JSON."},
        )
    except json.JSONDecodeError as exc:
        return None, (
            400,
            {
                "error": "invalid_json",
                "detail": f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
            },
        )

    if not isinstance(payload, dict):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "JSON root must be an object."},
        )
    return payload, None


def validate_invoice_payload(body: bytes) -> Tuple[Optional[InvoiceData], Optional[ValidationError]]:
    payload, error = parse_json_object(body)
    if payload is None:
        return None, error

    try:
        return InvoiceData.from_dict(payload), None
    except InvalidInputData as exc:
        return None, (400, {"error": "invalid_payload", "detail": str(exc)})


def validate_subscription_payload(
    body: bytes,
    logo_base64: str = "",
) -> Tuple[Optional[InvoiceData], Optional[ValidationError]]:
    payload, error = parse_json_object(body)
    if payload is None:
        return None, error

    records = {}
    for key in ("subscription", "contributor", "package"):
        value = payload.get(key)
        if not isinstance(value, dict):
            return None, (
                400,
                {"error": "invalid_payload", "detail": f"'{key}' must be an object."},
            )
        records[key] = value

    try:
        invoice = build_invoice_data(
            records["subscription"],
            records["contributor"],
            records["package"],
            logo_base64=logo_base64,
        )
    except InvalidInputData as exc:
        return None, (400, {"error": "invalid_payload", "detail": str(exc)})
    return invoice, None


class InvoiceHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG
    store = InvoiceStore(STORAGE_DIR)
    auto_save = AUTO_SAVE

    def _write_response(
        self,
        status: int,
        content_type: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.end_headers()
            self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload).encode("utf-8")
        return self._write_response(status, "application/json", body)

    def _send_pdf(self, filename: str, content: bytes) -> bool:
        return self._write_response(
            200,
            "application/pdf",
            content,
            {"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(
                411,
                {
                    "error": "missing_content_length",
                    "detail": "Content-Length header is required.",
                },
            )
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {
                    "error": "invalid_content_length",
                    "detail": "Content-Length must be an integer.",
                },
            )
            return None

        if content_length <= 0:
            self._send_json(400, {"error": "empty_body", "detail": "Request body cannot be empty."})
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(
                413,
                {
                    "error": "payload_too_large",
                    "detail": f"Body exceeds {self.MAX_BODY_BYTES} bytes.",
                },
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _stored_filename(self) -> Optional[str]:
        name = unquote(self.path[len(INVOICES_PREFIX):])
        try:
            self.store.path_for(name)
        except ValueError as exc:
            self._send_json(400, {"error": "invalid_filename", "detail": str(exc)})
            return None
        return name

    def _render(self, invoice: InvoiceData) -> None:
        acquired = RENDER_INFLIGHT_SEMAPHORE.acquire(timeout=RENDER_QUEUE_TIMEOUT_MS / 1000.0)
        if not acquired:
            retry_after_seconds = max(1, (RENDER_QUEUE_TIMEOUT_MS + 999) // 1000)
            self._send_json(
                503,
                {
                    "error": "server_busy",
                    "detail": "Render queue is full; retry shortly.",
                    "retry_after_ms": RENDER_QUEUE_TIMEOUT_MS,
                    "retry_after_seconds": retry_after_seconds,
                    "max_concurrent_renders": MAX_CONCURRENT_RENDERS,
                    "max_inflight_renders": MAX_INFLIGHT_RENDERS,
                },
            )
            return

        future = None
        try:
            future = submit_render_job(invoice)
            envelope = future.result(timeout=RENDER_TIMEOUT_MS / 1000.0)
        except FutureTimeoutError:
            if future is not None:
                future.cancel()
            self._send_json(
                504,
                {
                    "error": "render_timeout",
                    "detail": f"Render exceeded timeout of {RENDER_TIMEOUT_MS} ms.",
                },
            )
            return
        except BrokenProcessPool:
            restart_render_executor(get_render_executor())
            self._send_json(
                503,
                {
                    "error": "render_pool_restarting",
                    "detail": "Render worker pool restarted; retry shortly.",
                },
            )
            return
        except Exception as exc:
            logger.exception("Render job for %s crashed", invoice.invoice_number)
            self._send_json(500, {"error": "render_failed", "detail": str(exc)})
            return
        finally:
            RENDER_INFLIGHT_SEMAPHORE.release()

        if not envelope["success"]:
            self._send_json(
                502,
                {
                    "error": "render_failed",
                    "detail": envelope.get("error", ""),
                    "message": envelope["message"],
                },
            )
            return

        data = envelope["data"]
        if self.auto_save:
            try:
                self.store.save(data["filename"], data["binaryContent"])
            except OSError as exc:
                logger.error("Could not store %s: %s", data["filename"], exc)
        self._send_pdf(data["filename"], data["binaryContent"])

    def _preview(self, invoice: InvoiceData) -> None:
        try:
            html = render_markup(invoice, Variant.FULL)
        except InvalidInputData as exc:
            self._send_json(400, {"error": "invalid_payload", "detail": str(exc)})
            return
        self._write_response(
            200,
            "text/html; charset=utf-8",
            html.encode("utf-8"),
            {"Content-Disposition": f'inline; filename="invoice-{invoice.invoice_number}.html"'},
        )

    def do_POST(self) -> None:
        if self.path not in POST_ROUTES:
            self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})
            return

        if self.path == "/invoices/cleanup":
            deleted = self.store.cleanup(CLEANUP_AFTER_DAYS)
            self._send_json(200, {"deletedCount": deleted})
            return

        body = self._read_body()
        if body is None:
            return

        if self.path == "/invoice/subscription":
            invoice, validation_error = validate_subscription_payload(body, load_logo_base64(LOGO_PATH))
        else:
            invoice, validation_error = validate_invoice_payload(body)
        if invoice is None:
            status, payload_body = validation_error or (400, {"error": "invalid_payload"})
            self._send_json(status, payload_body)
            return

        if self.path == "/invoice/preview":
            self._preview(invoice)
            return
        self._render(invoice)

    def do_GET(self) -> None:
        if self.path in ("/health", "/healthz", "/ready"):
            self._send_json(200, {"status": "ok"})
            return

        if self.path == "/invoices":
            self._send_json(200, {"invoices": [stored.to_dict() for stored in self.store.list()]})
            return

        if self.path.startswith(BY_NUMBER_PREFIX):
            invoice_number = unquote(self.path[len(BY_NUMBER_PREFIX):])
            stored = self.store.find(invoice_number) if invoice_number else None
            try:
                if stored is None:
                    raise InvoiceNotFound(invoice_number)
                content = self.store.read(stored.filename)
            except InvoiceNotFound:
                self._send_json(404, {"error": "invoice_not_found", "detail": invoice_number})
                return
            self._send_pdf(stored.filename, content)
            return

        if self.path.startswith(INVOICES_PREFIX):
            filename = self._stored_filename()
            if filename is None:
                return
            try:
                content = self.store.read(filename)
            except InvoiceNotFound:
                self._send_json(404, {"error": "invoice_not_found", "detail": filename})
                return
            self._send_pdf(filename, content)
            return

        self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})

    def do_DELETE(self) -> None:
        if not self.path.startswith(INVOICES_PREFIX):
            self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})
            return

        filename = self._stored_filename()
        if filename is None:
            return
        try:
            self.store.delete(filename)
        except InvoiceNotFound:
            self._send_json(404, {"error": "invoice_not_found", "detail": filename})
            return
        self._send_json(200, {"deleted": filename})

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class InvoiceHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    setup_logger(LOG_LEVEL)
    check_render_dependencies()
    get_render_executor()
    server = InvoiceHTTPServer((host, port), InvoiceHandler)
    logger.info("Invoice API server listening on http://%s:%d", host, port)
    server.serve_forever()


__all__ = ["DependencyError", "run"]
