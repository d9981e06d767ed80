"""On-disk storage for generated invoice PDFs."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .log import get_logger

logger = get_logger(__name__)

PDF_EXTENSION = ".pdf"


class InvoiceNotFound(LookupError):
    pass


@dataclass(frozen=True)
class StoredInvoice:
    filename: str
    path: str
    size: int
    modified_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "size": self.size,
            "modifiedAt": datetime.fromtimestamp(self.modified_at, tz=timezone.utc).isoformat(),
        }


class InvoiceStore:
    def __init__(self, directory: str) -> None:
        self.directory = os.path.abspath(directory)

    def ensure_directory(self) -> None:
        os.makedirs(self.directory, exist_ok=True)

    def path_for(self, filename: str) -> str:
        """Resolve a bare filename inside the store, rejecting traversal."""
        name = os.path.basename(filename or "")
        if not name or name != filename or name in (".", ".."):
            raise ValueError(f"Invalid invoice filename: {filename!r}")
        return os.path.join(self.directory, name)

    def save(self, filename: str, content: bytes) -> StoredInvoice:
        self.ensure_directory()
        path = self.path_for(filename)
        tmp_path = f"{path}.{os.getpid()}.tmp"
        try:
            with open(tmp_path, "wb") as handle:
                handle.write(content)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.info("Stored invoice %s (%d bytes)", filename, len(content))
        return self._stat(filename, path)

    def read(self, filename: str) -> bytes:
        path = self.path_for(filename)
        if not os.path.isfile(path):
            raise InvoiceNotFound(filename)
        with open(path, "rb") as handle:
            return handle.read()

    def find(self, invoice_number: str) -> Optional[StoredInvoice]:
        filename = f"invoice-{invoice_number}{PDF_EXTENSION}"
        for stored in self.list():
            if stored.filename == filename:
                return stored
        return None

    def list(self) -> List[StoredInvoice]:
        if not os.path.isdir(self.directory):
            return []
        invoices = [
            self._stat(name, os.path.join(self.directory, name))
            for name in os.listdir(self.directory)
            if name.endswith(PDF_EXTENSION) and os.path.isfile(os.path.join(self.directory, name))
        ]
        return sorted(invoices, key=lambda stored: stored.modified_at, reverse=True)

    def delete(self, filename: str) -> None:
        path = self.path_for(filename)
        if not os.path.isfile(path):
            raise InvoiceNotFound(filename)
        os.remove(path)
        logger.info("Deleted invoice %s", filename)

    def cleanup(self, max_age_days: int, now: Optional[float] = None) -> int:
        cutoff = (now if now is not None else time.time()) - max_age_days * 86400
        deleted = 0
        for stored in self.list():
            if stored.modified_at < cutoff:
                try:
                    os.remove(stored.path)
                    deleted += 1
                except FileNotFoundError:
                    continue
        if deleted:
            logger.info("Removed %d invoices older than %d days", deleted, max_age_days)
        return deleted

    @staticmethod
    def _stat(filename: str, path: str) -> StoredInvoice:
        stats = os.stat(path)
        return StoredInvoice(filename=filename, path=path, size=stats.st_size, modified_at=stats.st_mtime)
