"""
Append-only audit trail of query activity.

One line per event: "<timestamp> - <LEVEL> - <message> <data as JSON>".
Writing is best-effort; a log file that cannot be opened or written never
fails a query.
"""
import json
import logging
import os
from typing import Any, Dict, Optional

from .errors import PlausibleQueryError, ValidationFailure

logger = logging.getLogger(__name__)


class _DataFormatter(logging.Formatter):
    """Append the record's data payload as compact JSON"""

    def format(self, record):
        line = super().format(record)
        data = getattr(record, "data", None)
        if data:
            try:
                line = f"{line} {json.dumps(data, sort_keys=True, default=str)}"
            except (TypeError, ValueError):
                line = f"{line} {data!r}"
        return line


class _QuietFileHandler(logging.FileHandler):
    def handleError(self, record):
        # Audit logging must never surface errors to the caller
        logger.debug("Audit log write failed", exc_info=True)


class AuditLog:
    """Record cache hits, dispatched requests, errors and validation failures"""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        # Unregistered, so each instance owns its logger and releases it
        self._logger = logging.Logger(f"{__name__}.trail")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self._handler: logging.Handler = logging.NullHandler()

        if path:
            try:
                directory = os.path.dirname(path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                handler = _QuietFileHandler(path, encoding="utf-8")
                handler.setFormatter(_DataFormatter(
                    '%(asctime)s - %(levelname)s - %(message)s',
                    datefmt='%Y-%m-%d %H:%M:%S',
                ))
                self._handler = handler
            except OSError as e:
                logger.warning(f"Audit log unavailable at {path}: {e}")
        self._logger.addHandler(self._handler)

    @classmethod
    def disabled(cls) -> "AuditLog":
        return cls(None)

    def _write(self, level: int, message: str, data: Dict[str, Any]) -> None:
        try:
            self._logger.log(level, message, extra={"data": data})
        except Exception:
            logger.debug("Audit log write failed", exc_info=True)

    def cache_hit(self, query_hash: str, site_id: Optional[str] = None) -> None:
        self._write(logging.INFO, "Cache hit", {"query_hash": query_hash, "site_id": site_id})

    def request(self, query_hash: str, site_id: Optional[str] = None, url: Optional[str] = None) -> None:
        self._write(logging.INFO, "Request dispatched",
                    {"query_hash": query_hash, "site_id": site_id, "url": url})

    def error(self, failure: PlausibleQueryError) -> None:
        self._write(logging.ERROR, f"Query failed: {failure.message}", failure.to_dict())

    def validation_failure(self, failure: ValidationFailure) -> None:
        self._write(logging.WARNING, f"Validation failed: {failure.message}",
                    {"codes": failure.codes, "suggestion": failure.suggestion})

    def close(self) -> None:
        self._logger.removeHandler(self._handler)
        self._handler.close()
