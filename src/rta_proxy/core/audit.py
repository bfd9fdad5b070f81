"""
Audit log sink.

Records two events per forwarded exchange:
- ``request received``: written by the audit middleware for every inbound
  request, before routing or authorization
- ``response sent``: written by the forwarding pipeline after a successful
  upstream exchange

Records are JSON lines in a size-rotated file; rotated files are gzipped.
Records are rendered on the caller's thread and queued; a background listener
thread owns the file, so writes and rotation never run on the event loop.
"""

import gzip
import logging
import os
import queue
import shutil
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Any, Optional

import structlog

from ..config import AuditSettings

logger = structlog.get_logger(__name__)

AUDIT_LOGGER_NAME = "rta_proxy.audit"


def _gzip_namer(name: str) -> str:
    return name + ".gz"


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as f_in, gzip.open(dest, "wb") as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(source)


def build_audit_formatter() -> logging.Formatter:
    """JSON renderer for audit records."""
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )


def build_audit_handler(settings: AuditSettings) -> logging.Handler:
    """
    Create the rotating file handler for audit records.

    The handler writes lines already rendered by the queue handler, so its own
    formatter only emits the message.
    """
    if not settings.enabled:
        return logging.NullHandler()

    settings.log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        settings.log_file,
        maxBytes=settings.max_bytes,
        backupCount=settings.backup_count,
        encoding="utf-8",
        delay=True,
    )
    if settings.compress:
        handler.namer = _gzip_namer
        handler.rotator = _gzip_rotator

    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _body_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


class AuditLog:
    """
    Append-only audit sink.

    Writes are best-effort: a failing write is reported on the service logger
    and never propagates to the request.
    """

    def __init__(
        self,
        audit_logger: Any,
        handler: Optional[logging.Handler] = None,
        listener: Optional[QueueListener] = None,
    ) -> None:
        self._logger = audit_logger
        self._handler = handler
        self._listener = listener

    @property
    def file_handler(self) -> Optional[logging.Handler]:
        """Handler owned by the listener thread, if any."""
        if self._listener is None:
            return None
        return self._listener.handlers[0]

    @classmethod
    def from_settings(cls, settings: AuditSettings) -> "AuditLog":
        file_handler = build_audit_handler(settings)

        listener: Optional[QueueListener] = None
        if isinstance(file_handler, logging.NullHandler):
            handler: logging.Handler = file_handler
        else:
            records: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)
            handler = QueueHandler(records)
            handler.setFormatter(build_audit_formatter())
            listener = QueueListener(records, file_handler)
            listener.start()

        stdlib_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        for existing in list(stdlib_logger.handlers):
            stdlib_logger.removeHandler(existing)
            existing.close()
        stdlib_logger.addHandler(handler)
        stdlib_logger.setLevel(logging.INFO)
        stdlib_logger.propagate = False

        logger.info(
            "Audit log initialized",
            enabled=settings.enabled,
            log_file=str(settings.log_file),
            max_bytes=settings.max_bytes,
            backup_count=settings.backup_count,
        )
        return cls(structlog.get_logger(AUDIT_LOGGER_NAME), handler, listener)

    def record_request(
        self,
        client_ip: str,
        method: str,
        url: str,
        pub_id: str,
        body: bytes,
    ) -> None:
        self._emit(
            "request received",
            client_ip=client_ip,
            method=method,
            url=url,
            pub_id=pub_id,
            body=_body_text(body),
        )

    def record_exchange(
        self,
        pub_id: str,
        target_url: str,
        status_code: int,
        response_body: bytes,
    ) -> None:
        self._emit(
            "response sent",
            pub_id=pub_id,
            target_url=target_url,
            status_code=status_code,
            response_body=_body_text(response_body),
        )

    def _emit(self, event: str, **fields: Any) -> None:
        try:
            self._logger.info(event, **fields)
        except Exception as e:
            logger.error("Audit write failed", audit_event=event, error=str(e), error_type=type(e).__name__)

    def flush(self) -> None:
        """Block until every queued record has been written."""
        if self._listener is None:
            return
        self._listener.queue.join()
        for handler in self._listener.handlers:
            handler.flush()

    def close(self) -> None:
        """Detach from the audit logger, then drain the queue and close the file."""
        if self._handler is not None:
            logging.getLogger(AUDIT_LOGGER_NAME).removeHandler(self._handler)
            self._handler.close()
            self._handler = None

        if self._listener is not None:
            listener, self._listener = self._listener, None
            listener.stop()
            for handler in listener.handlers:
                handler.close()
