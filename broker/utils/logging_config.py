"""
Structured Logging Configuration

Provides JSON-formatted logging with:
- Request ID tracking
- Actor context
- Reservation / upstream / sync event helpers
- Structured output for log aggregation
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from contextvars import ContextVar

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
actor_id_var: ContextVar[str] = ContextVar('actor_id', default='')


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Outputs logs in JSON format for easy parsing by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        actor_id = actor_id_var.get()
        if actor_id:
            log_data["actor_id"] = actor_id

        log_data["module"] = record.module
        log_data["function"] = record.funcName
        log_data["line"] = record.lineno

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data["data"] = record.extra_data

        if hasattr(record, 'duration_ms'):
            log_data["duration_ms"] = record.duration_ms

        if hasattr(record, 'entity_type'):
            log_data["entity_type"] = record.entity_type
        if hasattr(record, 'entity_id'):
            log_data["entity_id"] = record.entity_id

        if getattr(record, 'operator_alert', False):
            log_data["operator_alert"] = True

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter that adds structured context to log messages.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get('extra', {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs

    def log_with_context(
        self,
        level: int,
        msg: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        duration_ms: Optional[float] = None,
        operator_alert: bool = False,
        **extra_data
    ):
        """Log with additional structured context."""
        extra = {}
        if entity_type:
            extra['entity_type'] = entity_type
        if entity_id:
            extra['entity_id'] = entity_id
        if duration_ms is not None:
            extra['duration_ms'] = duration_ms
        if operator_alert:
            extra['operator_alert'] = True
        if extra_data:
            extra['extra_data'] = extra_data

        self.log(level, msg, extra=extra)

    def reservation_created(self, reservation_id: str, client_reference_id: str, final_price: Any):
        """Log a new PENDING reservation."""
        self.log_with_context(
            logging.INFO,
            f"Reservation created: {client_reference_id}",
            entity_type="reservation",
            entity_id=reservation_id,
            client_reference_id=client_reference_id,
            final_price=final_price
        )

    def reservation_status_changed(self, reservation_id: str, old_status: str, new_status: str, **extra_data):
        """Log reservation status change."""
        self.log_with_context(
            logging.INFO,
            f"Reservation status changed: {old_status} -> {new_status}",
            entity_type="reservation",
            entity_id=reservation_id,
            old_status=old_status,
            new_status=new_status,
            **extra_data
        )

    def upstream_call(self, method: str, path: str, status_code: int, duration_ms: float):
        """Log an upstream provider call with performance data."""
        self.log_with_context(
            logging.INFO,
            f"Royal API {method} {path} - {status_code}",
            duration_ms=duration_ms,
            method=method,
            path=path,
            status_code=status_code
        )

    def sync_finished(self, feed_id: str, summary: Dict[str, Any], duration_ms: float):
        """Log the outcome of a content sync run."""
        self.log_with_context(
            logging.INFO,
            f"Content sync finished for feed {feed_id}",
            entity_type="sync",
            duration_ms=duration_ms,
            summary=summary
        )

    def operator_alert(self, msg: str, entity_id: Optional[str] = None, **extra_data):
        """Log a condition that needs a human, e.g. a confirmed booking we failed to store."""
        self.log_with_context(
            logging.CRITICAL,
            msg,
            entity_type="reservation",
            entity_id=entity_id,
            operator_alert=True,
            **extra_data
        )


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_uvicorn: bool = True
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        include_uvicorn: Also configure uvicorn loggers
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    logging.getLogger("broker").setLevel(log_level)

    if include_uvicorn:
        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
            uvicorn_logger = logging.getLogger(logger_name)
            uvicorn_logger.handlers = [handler]

    # Reduce noise from third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given module."""
    base_logger = logging.getLogger(name)
    return StructuredLogger(base_logger, {})


def set_request_context(request_id: str, actor_id: Optional[str] = None):
    """Set context for the current request."""
    request_id_var.set(request_id)
    if actor_id:
        actor_id_var.set(actor_id)


def clear_request_context():
    """Clear request context."""
    request_id_var.set('')
    actor_id_var.set('')
