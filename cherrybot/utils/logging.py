"""
Structured logging utilities with JSON formatting and context injection.

This module provides structured logging capabilities with:
- JSON formatted log output for machine-readable logs
- Context injection (platform, repo, request_number, phase) via LoggerAdapter
- Standardized log fields across all components
- Secret masking for tokens that must never reach the logs in full
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from logging import LogRecord
from typing import Any, Dict, MutableMapping, Optional

# Fields promoted to the top level of a JSON log line
CONTEXT_FIELDS = ("platform", "repo", "request_number", "branch", "phase", "delivery_id")

_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info", "taskName",
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON with standard fields:
    - timestamp: ISO 8601 formatted timestamp
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - platform, repo, request_number, branch, phase, delivery_id when present
    - context: Any other extra fields
    - error: Error details when exception info is attached
    """

    def format(self, record: LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and key not in CONTEXT_FIELDS
        }
        if extra_fields:
            log_data["context"] = extra_fields

        if record.exc_info:
            log_data["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stack_trace": "".join(traceback.format_exception(*record.exc_info))
            }

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName
        }

        return json.dumps(log_data, default=str)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that injects context fields into all log records.

    Context set on the adapter (platform, repo, request_number) is merged
    into the `extra` of every call; per-call extras win.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra", {}))
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **context: Any) -> "ContextLoggerAdapter":
        """
        Create a new logger adapter with additional context.

        Args:
            **context: Additional context fields

        Returns:
            New logger adapter with merged context
        """
        new_extra = dict(self.extra)
        new_extra.update(context)
        return ContextLoggerAdapter(self.logger, new_extra)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    formatter = JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level.upper())
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("git").setLevel(logging.WARNING)


def get_logger(name: str, **context: Any) -> ContextLoggerAdapter:
    """
    Get a context-aware logger for a module.

    Example:
        logger = get_logger(__name__, platform="gitcode", repo="demo")
        logger.info("Cloning")  # Will include platform and repo
    """
    return ContextLoggerAdapter(logging.getLogger(name), context)


def mask_secret(secret: Optional[str], visible: int = 4) -> str:
    """
    Mask a secret for logging, keeping at most a short prefix.

    Args:
        secret: Secret value
        visible: Number of leading characters to keep

    Returns:
        Masked representation such as 'ghp_***'
    """
    if not secret:
        return "<unset>"
    if len(secret) <= visible * 2:
        return "***"
    return f"{secret[:visible]}***"


def log_webhook_event(
    logger: logging.LoggerAdapter,
    platform: str,
    event_type: str,
    repo: str,
    delivery_id: Optional[str] = None,
) -> None:
    """
    Log an authenticated, normalized webhook event.

    Args:
        logger: Logger to use
        platform: Platform name
        event_type: Event header value
        repo: Repository name
        delivery_id: Delivery identifier header, when the platform sends one
    """
    extra = {
        "platform": platform,
        "repo": repo,
        "event_type": event_type,
    }
    if delivery_id:
        extra["delivery_id"] = delivery_id
    logger.info(f"Webhook event received: {event_type}", extra=extra)


def log_phase_transition(
    logger: logging.LoggerAdapter,
    phase: str,
    status: str,
    **context: Any
) -> None:
    """
    Log a propagation phase transition.

    Args:
        logger: Logger to use
        phase: Phase name (e.g., 'cloned', 'checked_out', 'pushed')
        status: Status ('entered', 'completed' or 'failed')
        **context: Additional context fields (branch, commit, ...)
    """
    extra = {"phase": phase, "status": status}
    extra.update(context)
    logger.info(f"Propagation phase {status}: {phase}", extra=extra)


def log_api_call(
    logger: logging.LoggerAdapter,
    service: str,
    endpoint: str,
    method: str,
    status_code: Optional[int] = None,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None
) -> None:
    """
    Log a platform REST call with request/response details.

    Args:
        logger: Logger to use
        service: Service name ('github' or 'gitcode')
        endpoint: API endpoint
        method: HTTP method
        status_code: Response status code (if available)
        duration_ms: Request duration in milliseconds (if available)
        error: Error message (if request failed)
    """
    extra: Dict[str, Any] = {
        "service": service,
        "endpoint": endpoint,
        "method": method,
    }

    if status_code is not None:
        extra["status_code"] = status_code
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
    if error is not None:
        extra["error"] = error

    if error:
        logger.error(f"API call failed: {method} {endpoint}", extra=extra)
    else:
        logger.info(f"API call: {method} {endpoint}", extra=extra)


def log_error_with_context(
    logger: logging.LoggerAdapter,
    message: str,
    error: Exception,
    **context: Any
) -> None:
    """
    Log error with full stack trace and context.

    Args:
        logger: Logger to use
        message: Error message
        error: Exception object
        **context: Additional context fields
    """
    extra = {"error_type": type(error).__name__}
    extra.update(context)
    logger.error(message, extra=extra, exc_info=error)
