"""Structured logging configuration with request_id propagation"""

import contextvars
import logging
import sys
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

# Context variable for request_id propagation
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)

# Longest stderr/stdout excerpt attached to a log entry
OUTPUT_PREVIEW_CHARS = 500


def add_request_id(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add request_id to log entries from context variable

    Args:
        logger: The logger instance
        method_name: The logging method name
        event_dict: The event dictionary

    Returns:
        Updated event dictionary with request_id
    """
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structured logging with structlog

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ("json" or "console")
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_request_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request_id in context variable

    Args:
        request_id: Optional request ID, generates one if not provided

    Returns:
        The request_id that was set
    """
    if request_id is None:
        request_id = f"req_{uuid4().hex[:12]}"
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    """Get current request_id from context variable."""
    return request_id_var.get()


def clear_request_id() -> None:
    """Clear request_id from context variable"""
    request_id_var.set(None)


def output_preview(output: Optional[bytes], limit: int = OUTPUT_PREVIEW_CHARS) -> Optional[str]:
    """Decode captured process output and keep only its tail for logging.

    yt-dlp and ffmpeg put the useful part of an error at the end of stderr.
    """
    if not output:
        return None
    text = output.decode(errors="replace").strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]
