"""Logging configuration for the workflow orchestrator."""

import contextvars
import logging
import sys
import json
import traceback
from typing import Optional, Dict, Any
from pathlib import Path

from ..models.core import utc_now


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured logging with JSON output."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": utc_now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


# Each asyncio task driving an execution sees its own copy
_logging_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "workflow_logging_context", default={}
)


class WorkflowContextFilter(logging.Filter):
    """Filter to add execution context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to log record."""
        if not hasattr(record, 'extra_fields'):
            record.extra_fields = {}
        for key, value in _logging_context.get().items():
            record.extra_fields.setdefault(key, value)
        return True


_context_filter = WorkflowContextFilter()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure logging for the orchestrator.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        log_format: Custom log format string
        structured: Whether to use structured JSON logging
        max_size: Maximum log file size in bytes before rotation
        backup_count: Number of backup files to keep

    Returns:
        Root logger instance
    """
    if structured:
        formatter = StructuredFormatter()
    else:
        if log_format is None:
            log_format = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(funcName)s:%(lineno)d] - %(message)s"

        formatter = logging.Formatter(
            fmt=log_format,
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_context_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        from logging.handlers import RotatingFileHandler

        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size,
            backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(_context_filter)
        root_logger.addHandler(file_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("workflow_orchestrator.core").setLevel(
        logging.DEBUG if level.upper() == "DEBUG" else logging.INFO
    )

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def set_logging_context(**kwargs) -> contextvars.Token:
    """Set context fields for subsequent log messages of the current task."""
    merged = dict(_logging_context.get())
    merged.update(kwargs)
    return _logging_context.set(merged)


def clear_logging_context(token: Optional[contextvars.Token] = None):
    """Restore the previous logging context, or clear it entirely."""
    if token is not None:
        _logging_context.reset(token)
    else:
        _logging_context.set({})


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional context fields."""
    extra = {"extra_fields": context}
    logger.log(level, message, extra=extra)


class ErrorRecoveryLogger:
    """Specialized logger for retry and recovery operations."""

    def __init__(self, component_name: str):
        self.logger = get_logger(f"workflow_orchestrator.recovery.{component_name}")
        self.component_name = component_name

    def log_recovery_attempt(self, operation: str, error: str, attempt: int, max_attempts: int, delay: float):
        """Log a retry about to happen."""
        log_with_context(
            self.logger, logging.WARNING,
            f"Retry {attempt}/{max_attempts - 1} for {operation} in {delay:.2f}s: {error}",
            component=self.component_name,
            operation=operation,
            error_message=error,
            attempt=attempt,
            max_attempts=max_attempts,
            delay=delay
        )

    def log_recovery_success(self, operation: str, attempts_used: int):
        """Log successful recovery."""
        log_with_context(
            self.logger, logging.INFO,
            f"Successfully recovered {operation} after {attempts_used} attempts",
            component=self.component_name,
            operation=operation,
            attempts_used=attempts_used,
            recovery_status="success"
        )

    def log_recovery_failure(self, operation: str, final_error: str, attempts_used: int):
        """Log failed recovery."""
        log_with_context(
            self.logger, logging.ERROR,
            f"Failed to recover {operation} after {attempts_used} attempts: {final_error}",
            component=self.component_name,
            operation=operation,
            error_message=final_error,
            attempts_used=attempts_used,
            recovery_status="failed"
        )
