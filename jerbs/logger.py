"""
Structured logging system for jerbs.

Provides centralized logging with console and file destinations, log
levels, and per-process counters of store activity. Console output goes
to stderr: stdout carries job payloads and must stay clean.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks counters of what this process did to the store.
    """

    def __init__(
        self,
        name: str = "jerbs",
        level: str = "WARNING",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to stderr
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if enable_file else getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers
        self.logger.propagate = False

        self.metrics = {
            "jobs_created": 0,
            "jobs_edited": 0,
            "units_taken": 0,
            "takes_empty": 0,
            "takes_by_worker": {},
            "errors_by_type": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"jerbs_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(process)d | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_create(self):
        self.metrics["jobs_created"] += 1

    def record_edit(self):
        self.metrics["jobs_edited"] += 1

    def record_take(self, worker: Optional[str]):
        """Record a unit handed out, keyed by the (opaque) worker id."""
        self.metrics["units_taken"] += 1
        key = worker if worker is not None else "<anonymous>"
        by_worker = self.metrics["takes_by_worker"]
        by_worker[key] = by_worker.get(key, 0) + 1

    def record_empty_take(self):
        self.metrics["takes_empty"] += 1

    def record_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return a copy of the current metrics."""
        metrics_copy = dict(self.metrics)
        metrics_copy["takes_by_worker"] = dict(self.metrics["takes_by_worker"])
        metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics at DEBUG."""
        metrics = self.get_metrics()

        self.debug("=== Store Session Metrics ===")
        self.debug(f"Created: {metrics['jobs_created']}, edited: {metrics['jobs_edited']}")
        self.debug(f"Taken: {metrics['units_taken']}, empty takes: {metrics['takes_empty']}")

        if metrics["errors_by_type"]:
            self.debug("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.debug(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "jerbs",
    level: str = "WARNING",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def configure_logger(level: str, log_dir: Optional[Path] = None) -> StructuredLogger:
    """Replace the global logger with one built from runtime settings."""
    global _global_logger
    _global_logger = StructuredLogger(
        level=level,
        log_dir=log_dir,
        enable_file=log_dir is not None,
    )
    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
