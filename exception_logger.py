"""
Exception Logger for the Compliance Assistant

Central place where every component reports failures. Entries carry a
timestamp, the reporting module, optional request context and the full
stack trace. Without a configured log file, entries go to the console.

Features:
- Thread-safe appends to a single error log
- Module-tagged entries with request context
- Stack trace capture for exceptions
- Debug tracing switched on with COMPLIANCE_DEBUG

Author: Quinn Evans
"""

import os
import sys
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional


DEBUG = os.getenv("COMPLIANCE_DEBUG", "false").strip().lower() == "true"


class ExceptionLogger:
    """
    Thread-safe error log shared by the whole assistant.

    Attributes:
        log_file (str | None): Path to the error log, console only when None
        lock (threading.Lock): Serializes file appends
    """

    def __init__(self, log_file: Optional[str] = None):
        self.log_file = None
        self.lock = threading.Lock()
        if log_file:
            self.set_log_file(log_file)

    def set_log_file(self, log_file_path: str):
        """
        Point the logger at a file, creating its directory when needed.

        Args:
            log_file_path (str): Full path to the error log file
        """
        self.log_file = log_file_path
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            Path(log_dir).mkdir(parents=True, exist_ok=True)

    def log_exception(self, exception: Exception, module: str = "unknown",
                      context: Optional[str] = None):
        """
        Record an exception with its stack trace.

        Args:
            exception (Exception): The exception that occurred
            module (str): Component reporting it, e.g. "workbook_loader"
            context (str, optional): Request id, document name or similar
        """
        header = self._header(module, str(exception) or type(exception).__name__, context)
        trace = "".join(traceback.format_exception(
            type(exception), exception, exception.__traceback__
        ))
        self._write(f"\n{header}\nStack Trace:\n{trace}\n" + "=" * 80 + "\n")

    def log_error(self, error_message: str, module: str = "unknown",
                  context: Optional[str] = None):
        """
        Record an error message that has no exception object.

        Args:
            error_message (str): What went wrong
            module (str): Component reporting it
            context (str, optional): Request id, document name or similar
        """
        self._write(self._header(module, error_message, context) + "\n")

    def _header(self, module: str, message: str, context: Optional[str]) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{timestamp}] [{module.upper()}] {message}"
        if context:
            line += f" | Context: {context}"
        return line

    def _write(self, entry: str):
        if not self.log_file:
            print(entry.strip("\n"), file=sys.stderr)
            return

        with self.lock:
            try:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(entry)
            except OSError as write_error:
                print(f"Failed to write to error log: {write_error}", file=sys.stderr)
                print(f"Original error: {entry}", file=sys.stderr)


# Global exception logger instance
exception_logger = ExceptionLogger(os.getenv("COMPLIANCE_ERROR_LOG") or None)


def log_exception(exc: Exception, module: str = "unknown", context: Optional[str] = None):
    """Log an exception through the global logger."""
    exception_logger.log_exception(exc, module, context)


def log_error(message: str, module: str = "unknown", context: Optional[str] = None):
    """Log an error message through the global logger."""
    exception_logger.log_error(message, module, context)


def debug(module: str, message: str):
    """Print a trace line when COMPLIANCE_DEBUG is enabled."""
    if DEBUG:
        print(f"[{module}] {message}")
