"""Logging setup for SprintNotes."""

import json
import logging
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class JSONFormatter(logging.Formatter):
    """Formatter that outputs JSON strings."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string.

        Args:
            record: The log record to format

        Returns:
            A JSON string representation of the log record
        """
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def setup_logging(level: str = "WARNING", json_format: bool = False) -> None:
    """Configure the root logger once.

    Args:
        level: Log level name
        json_format: Write JSON lines to stderr instead of rich output
    """
    root = logging.getLogger()
    # Avoid adding multiple handlers if setup is called multiple times
    if root.handlers:
        return

    handler: logging.Handler
    if json_format:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JSONFormatter())
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root.addHandler(handler)
    root.setLevel(level.upper())
