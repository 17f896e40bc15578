"""
Utility functions for phasework.

Includes logging setup and the shared rich console.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from phasework.schemas import Severity


# Global console for pretty output
console = Console()

SEVERITY_STYLES = {
    Severity.SUCCESS: "bold green",
    Severity.UNSTABLE: "bold yellow",
    Severity.FAILURE: "bold red",
    Severity.ABORTED: "bold magenta",
}


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "pretty",
    log_file: Optional[Path] = None,
    console_output: bool = True,
) -> logging.Logger:
    """
    Set up logging for the engine.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON) or "pretty" (human-readable)
        log_file: Optional path of a log file
        console_output: Also log to console (stderr)

    Returns:
        Configured "phasework" logger
    """
    logger = logging.getLogger("phasework")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []  # Clear existing handlers

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        if log_format == "structured":
            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
        logger.addHandler(file_handler)

    if console_output:
        if log_format == "pretty":
            console_handler: logging.Handler = RichHandler(
                console=Console(stderr=True), rich_tracebacks=True, show_time=False
            )
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(StructuredFormatter())
        logger.addHandler(console_handler)

    return logger


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if present
        if hasattr(record, "phase"):
            log_data["phase"] = record.phase
        if hasattr(record, "action"):
            log_data["action"] = record.action

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def severity_markup(severity: Severity) -> str:
    """Rich markup for a severity label."""
    style = SEVERITY_STYLES[severity]
    return f"[{style}]{severity.value.upper()}[/{style}]"
