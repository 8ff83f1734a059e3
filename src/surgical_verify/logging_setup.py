# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Structured logging setup for surgical verification."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Setting this environment variable to a non-empty value enables DEBUG logging
DEBUG_ENV_VAR = "SURGICAL_VERIFY_DEBUG"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add any extra fields
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


def debug_enabled() -> bool:
    """Whether DEBUG logging was requested through the environment."""
    return bool(os.environ.get(DEBUG_ENV_VAR))


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: int = logging.INFO,
    console_output: bool = True,
) -> Optional[Path]:
    """Set up logging for the application.

    Console output goes to stderr: stdout carries the JSON decision.

    Args:
        log_dir: Directory for structured JSON log files. If None, no file log.
        log_level: Logging level (default: INFO)
        console_output: Whether to also output to console (default: True)

    Returns:
        Path of the log file, or None when no file log was configured.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove any existing handlers
    root_logger.handlers.clear()

    log_file: Optional[Path] = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)

        # File handler with structured JSON logging
        log_file = (
            log_dir / f"surgical_verify_{datetime.now(timezone.utc).strftime('%Y%m%d')}.log"
        )
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    # Console handler with human-readable format (if enabled)
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(console_handler)

    if log_file is not None:
        logging.info(f"Logging initialized. Log file: {log_file}")
    return log_file
