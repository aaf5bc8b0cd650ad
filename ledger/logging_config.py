"""
Structured logging for the ledger.

Every record carries a subject_id field so that all appends and verifications
for one asset or property can be pulled out of the log stream together.
LEDGER_LOG_LEVEL (default INFO) and LEDGER_LOG_FORMAT ("json" or "text",
default json) control the output. Records always go to stderr.
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_QUIET_LIBRARIES = ("boto3", "botocore", "urllib3", "sqlalchemy")


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Replace the root handlers; arguments take precedence over the environment."""
    level_name = (level or os.getenv("LEDGER_LOG_LEVEL", "INFO")).upper()
    log_format = (fmt or os.getenv("LEDGER_LOG_FORMAT", "json")).lower()
    resolved = getattr(logging, level_name) if level_name in _LEVELS else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)

    # stderr keeps CLI --json output on stdout parseable
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)
    handler.addFilter(SubjectIDFilter())

    if log_format == "json":
        handler.setFormatter(
            JsonFormatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s %(subject_id)s",
                rename_fields={"asctime": "timestamp", "name": "logger", "levelname": "level"},
            )
        )
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-7s %(name)s: %(message)s [subject_id=%(subject_id)s]",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )
    root_logger.addHandler(handler)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, subject_id: Optional[str] = None) -> logging.LoggerAdapter:
    """Logger whose records carry subject_id ("N/A" when not given)."""
    return logging.LoggerAdapter(logging.getLogger(name), {"subject_id": subject_id or "N/A"})


class SubjectIDFilter(logging.Filter):
    """Fills in subject_id for records logged without an adapter."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "subject_id"):
            record.subject_id = "N/A"  # type: ignore
        return True
