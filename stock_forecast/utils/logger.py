"""Structured logger factory shared by every module."""

from __future__ import annotations

import logging
import os
import sys

_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Single-line formatter that appends the fields passed through ``extra``."""

    def __init__(self) -> None:
        super().__init__('{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","msg":"%(message)s"}')

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        record.asctime = self.formatTime(record, self.datefmt)
        line = self.formatMessage(record)
        fields = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if fields:
            rendered = ",".join(f'"{key}":"{value}"' for key, value in sorted(fields.items()))
            line = f"{line[:-1]},{rendered}}}"
        # Tracebacks follow the structured line.
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line = f"{line}\n{record.exc_text}"
        if record.stack_info:
            line = f"{line}\n{self.formatStack(record.stack_info)}"
        return line


def setup_logger(name: str, level: str | None = None) -> logging.Logger:
    """Return a named logger writing structured lines to stdout."""
    logger = logging.getLogger(name)
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    return logger
