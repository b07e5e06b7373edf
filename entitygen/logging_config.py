"""Logging setup for the command line.

Records logged while a spec is being processed carry its name in the
``spec`` field (``extra={"spec": ...}``); everything else shows ``-``.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [spec=%(spec)s] - %(message)s"


class ContextFormatter(logging.Formatter):
    """Formatter that fills in the optional spec field."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "spec"):
            record.spec = "-"
        return super().format(record)


def configure_logging(verbose: bool = False) -> None:
    """Send entitygen's log records to stdout, at DEBUG when ``verbose``."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ContextFormatter(LOG_FORMAT))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=[handler],
    )
