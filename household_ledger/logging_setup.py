"""
Structured logging setup.

All modules log through structlog with key/value context. This module wires
structlog onto the standard library logger so the level filter from
AppSettings applies everywhere.
"""

import logging
import sys
from typing import Optional

import structlog

from household_ledger.config import AppSettings, get_settings


def configure_logging(settings: Optional[AppSettings] = None) -> None:
    """
    Configure structlog for the whole process.

    Safe to call more than once; the last call wins.
    """
    settings = settings or get_settings().app

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
