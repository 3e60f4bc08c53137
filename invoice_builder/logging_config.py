"""Logging setup shared by the CLI and the HTTP app."""
from __future__ import annotations

import logging
import logging.config
from typing import Any, Dict, Optional

from .config import get_settings


def setup_logging(level: Optional[str] = None) -> None:
    """Route ``invoice_builder`` logs through a rich console handler."""
    level = (level or get_settings().log_level).upper()

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "rich": {"format": "%(name)s | %(message)s", "datefmt": "[%X]"},
        },
        "handlers": {
            "console": {
                "class": "rich.logging.RichHandler",
                "level": level,
                "formatter": "rich",
                "rich_tracebacks": True,
                "show_path": False,
            },
        },
        "loggers": {
            "invoice_builder": {"level": level, "handlers": ["console"], "propagate": False},
            "httpx": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        },
    }
    logging.config.dictConfig(logging_config)
