"""
Logging Configuration

One stdout handler shared by the application, uvicorn and the noisy
third-party clients, so container log drivers get a single stream.
"""

import sys
from logging.config import dictConfig
from typing import Any

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every request or statement at INFO.
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "sentence_transformers")


def build_logging_config(level: str) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for ``level``."""
    level = level.upper()

    def routed(logger_level: str) -> dict[str, Any]:
        return {"handlers": ["console"], "level": logger_level, "propagate": False}

    loggers = {
        "app": routed(level),
        "uvicorn": routed("INFO"),
        "uvicorn.access": routed("INFO"),
    }
    loggers.update({name: routed("WARNING") for name in QUIET_LOGGERS})

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "default",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": loggers,
    }


def setup_logging(level: str | None = None) -> None:
    """
    Configure logging once at startup.

    Args:
        level: Overrides ``LOG_LEVEL`` (scripts pass their own).
    """
    dictConfig(build_logging_config(level or settings.LOG_LEVEL))
