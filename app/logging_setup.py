"""Central logging configuration for the survey flow service.

Applies a root stdout handler so engine, repository and route loggers emit
without per-module setup. The level defaults to INFO and can be lowered with
FLOW_LOG_LEVEL=DEBUG to trace individual rule evaluations.
"""
from __future__ import annotations
import logging
import os
from logging.config import dictConfig


def _build_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
        },
    }


def configure_logging() -> None:
    """Configure application-wide logging once.

    If the root logger already has handlers, return to prevent duplicate output
    (pytest's capture handler and reloaders both install one).
    """
    root = logging.getLogger()
    if root.handlers:
        return
    level = (os.environ.get("FLOW_LOG_LEVEL") or "INFO").strip().upper()
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
        level = "INFO"
    dictConfig(_build_config(level))
