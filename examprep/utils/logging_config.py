"""Logging configuration helpers for the exam-prep service."""

from __future__ import annotations

import logging
from logging import Logger

from examprep.utils.config import settings


def configure_logging() -> Logger:
    """Configure basic logging for the service and return the package logger."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # passlib reads bcrypt's version and logs a noisy trapped error on newer releases
    logging.getLogger("passlib").setLevel(logging.ERROR)
    return logging.getLogger("examprep")
