# Overview: Log level and format for the Flask application logger.

from __future__ import annotations

import logging

from flask import Flask

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(app: Flask) -> None:
    """Apply LOG_LEVEL to app.logger and give its default handler a timestamped format."""
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    app.logger.setLevel(level)
    for handler in app.logger.handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
