# Overview: Application logging configuration (console + optional rotating files).

import os
import logging
from logging.handlers import TimedRotatingFileHandler


LOG_FORMAT = "%(asctime)s [%(levelname)s] in %(module)s: %(message)s"


def configure_logging(app):
    """Configure logging for the Flask app."""
    # Prevent duplicate log handlers when Flask auto-reloads
    if getattr(app, "_logging_configured", False):
        return
    app._logging_configured = True

    formatter = logging.Formatter(LOG_FORMAT)
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    app.logger.handlers.clear()
    app.logger.addHandler(console_handler)
    app.logger.setLevel(level)
    app.logger.propagate = False

    log_dir = app.config.get("LOG_DIR")
    if not log_dir:
        return

    os.makedirs(log_dir, exist_ok=True)

    app_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, "app.log"), when="midnight", interval=1, backupCount=14,
        encoding="utf-8", delay=True
    )
    app_handler.suffix = "%Y-%m-%d"
    app_handler.setFormatter(formatter)
    app_handler.setLevel(logging.INFO)

    error_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, "error.log"), when="midnight", interval=1, backupCount=30,
        encoding="utf-8", delay=True
    )
    error_handler.suffix = "%Y-%m-%d"
    error_handler.setFormatter(formatter)
    error_handler.setLevel(logging.ERROR)

    app.logger.addHandler(app_handler)
    app.logger.addHandler(error_handler)
