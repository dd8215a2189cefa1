"""Structured JSON logging configuration.

Configures Python stdlib logging to emit JSON on stdout. Field names follow
the GCP conventions (`severity`, `timestamp`, `logger`) so the daemon's logs
are picked up by log collectors without extra parsing.

Usage:
    from link_preview.logging_config import configure_logging
    configure_logging()
"""

import logging
import logging.config

LOGGING_CONFIG: dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(levelname)s %(name)s %(funcName)s %(message)s",
            "rename_fields": {
                "levelname": "severity",
                "asctime": "timestamp",
                "name": "logger",
            },
            "static_fields": {
                "service": "link-preview",
            },
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        },
    },
    "root": {
        "level": "INFO",
        "handlers": ["console"],
    },
}


def configure_logging(level: str | None = None) -> None:
    """Apply structured JSON logging configuration.

    Call once at process startup (e.g., in the FastAPI lifespan). ``level``
    overrides the root level, normally taken from ``Settings.log_level``.
    """
    config = dict(LOGGING_CONFIG)
    if level:
        config["root"] = {**LOGGING_CONFIG["root"], "level": level.upper()}
    logging.config.dictConfig(config)
