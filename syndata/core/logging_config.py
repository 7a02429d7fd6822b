"""Logging setup shared by the API process and the Celery worker."""

import logging
import logging.config

from syndata.core.config import get_settings


def configure_logging(level: str = None) -> None:
    settings = get_settings()
    level = (level or settings.LOG_LEVEL or "INFO").upper()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "syndata": {"level": level, "handlers": ["console"], "propagate": False},
                # boto and httpx are chatty at INFO
                "botocore": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
            "root": {"level": "WARNING", "handlers": ["console"]},
        }
    )
