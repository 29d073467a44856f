"""Structured JSON logging configuration."""
import logging
import sys
from pythonjsonlogger import jsonlogger
from app.core.config import settings

# Libraries whose INFO output drowns out workflow decisions.
QUIET_LOGGERS = ("sqlalchemy.engine", "celery.app.trace", "httpx")


def setup_logging() -> None:
    """Configure JSON structured logging for production, human-readable elsewhere."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if settings.APP_ENV == "production":
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
            static_fields={"service": "approval-workflow", "env": settings.APP_ENV},
        )
        handler.setFormatter(formatter)
        logging.root.handlers = [handler]
        logging.root.setLevel(level)
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
