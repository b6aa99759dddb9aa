"""
Logging setup for the shipquote service.

Each module logs through logging.getLogger(__name__); this only sets the
root level/format once at startup and quiets chatty client libraries.
"""
import logging

from shipquote.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "redis")


def configure_logging(level: str = None) -> None:
    level_name = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
