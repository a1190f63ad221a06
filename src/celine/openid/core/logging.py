import logging
import sys

from celine.openid.core.config import settings

AUDIT_LOGGER = "celine.openid.audit"

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# third party loggers and the level they are held at
LIBRARY_LEVELS = {
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def setup_logging() -> None:
    """
    Configure process wide logging.

    Everything goes to stdout. ``celine.*`` follows ``LOG_LEVEL`` while the
    login audit trail stays at INFO whatever the application level is, so
    successful logins are always recorded.
    """
    app_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.INFO)
    root.addHandler(handler)

    logging.getLogger("celine").setLevel(app_level)
    logging.getLogger(AUDIT_LOGGER).setLevel(logging.INFO)

    for name, level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER)
