import logging
import sys

from survey360.core.config import settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the "survey360" namespace.
    Handlers live on the namespace root (see configure_logging), so module
    loggers only set their name and propagate.
    """
    if not name.startswith("survey360"):
        name = f"survey360.{name}"
    return logging.getLogger(name)


def configure_logging(level: str | None = None) -> None:
    """
    Configure application-wide logging once at startup.
    """
    root = logging.getLogger("survey360")
    root.setLevel((level or settings.LOG_LEVEL).upper())

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        # Prevent duplicates through uvicorn's root handler
        root.propagate = False

    # uvicorn access log duplicates our request logging middleware
    logging.getLogger("uvicorn.access").disabled = True
