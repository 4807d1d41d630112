"""
Logging setup shared by the API process and the Celery worker.
"""
import logging

from siteaudit.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once; later calls only adjust the level."""
    level_name = (level or settings.LOG_LEVEL).upper()
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level_name)

    # httpx logs every request at INFO, which drowns out crawl progress
    logging.getLogger("httpx").setLevel(logging.WARNING)
