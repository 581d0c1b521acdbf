# app/utils/my_logging.py
"""Logging configuration shared by the API process and the Celery worker"""
import logging
import sys
from app.config.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that drown out scheduling output at INFO
NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic",
    "urllib3",
    "msal",
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "uvicorn.access",
    "celery.beat",
)


def setup_logging(verbose=True):
    """Configure application logging from LOG_LEVEL"""
    settings = get_settings()

    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO) if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    quiet_level = logging.WARNING if verbose else logging.ERROR
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
