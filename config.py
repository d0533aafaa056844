# config.py
import os
import sys
import logging

import structlog

# MySQL database configuration
MYSQL_HOST = os.getenv("MYSQL_HOST", "127.0.0.1")
MYSQL_PORT = os.getenv("MYSQL_PORT", "3306")
MYSQL_USER = os.getenv("MYSQL_USER", "root")
MYSQL_PASSWORD = os.getenv("MYSQL_PASSWORD", "root")
MYSQL_DB = os.getenv("MYSQL_DB", "chapter_vote")

# full SQLAlchemy URL wins over the MySQL parts (tests use sqlite)
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"mysql+pymysql://{MYSQL_USER}:{MYSQL_PASSWORD}@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DB}",
)

SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
# use for create secret key
# python -c "import secrets; print(secrets.token_hex(32))"

DEBUG = os.getenv("CHAPTER_VOTE_DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("CHAPTER_VOTE_LOG_LEVEL", "INFO")

# voting clients re-fetch event state this often
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "3"))
DEFAULT_APPROVAL_THRESHOLD = int(os.getenv("DEFAULT_APPROVAL_THRESHOLD", "85"))
VOTE_FETCH_BATCH_SIZE = int(os.getenv("VOTE_FETCH_BATCH_SIZE", "1000"))


def get_logger(name: str = "chapter_vote"):
    """Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("vote recorded", event_id=3, candidate_id=12)
    """
    return structlog.get_logger(name)


def configure_logging(is_development: bool = DEBUG, log_level: str = LOG_LEVEL):
    """Configure structlog on top of the standard logging module.

    Development mode renders key=value lines, otherwise one JSON object per line.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if is_development:
        renderer = structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
