# config.py — Environment configuration and logging setup
import os
import logging

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./kanban.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Pool sizing only applies to server databases; SQLite uses a static pool
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))
# Moves and inserts read a column, then write it; server databases must serialize that
DB_ISOLATION_LEVEL = os.getenv("DB_ISOLATION_LEVEL", "SERIALIZABLE").upper()

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"


def setup_logging(level: str = None) -> logging.Logger:
    """Configure root logging once and return the core's parent logger."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format=LOG_FORMAT,
    )
    return logging.getLogger("kanban")
