"""
SQLAlchemy engine singleton with production-ready connection pooling.

One engine is shared by the API process and the scheduler entrypoint. Pool
sizing only applies to server backends; SQLite (used for local runs) keeps its
default single-connection pool.
"""

from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from sync_stays.config import DATABASE_URL


def build_engine(url: str) -> Engine:
    """
    Create an engine for the given URL with pooling suited to the backend.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    options: dict[str, Any] = {"future": True, "echo": False}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(
            pool_size=10,  # Connections kept in the pool
            max_overflow=20,  # Extra connections when the pool is exhausted
            pool_pre_ping=True,  # Detect stale connections before use
            pool_recycle=3600,
        )
    return create_engine(url, **options)


engine: Engine = build_engine(DATABASE_URL)


def check_engine_health(target: Engine | None = None) -> bool:
    """
    Check if the database is reachable.

    Used by the /ready endpoint before the service accepts traffic.

    Args:
        target: Engine to check (defaults to the module singleton)

    Returns:
        bool: True if a trivial query succeeds, False otherwise
    """
    try:
        with (target or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
