"""
FastAPI dependency injection providers.

Dependencies can be overridden in tests using app.dependency_overrides, e.g.
to point routes at an in-memory SQLite engine.
"""

from __future__ import annotations

from typing import Generator

from sqlalchemy.engine import Engine

from sync_stays.db.engine import engine


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Example:
        >>> @router.post("/properties/{property_id}/reset")
        >>> def trigger_property_reset(
        ...     property_id: str,
        ...     engine: Engine = Depends(get_db_engine),
        ... ):
        ...     return reset_property(engine, property_id).model_dump()

    Testing Example:
        >>> app.dependency_overrides[get_db_engine] = lambda: test_engine
        >>> client = TestClient(app)
        >>> client.post("/stays/properties/p1/reset")
    """
    yield engine
