"""Generic SQLAlchemy helpers: engine factory, timestamps, soft delete."""

from __future__ import annotations

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import event


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention for every timestamp column)."""
    return datetime.now(UTC).replace(tzinfo=None)


def _set_sqlite_pragmas(dbapi_conn, connection_record):  # noqa: N802
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def get_engine(database_url: str) -> sa.engine.Engine:
    """Create a SQLAlchemy engine for the given database URL."""
    engine = sa.create_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def not_deleted(table) -> sa.ColumnElement[bool]:
    """Filter clause excluding soft-deleted rows of *table*."""
    return table.deleted_at.is_(None)


def soft_delete(conn: sa.Connection, table, row_id: int) -> bool:
    """Mark a row deleted by stamping ``deleted_at``. Returns False if no live row matched."""
    now = utcnow()
    result = conn.execute(
        sa.update(table)
        .where(table.id == row_id, not_deleted(table))
        .values(deleted_at=now, updated_at=now)
    )
    return result.rowcount > 0
