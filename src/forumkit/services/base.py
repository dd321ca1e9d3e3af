"""Shared helpers for forum services."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
import structlog

from forumkit.cache import CachedQuery
from forumkit.db import not_deleted


class BaseService:
    """Row lookups that bypass the cache, and table-scoped cache invalidation."""

    def __init__(self, engine: sa.engine.Engine, cache: CachedQuery, log: structlog.stdlib.BoundLogger) -> None:
        self.engine = engine
        self.cache = cache
        self.log = log

    @staticmethod
    def _live_row(conn: sa.Connection, model: type, row_id: int | None) -> sa.Row | None:
        """Row by id unless missing or soft-deleted."""
        if row_id is None:
            return None
        return conn.execute(
            sa.select(*model.__table__.c).where(model.id == row_id, not_deleted(model))
        ).first()

    def _get_live(self, model: type, row_id: int | None) -> sa.Row | None:
        with self.engine.connect() as conn:
            return self._live_row(conn, model, row_id)

    @staticmethod
    def _insert(conn: sa.Connection, model: type, values: dict[str, Any]) -> int:
        result = conn.execute(sa.insert(model).values(**values))
        return result.inserted_primary_key[0]

    def _invalidate(self, *models: type) -> None:
        """Flush every cached listing that reads any of *models*' tables."""
        self.cache.invalidate(*(m.__tablename__ for m in models))
