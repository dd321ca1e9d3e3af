"""Category listing and maintenance."""

from __future__ import annotations

import sqlalchemy as sa
import structlog

from forumkit.cache import CachedQuery
from forumkit.db import Category, soft_delete, utcnow
from forumkit.decorators import Decorator
from forumkit.errors import ValidationError
from forumkit.models import Category as CategoryEntity
from forumkit.models import DecoratedCategory
from forumkit.queries import category_listing_query
from forumkit.services.base import BaseService
from forumkit.utils.text import sanitize_for_slug

_EDITABLE_FIELDS = frozenset({"title", "description", "weight"})


class CategoryService(BaseService):
    def __init__(
        self,
        engine: sa.engine.Engine,
        cache: CachedQuery,
        decorator: Decorator,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        super().__init__(engine, cache, log)
        self.decorator = decorator

    def get_categories(self) -> list[DecoratedCategory]:
        """All live categories by weight, with counts and the author of their newest post."""
        query = category_listing_query()
        rows = self.cache.fetch_all(query.statement(), query.tables)
        return self.decorator.decorate_categories(CategoryEntity.from_row(r) for r in rows)

    def get_category(self, category_id: int) -> CategoryEntity | None:
        row = self._get_live(Category, category_id)
        return CategoryEntity.from_row(row) if row else None

    def create_category(self, title: str, description: str | None = None, weight: int = 0) -> CategoryEntity:
        title = (title or "").strip()
        if not title:
            raise ValidationError("category title is empty")
        now = utcnow()
        with self.engine.begin() as conn:
            category_id = self._insert(
                conn,
                Category,
                {
                    "title": title,
                    "slug": sanitize_for_slug(title),
                    "description": description,
                    "weight": weight,
                    "created_at": now,
                    "updated_at": now,
                },
            )
            row = self._live_row(conn, Category, category_id)

        self._invalidate(Category)
        self.log.info("categories.created", category_id=category_id)
        return CategoryEntity.from_row(row)

    def update_category(self, category_id: int, **fields) -> CategoryEntity | None:
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update category fields {sorted(unknown)}")
        values = dict(fields)
        if "title" in values:
            values["title"] = (values["title"] or "").strip()
            if not values["title"]:
                raise ValidationError("category title is empty")
            values["slug"] = sanitize_for_slug(values["title"])

        with self.engine.begin() as conn:
            if self._live_row(conn, Category, category_id) is None:
                return None
            conn.execute(sa.update(Category).where(Category.id == category_id).values(**values, updated_at=utcnow()))
            row = self._live_row(conn, Category, category_id)

        self._invalidate(Category)
        return CategoryEntity.from_row(row)

    def delete_category(self, category_id: int) -> bool:
        with self.engine.begin() as conn:
            deleted = soft_delete(conn, Category, category_id)
        if deleted:
            self._invalidate(Category)
            self.log.info("categories.deleted", category_id=category_id)
        return deleted
