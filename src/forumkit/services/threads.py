"""Thread listing, thread mutations, read markers and follows."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import sqlalchemy as sa
import structlog
from sqlalchemy.dialects import postgresql, sqlite

from forumkit.cache import CachedQuery
from forumkit.db import Category, Thread, ThreadFollow, ThreadRead, soft_delete, utcnow
from forumkit.decorators import Decorator
from forumkit.errors import ForumError, ValidationError
from forumkit.events import EventDispatcher, ThreadCreated, ThreadDeleted, ThreadUpdated
from forumkit.models import DecoratedThread
from forumkit.models import Thread as ThreadEntity
from forumkit.models import ThreadFollow as ThreadFollowEntity
from forumkit.models import ThreadRead as ThreadReadEntity
from forumkit.queries import thread_count_query, thread_listing_query
from forumkit.services.base import BaseService
from forumkit.statuses import ThreadState
from forumkit.utils.text import sanitize_for_slug

_EDITABLE_FIELDS = frozenset({"title", "category_id", "pinned", "locked", "state"})

_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _dialect_insert(conn: sa.Connection):
    """INSERT construct with ``on_conflict_do_update`` for the connection's backend."""
    try:
        return _UPSERT_INSERTS[conn.dialect.name]
    except KeyError:
        raise ForumError(f"read markers need an upsert-capable backend, not {conn.dialect.name!r}") from None


class ThreadService(BaseService):
    def __init__(
        self,
        engine: sa.engine.Engine,
        cache: CachedQuery,
        decorator: Decorator,
        events: EventDispatcher,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        super().__init__(engine, cache, log)
        self.decorator = decorator
        self.events = events

    # -- Reads ------------------------------------------------------------

    def get_threads(
        self,
        viewer_id: int | None,
        page: int,
        size: int,
        *,
        category_ids: Iterable[int] | None = None,
        pinned: bool | None = None,
        followed: bool | None = None,
    ) -> list[DecoratedThread]:
        """One page of published threads, most recent activity first, decorated for *viewer_id*."""
        query = thread_listing_query(
            viewer_id, category_ids=category_ids, pinned=pinned, followed=followed, page=page, size=size
        )
        rows = self.cache.fetch_all(query.statement(), query.tables)
        return self.decorator.decorate_threads(ThreadEntity.from_row(r) for r in rows)

    def get_threads_by_ids(self, viewer_id: int | None, thread_ids: Iterable[int]) -> list[DecoratedThread]:
        query = thread_listing_query(viewer_id, ids=thread_ids)
        rows = self.cache.fetch_all(query.statement(), query.tables)
        return self.decorator.decorate_threads(ThreadEntity.from_row(r) for r in rows)

    def count_threads(
        self,
        viewer_id: int | None,
        *,
        category_ids: Iterable[int] | None = None,
        pinned: bool | None = None,
        followed: bool | None = None,
    ) -> int:
        query = thread_count_query(viewer_id, category_ids=category_ids, pinned=pinned, followed=followed)
        return self.cache.scalar(query.count_statement(), query.tables)

    def get_thread(self, thread_id: int) -> ThreadEntity | None:
        """Stored thread in any state; None if missing or deleted."""
        row = self._get_live(Thread, thread_id)
        return ThreadEntity.from_row(row) if row else None

    # -- Mutations --------------------------------------------------------

    def _changed(self, viewer_id: int | None, thread_id: int, event_type: type) -> None:
        self._invalidate(Thread)
        self.events.dispatch(event_type(thread_id=thread_id, actor_id=viewer_id))

    @staticmethod
    def _check_state(state: str) -> ThreadState:
        try:
            return ThreadState(state)
        except ValueError:
            raise ValidationError(f"unknown thread state {state!r}") from None

    def _check_category(self, conn: sa.Connection, category_id: int) -> None:
        if self._live_row(conn, Category, category_id) is None:
            raise ValidationError(f"category {category_id} does not exist")

    def create_thread(
        self,
        viewer_id: int,
        category_id: int,
        title: str,
        *,
        state: str = ThreadState.PUBLISHED,
        pinned: bool = False,
    ) -> ThreadEntity:
        title = (title or "").strip()
        if not title:
            raise ValidationError("thread title is empty")
        state = self._check_state(state)
        now = utcnow()

        with self.engine.begin() as conn:
            self._check_category(conn, category_id)
            thread_id = self._insert(
                conn,
                Thread,
                {
                    "category_id": category_id,
                    "author_id": viewer_id,
                    "title": title,
                    "slug": sanitize_for_slug(title),
                    "state": state,
                    "pinned": pinned,
                    "created_at": now,
                    "updated_at": now,
                },
            )
            row = self._live_row(conn, Thread, thread_id)

        self._changed(viewer_id, thread_id, ThreadCreated)
        self.log.info("threads.created", thread_id=thread_id, category_id=category_id, author_id=viewer_id)
        return ThreadEntity.from_row(row)

    def update_thread(self, viewer_id: int | None, thread_id: int, **fields) -> ThreadEntity | None:
        """Set any of title, category_id, pinned, locked, state. None if the thread does not exist."""
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update thread fields {sorted(unknown)}")
        values = dict(fields)
        if "title" in values:
            values["title"] = (values["title"] or "").strip()
            if not values["title"]:
                raise ValidationError("thread title is empty")
            values["slug"] = sanitize_for_slug(values["title"])
        if "state" in values:
            values["state"] = self._check_state(values["state"])

        with self.engine.begin() as conn:
            if self._live_row(conn, Thread, thread_id) is None:
                return None
            if "category_id" in values:
                self._check_category(conn, values["category_id"])
            conn.execute(sa.update(Thread).where(Thread.id == thread_id).values(**values, updated_at=utcnow()))
            row = self._live_row(conn, Thread, thread_id)

        self._changed(viewer_id, thread_id, ThreadUpdated)
        self.log.info("threads.updated", thread_id=thread_id, fields=sorted(fields))
        return ThreadEntity.from_row(row)

    def set_thread_state(self, viewer_id: int | None, thread_id: int, state: str) -> ThreadEntity | None:
        """Any state may follow any other; there is no transition guard."""
        return self.update_thread(viewer_id, thread_id, state=state)

    def set_thread_published(self, viewer_id: int | None, thread_id: int) -> ThreadEntity | None:
        return self.set_thread_state(viewer_id, thread_id, ThreadState.PUBLISHED)

    def set_thread_draft(self, viewer_id: int | None, thread_id: int) -> ThreadEntity | None:
        return self.set_thread_state(viewer_id, thread_id, ThreadState.DRAFT)

    def set_thread_hidden(self, viewer_id: int | None, thread_id: int) -> ThreadEntity | None:
        return self.set_thread_state(viewer_id, thread_id, ThreadState.HIDDEN)

    def delete_thread(self, viewer_id: int | None, thread_id: int) -> bool:
        """Soft-delete. False if the thread does not exist."""
        with self.engine.begin() as conn:
            deleted = soft_delete(conn, Thread, thread_id)
        if not deleted:
            return False
        self._changed(viewer_id, thread_id, ThreadDeleted)
        self.log.info("threads.deleted", thread_id=thread_id)
        return True

    # -- Reads and follows ------------------------------------------------

    def update_thread_read(
        self, viewer_id: int, thread_id: int, read_on: datetime | None = None
    ) -> ThreadReadEntity | None:
        """Record that the viewer read the thread at *read_on* (default now). None if the thread does not exist."""
        read_on = read_on or utcnow()
        now = utcnow()
        pair = sa.and_(ThreadRead.thread_id == thread_id, ThreadRead.reader_id == viewer_id)

        with self.engine.begin() as conn:
            if self._live_row(conn, Thread, thread_id) is None:
                return None
            stmt = _dialect_insert(conn)(ThreadRead).values(
                thread_id=thread_id, reader_id=viewer_id, read_on=read_on, created_at=now, updated_at=now
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["thread_id", "reader_id"],
                set_={"read_on": stmt.excluded.read_on, "updated_at": stmt.excluded.updated_at},
            )
            conn.execute(stmt)
            row = conn.execute(sa.select(*ThreadRead.__table__.c).where(pair)).one()

        self._invalidate(ThreadRead, Thread)
        self.log.debug("threads.read", thread_id=thread_id, reader_id=viewer_id)
        return ThreadReadEntity.from_row(row)

    def follow_thread(self, viewer_id: int, thread_id: int) -> ThreadFollowEntity | None:
        """Find-or-create the viewer's follow. None if the thread does not exist."""
        pair = sa.and_(ThreadFollow.thread_id == thread_id, ThreadFollow.follower_id == viewer_id)
        with self.engine.begin() as conn:
            existing = conn.execute(sa.select(*ThreadFollow.__table__.c).where(pair).limit(1)).first()
            if existing is not None:
                return ThreadFollowEntity.from_row(existing)
            if self._live_row(conn, Thread, thread_id) is None:
                return None
            follow_id = self._insert(
                conn, ThreadFollow, {"thread_id": thread_id, "follower_id": viewer_id, "followed_on": utcnow()}
            )
            row = conn.execute(sa.select(*ThreadFollow.__table__.c).where(ThreadFollow.id == follow_id)).one()

        self._invalidate(ThreadFollow, Thread)
        self.log.info("threads.followed", thread_id=thread_id, follower_id=viewer_id)
        return ThreadFollowEntity.from_row(row)

    def unfollow_thread(self, viewer_id: int, thread_id: int) -> int:
        """Delete the viewer's follows of the thread. Returns how many were removed."""
        with self.engine.begin() as conn:
            removed = conn.execute(
                sa.delete(ThreadFollow).where(ThreadFollow.thread_id == thread_id, ThreadFollow.follower_id == viewer_id)
            ).rowcount
        if removed:
            self._invalidate(ThreadFollow, Thread)
            self.log.info("threads.unfollowed", thread_id=thread_id, follower_id=viewer_id)
        return removed
