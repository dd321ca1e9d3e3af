"""Post listing and post mutations."""

from __future__ import annotations

import sqlalchemy as sa
import structlog

from forumkit.cache import CachedQuery
from forumkit.db import Post, Thread, not_deleted, soft_delete, utcnow
from forumkit.decorators import Decorator
from forumkit.errors import ValidationError
from forumkit.models import DecoratedPost
from forumkit.models import Post as PostEntity
from forumkit.queries import post_listing_query
from forumkit.sanitizer import Sanitizer
from forumkit.services.base import BaseService
from forumkit.statuses import ACCESSIBLE_POST_STATES, PostState


class PostService(BaseService):
    def __init__(
        self,
        engine: sa.engine.Engine,
        cache: CachedQuery,
        decorator: Decorator,
        sanitizer: Sanitizer,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        super().__init__(engine, cache, log)
        self.decorator = decorator
        self.sanitizer = sanitizer

    # -- Reads ------------------------------------------------------------

    def get_posts(self, viewer_id: int | None, thread_id: int, page: int, size: int) -> list[DecoratedPost]:
        """One page of a thread's published posts, oldest first, decorated for *viewer_id*."""
        query = post_listing_query(viewer_id, thread_id=thread_id, page=page, size=size)
        rows = self.cache.fetch_all(query.statement(), query.tables)
        return self.decorator.decorate_posts(PostEntity.from_row(r) for r in rows)

    def get_post(self, post_id: int) -> PostEntity | None:
        row = self._get_live(Post, post_id)
        return PostEntity.from_row(row) if row else None

    def get_thread_post_count(self, thread_id: int) -> int:
        """Published, live posts in a thread, read straight from the store."""
        with self.engine.connect() as conn:
            return conn.execute(
                sa.select(sa.func.count(Post.id)).where(
                    Post.thread_id == thread_id,
                    Post.state.in_(ACCESSIBLE_POST_STATES),
                    not_deleted(Post),
                )
            ).scalar()

    # -- Mutations --------------------------------------------------------

    def _clean_content(self, content: str) -> str:
        cleaned = self.sanitizer.clean(content or "")
        if not cleaned.strip():
            raise ValidationError("post content is empty")
        return cleaned

    def _check_prompting_post(self, conn: sa.Connection, thread_id: int, prompting_post_id: int | None) -> None:
        if prompting_post_id is None:
            return
        prompting = self._live_row(conn, Post, prompting_post_id)
        if prompting is None or prompting.thread_id != thread_id:
            raise ValidationError(f"prompting post {prompting_post_id} is not in thread {thread_id}")

    def create_post(
        self,
        viewer_id: int,
        thread_id: int,
        content: str,
        prompting_post_id: int | None = None,
    ) -> PostEntity:
        """Publish a post now. Rejects empty content and references outside a live thread."""
        cleaned = self._clean_content(content)
        now = utcnow()

        with self.engine.begin() as conn:
            if self._live_row(conn, Thread, thread_id) is None:
                raise ValidationError(f"thread {thread_id} does not exist")
            self._check_prompting_post(conn, thread_id, prompting_post_id)
            post_id = self._insert(
                conn,
                Post,
                {
                    "thread_id": thread_id,
                    "author_id": viewer_id,
                    "prompting_post_id": prompting_post_id,
                    "content": cleaned,
                    "state": PostState.PUBLISHED,
                    "published_on": now,
                    "created_at": now,
                    "updated_at": now,
                },
            )
            row = self._live_row(conn, Post, post_id)

        # New post moves the thread's last-post fields
        self._invalidate(Post, Thread)
        self.log.info("posts.created", post_id=post_id, thread_id=thread_id, author_id=viewer_id)
        return PostEntity.from_row(row)

    def _edit(self, post_id: int, values: dict, check=None) -> PostEntity | None:
        now = utcnow()
        with self.engine.begin() as conn:
            current = self._live_row(conn, Post, post_id)
            if current is None:
                return None
            if check is not None:
                check(conn, current)
            conn.execute(sa.update(Post).where(Post.id == post_id).values(**values, edited_on=now, updated_at=now))
            row = self._live_row(conn, Post, post_id)

        self._invalidate(Post)
        self.log.info("posts.edited", post_id=post_id, fields=sorted(values))
        return PostEntity.from_row(row)

    def update_post_content(self, post_id: int, content: str) -> PostEntity | None:
        """Replace content. None if the post does not exist."""
        return self._edit(post_id, {"content": self._clean_content(content)})

    def update_post_prompting_post_id(self, post_id: int, prompting_post_id: int | None) -> PostEntity | None:
        """Point the post at another post of its thread (or at none). None if the post does not exist."""

        def check(conn: sa.Connection, current: sa.Row) -> None:
            if prompting_post_id == post_id:
                raise ValidationError("a post cannot prompt itself")
            self._check_prompting_post(conn, current.thread_id, prompting_post_id)

        return self._edit(post_id, {"prompting_post_id": prompting_post_id}, check=check)

    def destroy_post(self, post_id: int) -> bool:
        """Soft-delete. False if the post does not exist."""
        with self.engine.begin() as conn:
            deleted = soft_delete(conn, Post, post_id)
        if not deleted:
            return False

        # A deleted post can change its thread's last-post fields
        self._invalidate(Post, Thread)
        self.log.info("posts.destroyed", post_id=post_id)
        return True
