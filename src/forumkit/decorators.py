"""Batch enrichment of listing results with identity-provider and per-author data.

A decorator call collects the distinct user ids of the whole collection and
issues one lookup per data source, never one per row. Users the provider does
not know get an empty :class:`AuthorBlock` instead of failing the collection.
"""

from __future__ import annotations

import concurrent.futures
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
import structlog

from forumkit.config import AppConfig
from forumkit.db import Post, PostLike, UserSignature, not_deleted, utcnow
from forumkit.identity import User, UserProvider, XPRank
from forumkit.models import AuthorBlock, Category, DecoratedCategory, DecoratedPost, DecoratedThread, Thread
from forumkit.models import Post as PostEntity
from forumkit.utils.text import diff_for_humans


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(UTC).replace(tzinfo=None)


class Decorator:
    """Attaches author blocks and presentation fields to threads, posts and categories."""

    def __init__(
        self,
        engine: sa.engine.Engine,
        users: UserProvider,
        config: AppConfig,
        log: structlog.stdlib.BoundLogger,
        *,
        max_workers: int | None = None,
    ) -> None:
        self.engine = engine
        self.users = users
        self.config = config
        self.log = log
        self.max_workers = max_workers if max_workers is not None else config.settings.decorator_max_workers

    # -- Batch lookups ----------------------------------------------------

    def _gather(self, calls: dict[str, Callable[[], Any]]) -> dict[str, Any]:
        """Run independent lookups concurrently and join them. The first failure propagates."""
        if self.max_workers <= 1:
            return {name: fn() for name, fn in calls.items()}
        with concurrent.futures.ThreadPoolExecutor(max_workers=min(self.max_workers, len(calls))) as executor:
            futures = {name: executor.submit(fn) for name, fn in calls.items()}
            return {name: future.result() for name, future in futures.items()}

    def post_counts(self, user_ids: Sequence[int]) -> dict[int, int]:
        """Live posts authored per user."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                sa.select(Post.author_id, sa.func.count(Post.id))
                .where(Post.author_id.in_(user_ids), not_deleted(Post))
                .group_by(Post.author_id)
            ).fetchall()
        return {author_id: count for author_id, count in rows}

    def like_counts(self, user_ids: Sequence[int]) -> dict[int, int]:
        """Likes received on each user's live posts."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                sa.select(Post.author_id, sa.func.count(PostLike.id))
                .select_from(PostLike.__table__.join(Post.__table__, PostLike.post_id == Post.id))
                .where(Post.author_id.in_(user_ids), not_deleted(Post))
                .group_by(Post.author_id)
            ).fetchall()
        return {author_id: count for author_id, count in rows}

    def signatures(self, user_ids: Sequence[int]) -> dict[int, str]:
        """Forum signature per user for the configured brand."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                sa.select(UserSignature.user_id, UserSignature.signature)
                .where(UserSignature.user_id.in_(user_ids), UserSignature.brand == self.config.brand)
                .order_by(UserSignature.id.asc())
            ).fetchall()
        # Latest row wins if a user has several
        return {user_id: signature for user_id, signature in rows}

    # -- Author blocks ----------------------------------------------------

    def _basic_author(self, user_id: int | None, users: dict[int, User], access_levels: dict[int, str]) -> AuthorBlock:
        user = users.get(user_id) if user_id is not None else None
        if user is None:
            return AuthorBlock(id=user_id, avatar_url=self.config.default_avatar_url)
        return AuthorBlock(
            id=user_id,
            display_name=user.display_name,
            avatar_url=user.profile_picture_url or self.config.default_avatar_url,
            access_level=access_levels.get(user_id),
            created_at=_naive_utc(user.created_at),
        )

    # -- Entities ---------------------------------------------------------

    def decorate_threads(self, threads: Iterable[Thread]) -> list[DecoratedThread]:
        threads = list(threads)
        if not threads:
            return []

        user_ids = sorted(
            {t.author_id for t in threads} | {t.last_post_user_id for t in threads if t.last_post_user_id is not None}
        )
        found = self._gather(
            {
                "users": lambda: self.users.get_users_by_ids(user_ids),
                "access_levels": lambda: self.users.get_users_access_level(user_ids),
            }
        )
        users, access_levels = found["users"], found["access_levels"]

        decorated = []
        for thread in threads:
            last_post_author = None
            if thread.last_post_user_id is not None:
                last_post_author = self._basic_author(thread.last_post_user_id, users, access_levels)
            decorated.append(
                DecoratedThread(
                    **thread.model_dump(),
                    author=self._basic_author(thread.author_id, users, access_levels),
                    last_post_author=last_post_author,
                    url=self.config.thread_url_template.format(
                        id=thread.id, slug=thread.slug, category_id=thread.category_id
                    ),
                )
            )

        self.log.debug("decorator.threads_decorated", count=len(decorated), users=len(user_ids))
        return decorated

    def decorate_posts(self, posts: Iterable[PostEntity], now: datetime | None = None) -> list[DecoratedPost]:
        posts = list(posts)
        if not posts:
            return []
        now = _naive_utc(now or utcnow())

        user_ids = sorted({p.author_id for p in posts})
        found = self._gather(
            {
                "users": lambda: self.users.get_users_by_ids(user_ids),
                "post_counts": lambda: self.post_counts(user_ids),
                "access_levels": lambda: self.users.get_users_access_level(user_ids),
                "xp": lambda: self.users.get_users_xp_and_rank(user_ids),
                "signatures": lambda: self.signatures(user_ids),
                "like_counts": lambda: self.like_counts(user_ids),
            }
        )
        users: dict[int, User] = found["users"]
        xp: dict[int, XPRank] = found["xp"]

        decorated = []
        for post in posts:
            author = self._basic_author(post.author_id, users, found["access_levels"])
            if post.author_id in users:
                rank = xp.get(post.author_id, XPRank())
                author = author.model_copy(
                    update={
                        "total_posts": found["post_counts"].get(post.author_id, 0),
                        "total_post_likes": found["like_counts"].get(post.author_id, 0),
                        "days_as_member": max((now - author.created_at).days, 0),
                        "signature": found["signatures"].get(post.author_id),
                        "xp": rank.xp,
                        "xp_rank": rank.xp_rank,
                    }
                )
            decorated.append(
                DecoratedPost(
                    **post.model_dump(),
                    author=author,
                    published_on_diff=diff_for_humans(post.published_on, now),
                )
            )

        self.log.debug("decorator.posts_decorated", count=len(decorated), users=len(user_ids))
        return decorated

    def decorate_categories(self, categories: Iterable[Category]) -> list[DecoratedCategory]:
        categories = list(categories)
        user_ids = sorted({c.latest_post_author_id for c in categories if c.latest_post_author_id is not None})
        if not user_ids:
            return [DecoratedCategory(**c.model_dump()) for c in categories]

        found = self._gather(
            {
                "users": lambda: self.users.get_users_by_ids(user_ids),
                "access_levels": lambda: self.users.get_users_access_level(user_ids),
            }
        )
        return [
            DecoratedCategory(
                **c.model_dump(),
                latest_post_author=(
                    self._basic_author(c.latest_post_author_id, found["users"], found["access_levels"])
                    if c.latest_post_author_id is not None
                    else None
                ),
            )
            for c in categories
        ]
