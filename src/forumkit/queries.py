"""Listing queries with per-row aggregates attached as correlated scalar subselects.

Every listing is a single SELECT: the entity's stored columns plus one labelled
subselect per derived field (counts, latest post, viewer read/follow/like
flags). Rows therefore come back fully aggregated without N+1 round-trips.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Self

import sqlalchemy as sa

from forumkit.db import Category, Post, PostLike, Thread, ThreadFollow, ThreadRead, not_deleted
from forumkit.errors import ValidationError
from forumkit.statuses import ACCESSIBLE_POST_STATES, ACCESSIBLE_THREAD_STATES


class DecoratedQuery:
    """Builder: base table + named scalar subselects + filters, ordering and pagination.

    ``tables`` collects every table the statement reads, which is what cache
    invalidation is scoped by.
    """

    def __init__(self, model: type) -> None:
        self.model = model
        self.tables: set[str] = {model.__tablename__}
        self.subselects: dict[str, sa.ColumnElement[Any]] = {}
        self.criteria: list[sa.ColumnElement[bool]] = []
        self.ordering: list[sa.ColumnElement[Any]] = []
        self.limit: int | None = None
        self.offset: int | None = None

    def with_subselect(self, name: str, expr: sa.ColumnElement[Any], *models: type) -> Self:
        self.subselects[name] = expr
        self.tables.update(m.__tablename__ for m in models)
        return self

    def where(self, *criteria: sa.ColumnElement[bool], models: Iterable[type] = ()) -> Self:
        self.criteria.extend(criteria)
        self.tables.update(m.__tablename__ for m in models)
        return self

    def order_by(self, *clauses: sa.ColumnElement[Any]) -> Self:
        self.ordering.extend(clauses)
        return self

    def paginate(self, page: int, size: int) -> Self:
        """1-indexed pages of fixed *size*."""
        if page < 1 or size < 1:
            raise ValidationError(f"invalid page {page} / size {size}")
        self.limit = size
        self.offset = size * (page - 1)
        return self

    def statement(self) -> sa.Select:
        columns = [*self.model.__table__.c, *(expr.label(name) for name, expr in self.subselects.items())]
        stmt = sa.select(*columns).where(*self.criteria).order_by(*self.ordering)
        if self.limit is not None:
            stmt = stmt.limit(self.limit).offset(self.offset)
        return stmt

    def count_statement(self) -> sa.Select:
        """COUNT over the same filters, ignoring subselect columns, ordering and pagination."""
        return sa.select(sa.func.count(self.model.id)).where(*self.criteria)


# -- Threads -----------------------------------------------------------------


def _last_post_of_thread(column: sa.ColumnElement[Any]) -> sa.ScalarSelect:
    """*column* of the newest live post in the outer thread; post id breaks published_on ties."""
    return (
        sa.select(column)
        .where(Post.thread_id == Thread.id, not_deleted(Post))
        .order_by(Post.published_on.desc(), Post.id.desc())
        .limit(1)
        .correlate(Thread)
        .scalar_subquery()
    )


def _followed_by(viewer_id: int | None) -> sa.Exists:
    return (
        sa.select(ThreadFollow.id)
        .where(ThreadFollow.thread_id == Thread.id, ThreadFollow.follower_id == viewer_id)
        .correlate(Thread)
        .exists()
    )


def thread_listing_query(
    viewer_id: int | None,
    *,
    category_ids: Iterable[int] | None = None,
    pinned: bool | None = None,
    followed: bool | None = None,
    ids: Iterable[int] | None = None,
    page: int | None = None,
    size: int | None = None,
) -> DecoratedQuery:
    """Published, live threads with post aggregates and the viewer's read/follow flags.

    Ordered by last post time (threads without posts last), then id, both descending.
    """
    post_count = (
        sa.select(sa.func.count(Post.id))
        .where(Post.thread_id == Thread.id, not_deleted(Post))
        .correlate(Thread)
        .scalar_subquery()
    )
    last_published = _last_post_of_thread(Post.published_on)

    # A read counts only if it happened at or after the newest live post
    is_read = (
        sa.select(ThreadRead.id)
        .where(
            ThreadRead.thread_id == Thread.id,
            ThreadRead.reader_id == viewer_id,
            sa.or_(last_published.is_(None), ThreadRead.read_on >= last_published),
        )
        .correlate(Thread)
        .exists()
    )
    is_followed = _followed_by(viewer_id)

    query = (
        DecoratedQuery(Thread)
        .with_subselect("post_count", post_count, Post)
        .with_subselect("last_post_published_on", last_published, Post)
        .with_subselect("last_post_id", _last_post_of_thread(Post.id), Post)
        .with_subselect("last_post_user_id", _last_post_of_thread(Post.author_id), Post)
        .with_subselect("is_read", is_read, ThreadRead, Post)
        .with_subselect("is_followed", is_followed, ThreadFollow)
        .where(not_deleted(Thread), Thread.state.in_(ACCESSIBLE_THREAD_STATES))
    )
    _filter_threads(query, viewer_id, category_ids=category_ids, pinned=pinned, followed=followed, ids=ids)

    query.order_by(last_published.desc().nulls_last(), Thread.id.desc())
    if page is not None or size is not None:
        query.paginate(1 if page is None else page, 0 if size is None else size)
    return query


def thread_count_query(
    viewer_id: int | None,
    *,
    category_ids: Iterable[int] | None = None,
    pinned: bool | None = None,
    followed: bool | None = None,
) -> DecoratedQuery:
    """Same filter set as the listing, for ``count_statement()``."""
    query = DecoratedQuery(Thread).where(not_deleted(Thread), Thread.state.in_(ACCESSIBLE_THREAD_STATES))
    return _filter_threads(query, viewer_id, category_ids=category_ids, pinned=pinned, followed=followed)


def _filter_threads(
    query: DecoratedQuery,
    viewer_id: int | None,
    *,
    category_ids: Iterable[int] | None = None,
    pinned: bool | None = None,
    followed: bool | None = None,
    ids: Iterable[int] | None = None,
) -> DecoratedQuery:
    if category_ids:
        query.where(Thread.category_id.in_(sorted(set(category_ids))))
    if ids is not None:
        query.where(Thread.id.in_(sorted(set(ids))))
    if pinned is not None:
        query.where(Thread.pinned == pinned)
    if followed is True:
        query.where(_followed_by(viewer_id), models=[ThreadFollow])
    elif followed is False:
        query.where(~_followed_by(viewer_id), models=[ThreadFollow])
    return query


# -- Posts -------------------------------------------------------------------


def _in_accessible_thread() -> sa.Exists:
    return (
        sa.select(Thread.id)
        .where(Thread.id == Post.thread_id, not_deleted(Thread), Thread.state.in_(ACCESSIBLE_THREAD_STATES))
        .correlate(Post)
        .exists()
    )


def post_listing_query(
    viewer_id: int | None,
    *,
    thread_id: int | None = None,
    ids: Iterable[int] | None = None,
    page: int | None = None,
    size: int | None = None,
) -> DecoratedQuery:
    """Published, live posts of live, accessible threads in publication order.

    Each row carries its like count and the viewer's like flag.
    """
    like_count = (
        sa.select(sa.func.count(PostLike.id))
        .where(PostLike.post_id == Post.id)
        .correlate(Post)
        .scalar_subquery()
    )
    is_liked = (
        sa.select(PostLike.id)
        .where(PostLike.post_id == Post.id, PostLike.liker_id == viewer_id)
        .correlate(Post)
        .exists()
    )

    query = (
        DecoratedQuery(Post)
        .with_subselect("like_count", like_count, PostLike)
        .with_subselect("is_liked_by_viewer", is_liked, PostLike)
        .where(not_deleted(Post), Post.state.in_(ACCESSIBLE_POST_STATES))
        .where(_in_accessible_thread(), models=[Thread])
        .order_by(Post.published_on.asc(), Post.id.asc())
    )
    if thread_id is not None:
        query.where(Post.thread_id == thread_id)
    if ids is not None:
        query.where(Post.id.in_(sorted(set(ids))))
    if page is not None or size is not None:
        query.paginate(1 if page is None else page, 0 if size is None else size)
    return query


# -- Categories --------------------------------------------------------------


def _live_posts_in_category() -> sa.Join:
    return Post.__table__.join(Thread.__table__, Post.thread_id == Thread.id)


def _category_post_criteria() -> tuple[sa.ColumnElement[bool], ...]:
    return (
        Thread.category_id == Category.id,
        not_deleted(Thread),
        not_deleted(Post),
        Thread.state.in_(ACCESSIBLE_THREAD_STATES),
    )


def _latest_post_of_category(column: sa.ColumnElement[Any]) -> sa.ScalarSelect:
    return (
        sa.select(column)
        .select_from(_live_posts_in_category())
        .where(*_category_post_criteria())
        .order_by(Post.published_on.desc(), Post.id.desc())
        .limit(1)
        .correlate(Category)
        .scalar_subquery()
    )


def category_listing_query() -> DecoratedQuery:
    """Live categories by weight with thread/post counts and their newest post."""
    thread_count = (
        sa.select(sa.func.count(Thread.id))
        .where(Thread.category_id == Category.id, not_deleted(Thread), Thread.state.in_(ACCESSIBLE_THREAD_STATES))
        .correlate(Category)
        .scalar_subquery()
    )
    post_count = (
        sa.select(sa.func.count(Post.id))
        .select_from(_live_posts_in_category())
        .where(*_category_post_criteria())
        .correlate(Category)
        .scalar_subquery()
    )

    return (
        DecoratedQuery(Category)
        .with_subselect("thread_count", thread_count, Thread)
        .with_subselect("post_count", post_count, Post, Thread)
        .with_subselect("latest_post_id", _latest_post_of_category(Post.id), Post, Thread)
        .with_subselect("latest_post_published_on", _latest_post_of_category(Post.published_on), Post, Thread)
        .with_subselect("latest_post_author_id", _latest_post_of_category(Post.author_id), Post, Thread)
        .with_subselect("latest_post_thread_id", _latest_post_of_category(Post.thread_id), Post, Thread)
        .where(not_deleted(Category))
        .order_by(Category.weight.asc(), Category.id.asc())
    )
