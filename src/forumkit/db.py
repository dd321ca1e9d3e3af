"""Database engine and ORM table models."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from forumkit.statuses import PostState, ThreadState
from forumkit.utils.db import get_engine, not_deleted, soft_delete, utcnow

__all__ = [
    "Base",
    "Category",
    "Post",
    "PostLike",
    "SearchIndex",
    "Thread",
    "ThreadFollow",
    "ThreadRead",
    "UserSignature",
    "get_engine",
    "not_deleted",
    "soft_delete",
    "utcnow",
]


class Base(DeclarativeBase):
    pass


class Category(Base):
    __tablename__ = "forum_categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    slug: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    weight: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)


class Thread(Base):
    __tablename__ = "forum_threads"

    id: Mapped[int] = mapped_column(primary_key=True)
    category_id: Mapped[int] = mapped_column(sa.ForeignKey("forum_categories.id"), nullable=False)
    author_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    title: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    slug: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    state: Mapped[str] = mapped_column(sa.String(32), nullable=False, default=ThreadState.PUBLISHED)
    pinned: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    locked: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)


class Post(Base):
    __tablename__ = "forum_posts"

    id: Mapped[int] = mapped_column(primary_key=True)
    thread_id: Mapped[int] = mapped_column(sa.ForeignKey("forum_threads.id"), nullable=False)
    author_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    prompting_post_id: Mapped[int | None] = mapped_column(sa.ForeignKey("forum_posts.id"), nullable=True)
    content: Mapped[str] = mapped_column(sa.Text, nullable=False)
    state: Mapped[str] = mapped_column(sa.String(32), nullable=False, default=PostState.PUBLISHED)
    published_on: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    edited_on: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)


class ThreadRead(Base):
    __tablename__ = "forum_thread_reads"
    __table_args__ = (sa.UniqueConstraint("thread_id", "reader_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    thread_id: Mapped[int] = mapped_column(sa.ForeignKey("forum_threads.id"), nullable=False)
    reader_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    read_on: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)


class ThreadFollow(Base):
    __tablename__ = "forum_thread_follows"

    id: Mapped[int] = mapped_column(primary_key=True)
    thread_id: Mapped[int] = mapped_column(sa.ForeignKey("forum_threads.id"), nullable=False)
    follower_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    followed_on: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)


class PostLike(Base):
    # No unique constraint on (post_id, liker_id): uniqueness is kept by find-or-create
    __tablename__ = "forum_post_likes"

    id: Mapped[int] = mapped_column(primary_key=True)
    post_id: Mapped[int] = mapped_column(sa.ForeignKey("forum_posts.id"), nullable=False)
    liker_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    liked_on: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)


class SearchIndex(Base):
    __tablename__ = "forum_search_indexes"

    id: Mapped[int] = mapped_column(primary_key=True)
    high_value: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    medium_value: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    low_value: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    thread_id: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    post_id: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)


class UserSignature(Base):
    __tablename__ = "forum_user_signatures"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    signature: Mapped[str] = mapped_column(sa.Text, nullable=False)
    brand: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False, default=utcnow)


sa.Index("idx_forum_threads_category", Thread.category_id)
sa.Index("idx_forum_threads_state", Thread.state, Thread.pinned)
sa.Index("idx_forum_posts_thread_published", Post.thread_id, Post.published_on)
sa.Index("idx_forum_posts_author", Post.author_id)
sa.Index("idx_forum_thread_follows_pair", ThreadFollow.thread_id, ThreadFollow.follower_id)
sa.Index("idx_forum_post_likes_pair", PostLike.post_id, PostLike.liker_id)
sa.Index("idx_forum_search_indexes_thread", SearchIndex.thread_id)
sa.Index("idx_forum_user_signatures_user", UserSignature.user_id, UserSignature.brand)
