"""Pydantic models for forum entities and their decorated views."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_row(cls, row: Any) -> Self:
        """Build an entity from a result row (``Row`` or mapping)."""
        data = row if isinstance(row, Mapping) else row._mapping
        return cls.model_validate(dict(data))


class Category(Entity):
    id: int
    title: str
    slug: str
    description: str | None = None
    weight: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    # Derived per query
    thread_count: int = 0
    post_count: int = 0
    latest_post_id: int | None = None
    latest_post_published_on: datetime | None = None
    latest_post_author_id: int | None = None
    latest_post_thread_id: int | None = None


class Thread(Entity):
    id: int
    category_id: int
    author_id: int
    title: str
    slug: str
    state: str
    pinned: bool = False
    locked: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    # Derived per viewer
    post_count: int = 0
    last_post_published_on: datetime | None = None
    last_post_id: int | None = None
    last_post_user_id: int | None = None
    is_read: bool = False
    is_followed: bool = False


class Post(Entity):
    id: int
    thread_id: int
    author_id: int
    prompting_post_id: int | None = None
    content: str
    state: str
    published_on: datetime
    edited_on: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    # Derived per viewer
    like_count: int = 0
    is_liked_by_viewer: bool = False


class PostLike(Entity):
    id: int
    post_id: int
    liker_id: int
    liked_on: datetime


class ThreadRead(Entity):
    id: int
    thread_id: int
    reader_id: int
    read_on: datetime


class ThreadFollow(Entity):
    id: int
    thread_id: int
    follower_id: int
    followed_on: datetime


class AuthorBlock(BaseModel):
    """Identity data merged into every decorated entity.

    Thread and category decoration fill the first four fields; post decoration fills all of them.
    A user unknown to the identity provider yields the defaults.
    """

    id: int | None = None
    display_name: str = ""
    avatar_url: str | None = None
    access_level: str | None = None
    total_posts: int = 0
    total_post_likes: int = 0
    days_as_member: int = 0
    signature: str | None = None
    xp: int = 0
    xp_rank: str | None = None
    created_at: datetime | None = None


class DecoratedThread(Thread):
    author: AuthorBlock = Field(default_factory=AuthorBlock)
    last_post_author: AuthorBlock | None = None
    url: str = ""


class DecoratedPost(Post):
    author: AuthorBlock = Field(default_factory=AuthorBlock)
    published_on_diff: str = ""


class DecoratedCategory(Category):
    latest_post_author: AuthorBlock | None = None
