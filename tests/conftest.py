"""Shared test fixtures: per-test database, identity provider and wired services."""

from __future__ import annotations

import os
import re
from datetime import datetime
from unittest.mock import MagicMock

import pytest
import sqlalchemy as sa

from forumkit.cache import MemoryQueryCache
from forumkit.config import AppConfig
from forumkit.db import Base, Category, Post, PostLike, Thread, ThreadFollow, ThreadRead, UserSignature, get_engine
from forumkit.events import EventDispatcher
from forumkit.identity import StaticUserProvider, User, XPRank
from forumkit.services import build_services
from forumkit.settings import Settings

T0 = datetime(2024, 1, 15, 12, 0, 0)
DEFAULT_AVATAR = "https://cdn.example.com/default-avatar.png"


class StripScriptsSanitizer:
    """Stand-in for the real HTML sanitizer."""

    def clean(self, raw_html: str) -> str:
        return re.sub(r"<script\b.*?</script>", "", raw_html, flags=re.S | re.I)


class Seeder:
    """Direct inserts, bypassing services and the cache."""

    def __init__(self, engine: sa.engine.Engine) -> None:
        self.engine = engine

    def _insert(self, model, **values) -> int:
        with self.engine.begin() as conn:
            return conn.execute(sa.insert(model).values(**values)).inserted_primary_key[0]

    def category(self, title: str = "General", weight: int = 0, **extra) -> int:
        return self._insert(Category, title=title, slug=title.lower(), weight=weight, **extra)

    def thread(
        self,
        category_id: int | None = None,
        author_id: int = 1,
        title: str = "A thread",
        state: str = "published",
        pinned: bool = False,
        **extra,
    ) -> int:
        if category_id is None:
            category_id = self.category()
        return self._insert(
            Thread,
            category_id=category_id,
            author_id=author_id,
            title=title,
            slug=title.lower().replace(" ", "-"),
            state=state,
            pinned=pinned,
            **extra,
        )

    def post(
        self,
        thread_id: int,
        author_id: int = 1,
        published_on: datetime = T0,
        content: str = "Hello",
        state: str = "published",
        **extra,
    ) -> int:
        return self._insert(
            Post,
            thread_id=thread_id,
            author_id=author_id,
            published_on=published_on,
            content=content,
            state=state,
            **extra,
        )

    def read(self, thread_id: int, reader_id: int, read_on: datetime) -> int:
        return self._insert(ThreadRead, thread_id=thread_id, reader_id=reader_id, read_on=read_on)

    def follow(self, thread_id: int, follower_id: int) -> int:
        return self._insert(ThreadFollow, thread_id=thread_id, follower_id=follower_id)

    def like(self, post_id: int, liker_id: int) -> int:
        return self._insert(PostLike, post_id=post_id, liker_id=liker_id)

    def signature(self, user_id: int, signature: str, brand: str = "drumeo") -> int:
        return self._insert(UserSignature, user_id=user_id, signature=signature, brand=brand)

    def count(self, model, *criteria) -> int:
        with self.engine.connect() as conn:
            return conn.execute(sa.select(sa.func.count()).select_from(model).where(*criteria)).scalar()


@pytest.fixture
def engine(tmp_path):
    """Fresh database per test: file-backed SQLite unless FORUM_TEST_DATABASE_URL is set."""
    url = os.environ.get("FORUM_TEST_DATABASE_URL", f"sqlite:///{tmp_path / 'forum.db'}")
    eng = get_engine(url)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def seed(engine) -> Seeder:
    return Seeder(engine)


@pytest.fixture
def log():
    return MagicMock()


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return AppConfig(
        brand="drumeo",
        default_avatar_url=DEFAULT_AVATAR,
        thread_url_template="https://forum.example.com/threads/{id}/{slug}",
        settings=Settings(database_url="sqlite://", log_dir=str(tmp_path / "logs"), decorator_max_workers=4),
    )


@pytest.fixture
def users() -> StaticUserProvider:
    return StaticUserProvider(
        [
            User(id=1, display_name="Alice", profile_picture_url="https://cdn.example.com/alice.png", created_at=datetime(2023, 1, 15)),
            User(id=2, display_name="Bob", profile_picture_url=None, created_at=datetime(2023, 12, 16)),
            User(id=3, display_name="Carol", profile_picture_url="https://cdn.example.com/carol.png", created_at=datetime(2020, 5, 1)),
        ],
        access_levels={1: "admin", 2: "pack", 3: "edge"},
        xp={1: XPRank(xp=1200, xp_rank="Expert"), 3: XPRank(xp=50, xp_rank="Novice")},
        current_id=1,
    )


@pytest.fixture
def memory_cache() -> MemoryQueryCache:
    return MemoryQueryCache()


@pytest.fixture
def dispatcher(log) -> EventDispatcher:
    return EventDispatcher(log)


@pytest.fixture
def services(engine, config, users, log, memory_cache, dispatcher):
    return build_services(engine, config, users, StripScriptsSanitizer(), log, cache=memory_cache, events=dispatcher)
