"""Service wiring."""

from __future__ import annotations

from dataclasses import dataclass

import sqlalchemy as sa
import structlog

from forumkit.cache import CachedQuery, QueryCache, build_cache
from forumkit.config import AppConfig
from forumkit.decorators import Decorator
from forumkit.events import EventDispatcher
from forumkit.identity import UserProvider
from forumkit.sanitizer import Sanitizer
from forumkit.services.categories import CategoryService
from forumkit.services.likes import PostLikeService
from forumkit.services.posts import PostService
from forumkit.services.threads import ThreadService


@dataclass
class Services:
    cache: CachedQuery
    decorator: Decorator
    events: EventDispatcher
    categories: CategoryService
    threads: ThreadService
    posts: PostService
    likes: PostLikeService


def build_services(
    engine: sa.engine.Engine,
    config: AppConfig,
    users: UserProvider,
    sanitizer: Sanitizer,
    log: structlog.stdlib.BoundLogger,
    *,
    cache: QueryCache | None = None,
    events: EventDispatcher | None = None,
) -> Services:
    """Wire every service around one cache, decorator and event dispatcher."""
    cached = CachedQuery(engine, cache if cache is not None else build_cache(config.settings), log)
    decorator = Decorator(engine, users, config, log)
    events = events if events is not None else EventDispatcher(log)
    return Services(
        cache=cached,
        decorator=decorator,
        events=events,
        categories=CategoryService(engine, cached, decorator, log),
        threads=ThreadService(engine, cached, decorator, events, log),
        posts=PostService(engine, cached, decorator, sanitizer, log),
        likes=PostLikeService(engine, cached, log),
    )
