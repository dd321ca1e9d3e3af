"""Click CLI with commands: status, threads, reindex."""

from __future__ import annotations

import click
import sqlalchemy as sa
import structlog

from forumkit.cache import CachedQuery, build_cache
from forumkit.config import AppConfig, load_config
from forumkit.db import Category, Post, PostLike, SearchIndex, Thread, get_engine, not_deleted
from forumkit.decorators import Decorator
from forumkit.events import EventDispatcher
from forumkit.identity import HttpUserProvider, StaticUserProvider, UserProvider
from forumkit.search_index import clear_search_indexes, create_search_indexes
from forumkit.services.threads import ThreadService
from forumkit.utils.logging import setup_logging


def _logger(cfg: AppConfig, command: str) -> structlog.stdlib.BoundLogger:
    s = cfg.settings
    return setup_logging(s.log_dir, command, level=s.log_level, json_stdout=s.log_json)


def _user_provider(cfg: AppConfig, log: structlog.stdlib.BoundLogger) -> UserProvider:
    if cfg.settings.identity_base_url:
        return HttpUserProvider.from_settings(cfg.settings, log)
    log.warning("cli.no_identity_provider", hint="set FORUM_IDENTITY_BASE_URL")
    return StaticUserProvider()


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config YAML file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """Forumkit: forum content service tools."""
    ctx.ensure_object(dict)
    cfg = load_config(config_path)
    ctx.obj["config"] = cfg
    ctx.obj["engine"] = get_engine(cfg.settings.database_url)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show row counts per table and thread state."""
    engine = ctx.obj["engine"]

    with engine.connect() as conn:
        categories = conn.execute(sa.select(sa.func.count(Category.id)).where(not_deleted(Category))).scalar()
        click.echo("\n=== Categories ===")
        click.echo(f"  {categories} live")

        states = conn.execute(
            sa.select(Thread.state, sa.func.count(Thread.id)).where(not_deleted(Thread)).group_by(Thread.state)
        ).fetchall()
        click.echo("\n=== Threads by State ===")
        for state, count in states:
            click.echo(f"  {state}: {count}")
        if not states:
            click.echo("  No threads yet.")

        posts = conn.execute(sa.select(sa.func.count(Post.id)).where(not_deleted(Post))).scalar()
        deleted = conn.execute(sa.select(sa.func.count(Post.id)).where(Post.deleted_at.isnot(None))).scalar()
        likes = conn.execute(sa.select(sa.func.count(PostLike.id))).scalar()
        click.echo("\n=== Posts ===")
        click.echo(f"  Live: {posts}  |  Deleted: {deleted}  |  Likes: {likes}")

        indexed = conn.execute(sa.select(sa.func.count(SearchIndex.id))).scalar()
        click.echo("\n=== Search Index ===")
        click.echo(f"  Rows: {indexed}")

    click.echo()


@cli.command()
@click.option("--viewer", "viewer_id", type=int, default=None, help="Viewer user id for read/follow flags.")
@click.option("--page", default=1, type=int, help="1-indexed page.")
@click.option("--size", default=None, type=int, help="Page size (default from config).")
@click.option("--category", "category_ids", type=int, multiple=True, help="Restrict to category id (repeatable).")
@click.option("--followed", is_flag=True, help="Only threads the viewer follows.")
@click.pass_context
def threads(
    ctx: click.Context, viewer_id: int | None, page: int, size: int | None, category_ids: tuple[int, ...], followed: bool
) -> None:
    """Print one page of the decorated thread listing."""
    cfg = ctx.obj["config"]
    engine = ctx.obj["engine"]
    log = _logger(cfg, "threads")

    decorator = Decorator(engine, _user_provider(cfg, log), cfg, log)
    service = ThreadService(engine, CachedQuery(engine, build_cache(cfg.settings), log), decorator, EventDispatcher(log), log)
    listing = service.get_threads(
        viewer_id,
        page,
        size or cfg.default_page_size,
        category_ids=category_ids or None,
        followed=True if followed else None,
    )

    if not listing:
        click.echo("No threads.")
        return
    for thread in listing:
        flags = ("R" if thread.is_read else "-") + ("F" if thread.is_followed else "-") + ("P" if thread.pinned else "-")
        last = thread.last_post_published_on.isoformat(sep=" ", timespec="minutes") if thread.last_post_published_on else "never"
        author = thread.author.display_name or f"#{thread.author_id}"
        click.echo(f"  [{flags}] {thread.id:>6}  {thread.title}  by {author}  posts={thread.post_count}  last={last}")


@cli.command()
@click.option("--clear", is_flag=True, help="Delete existing index rows first.")
@click.option("--chunk-size", default=None, type=int, help="Threads per chunk (default from config).")
@click.pass_context
def reindex(ctx: click.Context, clear: bool, chunk_size: int | None) -> None:
    """Rebuild thread search index rows."""
    cfg = ctx.obj["config"]
    engine = ctx.obj["engine"]
    log = _logger(cfg, "reindex")

    if clear:
        removed = clear_search_indexes(engine)
        log.info("reindex.cleared", rows=removed)

    decorator = Decorator(engine, _user_provider(cfg, log), cfg, log)
    total = create_search_indexes(engine, decorator, log, chunk_size=chunk_size or cfg.search_chunk_size)
    click.echo(f"Indexed {total} threads.")
