"""Search index rebuild: one row per live thread, written chunk by chunk."""

from __future__ import annotations

import sqlalchemy as sa
import structlog

from forumkit.db import SearchIndex, Thread, not_deleted, utcnow
from forumkit.decorators import Decorator
from forumkit.models import Thread as ThreadEntity

CHUNK_SIZE = 100


def create_search_indexes(
    engine: sa.engine.Engine,
    decorator: Decorator,
    log: structlog.stdlib.BoundLogger,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """Insert a SearchIndex row for every live thread. Returns rows inserted.

    Threads are read in id order with keyset pagination, so each thread lands
    in exactly one chunk even across round-trips. Each chunk commits on its own:
    a failure leaves the chunks before it in place. Existing rows are not
    removed; call :func:`clear_search_indexes` first for a clean rebuild.
    """
    total = 0
    last_id = 0
    columns = Thread.__table__.c

    while True:
        with engine.connect() as conn:
            rows = conn.execute(
                sa.select(*columns)
                .where(not_deleted(Thread), Thread.id > last_id)
                .order_by(Thread.id.asc())
                .limit(chunk_size)
            ).fetchall()
        if not rows:
            break

        threads = decorator.decorate_threads(ThreadEntity.from_row(r) for r in rows)
        now = utcnow()
        chunk = [
            {
                "high_value": None,
                "medium_value": thread.title,
                "low_value": thread.author.display_name,
                "thread_id": thread.id,
                "post_id": None,
                "created_at": now,
                "updated_at": now,
            }
            for thread in threads
        ]
        with engine.begin() as conn:
            conn.execute(sa.insert(SearchIndex), chunk)

        total += len(chunk)
        last_id = rows[-1].id
        log.info("search_index.chunk_indexed", rows=len(chunk), last_thread_id=last_id, total=total)

        if len(rows) < chunk_size:
            break

    log.info("search_index.complete", total=total)
    return total


def clear_search_indexes(engine: sa.engine.Engine) -> int:
    """Delete every search index row. Returns rows removed."""
    with engine.begin() as conn:
        return conn.execute(sa.delete(SearchIndex)).rowcount
