"""Tests for the chunked search index rebuild."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest
import sqlalchemy as sa

from forumkit.db import SearchIndex
from forumkit.decorators import Decorator
from forumkit.search_index import clear_search_indexes, create_search_indexes

T0 = datetime(2024, 1, 15, 12, 0, 0)


def _rows(engine):
    with engine.connect() as conn:
        return conn.execute(sa.select(*SearchIndex.__table__.c).order_by(SearchIndex.thread_id)).fetchall()


class TestCreateSearchIndexes:
    def test_one_row_per_thread_across_chunks(self, engine, seed, config, users, log):
        category_id = seed.category()
        ids = [seed.thread(category_id=category_id, author_id=1 + i % 2, title=f"Thread {i}") for i in range(150)]
        decorator = Decorator(engine, users, config, log)

        total = create_search_indexes(engine, decorator, log, chunk_size=100)

        assert total == 150
        rows = _rows(engine)
        assert [r.thread_id for r in rows] == ids
        assert rows[0].medium_value == "Thread 0"
        assert rows[0].low_value == "Alice"
        assert rows[1].low_value == "Bob"
        assert all(r.high_value is None and r.post_id is None for r in rows)
        chunks = [c for c in log.info.call_args_list if c.args[0] == "search_index.chunk_indexed"]
        assert [c.kwargs["rows"] for c in chunks] == [100, 50]

    def test_skips_deleted_threads(self, engine, seed, config, users, log):
        live = seed.thread(title="Live")
        seed.thread(title="Gone", deleted_at=T0)

        assert create_search_indexes(engine, Decorator(engine, users, config, log), log) == 1
        assert [r.thread_id for r in _rows(engine)] == [live]

    def test_exact_multiple_of_chunk_size(self, engine, seed, config, users, log):
        category_id = seed.category()
        for _ in range(4):
            seed.thread(category_id=category_id)

        assert create_search_indexes(engine, Decorator(engine, users, config, log), log, chunk_size=2) == 4
        assert len(_rows(engine)) == 4

    def test_empty_store(self, engine, config, users, log):
        assert create_search_indexes(engine, Decorator(engine, users, config, log), log) == 0
        log.info.assert_called_with("search_index.complete", total=0)

    def test_failed_chunk_keeps_earlier_chunks(self, engine, seed, config, users, log):
        category_id = seed.category()
        for _ in range(3):
            seed.thread(category_id=category_id)
        decorator = Decorator(engine, users, config, log)
        real = decorator.decorate_threads

        def fail_second_chunk(threads):
            if decorator.decorate_threads.call_count > 1:
                raise RuntimeError("identity down")
            return real(threads)

        decorator.decorate_threads = MagicMock(side_effect=fail_second_chunk)

        with pytest.raises(RuntimeError):
            create_search_indexes(engine, decorator, log, chunk_size=2)

        assert len(_rows(engine)) == 2


class TestClearSearchIndexes:
    def test_removes_all_rows(self, engine, seed, config, users, log):
        seed.thread()
        seed.thread()
        create_search_indexes(engine, Decorator(engine, users, config, log), log)

        assert clear_search_indexes(engine) == 2
        assert _rows(engine) == []
