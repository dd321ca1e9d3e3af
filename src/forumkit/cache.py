"""Query result cache keyed by statement signature, invalidated per table.

Every table carries a generation counter. A stored result remembers the
generations of the tables it was read from; invalidating a table bumps its
counter, so any result read before the bump (including one still being
computed while the mutation ran) no longer matches and is recomputed.
"""

from __future__ import annotations

import hashlib
import pickle
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable, Sequence
from typing import Any, Protocol

import redis
import sqlalchemy as sa
import structlog

from forumkit.settings import Settings

Generations = tuple[int, ...]


def query_signature(stmt: sa.Executable, dialect: sa.engine.Dialect) -> str:
    """Deterministic key from the compiled SQL (tables, filters, ordering, paging) and its bound values."""
    compiled = stmt.compile(dialect=dialect)
    params = sorted((name, repr(value)) for name, value in compiled.params.items())
    digest = hashlib.sha256(f"{compiled}\x00{params}".encode()).hexdigest()
    return digest[:32]


class QueryCache(Protocol):
    """Storage backend for :class:`CachedQuery`."""

    def generations(self, tables: Sequence[str]) -> Generations:
        """Current generation of each table, in the given order."""
        ...

    def get(self, signature: str) -> tuple[Generations, Any] | None:
        """Stored ``(generations, value)`` for *signature*, or None."""
        ...

    def set(self, signature: str, tables: Sequence[str], generations: Generations, value: Any) -> None:
        """Store *value*, replacing any previous value for *signature*."""
        ...

    def invalidate(self, *tables: str) -> None:
        """Drop every stored value read from any of *tables*."""
        ...


class NullQueryCache:
    """Caching disabled: every lookup misses."""

    def generations(self, tables: Sequence[str]) -> Generations:
        return ()

    def get(self, signature: str) -> tuple[Generations, Any] | None:
        return None

    def set(self, signature: str, tables: Sequence[str], generations: Generations, value: Any) -> None:
        pass

    def invalidate(self, *tables: str) -> None:
        pass


class MemoryQueryCache:
    """In-process cache for a single worker.

    Holds at most *maxsize* results, evicting the least recently used one
    first. Results older than *ttl* seconds are dropped on access; ``ttl=0``
    keeps them until evicted or invalidated.
    """

    def __init__(self, *, maxsize: int = 1024, ttl: int = 3600, clock: Callable[[], float] = time.monotonic) -> None:
        self.maxsize = max(1, maxsize)
        self.ttl = max(0, ttl)
        self._clock = clock
        self._lock = threading.Lock()
        self._generations: dict[str, int] = {}
        self._entries: OrderedDict[str, tuple[frozenset[str], Generations, Any, float]] = OrderedDict()

    def generations(self, tables: Sequence[str]) -> Generations:
        with self._lock:
            return tuple(self._generations.get(t, 0) for t in tables)

    def _expired(self, stored_at: float) -> bool:
        return self.ttl > 0 and self._clock() - stored_at > self.ttl

    def get(self, signature: str) -> tuple[Generations, Any] | None:
        with self._lock:
            entry = self._entries.get(signature)
            if entry is None:
                return None
            _, generations, value, stored_at = entry
            if self._expired(stored_at):
                del self._entries[signature]
                return None
            self._entries.move_to_end(signature)
        return generations, value

    def set(self, signature: str, tables: Sequence[str], generations: Generations, value: Any) -> None:
        with self._lock:
            # Computed before an invalidation finished: would be unreachable anyway
            if generations != tuple(self._generations.get(t, 0) for t in tables):
                return
            self._entries[signature] = (frozenset(tables), generations, value, self._clock())
            self._entries.move_to_end(signature)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def invalidate(self, *tables: str) -> None:
        with self._lock:
            for table in tables:
                self._generations[table] = self._generations.get(table, 0) + 1
            doomed = set(tables)
            self._entries = OrderedDict((sig, e) for sig, e in self._entries.items() if not (e[0] & doomed))

    def __len__(self) -> int:
        return len(self._entries)


class RedisQueryCache:
    """Cache shared between workers. Generations live in Redis counters; values expire after *ttl*."""

    def __init__(self, client: redis.Redis, *, prefix: str = "forumkit", ttl: int = 3600) -> None:
        self.client = client
        self.prefix = prefix
        self.ttl = ttl

    def _gen_key(self, table: str) -> str:
        return f"{self.prefix}:gen:{table}"

    def _value_key(self, signature: str) -> str:
        return f"{self.prefix}:q:{signature}"

    def generations(self, tables: Sequence[str]) -> Generations:
        if not tables:
            return ()
        raw = self.client.mget([self._gen_key(t) for t in tables])
        return tuple(int(v) if v is not None else 0 for v in raw)

    def get(self, signature: str) -> tuple[Generations, Any] | None:
        raw = self.client.get(self._value_key(signature))
        if raw is None:
            return None
        return pickle.loads(raw)

    def set(self, signature: str, tables: Sequence[str], generations: Generations, value: Any) -> None:
        # A single SET replaces the whole value; readers never see a partial write
        self.client.set(self._value_key(signature), pickle.dumps((generations, value)), ex=self.ttl)

    def invalidate(self, *tables: str) -> None:
        pipe = self.client.pipeline()
        for table in tables:
            pipe.incr(self._gen_key(table))
        pipe.execute()


def build_cache(settings: Settings) -> QueryCache:
    """Cache backend selected by ``settings.cache_backend``."""
    if settings.cache_backend == "redis":
        return RedisQueryCache(redis.Redis.from_url(settings.redis_url), ttl=settings.cache_ttl_seconds)
    if settings.cache_backend == "none":
        return NullQueryCache()
    return MemoryQueryCache(maxsize=settings.cache_max_entries, ttl=settings.cache_ttl_seconds)


class CachedQuery:
    """Executes listing statements through a :class:`QueryCache`."""

    def __init__(self, engine: sa.engine.Engine, cache: QueryCache, log: structlog.stdlib.BoundLogger) -> None:
        self.engine = engine
        self.cache = cache
        self.log = log

    def _cached(self, stmt: sa.Select, tables: Iterable[str], load) -> Any:
        ordered = sorted(set(tables))
        signature = query_signature(stmt, self.engine.dialect)
        generations = self.cache.generations(ordered)

        hit = self.cache.get(signature)
        if hit is not None and hit[0] == generations:
            self.log.debug("cache.hit", signature=signature)
            return hit[1]

        with self.engine.connect() as conn:
            value = load(conn.execute(stmt))
        self.cache.set(signature, ordered, generations, value)
        self.log.debug("cache.stored", signature=signature, tables=ordered)
        return value

    def fetch_all(self, stmt: sa.Select, tables: Iterable[str]) -> list[dict[str, Any]]:
        """All rows as plain dicts."""
        return self._cached(stmt, tables, lambda result: [dict(row._mapping) for row in result])

    def scalar(self, stmt: sa.Select, tables: Iterable[str]) -> Any:
        return self._cached(stmt, tables, lambda result: result.scalar())

    def invalidate(self, *tables: str) -> None:
        """Synchronously drop everything read from *tables*."""
        self.cache.invalidate(*tables)
        self.log.debug("cache.invalidated", tables=list(tables))
