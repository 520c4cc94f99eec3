"""
Process-scoped Postgres client.

One `Database` is built at startup and handed to the stores; nothing in the store
modules holds a module-level connection. `close()` runs on shutdown.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from signon.store.config import StoreConfig, build_postgres_dsn

logger = logging.getLogger(__name__)


class DatabaseNotConfigured(RuntimeError):
    pass


class Database:
    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool = None

    @classmethod
    def from_config(cls, cfg: StoreConfig) -> "Database":
        dsn = build_postgres_dsn(cfg)
        if not dsn:
            raise DatabaseNotConfigured("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars)")
        return cls(dsn, min_size=cfg.pool_min_size, max_size=cfg.pool_max_size)

    @property
    def dsn(self) -> str:
        return self._dsn

    def open(self, *, wait_timeout: Optional[float] = 10.0) -> None:
        if self._pool is not None:
            return
        from psycopg_pool import ConnectionPool  # type: ignore[import-not-found]

        pool = ConnectionPool(self._dsn, min_size=self._min_size, max_size=self._max_size, open=False)
        pool.open(wait=wait_timeout is not None, timeout=wait_timeout or 30.0)
        self._pool = pool
        logger.info("Postgres pool opened (min=%d max=%d)", self._min_size, self._max_size)

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.close()
        self._pool = None
        logger.info("Postgres pool closed")

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Borrow a connection; commits on success, rolls back on error."""
        if self._pool is None:
            raise RuntimeError("Database is not open")
        with self._pool.connection() as conn:
            yield conn
