"""Account storer backends and configuration-driven selection."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import redis
from psycopg_pool import ConnectionPool

from ..config import Settings
from ..domain.contracts import AccountStorer
from .document import RedisDocumentStorer
from .memory import MemoryStorer
from .postgres import PostgresStorer

logger = logging.getLogger(__name__)

BACKENDS = ("memory", "postgres", "redis")

__all__ = [
    "BACKENDS",
    "MemoryStorer",
    "PostgresStorer",
    "RedisDocumentStorer",
    "open_storer",
]


@contextmanager
def open_storer(settings: Settings) -> Iterator[AccountStorer]:
    """Build the storer named by ``settings.storer_backend`` and release it on exit."""
    backend = settings.storer_backend
    if backend == "memory":
        logger.info("account storer using in-memory backend")
        yield MemoryStorer()
    elif backend == "postgres":
        pool = ConnectionPool(
            settings.database_url,
            open=False,
            timeout=settings.pool_timeout_seconds,
            kwargs={"options": f"-c statement_timeout={settings.statement_timeout_ms}"},
        )
        pool.open()
        try:
            storer = PostgresStorer(pool)
            if settings.postgres_create_schema:
                storer.create_schema()
            logger.info("account storer using postgres backend")
            yield storer
        finally:
            pool.close()
    elif backend == "redis":
        client = redis.from_url(
            settings.redis_url,
            socket_timeout=settings.redis_timeout_seconds,
            socket_connect_timeout=settings.redis_timeout_seconds,
        )
        try:
            logger.info("account storer using redis backend at %s", settings.redis_url)
            yield RedisDocumentStorer(client, namespace=settings.redis_namespace)
        finally:
            client.close()
    else:
        raise ValueError(f"unknown storer backend {backend!r}; expected one of {', '.join(BACKENDS)}")
