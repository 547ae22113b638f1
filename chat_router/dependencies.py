"""FastAPI dependencies shared by the routers.

Rate-limit counters and the recent-response cache are process-wide: one
instance each, created lazily from :func:`~chat_router.settings.get_settings`.
The repository is request-scoped; without ``DATABASE_URL`` a process-local
in-memory store is used so the service can run without PostgreSQL.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from functools import lru_cache

import psycopg
from fastapi import Depends, HTTPException

from .routing.dedup import ResponseCache
from .routing.gatekeeper import ConversationGatekeeper
from .routing.generation import GenerationClient
from .routing.rate_limit import VisitorRateLimiter
from .routing.repository import (
    ChatRepository,
    InMemoryChatRepository,
    PostgresChatRepository,
    ensure_schema,
)
from .settings import get_settings

logger = logging.getLogger(__name__)

_schema_ready: set[str] = set()


@lru_cache(maxsize=1)
def get_rate_limiter() -> VisitorRateLimiter:
    settings = get_settings()
    return VisitorRateLimiter(
        settings.rate_limit,
        settings.rate_window_seconds,
        storage_uri=settings.rate_limit_storage_uri,
    )


@lru_cache(maxsize=1)
def get_response_cache() -> ResponseCache:
    settings = get_settings()
    return ResponseCache(
        settings.duplicate_window_seconds,
        settings.duplicate_cache_size,
    )


@lru_cache(maxsize=1)
def get_generation_client() -> GenerationClient:
    return GenerationClient(get_settings())


@lru_cache(maxsize=1)
def _local_repository() -> InMemoryChatRepository:
    logger.warning("DATABASE_URL not configured; using in-memory chat storage")
    return InMemoryChatRepository()


def _get_conn(database_url: str) -> psycopg.Connection:
    try:
        return psycopg.connect(database_url)
    except psycopg.Error as exc:
        logger.error("Database connection failed: %s", exc)
        raise HTTPException(status_code=500, detail="Database unavailable") from exc


def get_chat_repository() -> Iterator[ChatRepository]:
    """Yield a repository; PostgreSQL work is committed when the request succeeds."""

    database_url = get_settings().database_url
    if not database_url:
        yield _local_repository()
        return
    conn = _get_conn(database_url)
    try:
        if database_url not in _schema_ready:
            ensure_schema(conn)
            _schema_ready.add(database_url)
        yield PostgresChatRepository(conn)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_gatekeeper(
    repository: ChatRepository = Depends(get_chat_repository),
    rate_limiter: VisitorRateLimiter = Depends(get_rate_limiter),
    response_cache: ResponseCache = Depends(get_response_cache),
    generation: GenerationClient = Depends(get_generation_client),
) -> ConversationGatekeeper:
    return ConversationGatekeeper(
        repository,
        rate_limiter=rate_limiter,
        response_cache=response_cache,
        generation=generation,
    )


def reset_shared_state() -> None:
    """Drop process-wide singletons; tests call this between cases."""

    for factory in (get_rate_limiter, get_response_cache, get_generation_client, _local_repository):
        factory.cache_clear()
    _schema_ready.clear()


__all__ = [
    "get_chat_repository",
    "get_gatekeeper",
    "get_generation_client",
    "get_rate_limiter",
    "get_response_cache",
    "reset_shared_state",
]
