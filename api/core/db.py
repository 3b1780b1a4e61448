"""
Async database access helpers (raw SQL) using asyncpg.

`Database` owns the connection pool. FastAPI opens it on startup and closes
it on shutdown (see `api/main.py`); routes receive it through a dependency.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg
from fastapi import Request

from .errors import PersistenceError
from .settings import Settings


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


class Database:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._pool: asyncpg.Pool | None = None

    def database_url(self) -> str:
        url = (self._settings.database_url or "").strip()
        if not url:
            raise RuntimeError("DATABASE_URL is not set.")
        return _sanitize_database_url(url)

    async def open(self) -> None:
        if self._pool is not None:
            return None
        self._pool = await asyncpg.create_pool(
            dsn=self.database_url(),
            min_size=self._settings.db_pool_min,
            max_size=self._settings.db_pool_max,
            command_timeout=self._settings.db_command_timeout,
        )

    async def close(self) -> None:
        if self._pool is None:
            return None
        await self._pool.close()
        self._pool = None

    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("DB pool is not initialized. Call open() on startup.")
        return self._pool

    async def fetch_one(self, sql: str, *args: Any) -> dict[str, Any] | None:
        """
        Run a query and return a single row as a dict (or None).
        """
        try:
            row = await self.pool().fetchrow(sql, *args)
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError("Database operation failed", error=str(exc)) from exc
        return _record_to_dict(row) if row is not None else None

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """
        Run a query and return all rows as a list of dicts.
        """
        try:
            rows = await self.pool().fetch(sql, *args)
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError("Database operation failed", error=str(exc)) from exc
        return [_record_to_dict(r) for r in rows]


def get_database(request: Request) -> Database:
    """
    FastAPI dependency: the pool opened in the app lifespan.
    """
    return request.app.state.db
