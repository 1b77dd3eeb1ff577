"""Postgres helpers backing DbRecordStore."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Iterable, Iterator

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool


_POOL: SimpleConnectionPool | None = None
_logger = logging.getLogger("strata.db")
_query_logger = logging.getLogger("strata.db.query")
SLOW_QUERY_MS = float(os.getenv("STRATA_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("STRATA_QUERY_LOG", "").strip() == "1"
_MAX_PARAM_CHARS = 80


def database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required when USE_DB=1")
    return url


def _shorten(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<bytes:{len(value)}>"
    if isinstance(value, str) and len(value) > _MAX_PARAM_CHARS:
        return f"{value[:40]}...({len(value)} chars)"
    return value


def _report(query_name: str | None, params: Iterable[Any] | None, elapsed_ms: float, rowcount: int | None) -> None:
    slow = elapsed_ms >= SLOW_QUERY_MS
    if not (query_name or slow or _LOG_ALL):
        return
    shown = None if params is None else [_shorten(val) for val in params]
    line = "query=%s ms=%.2f rowcount=%s params=%s"
    args = (query_name or "unnamed", elapsed_ms, rowcount, shown)
    if slow:
        _query_logger.warning("db_slow " + line, *args)
    else:
        _query_logger.info("db " + line, *args)


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> SimpleConnectionPool:
    global _POOL
    if _POOL is None:
        low = minconn if minconn is not None else int(os.getenv("STRATA_DB_POOL_MIN", "1"))
        high = maxconn if maxconn is not None else int(os.getenv("STRATA_DB_POOL_MAX", "10"))
        _POOL = SimpleConnectionPool(low, high, dsn=database_url())
        _logger.info("db_pool_ready min=%s max=%s", low, high)
    return _POOL


@contextmanager
def get_conn():
    """Borrow a pooled connection; commit on success, roll back on error."""
    pool = init_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


@contextmanager
def _timed_cursor(conn, sql: str, params, query_name: str | None, dict_rows: bool) -> Iterator[Any]:
    factory = psycopg2.extras.RealDictCursor if dict_rows else None
    started = time.perf_counter()
    with conn.cursor(cursor_factory=factory) as cur:
        cur.execute(sql, list(params or []))
        yield cur
        rowcount = cur.rowcount
    _report(query_name, params, (time.perf_counter() - started) * 1000, rowcount)


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    with _timed_cursor(conn, sql, params, query_name, dict_rows=True) as cur:
        row = cur.fetchone()
    return dict(row) if row else None


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    with _timed_cursor(conn, sql, params, query_name, dict_rows=True) as cur:
        rows = cur.fetchall()
    return [dict(row) for row in rows]


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    with _timed_cursor(conn, sql, params, query_name, dict_rows=False) as cur:
        return cur.rowcount
