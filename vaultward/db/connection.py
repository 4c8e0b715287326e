"""
Single connection factory with pooling for PostgreSQL.

``get_connection()`` is the one transactional scope in Vaultward: it
commits on success, rolls back on any exception, and translates driver
errors into the public taxonomy so no storage error crosses the boundary.

Usage:
    from vaultward.db import get_connection

    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        dal.insert_membership(cur, ...)
        trail.append(cur, ...)     # same transaction
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.pool

from vaultward.config import get_config
from vaultward.errors import Conflict, TransientError

logger = logging.getLogger(__name__)

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def get_pool() -> psycopg2.pool.ThreadedConnectionPool:
    """Get or create the connection pool."""
    global _pool
    if _pool is not None and not _pool.closed:
        return _pool

    with _pool_lock:
        if _pool is not None and not _pool.closed:
            return _pool

        cfg = get_config().db
        logger.info(
            "Creating connection pool: %s@%s:%s/%s (min=%d, max=%d)",
            cfg.user,
            cfg.host,
            cfg.port,
            cfg.name,
            cfg.pool_min,
            cfg.pool_max,
        )
        try:
            _pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=cfg.pool_min,
                maxconn=cfg.pool_max,
                **cfg.dict,
            )
        except psycopg2.OperationalError as e:
            logger.warning("Cannot connect to PostgreSQL at %s:%s/%s: %s", cfg.host, cfg.port, cfg.name, e)
            raise TransientError("Store unavailable, retry later") from e
        return _pool


def translate_error(exc: psycopg2.Error) -> Exception:
    """Map a driver error onto the public error taxonomy."""
    if isinstance(exc, psycopg2.IntegrityError):
        logger.info("Integrity violation: %s", exc.pgcode)
        return Conflict("Request conflicts with the current state")
    if isinstance(exc, psycopg2.OperationalError | psycopg2.InterfaceError):
        # Covers statement timeouts, serialization failures, deadlocks, lost connections
        logger.warning("Transient store failure (%s): %s", exc.pgcode, exc)
        return TransientError("Store unavailable, retry later")
    logger.error("Unexpected store failure (%s)", exc.pgcode, exc_info=exc)
    return TransientError("Store error, retry later")


@contextmanager
def get_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """One transaction on a pooled connection.

    Commits when the block exits cleanly; any exception rolls back. Driver
    errors leave as Conflict / TransientError; a connection the server
    dropped is closed instead of going back to the pool.
    """
    pool = get_pool()
    try:
        conn = pool.getconn()
    except psycopg2.pool.PoolError as e:
        logger.warning("Connection pool exhausted: %s", e)
        raise TransientError("Store busy, retry later") from e

    discard = False
    try:
        yield conn
        conn.commit()
    except psycopg2.Error as e:
        discard = bool(conn.closed)
        if not discard:
            conn.rollback()
        raise translate_error(e) from e
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn, close=discard)


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
