"""
Connection-pooled access to the labs Postgres database.

Every statement borrows one pooled connection, runs in its own transaction
and hands the connection back straight away. There is no multi-statement
transaction anywhere in the service.
"""

import functools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import anyio
import anyio.to_thread
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from script_labs.config import settings

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


class Database:
    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10, require_ssl: bool = False):
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._require_ssl = require_ssl
        self._pool: Optional[ThreadedConnectionPool] = None
        self._lock = threading.Lock()
        # getconn() fails instead of waiting once max_size connections are out
        self._limiter = anyio.CapacityLimiter(max_size)

    def _get_pool(self) -> ThreadedConnectionPool:
        if self._pool is None:
            with self._lock:
                if self._pool is None:
                    kwargs = {"sslmode": "require"} if self._require_ssl else {}
                    self._pool = ThreadedConnectionPool(
                        self._min_size, self._max_size, dsn=self._dsn, **kwargs
                    )
                    logger.info("Postgres pool created (min=%s, max=%s)", self._min_size, self._max_size)
        return self._pool

    def execute(self, text: str, params: Sequence[Any] = ()) -> QueryResult:
        pool = self._get_pool()
        conn = pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(text, tuple(params))
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
                rowcount = cur.rowcount
            conn.commit()
            return QueryResult(rows=rows, rowcount=rowcount)
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    async def query(self, text: str, params: Sequence[Any] = ()) -> QueryResult:
        """Run one parameterized statement off the event loop.

        At most ``max_size`` statements hold a worker thread at once; the rest
        wait here for a connection to come back to the pool.
        """
        return await anyio.to_thread.run_sync(
            functools.partial(self.execute, text, params), limiter=self._limiter
        )

    def close(self):
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
                logger.info("Postgres pool closed")


class PostgresClient:
    _database: Database = None

    @classmethod
    def get_database(cls) -> Database:
        if cls._database is None:
            cls._database = Database(
                settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
                require_ssl=settings.is_production,
            )
        return cls._database

    @classmethod
    def close(cls):
        if cls._database is not None:
            cls._database.close()
            cls._database = None


def get_db() -> Database:
    return PostgresClient.get_database()
