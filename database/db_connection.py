# ════════════════════════════════════════════════
# ▶ IMPORTS & LOADS
# ════════════════════════════════════════════════

import logging
import os
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)


class DatabaseNotConnected(RuntimeError):
    pass


# ════════════════════════════════════════════════
# ▶ CONNECT TO POSTGRESQL DATABASE
# ════════════════════════════════════════════════

def get_db_connection(dsn=None):
    ''' Single connection for the setup scripts, rows come back as dicts '''
    return psycopg2.connect(
        dsn or os.environ["DATABASE_URL"],
        cursor_factory=psycopg2.extras.RealDictCursor
    )


class Database:
    '''
    Connection pool shared by the stores.

    Built once at startup and handed to every store. Call open() before the
    first request and close() at shutdown.
    '''

    def __init__(self, dsn, minconn=1, maxconn=10):
        self.dsn = dsn
        self.minconn = minconn
        self.maxconn = maxconn
        self._pool = None

    @property
    def is_open(self):
        return self._pool is not None

    def open(self):
        if self._pool is not None:
            return self
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            self.minconn,
            self.maxconn,
            self.dsn,
            cursor_factory=psycopg2.extras.RealDictCursor
        )
        with self.cursor() as cur:
            cur.execute("SELECT 1 AS test")
        logger.info("Connected to PostgreSQL database")
        return self

    def close(self):
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("Database connection closed")

    @contextmanager
    def cursor(self):
        '''
        Borrow a pooled connection for one unit of work.

        Everything executed on the yielded cursor is committed together when
        the block exits, or rolled back if it raises.
        '''
        if self._pool is None:
            raise DatabaseNotConnected("Database not connected. Call open() first.")

        conn = self._pool.getconn()
        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)
