import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Optional

from mysql.connector import pooling

from .config import config

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, settings=config) -> None:
        self.settings = settings
        self._pool: Optional[pooling.MySQLConnectionPool] = None

    @property
    def pool(self) -> pooling.MySQLConnectionPool:
        # Created on first use so importing the app never opens a connection.
        if self._pool is None:
            logger.info("Opening MySQL pool to %s:%s/%s", self.settings.DB_HOST, self.settings.DB_PORT, self.settings.DB_NAME)
            self._pool = pooling.MySQLConnectionPool(
                pool_name="split_bills_pool",
                pool_size=self.settings.DB_POOL_SIZE,
                host=self.settings.DB_HOST,
                port=self.settings.DB_PORT,
                user=self.settings.DB_USER,
                password=self.settings.DB_PASSWORD,
                database=self.settings.DB_NAME,
                auth_plugin="mysql_native_password",
            )
        return self._pool

    @contextmanager
    def transaction(self):
        """Yield a dict cursor on a pooled connection; commit on success, roll back on error."""
        conn = self.pool.get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            yield cursor
        except Exception:
            conn.rollback()
            logger.exception("Rolled back session store transaction")
            raise
        else:
            conn.commit()
        finally:
            cursor.close()
            # returns the connection to the pool
            conn.close()

    def fetch_one(self, query: str, params: Optional[Iterable[Any]] = None) -> Optional[Dict[str, Any]]:
        with self.transaction() as cursor:
            cursor.execute(query, tuple(params or ()))
            return cursor.fetchone()

    def execute(self, query: str, params: Optional[Iterable[Any]] = None) -> int:
        """Run a statement and return the number of affected rows."""
        with self.transaction() as cursor:
            cursor.execute(query, tuple(params or ()))
            return cursor.rowcount


db = Database()
