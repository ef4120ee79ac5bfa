import logging
from contextlib import contextmanager
from typing import Generator, Optional

import psycopg
from psycopg.rows import dict_row

from match_service.config import settings

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Short-lived psycopg connections; one per repository call."""

    APPLICATION_NAME = "match_service"

    def __init__(self, connection_string: Optional[str] = None, connect_timeout: Optional[int] = None):
        self.connection_string = connection_string or settings.database_url_clean
        self.connect_timeout = connect_timeout or settings.db_connect_timeout

    @contextmanager
    def get_connection(self) -> Generator:
        """Get a database connection with automatic cleanup"""
        conn = None
        try:
            conn = psycopg.connect(
                self.connection_string,
                connect_timeout=self.connect_timeout,
                application_name=self.APPLICATION_NAME,
            )
            yield conn
        except Exception as e:
            logger.error(f"Database error on {self.APPLICATION_NAME} connection: {e}")
            raise
        finally:
            if conn:
                conn.close()

    @contextmanager
    def get_cursor(self, dict_cursor: bool = True) -> Generator:
        """Get a database cursor; commits on success, rolls back on error"""
        with self.get_connection() as conn:
            row_factory = dict_row if dict_cursor else None
            cursor = conn.cursor(row_factory=row_factory)
            try:
                yield cursor
                conn.commit()
            except Exception as e:
                conn.rollback()
                logger.error(f"Database operation error: {e}")
                raise
            finally:
                cursor.close()

    def test_connection(self) -> bool:
        """Check that the matching database answers a trivial query"""
        try:
            with self.get_cursor() as cursor:
                cursor.execute("SELECT 1")
                return True
        except Exception as e:
            logger.error(f"Connection test failed: {e}")
            return False
