"""
Database connection and management module.
Handles pooled PostgreSQL connections to the hosted backend database.
"""

from psycopg2 import pool, sql
import psycopg2.extras as extras
from psycopg2.extensions import connection as Connection
from contextlib import contextmanager
from typing import Generator, Optional, Dict, Any
import json
import logging

from stockroom.config import settings
from stockroom.core.exceptions import AppException, DatabaseException, pgcode_of

logger = logging.getLogger(__name__)

class DatabaseManager:
    """Manages the connection pool for the hosted database."""

    _instance: Optional["DatabaseManager"] = None
    _pool: Optional[pool.SimpleConnectionPool] = None

    def __new__(cls):
        """Singleton pattern for DatabaseManager."""
        if cls._instance is None:
            cls._instance = super(DatabaseManager, cls).__new__(cls)
            cls._instance._initialize_pool()
        return cls._instance

    def _initialize_pool(self) -> None:
        """Initialize the database connection pool."""
        try:
            self._pool = pool.SimpleConnectionPool(
                minconn=settings.DB_POOL_MIN,
                maxconn=settings.DB_POOL_MAX,
                dsn=settings.DATABASE_URL
            )
            logger.info("Database connection pool initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database pool: {str(e)}")
            raise DatabaseException(f"Database pool initialization failed: {str(e)}", pgcode=pgcode_of(e)) from e

    def _apply_request_claims(self, connection: Connection, claims: Dict[str, Any]) -> None:
        """
        Run the current transaction as the caller so row-level security applies.

        Both settings are transaction-local and vanish on commit/rollback, so a
        pooled connection never leaks one caller's identity to the next.
        """
        cursor = connection.cursor()
        try:
            cursor.execute(
                "SELECT set_config('request.jwt.claims', %s, true)",
                (json.dumps(claims, default=str),)
            )
            cursor.execute(
                sql.SQL("SET LOCAL ROLE {}").format(sql.Identifier(settings.DB_RLS_ROLE))
            )
        finally:
            cursor.close()

    @contextmanager
    def get_connection(self, claims: Optional[Dict[str, Any]] = None) -> Generator[Connection, None, None]:
        """
        Get a pooled connection wrapped in a single transaction.

        Args:
            claims: Verified token claims of the caller; when given (and enabled
                in settings) the transaction runs under the RLS role

        Yields:
            Database connection
        """
        connection = None
        try:
            if not self._pool:
                raise DatabaseException("Connection pool not initialized")

            connection = self._pool.getconn()
            # Ensure psycopg2 knows how to adapt Python's uuid.UUID objects
            try:
                extras.register_uuid(conn_or_curs=connection)
            except Exception:
                logger.debug("Could not register uuid adapter on connection")

            if claims and settings.DB_APPLY_RLS_CLAIMS:
                self._apply_request_claims(connection, claims)

            yield connection
            connection.commit()

        except AppException:
            if connection:
                connection.rollback()
            raise
        except Exception as e:
            if connection:
                connection.rollback()
            code = pgcode_of(e)
            logger.error(f"Database error: {str(e)}", extra={"pgcode": code})
            raise DatabaseException(f"Database operation failed: {str(e)}", pgcode=code) from e
        finally:
            if connection and self._pool:
                self._pool.putconn(connection)

    def get_pool_status(self) -> Dict[str, Any]:
        """
        Get status of the connection pool.

        Returns:
            Dictionary with pool status information
        """
        return {
            "initialized": self._pool is not None,
            "closed": bool(self._pool.closed) if self._pool else True,
            "max_connections": settings.DB_POOL_MAX,
        }

    def close_pool(self) -> None:
        """Close the connection pool."""
        if self._pool:
            self._pool.closeall()
            logger.info("Database connection pool closed")

def get_db_manager() -> DatabaseManager:
    """Get DatabaseManager singleton instance."""
    return DatabaseManager()
