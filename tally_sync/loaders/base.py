"""
Database connection and statement execution.

PostgreSQL is reached through psycopg directly; MySQL and SQL Server go
through a SQLAlchemy engine. A list of statements always runs in one
transaction so a failing batch leaves nothing half-written.
"""
from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Generator, Optional, Union
import psycopg
import sqlalchemy
from sqlalchemy import exc as sa_exc
from loguru import logger
from tenacity import retry, wait_exponential, stop_after_attempt, retry_if_exception_type

from ..config import SyncConfig
from ..exceptions import ConfigurationError, LoadError

# SQLAlchemy drivers per technology
ENGINE_DRIVERS = {
    "mysql": "mysql+pymysql",
    "mssql": "mssql+pyodbc",
}

_CONNECT_ERRORS = (psycopg.OperationalError, sa_exc.OperationalError)


def _engine_url(technology: str, url: str) -> str:
    """Pin the driver on a plain mysql:// or mssql:// URL."""
    scheme, sep, rest = url.partition("://")
    if sep and "+" not in scheme:
        return f"{ENGINE_DRIVERS[technology]}://{rest}"
    return url


@contextmanager
def transaction(conn) -> Generator:
    """
    Context manager for database transactions.

    Automatically commits on success, rolls back on exception.
    """
    with conn.transaction():
        yield


class Database:
    """
    Target database used by the loaders.

    Usage:
        db = Database(config)
        db.open_pool()
        try:
            db.execute_non_query(["delete from t ...", "insert into t ..."])
            db.execute_scalar("select count(*) from t")
        finally:
            db.close_pool()
    """

    def __init__(self, config: SyncConfig):
        self.config = config
        self.technology = config.db_technology
        self._conn: Optional[psycopg.Connection] = None
        self._engine: Optional[sqlalchemy.engine.Engine] = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None or self._engine is not None

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=30),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(_CONNECT_ERRORS),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Retrying database connection (attempt {retry_state.attempt_number})..."
        ),
    )
    def open_pool(self):
        """Connect to the target database."""
        if self.is_open:
            return
        if self.technology == "postgres":
            self._conn = psycopg.connect(self.config.db_url, autocommit=True)
        elif self.technology in ENGINE_DRIVERS:
            engine = sqlalchemy.create_engine(
                _engine_url(self.technology, self.config.db_url),
                pool_pre_ping=True,
            )
            # fail fast if the server is unreachable
            with engine.connect():
                pass
            self._engine = engine
        else:
            raise ConfigurationError(f"No database driver available for {self.technology}")
        logger.info(f"Connected to {self.technology} database")

    def close_pool(self):
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        logger.debug("Database connection closed")

    def execute_scalar(self, sql: str) -> Any:
        """Run a query and return the first column of the first row (None if no rows)."""
        try:
            if self._conn is not None:
                with self._conn.cursor() as cur:
                    cur.execute(sql)
                    row = cur.fetchone()
                    return row[0] if row else None
            with self._require_engine().connect() as conn:
                return conn.execution_options(no_parameters=True).exec_driver_sql(sql).scalar()
        except (psycopg.Error, sa_exc.SQLAlchemyError) as e:
            raise LoadError(f"Query failed: {e}", statement=sql) from e

    def execute_non_query(self, sql: Union[str, list[str]]) -> int:
        """
        Execute one statement, or a list of statements in a single transaction.

        Returns:
            Number of statements executed

        Raises:
            LoadError: With the failing statement; the transaction is rolled back
        """
        statements = [sql] if isinstance(sql, str) else list(sql)
        if not statements:
            return 0
        current = None
        try:
            if self._conn is not None:
                with transaction(self._conn), self._conn.cursor() as cur:
                    for current in statements:
                        cur.execute(current)
            else:
                with self._require_engine().begin() as conn:
                    conn = conn.execution_options(no_parameters=True)
                    for current in statements:
                        conn.exec_driver_sql(current)
        except (psycopg.Error, sa_exc.SQLAlchemyError) as e:
            raise LoadError(f"Statement failed: {e}", statement=current) from e
        return len(statements)

    def _require_engine(self) -> sqlalchemy.engine.Engine:
        if self._engine is None:
            raise LoadError("Database connection is not open")
        return self._engine

    def __enter__(self):
        self.open_pool()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_pool()
        return False
