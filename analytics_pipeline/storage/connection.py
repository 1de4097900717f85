"""
PostgreSQL connection pool management using psycopg3

Each worker owns one pool; connections are shared within a run but never
across workers.
"""
import time
from contextlib import contextmanager
from pathlib import Path

from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from analytics_pipeline.core.config import DatabaseSettings
from analytics_pipeline.observability.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL_PATH = Path(__file__).with_name("schema.sql")


class DatabaseConnectionPool:
    """
    PostgreSQL connection pool manager using psycopg3

    Provides pooled connections with retry on open and lifecycle management.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "analytics",
        user: str = "pipeline",
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 4,
        timeout: float = 30.0,
        name: str = "analytics-pipeline",
    ) -> None:
        """
        Initialize database connection pool

        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Database user
            password: Database password
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Connection timeout in seconds
            name: Pool name, shows up in psycopg_pool logs

        Raises:
            ValueError: If no password is provided
        """
        if not password:
            raise ValueError(
                "Database password must be provided. "
                "Set DB_PASSWORD environment variable or database.password in the config file."
            )

        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.name = name

        self.conninfo = (
            f"host={host} "
            f"port={port} "
            f"dbname={database} "
            f"user={user} "
            f"password={password} "
            f"connect_timeout={int(timeout)}"
        )

        self._pool: ConnectionPool | None = None

    @classmethod
    def from_settings(cls, settings: DatabaseSettings, name: str = "analytics-pipeline") -> "DatabaseConnectionPool":
        return cls(
            host=settings.host,
            port=settings.port,
            database=settings.database,
            user=settings.user,
            password=settings.password,
            min_size=settings.min_size,
            max_size=settings.max_size,
            timeout=settings.timeout,
            name=name,
        )

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool with retry logic.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between retries in seconds

        Raises:
            OperationalError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        for attempt in range(1, max_retries + 1):
            # A pool that timed out while opening is closed and cannot be reused
            pool = ConnectionPool(
                conninfo=self.conninfo,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                name=self.name,
                kwargs={"row_factory": dict_row},
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self.timeout)
                self._pool = pool
                logger.info(f"Opened database pool '{self.name}' to {self.host}:{self.port}/{self.database}")
                return
            except OperationalError as e:
                if attempt < max_retries:
                    logger.warning(
                        f"Database connection attempt {attempt}/{max_retries} failed: {e}"
                    )
                    time.sleep(retry_delay)
                else:
                    pool.close()
                    raise OperationalError(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    ) from e

    def close(self) -> None:
        """Close the connection pool"""
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self):
        """
        Get a connection from the pool

        Yields:
            psycopg.Connection: Database connection

        Raises:
            RuntimeError: If pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def get_cursor(self):
        """
        Get a cursor from a pooled connection

        Yields:
            psycopg.Cursor: Database cursor
        """
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                yield cur

    def execute_query(self, query: str, params: tuple | dict | None = None) -> list[dict]:
        """
        Execute a SELECT query and return results

        Returns:
            List of dictionaries (one per row)
        """
        with self.get_cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def execute_batch(self, command: str, params_list: list[tuple] | list[dict]) -> int:
        """
        Execute a command for multiple parameter sets in one transaction

        Returns:
            Number of parameter sets executed
        """
        if not params_list:
            return 0

        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(command, params_list)
            conn.commit()
        return len(params_list)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def ensure_schema(pool: DatabaseConnectionPool, schema_path: Path = SCHEMA_SQL_PATH) -> None:
    """
    Create the pipeline tables if they do not exist.

    Args:
        pool: Open database connection pool
        schema_path: DDL file to apply (idempotent CREATE ... IF NOT EXISTS)
    """
    ddl = schema_path.read_text()
    with pool.get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(ddl)
        conn.commit()
    logger.info("Ensured pipeline tables exist")
