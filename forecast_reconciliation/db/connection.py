# forecast_reconciliation/db/connection.py
from contextlib import contextmanager
from typing import Dict, Any, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from forecast_reconciliation.config import config
from forecast_reconciliation.exceptions import DatabaseError
from forecast_reconciliation.logging_setup import get_logger

logger = get_logger(__name__)

class DatabaseConfig:
    """Configuration for database connections."""

    @staticmethod
    def get_pool_config() -> Dict[str, Any]:
        """Get connection pool configuration."""
        return {
            'pool_size': config.get_int('DATABASE', 'pool_size', default=10),
            'max_overflow': config.get_int('DATABASE', 'max_overflow', default=20),
            'pool_timeout': config.get_int('DATABASE', 'pool_timeout', default=30),
            'pool_recycle': config.get_int('DATABASE', 'pool_recycle', default=1800),
            'echo': config.get_boolean('DATABASE', 'echo', default=False)
        }

    @staticmethod
    def get_connection_string() -> str:
        return config.get_db_url()

def _enable_sqlite_savepoints(engine: Engine):
    """Let pysqlite run real BEGIN/SAVEPOINT statements.

    The driver otherwise defers BEGIN on its own, which breaks nested
    transactions used for per-cohort rollback.
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

def create_db_engine(connection_string: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL.

    SQLite URLs get a shared in-memory pool (for ``sqlite://``) and the
    SAVEPOINT hooks; other backends use the configured pool settings.
    """
    if connection_string.startswith('sqlite'):
        kwargs = {'echo': echo, 'connect_args': {'check_same_thread': False}}
        if connection_string in ('sqlite://', 'sqlite:///:memory:'):
            kwargs['poolclass'] = StaticPool
        engine = create_engine(connection_string, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    pool_config = DatabaseConfig.get_pool_config()
    return create_engine(
        connection_string,
        pool_size=pool_config['pool_size'],
        max_overflow=pool_config['max_overflow'],
        pool_timeout=pool_config['pool_timeout'],
        pool_recycle=pool_config['pool_recycle'],
        echo=echo or pool_config['echo']
    )

class DatabaseConnection:
    """Database connection handler. Connects lazily on first use."""

    _instance = None

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._engine = None
            cls._instance._SessionLocal = None
        return cls._instance

    def initialize(self, connection_string: Optional[str] = None, create_tables: bool = False):
        """Initialize the database connection.

        Args:
            connection_string: Optional database URL. If not provided, the
                               configured URL is used.
            create_tables: Create all tables after connecting
        """
        connection_string = connection_string or DatabaseConfig.get_connection_string()
        if self._engine is not None:
            self._engine.dispose()

        try:
            self._engine = create_db_engine(connection_string)
            self._SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self._engine
            )
            self._test_connection()
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to initialize database connection: {str(e)}")

        if create_tables:
            self.create_all_tables()

        logger.info(f"Database initialized ({self._engine.dialect.name})")

    def _test_connection(self):
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            raise DatabaseError(f"Database connection test failed: {str(e)}")

    def _ensure_initialized(self):
        if self._engine is None:
            self.initialize()

    @contextmanager
    def session_scope(self) -> Session:
        """Provide transaction scope for database operations."""
        self._ensure_initialized()

        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all_tables(self):
        from forecast_reconciliation.models import Base
        self._ensure_initialized()
        Base.metadata.create_all(bind=self._engine)

    def dispose(self):
        """Release the engine so the next use reconnects."""
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._SessionLocal = None

# Singleton instance
db = DatabaseConnection()

@contextmanager
def session_scope():
    """Context manager for database sessions."""
    with db.session_scope() as session:
        yield session
