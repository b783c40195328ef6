"""Database session. SQLite compatible with connection pooling.

SQLite transactions are opened with BEGIN IMMEDIATE so a sale's unit of work
holds the write lock from its first statement. Concurrent sales therefore
serialize instead of both reading the same stock level; waiting writers block
for up to SQLITE_BUSY_TIMEOUT_SECONDS.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from retailbill.core.config import settings


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_immediate_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy instead of pysqlite
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> Engine:
    """Create an engine for `url` with the pooling and locking this service needs."""
    if is_sqlite(url):
        # SQLite: Use NullPool for thread-safety
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS,
            },
            poolclass=NullPool,
        )
        _enable_immediate_transactions(engine)
        return engine

    # PostgreSQL/MySQL: Use QueuePool with sensible defaults
    return create_engine(
        url,
        pool_size=5,  # Number of persistent connections
        max_overflow=10,  # Max temporary connections
        pool_timeout=30,  # Seconds to wait for connection
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,  # Verify connection health
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = build_session_factory(engine)
