"""
Database configuration and session management
"""
import logging
import time
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.metrics import (db_connection_pool_size, db_queries_total,
                              db_query_duration_seconds)

# Lazy initialization - the engine is created on first use
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None

Base = declarative_base()


def _table_from_statement(operation: str, statement: str) -> str:
    """Best-effort table name for query metrics"""
    words = statement.strip().split()
    keyword = {"select": "FROM", "delete": "FROM", "insert": "INTO"}.get(operation)
    if operation == "update" and len(words) > 1:
        return words[1].lower().strip(';"')
    if keyword:
        for i, word in enumerate(words[:-1]):
            if word.upper() == keyword:
                return words[i + 1].lower().strip(';"')
    return "unknown"


def _setup_db_metrics(engine: Engine):
    """Setup SQLAlchemy event listeners for database metrics"""

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault('query_start_time', []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if not conn.info.get('query_start_time'):
            return
        duration = time.time() - conn.info['query_start_time'].pop()
        stripped = statement.strip()
        operation = stripped.split()[0].lower() if stripped else "unknown"
        table = _table_from_statement(operation, statement)
        db_queries_total.labels(operation=operation, table=table).inc()
        db_query_duration_seconds.labels(operation=operation, table=table).observe(duration)

    if hasattr(engine.pool, "checkedout") and hasattr(engine.pool, "size"):
        @event.listens_for(engine, "checkout")
        def receive_checkout(dbapi_conn, connection_record, connection_proxy):
            pool = engine.pool
            db_connection_pool_size.labels(state="active").set(pool.checkedout())
            db_connection_pool_size.labels(state="idle").set(pool.size() - pool.checkedout())


def get_engine() -> Engine:
    """Get or create database engine (lazy initialization)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        LoggingConfig.configure()

        url = settings.database_url
        if url.startswith("sqlite"):
            _engine = create_engine(
                url,
                echo=settings.log_sqlalchemy,
                connect_args={"check_same_thread": False, "timeout": 5},
            )
        else:
            _engine = create_engine(
                url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_pre_ping=True,
                echo=settings.log_sqlalchemy,
                connect_args={
                    "connect_timeout": 5,
                    "options": "-c statement_timeout=5000",
                },
            )

        if not settings.log_sqlalchemy:
            sqlalchemy_logger = logging.getLogger("sqlalchemy.engine")
            sqlalchemy_logger.setLevel(logging.WARNING)
            sqlalchemy_logger.propagate = False

        _setup_db_metrics(_engine)

    return _engine


def get_session_local() -> sessionmaker:
    """Get or create session factory (lazy initialization)"""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def __getattr__(name):
    """Expose engine and SessionLocal as lazily created module attributes"""
    if name == 'engine':
        return get_engine()
    elif name == 'SessionLocal':
        return get_session_local()
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
