"""
Database session management with SQLAlchemy 2.0.

Provides engine configuration, session creation and context managers
for safe database access with automatic transaction rollback.
"""

import time
from contextlib import contextmanager
from typing import Generator, Dict, Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IllegalStateChangeError
from sqlalchemy.orm import Session, sessionmaker, scoped_session
from loguru import logger

from stockpulse.config import settings
from stockpulse.utils.datetime import utcnow


def _engine_kwargs(database_url: str) -> Dict[str, Any]:
    """Pool and driver options for the configured backend."""
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        # Handlers run in a thread pool; writers wait on the file lock instead of failing
        return {
            "connect_args": {"check_same_thread": False, "timeout": 30},
            "echo": settings.debug,
        }

    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
        "echo": settings.debug,
        "connect_args": {
            "connect_timeout": 10,
            "options": "-c statement_timeout=60000",  # 60 second query timeout
        },
    }


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))

SessionFactory = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Prevent lazy load issues after commit
)

# Thread-local registry for jobs and scripts; request handlers use SessionFactory directly
SessionLocal = scoped_session(SessionFactory)


def init_db() -> None:
    """Initialize database schema (create all tables).

    Note: This is idempotent - it only creates tables/indexes that don't exist.
    """
    from stockpulse.db.models import Base

    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Database schema initialized successfully")


def get_db() -> Session:
    """
    Get a database session.

    Caller is responsible for closing the session with close_db_session()
    or using get_db_context().
    """
    return SessionLocal()


def close_db_session(db: Session) -> None:
    """Properly close a database session and remove it from the registry.

    Prevents "idle in transaction" by calling both close() and remove().
    """
    try:
        db.close()
    except IllegalStateChangeError:
        # Session already closed
        pass

    try:
        SessionLocal.remove()
    except IllegalStateChangeError:
        pass


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Get a database session as a context manager.

    Usage:
        with get_db_context() as db:
            prediction = db.query(Prediction).first()

    The session is automatically committed on success and rolled back on error.
    """
    db = get_db()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database transaction failed: {e}")
        raise
    finally:
        close_db_session(db)


def check_db_health() -> Dict[str, Any]:
    """Connection test with latency, used by the health endpoint."""
    result = {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "latency_ms": None,
        "errors": [],
    }

    start_time = time.time()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        result["latency_ms"] = round((time.time() - start_time) * 1000, 2)
    except Exception as e:
        result["status"] = "unhealthy"
        result["errors"].append(f"Connection test failed: {e}")

    return result
