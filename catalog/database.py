from contextlib import contextmanager
from sqlalchemy import create_engine, pool, event
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
import os
from dotenv import load_dotenv
import logging

from catalog.utils.errors import UnavailableError

load_dotenv()
logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./catalog.db")


def _engine_options(url: str) -> dict:
    """Pool settings; SQLite needs cross-thread access for FastAPI's threadpool."""
    options = {
        "pool_pre_ping": True,  # Test connections before using them
        "echo": os.getenv("DB_ECHO", "false").lower() == "true",  # Set to true for SQL debugging
    }
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        return options

    # QueuePool maintains a pool of connections that can be reused
    options.update(
        poolclass=pool.QueuePool,
        pool_size=int(os.getenv("DB_POOL_SIZE", 5)),  # Number of connections to keep open
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", 10)),  # Max connections beyond pool_size
        pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", 30)),  # Seconds to wait for connection
        pool_recycle=int(os.getenv("DB_POOL_RECYCLE", 3600)),  # Recycle connections after 1 hour
    )
    return options


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))


@event.listens_for(engine, "connect")
def receive_connect(dbapi_conn, connection_record):
    """Log when a new connection is created"""
    logger.debug("Database connection established")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI routes
def get_db():
    """
    Database session dependency for FastAPI.
    Automatically handles session creation and cleanup.

    Usage:
        @router.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            # Use db here
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_operation(db: Session, action: str):
    """
    Wrap a unit of database work.

    Rolls back on any database error. Integrity errors propagate unchanged
    so callers can translate them (e.g. duplicate title -> ConflictError);
    every other driver/connection error surfaces as UnavailableError.

    Usage:
        with store_operation(db, "create movie"):
            db.add(movie)
            db.commit()
    """
    try:
        yield
    except IntegrityError:
        db.rollback()
        raise
    except DBAPIError as e:
        db.rollback()
        logger.error(f"Database error during {action}: {e}")
        raise UnavailableError(f"failed to {action}: database unavailable") from e
