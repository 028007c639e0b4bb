"""
Database engine and session management.

DATABASE_URL selects the backend; SQLite is used when it is not set so the
service can run locally without a database server.
"""

import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./collabtrack.db")

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # SQLite connections are shared across FastAPI's worker threads
    connect_args["check_same_thread"] = False

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a database session for the duration of a request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    Dependency for long-lived connections (WebSocket) that must not hold a
    session open; they open a short session per lookup instead.
    """
    return SessionLocal


def commit_or_fail(db: Session, action: str) -> None:
    """
    Commit the session, rolling back and raising InternalError on failure.

    Args:
        db: Database session
        action: Short description used in the error message ("creating task")
    """
    # Import here to avoid circular dependency
    from errors import InternalError

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while {action}: {e}")
        raise InternalError(f"Error {action}", error=str(e))
