"""
Database engine and session for the Context API. SQLite for development; in-memory
SQLite (tests) shares one connection through StaticPool.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from context_api.config import DATABASE_URL
from context_api.models import Base, LaunchContext

logger = logging.getLogger(__name__)


def make_engine(url: str):
    if url.startswith("sqlite:///:memory:"):
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    # FastAPI runs sync routes in a threadpool
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=engine)


def purge_expired(db: Session) -> int:
    """Delete launch contexts past their expiry. Returns the number removed."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    result = db.execute(delete(LaunchContext).where(LaunchContext.expires_at < now))
    db.commit()
    if result.rowcount:
        logger.info("Purged %d expired launch context(s)", result.rowcount)
    return result.rowcount


def get_db():
    """Dependency: yield a DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
