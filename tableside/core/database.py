"""
Database configuration and session management
"""

from contextlib import contextmanager
from typing import Generator

from sqlmodel import SQLModel, Session, create_engine
import structlog

from tableside.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)


def init_db():
    """Initialize database tables"""
    # Import models so every table is registered on the metadata
    import tableside.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("Database tables created")


def get_session() -> Generator[Session, None, None]:
    """Dependency to get database session"""
    with Session(engine) as session:
        yield session


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """
    Scope one unit of work on an injected session.

    Commits when the block exits normally and rolls back on any exception,
    re-raising it. Row locks taken inside the block are held until the
    commit or rollback.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
