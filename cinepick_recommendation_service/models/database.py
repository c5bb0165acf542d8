"""Engine and session factory shared by the pipeline's worker threads."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cinepick_recommendation_service.config import get_database_url, get_fetch_max_workers

# Retrieval branches, metadata writes and the metrics tracker each open their own session
POOL_OVERFLOW = 4


def create_database_engine(url: str, pool_size: int = 8) -> Engine:
    """
    Create an engine whose connections may be used from executor threads.

    Args:
        url: SQLAlchemy database URL
        pool_size: Persistent connections kept open (server databases only)

    Returns:
        Engine
    """
    if url.startswith("sqlite"):
        # One shared in-process connection, usable from any thread
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False
        )

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_size=pool_size,
        max_overflow=POOL_OVERFLOW,
        echo=False  # Set to True for SQL debugging
    )


DATABASE_URL = get_database_url()

if DATABASE_URL is None:
    raise ValueError("DATABASE_URL is not configured. Set the DATABASE_URL environment variable.")

engine = create_database_engine(DATABASE_URL, pool_size=get_fetch_max_workers())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield a session and close it when the caller is done"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
