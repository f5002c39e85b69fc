"""Database session management for the refunds and cards tables"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from cashless_refunds.config import settings


def build_engine(database_url: str = settings.database_url):
    """Create the engine; pool limits only apply to server databases, not SQLite"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_seconds,
    )


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
