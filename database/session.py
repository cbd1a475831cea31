"""Database session management"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import settings


def create_db_engine(database_url: str = None, echo: bool = None):
    """Engine for the configured database; SQLite shares one connection"""
    database_url = database_url or settings.database_url
    echo = settings.database_echo if echo is None else echo

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    return create_engine(database_url, pool_size=10, max_overflow=20, echo=echo)


engine = create_db_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield a session and close it afterwards"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_sync():
    """Session context manager for synchronous code"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
