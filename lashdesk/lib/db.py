"""
Database engine and session management using SQLAlchemy 2.x.
"""
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase

from lashdesk.lib.settings import settings


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets a thread-tolerant connection, servers get a pool."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=settings.debug,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        echo=settings.debug,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
    )


engine = build_engine(settings.database_url)


SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes to get a database session.

    Usage:
        @app.get("/example")
        def example(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = engine):
    """
    Create all tables.
    Should be called after all models are imported.
    """
    import lashdesk.models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=bind)


def drop_db(bind: Engine = engine):
    """Drop all tables. Testing only."""
    Base.metadata.drop_all(bind=bind)
