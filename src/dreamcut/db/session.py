"""Engine and session factories for the progress database.

Nothing connects at import time; the engine is built on first use so the
API and CLI can run against the in-memory store without a database.
"""

from collections.abc import Generator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from dreamcut.config import settings


@lru_cache
def get_engine(url: str | None = None) -> Engine:
    """Engine for ``url`` (defaults to ``settings.database_url``), one per URL."""
    return create_engine(
        url or settings.database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def make_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Session factory bound to ``engine``; rows stay readable after commit."""
    return sessionmaker(
        bind=engine or get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def get_session_context(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """One transaction: commit on success, roll back and re-raise on error."""
    session = (factory or make_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def check_connection(bind: Engine | None = None) -> bool:
    """Return True when a trivial query succeeds."""
    with (bind or get_engine()).connect() as conn:
        conn.execute(text("SELECT 1"))
    return True
