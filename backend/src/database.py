"""Engine and sessions for the record store.

The record store holds correction history, matching history and invoice
line items. The learned pattern store is rebuilt from it and is not persisted.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from config import get_settings
from models.base import Base

DATABASE_URL = get_settings().DATABASE_URL


def _engine_options(url: str) -> dict:
    options = {"pool_pre_ping": True, "echo": False}
    if url.startswith("sqlite"):
        # request handlers and worker threads share the file connection
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(pool_size=5, max_overflow=10)
    return options


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db() -> None:
    """Create missing tables on a fresh database (development and tests)."""
    Base.metadata.create_all(bind=engine)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Session for work outside a request, such as the startup pattern rebuild.

    Commits when the block exits cleanly and rolls back if it raises.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session; routers commit explicitly."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
