"""
Engine and sessions.

DATABASE_URL is read on every engine lookup, not cached in Settings, so a
test can point the app at a fresh SQLite file and call reset_engine().
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///./lawbridge.db"

SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None


def database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _build_engine(url: str) -> Engine:
    options = {"echo": os.environ.get("SQL_ECHO", "false").lower() == "true", "pool_pre_ping": True}
    if url.startswith("sqlite"):
        # sessions cross threads under TestClient and the threadpool
        options["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **options)


def get_engine() -> Engine:
    """Engine for the current DATABASE_URL, rebuilt when the URL changes."""
    global _engine, _engine_url
    url = database_url()
    if _engine is None or _engine_url != url:
        if _engine is not None:
            _engine.dispose()
        _engine = _build_engine(url)
        _engine_url = url
        SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine():
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db():
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency. Routes commit explicitly; nothing is committed here."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Session for scripts and startup work: commit on success, roll back on error."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
