"""Database engine and session management for the workflow registry."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return
    if not url.database or url.database == ":memory:":
        return

    Path(url.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine suited to the configured backend."""

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, future=True, echo=echo, pool_pre_ping=True)

    _ensure_sqlite_directory(database_url)
    engine_kwargs: dict[str, object] = {
        "future": True,
        "echo": echo,
        "connect_args": {"check_same_thread": False},
    }
    if database_url.endswith(":memory:") or database_url == "sqlite://":
        # One shared connection so every session sees the same in-memory database
        engine_kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **engine_kwargs)


_settings = get_settings()
engine: Engine = build_engine(_settings.database_url, echo=_settings.sql_echo)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
    class_=Session,
)


def init_database() -> None:
    """Create registry tables directly; production deployments use Alembic instead."""

    from app.models import Base

    Base.metadata.create_all(bind=engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency for acquiring a database session."""

    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide a transactional scope for scripts and background jobs."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
