from __future__ import annotations

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from bepit.core.config import get_settings
from bepit.db.base import Base

_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _resolve_database_url() -> str:
    settings = get_settings()
    backend = (settings.db_backend or "sqlite").strip().lower()
    if backend == "postgres":
        db_url = (settings.postgres_url or "").strip()
        if not db_url:
            raise ValueError("BEPIT_POSTGRES_URL / DATABASE_URL must be configured when DB_BACKEND=postgres.")
    elif backend == "sqlite":
        db_url = (settings.sqlite_url or "").strip()
        if not db_url:
            raise ValueError("BEPIT_SQLITE_URL / SQLITE_URL must be configured when DB_BACKEND=sqlite.")
    else:
        raise ValueError(f"Unsupported DB_BACKEND: {settings.db_backend}")
    return db_url


def _get_engine() -> Engine:
    global _engine
    if _engine is None:
        db_url = _resolve_database_url()
        kwargs: dict[str, object] = {}
        if db_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs["pool_pre_ping"] = True
        _engine = create_engine(db_url, **kwargs)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=_get_engine(), autoflush=False, autocommit=False, expire_on_commit=False)
    return _SessionLocal


def init_db(engine: Engine | None = None) -> None:
    # Registers every mapped table on Base.metadata.
    from bepit.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine or _get_engine())


def get_session() -> Generator[Session, None, None]:
    session_factory = get_session_factory()
    with session_factory() as session:
        yield session
