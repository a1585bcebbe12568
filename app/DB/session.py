"""Session forge."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.Core.config import get_settings

settings = get_settings()
logger = logging.getLogger("db.session")


def get_database_url() -> str:
    return settings.get_database_url()


def build_engine(url: str, *, echo: bool = False, **kwargs) -> Engine:
    """Create an engine with the per-backend knobs this service relies on."""
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": int(os.getenv("DB_CONNECT_TIMEOUT", "5"))}
        connect_args.update(kwargs.pop("connect_args", {}))
        engine = create_engine(url, echo=echo, connect_args=connect_args, **kwargs)

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "5")),
        pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "5")),
        pool_recycle=300,
        **kwargs,
    )


runtime_url = get_database_url()
if not runtime_url:
    raise RuntimeError("DATABASE_URL not configured")

engine = build_engine(runtime_url, echo=settings.debug)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success; roll back and re-raise on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_db():
    t0 = time.perf_counter()
    db = SessionLocal()
    acquire_ms = int((time.perf_counter() - t0) * 1000)
    if acquire_ms > 50:
        logger.warning("db_acquire_ms=%d", acquire_ms)
    try:
        yield db
    finally:
        db.close()
