# File: backend/app/db/session.py
# Version: v0.2.0
"""
SQLAlchemy engine and session factory for design-run persistence.

- `make_engine(url)` builds an engine; SQLite file URLs get their parent directory
  created and cross-thread access enabled (FastAPI runs sync endpoints in a pool).
- The module-level `engine` / `SessionLocal` use settings.DB_URL
  (default `sqlite:///backend/app/data/primercraft.db`).
- `get_db()` is the FastAPI dependency that owns the session lifecycle.

Synchronous: the API writes one or two rows per design run.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from backend.app.core.config import settings


def _connect_args(url: str) -> Dict[str, Any]:
    if not url.startswith("sqlite"):
        return {}
    if url.startswith("sqlite:///"):
        Path(url.replace("sqlite:///", "", 1)).resolve().parent.mkdir(parents=True, exist_ok=True)
    return {"check_same_thread": False}


def make_engine(url: str = settings.DB_URL) -> Engine:
    return create_engine(url, future=True, connect_args=_connect_args(url))


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_db() -> Generator[Session, None, None]:
    """Yield a session bound to the design-run database; always closed afterwards."""
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
