# File: backend/app/db/maintenance.py
# Version: v0.3.0
"""
Schema maintenance helpers (non-destructive).

- ensure_schema(engine): creates only tables that are missing.
- Imports `backend.app.db.models` (not just Base) so every ORM model is
  registered in Base.metadata before inspection.

Runs on app startup when Settings.SCHEMA_AUTOCREATE is true. Safe to run multiple
times; it never drops or alters existing tables.
"""
from __future__ import annotations

import logging
from typing import List

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

import backend.app.db.models as models  # noqa: F401  (registers tables)
from backend.app.db.base import Base

log = logging.getLogger(__name__)


def ensure_schema(engine: Engine) -> List[str]:
    """
    Create any missing tables declared on Base.metadata.

    Returns a list of human-readable action strings (e.g., "created table design_runs").
    """
    inspector = inspect(engine)
    existing = set(inspector.get_table_names())
    defined = set(Base.metadata.tables.keys())

    missing = sorted(defined - existing)
    actions: List[str] = []

    # parents before children (design_outcomes references design_runs)
    for table in Base.metadata.sorted_tables:
        if table.name in missing:
            table.create(bind=engine, checkfirst=True)
            actions.append(f"created table {table.name}")

    if not actions:
        actions.append("all tables present")
    log.info("Schema check: %s", ", ".join(actions))
    return actions
