# File: backend/app/db/base.py
# Version: v0.2.0
"""
Declarative Base for the primer service.

Model modules import Base from here:

    from backend.app.db.base import Base

Model modules are NOT imported here to avoid circular imports; `maintenance.py`
imports `backend.app.db.models` before creating tables.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
