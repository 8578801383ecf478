# File: backend/app/api/v1/primers/deps.py
# Version: v0.3.0
"""
Dependency providers for primer endpoints.

- `db_session`: the project's canonical DB session.
- `structure_folder`: one shared folder honoring settings.FOLD_MAX_LENGTH (its
  fold cache is keyed by the parameter set, so sharing it is safe).
- `resolve_options`: request options or the stored ones, with the candidate cap
  clamped to settings.MAX_CANDIDATES.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from backend.app.config.config_primers import load_current_params
from backend.app.core.config import settings
from backend.app.core.primer.folding import StructureFolder
from backend.app.core.primer.parameters import DesignOptions
from backend.app.db.session import get_db


def db_session(db: Session = Depends(get_db)) -> Session:
    """Return an active SQLAlchemy session."""
    return db


@lru_cache(maxsize=1)
def structure_folder() -> StructureFolder:
    return StructureFolder(max_length=settings.FOLD_MAX_LENGTH)


def resolve_options(options: Optional[DesignOptions]) -> DesignOptions:
    opts = options or load_current_params()
    if opts.maxCandidates > settings.MAX_CANDIDATES:
        opts = opts.model_copy(update={"maxCandidates": settings.MAX_CANDIDATES})
    return opts
