# File: backend/app/db/models.py
# Version: v0.4.0
"""
ORM models for persisted primer design runs.

Tables:
- DesignRun: one API design request (template digest, edit, options, status).
- DesignOutcome: the best pair of a completed run (primers, scores, warnings and
  the full result payload as JSON), linked 1:1 to its DesignRun.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import JSON, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.db.base import Base


class RunStatus(str, PyEnum):
    COMPLETED = "completed"
    FAILED = "failed"


class DesignRun(Base):
    """A single design request handled by the API."""
    __tablename__ = "design_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    sequence_digest: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sequence_len: Mapped[int] = mapped_column(Integer, nullable=False)
    circular: Mapped[bool] = mapped_column(default=False, nullable=False)

    # Edit (0-based, end-exclusive); replacement None = amplify
    edit_start: Mapped[int] = mapped_column(Integer, nullable=False)
    edit_end: Mapped[int] = mapped_column(Integer, nullable=False)
    replacement: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    label: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    options_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[RunStatus] = mapped_column(Enum(RunStatus), default=RunStatus.COMPLETED, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    outcome: Mapped[Optional["DesignOutcome"]] = relationship(
        back_populates="run", uselist=False, cascade="all, delete-orphan", lazy="joined"
    )


class DesignOutcome(Base):
    """Best primer pair of a completed run."""
    __tablename__ = "design_outcomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(ForeignKey("design_runs.id", ondelete="CASCADE"), nullable=False, unique=True)

    forward_seq: Mapped[str] = mapped_column(Text, nullable=False)
    reverse_seq: Mapped[str] = mapped_column(Text, nullable=False)
    forward_tm: Mapped[float] = mapped_column(Float, nullable=False)
    reverse_tm: Mapped[float] = mapped_column(Float, nullable=False)

    composite_score: Mapped[float] = mapped_column(Float, nullable=False)
    effective_score: Mapped[float] = mapped_column(Float, nullable=False)
    quality_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    warnings_json: Mapped[list] = mapped_column(JSON, nullable=False)
    result_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    run: Mapped[DesignRun] = relationship(back_populates="outcome")
