# File: backend/app/core/primer/errors.py
# Version: v0.1.0
"""
Error taxonomy for the primer engine.

All errors derive from ValueError so existing `except ValueError` call sites
(CLI, API) keep working. Messages are user-facing and may span several lines
(the first line is the summary, the following lines are hints).
"""

from __future__ import annotations

from typing import Iterable, Optional


class PrimerDesignError(ValueError):
    """Base class for all primer engine failures."""

    def __init__(self, message: str, hints: Optional[Iterable[str]] = None) -> None:
        self.summary = message
        self.hints = list(hints or [])
        text = "\n".join([message, *self.hints]) if self.hints else message
        super().__init__(text)


class InvalidSequence(PrimerDesignError):
    """Empty sequence or non-ATGC characters after cleaning."""


class InputTooShort(PrimerDesignError):
    """Primer shorter than 10 bp or template shorter than 50 bp."""


class InvalidRegion(PrimerDesignError):
    """Region outside template bounds (or end < start on a linear template)."""


class NoFeasibleDesign(PrimerDesignError):
    """No candidate pair satisfies the hard length/Tm/GC bounds."""


class BindingNotFound(PrimerDesignError):
    """Aligner cascade exhausted without locating the primer."""
