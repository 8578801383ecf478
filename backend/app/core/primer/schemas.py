# File: backend/app/core/primer/schemas.py
# Version: v0.3.0
"""
DTOs for requests and responses used by Primer endpoints.

Edit coordinates are 0-based, end-exclusive on the submitted template. An edit is
given either as a region (`start`, `end`, optional `replacement`) or as mutation
notation (`mutation`, e.g. "A123G", "p.K45R", "del100-110", "ins100_ACGT"; 1-based).
`replacement` omitted means amplify the region.

`parameters` is optional everywhere: when omitted the server uses the stored
options (backend/app/config/primers_param.json, with fallback to defaults).
"""

from __future__ import annotations

from pydantic import BaseModel, Field, conint, model_validator
from typing import Any, Dict, List, Optional

from .parameters import DesignOptions


class EditSpec(BaseModel):
    """One edit (or amplification region) on the template."""
    start: Optional[conint(ge=0)] = Field(None, description="0-based start.")
    end: Optional[conint(ge=0)] = Field(None, description="0-based end (exclusive); < start wraps a circular template.")
    replacement: Optional[str] = Field(None, description="Inserted bases; '' deletes; omitted amplifies.")
    mutation: Optional[str] = Field(None, description="Mutation notation (1-based), alternative to start/end.")
    orfStart: conint(ge=0) = Field(0, description="ORF offset for amino-acid notation.")
    label: str = ""

    @model_validator(mode="after")
    def _region_or_notation(self) -> "EditSpec":
        if not self.mutation and (self.start is None or self.end is None):
            raise ValueError("Provide either `mutation` or both `start` and `end`.")
        return self


class PrimerDesignRequest(EditSpec):
    """Design primers for one edit of the given sequence."""
    sequence: str = Field(..., description="Template sequence (raw; whitespace and digits are ignored).")
    circular: Optional[bool] = Field(None, description="Overrides parameters.circular when set.")
    exhaustive: Optional[bool] = Field(None, description="Overrides parameters.exhaustiveSearch when set.")
    parameters: Optional[DesignOptions] = None


class StreamDesignRequest(PrimerDesignRequest):
    sessionId: Optional[str] = Field(None, description="Reuse to let a newer request supersede an older one.")


class BatchDesignRequest(BaseModel):
    sequence: str
    circular: Optional[bool] = None
    edits: List[EditSpec] = Field(..., min_length=1)
    parameters: Optional[DesignOptions] = None


class PrimerDesignResponse(BaseModel):
    """Result of a persisted design run (payload as produced by DesignResult.to_dict)."""
    runId: str
    result: Dict[str, Any]


class BatchDesignResponse(BaseModel):
    items: List[Dict[str, Any]]
    succeeded: int
    failed: int


class AnalyzeRequest(BaseModel):
    """Analyse one primer, or a pair when `reverse` is given."""
    forward: str
    reverse: Optional[str] = None
    template: Optional[str] = Field(None, description="Enables off-target counts and annealing-region split.")
    circular: bool = False
    mode: str = "amplification"
    parameters: Optional[DesignOptions] = Field(None, description="Reaction conditions are taken from here.")


class BindingRequest(BaseModel):
    template: str
    primer: str
    reverse: bool = False
    positionHint: Optional[List[conint(ge=0)]] = Field(None, min_length=2, max_length=2)
    mutationPosition: Optional[conint(ge=0)] = None
    isMutagenesis: bool = False


class PrimerRunRecord(BaseModel):
    """For GET /runs and GET /runs/{run_id}."""
    id: str
    createdAt: str
    sequenceDigest: str
    sequenceLength: int
    editStart: int
    editEnd: int
    replacement: Optional[str] = None
    label: Optional[str] = None
    status: str
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
