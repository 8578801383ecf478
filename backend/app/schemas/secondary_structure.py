# File: backend/app/schemas/secondary_structure.py
# Version: v0.2.0
"""
Pydantic schemas for secondary structure analysis (fold, stems).
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, constr


class SecondaryStructureRequest(BaseModel):
    """Request payload for stem analysis."""
    sequence: constr(strip_whitespace=True, min_length=1) = Field(
        ...,
        description="DNA sequence to analyze (A/C/G/T; case-insensitive).",
        examples=["ACGTTGCA..."],
    )
    min_stem_len: int = Field(
        4,
        ge=1,
        description="Minimal length (bp) for a stem region (after merging) to keep.",
    )
    merge_max_gap: int = Field(
        2,
        ge=0,
        description="Merge adjacent stem regions if the unpaired gap between them is <= this value.",
    )


class FeatureRegion(BaseModel):
    """Region to visualize on the sequence viewer."""
    kind: Literal["stems"] = "stems"
    start: int = Field(..., ge=0, description="0-based inclusive index.")
    end: int = Field(..., ge=0, description="0-based exclusive index; must be >= start.")


class SecondaryStructureResponse(BaseModel):
    """Response containing merged stem regions suitable for visualization."""
    length: int = Field(..., ge=0, description="Length of the input sequence.")
    regions: List[FeatureRegion] = Field(default_factory=list)


class FoldRequest(BaseModel):
    """Fold one primer (hairpin) or two (dimer; partner = same sequence for a self-dimer)."""
    sequence: constr(strip_whitespace=True, min_length=1)
    partner: Optional[constr(strip_whitespace=True, min_length=1)] = None


class StemInfo(BaseModel):
    start: int
    end: int
    length: int
    partnerStart: int
    partnerEnd: int


class FoldResponse(BaseModel):
    dg: float
    pairs: List[List[int]]
    dotBracket: str
    description: str
    kind: Literal["hairpin", "self_dimer", "heterodimer"]
    severity: str
    stems: List[StemInfo] = Field(default_factory=list)
