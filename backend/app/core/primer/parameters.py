# File: backend/app/core/primer/parameters.py
# Version: v2.0.0
"""
Pydantic model for primer design options (camelCase keys, JSON-backed).

Hard bounds (length / Tm / GC%) reject candidates outright; everything else tunes
the search or the scoring.

Usage:
    from backend.app.core.primer.parameters import DesignOptions
"""

from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, conint, confloat

from backend.app.core.primer.thermodynamics import TmConditions


class DesignOptions(BaseModel):
    # Lengths
    primerLengthMin: conint(ge=10) = Field(18, description="Minimum primer length")
    primerLengthMax: conint(ge=10, le=80) = Field(30, description="Maximum primer length")

    # Temperatures (°C)
    primerTmMin: confloat(ge=0) = Field(55.0, description="Minimum acceptable primer Tm (°C)")
    primerTmMax: confloat(ge=0) = Field(72.0, description="Maximum acceptable primer Tm (°C)")
    primerTmTarget: confloat(ge=0) = Field(60.0, description="Preferred Tm used to prune quick-mode candidates")

    # GC content (%)
    primerGCMin: confloat(ge=0, le=100) = Field(30.0, description="Minimum GC percentage")
    primerGCMax: confloat(ge=0, le=100) = Field(70.0, description="Maximum GC percentage")

    # Layout
    strategy: Literal["back-to-back", "overlapping"] = Field("back-to-back", description="Mutagenic primer layout")
    circular: bool = Field(False, description="Template is circular (regions/primers may cross the origin)")
    exhaustiveSearch: bool = Field(False, description="Evaluate the full candidate space")
    mode: Optional[Literal["amplification", "mutagenesis", "sequencing", "assembly", "goldengate"]] = Field(
        None, description="Scoring preset; inferred from the edit when omitted"
    )

    annealingLengthMin: conint(ge=8) = Field(15, description="Min template-matching 3' part of a mutagenic primer")
    flankMin: conint(ge=0) = Field(10, description="Overlapping layout: min flank on each side of the edit")
    flankMax: conint(ge=0) = Field(25, description="Overlapping layout: max flank on each side of the edit")
    amplificationWindow: conint(ge=0) = Field(10, description="Amplification: primer ends may move this far outward")

    # Search budget
    maxAlternatives: conint(ge=0) = Field(5, description="Ranked alternatives returned with the best design")
    maxCandidates: conint(ge=1) = Field(5000, description="Cap on candidate pairs evaluated in exhaustive mode")
    quickFinalists: conint(ge=1) = Field(3, description="Quick mode: pairs fully scored")
    exhaustiveFinalists: conint(ge=1) = Field(8, description="Exhaustive mode: extra pairs fully scored")

    # Off-targets
    checkOffTargets: bool = Field(True, description="Count off-target sites on the product")
    offTargetMaxMismatches: conint(ge=0, le=5) = Field(2, description="Mismatches tolerated for an off-target site")

    # Codons (amino-acid changes)
    organism: Optional[Literal["ecoli", "human"]] = Field("ecoli", description="Codon usage table")

    # Reaction conditions
    naConc: confloat(ge=0) = Field(50.0, description="Monovalent cations (mM)")
    mgConc: confloat(ge=0) = Field(2.0, description="Mg2+ (mM)")
    dntpConc: confloat(ge=0) = Field(0.0, description="dNTPs (mM)")
    primerConc: confloat(gt=0) = Field(500.0, description="Primer concentration (nM)")
    tmMethod: Literal["biopython", "primer3"] = Field("biopython", description="Tm backend")

    # Scoring weight overrides (keys as in scoring.DEFAULT_WEIGHTS)
    weights: Optional[Dict[str, float]] = Field(None, description="Per-feature weight overrides")

    def model_post_init(self, __context) -> None:  # pydantic v2 hook
        if self.primerLengthMax < self.primerLengthMin:
            raise ValueError("primerLengthMax must be >= primerLengthMin")
        if self.primerTmMax < self.primerTmMin:
            raise ValueError("primerTmMax must be >= primerTmMin")
        if self.primerGCMax < self.primerGCMin:
            raise ValueError("primerGCMax must be >= primerGCMin")
        if self.flankMax < self.flankMin:
            raise ValueError("flankMax must be >= flankMin")

    @property
    def conditions(self) -> TmConditions:
        return TmConditions(
            na_mm=self.naConc,
            mg_mm=self.mgConc,
            dntps_mm=self.dntpConc,
            primer_nm=self.primerConc,
            method=self.tmMethod,
        )
