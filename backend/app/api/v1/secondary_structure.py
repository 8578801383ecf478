# File: backend/app/api/v1/secondary_structure.py
# Version: v0.2.0
"""
API router for DNA secondary structure analysis (nearest-neighbor MFE folder).

POST /api/v1/analysis/fold
  - Body: FoldRequest (sequence, optional partner)
  - Returns: FoldResponse (ΔG, pairs, dot-bracket, severity, helices)

POST /api/v1/analysis/stems
  - Body: SecondaryStructureRequest
  - Returns: SecondaryStructureResponse with regions of stems as [start, end) intervals
"""

from fastapi import APIRouter, HTTPException
from ...core.primer.errors import InvalidSequence
from ...schemas.secondary_structure import (
    FoldRequest,
    FoldResponse,
    SecondaryStructureRequest,
    SecondaryStructureResponse,
    FeatureRegion,
)
from ...services.secondary_structure_service import analyze_stems, fold_report
from .primers.deps import structure_folder

router = APIRouter(prefix="/analysis", tags=["analysis"])


@router.post("/fold", response_model=FoldResponse)
def fold_endpoint(payload: FoldRequest) -> FoldResponse:
    """MFE structure of a primer or a primer pair."""
    try:
        report = fold_report(payload.sequence, payload.partner, folder=structure_folder())
    except InvalidSequence as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return FoldResponse(**report)


@router.post("/stems", response_model=SecondaryStructureResponse)
def analyze_stems_endpoint(payload: SecondaryStructureRequest) -> SecondaryStructureResponse:
    """
    Stem regions for visualization, [start, end) 0-based, in the "FeatureRegion"
    shape used by the sequence viewer overlays.
    """
    seq = payload.sequence.upper()
    try:
        intervals = analyze_stems(
            sequence=seq,
            min_stem_len=payload.min_stem_len,
            merge_max_gap=payload.merge_max_gap,
            folder=structure_folder(),
        )
    except InvalidSequence as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    regions = [FeatureRegion(start=s, end=e) for (s, e) in intervals]
    return SecondaryStructureResponse(length=len(seq), regions=regions)
