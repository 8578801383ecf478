# File: backend/app/api/v1/primers/router.py
# Version: v0.3.0
"""
Primer endpoints (mounted at /api/v1/primers):
- GET  /parameters        ← current design options
- PUT  /parameters        ← validates & persists new design options
- POST /design            ← best pair + alternatives, persisted as a run
- POST /design/batch      ← independent designs on one template
- POST /design/stream     ← SSE: quick preview, then exhaustive final
- POST /analyze           ← single primer or pair report
- POST /binding           ← locate a primer on a template
- GET  /runs
- GET  /runs/{run_id}

Engine errors map to HTTP: invalid sequence / too short / bad region → 400,
no feasible design → 422, binding not found → 404. `detail` carries
{"message", "hints"}.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import List, NoReturn, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from backend.app.config.config_primers import ensure_current_exists, save_current_params
from backend.app.core.jobs.runner import sessions
from backend.app.core.primer.alignments import find_primer_binding
from backend.app.core.primer.analysis import pair_report, primer_report
from backend.app.core.primer.designer import DesignEngine, DesignResult
from backend.app.core.primer.errors import (
    BindingNotFound,
    InputTooShort,
    InvalidRegion,
    InvalidSequence,
    NoFeasibleDesign,
    PrimerDesignError,
)
from backend.app.core.primer.mutations import DesignSpecification, Template, specification_from_notation
from backend.app.core.primer.parameters import DesignOptions
from backend.app.core.primer.schemas import (
    AnalyzeRequest,
    BatchDesignRequest,
    BatchDesignResponse,
    BindingRequest,
    EditSpec,
    PrimerDesignRequest,
    PrimerDesignResponse,
    PrimerRunRecord,
    StreamDesignRequest,
)
from backend.app.core.primer.thermodynamics import clean_sequence
from backend.app.db.models import DesignOutcome, DesignRun, RunStatus

from .deps import db_session, resolve_options, structure_folder

log = logging.getLogger(__name__)

router = APIRouter(prefix="/primers", tags=["primers"])

_STATUS = (
    (NoFeasibleDesign, 422),
    (BindingNotFound, 404),
    (InvalidSequence, 400),
    (InputTooShort, 400),
    (InvalidRegion, 400),
)


def _sse(data: str) -> bytes:
    return f"data: {data}\n\n".encode("utf-8")


def _raise_http(e: PrimerDesignError) -> NoReturn:
    status = next((code for cls, code in _STATUS if isinstance(e, cls)), 400)
    raise HTTPException(status_code=status, detail={"message": e.summary, "hints": e.hints}) from e


# --- helpers -------------------------------------------------------------------------------------

def _specification(edit: EditSpec, template: Template, options: DesignOptions) -> DesignSpecification:
    if edit.mutation:
        return specification_from_notation(edit.mutation, template.sequence, edit.orfStart, options.organism)
    replacement = clean_sequence(edit.replacement) if edit.replacement is not None else None
    return DesignSpecification(edit.start, edit.end, replacement, edit.label)


def _prepare(payload: PrimerDesignRequest) -> Tuple[DesignOptions, Template, DesignSpecification]:
    opts = resolve_options(payload.parameters)
    circular = opts.circular if payload.circular is None else payload.circular
    try:
        tpl = Template.of(payload.sequence, circular)
        spec = _specification(payload, tpl, opts)
    except PrimerDesignError as e:
        _raise_http(e)
    return opts, tpl, spec


def _digest(seq: str) -> str:
    return hashlib.sha256(seq.encode("utf-8")).hexdigest()


def _persist(
    db: Session,
    tpl: Template,
    spec: DesignSpecification,
    opts: DesignOptions,
    result: Optional[DesignResult] = None,
    error: Optional[str] = None,
) -> DesignRun:
    run = DesignRun(
        sequence_digest=_digest(tpl.sequence),
        sequence_len=len(tpl),
        circular=tpl.circular,
        edit_start=spec.start,
        edit_end=spec.end,
        replacement=spec.replacement,
        label=spec.label or None,
        options_json=opts.model_dump(),
        status=RunStatus.COMPLETED if result is not None else RunStatus.FAILED,
        error=error,
    )
    db.add(run)
    db.flush()
    if result is not None:
        db.add(DesignOutcome(
            run_id=run.id,
            forward_seq=result.forward.sequence,
            reverse_seq=result.reverse.sequence,
            forward_tm=result.forward.tm,
            reverse_tm=result.reverse.tm,
            composite_score=result.composite_score,
            effective_score=result.effective_score,
            quality_tier=result.quality_tier,
            warnings_json=list(result.warnings),
            result_json=result.to_dict(),
        ))
    db.commit()
    db.refresh(run)
    return run


def _record(run: DesignRun, full: bool) -> PrimerRunRecord:
    return PrimerRunRecord(
        id=run.id,
        createdAt=run.created_at.isoformat() if run.created_at else "",
        sequenceDigest=run.sequence_digest,
        sequenceLength=run.sequence_len,
        editStart=run.edit_start,
        editEnd=run.edit_end,
        replacement=run.replacement,
        label=run.label,
        status=run.status.value,
        error=run.error,
        result=run.outcome.result_json if (full and run.outcome) else None,
    )


# --- parameters ----------------------------------------------------------------------------------

@router.get("/parameters", response_model=DesignOptions)
def get_parameters():
    """
    Return the current editable design options.
    If not initialized, create primers_param.json from defaults and return it.
    """
    _, params = ensure_current_exists()
    return params


@router.put("/parameters", response_model=DesignOptions)
def update_parameters(payload: DesignOptions):
    """Validate and persist new design options into primers_param.json."""
    save_current_params(payload)
    return payload


# --- design --------------------------------------------------------------------------------------

@router.post("/design", response_model=PrimerDesignResponse)
def design_primers(payload: PrimerDesignRequest, db: Session = Depends(db_session)):
    """Design the best primer pair for one edit; the run is persisted either way."""
    opts, tpl, spec = _prepare(payload)
    try:
        result = DesignEngine(opts, structure_folder()).design(tpl, spec, payload.exhaustive)
    except NoFeasibleDesign as e:
        _persist(db, tpl, spec, opts, error=str(e))
        _raise_http(e)
    except PrimerDesignError as e:
        _raise_http(e)
    run = _persist(db, tpl, spec, opts, result=result)
    log.info("Design run %s: %s (%.1f)", run.id, result.quality_tier, result.composite_score)
    return PrimerDesignResponse(runId=run.id, result=result.to_dict())


@router.post("/design/batch", response_model=BatchDesignResponse)
def design_batch(payload: BatchDesignRequest):
    """Independent designs against one template; one failing edit never blocks the others."""
    opts = resolve_options(payload.parameters)
    circular = opts.circular if payload.circular is None else payload.circular
    try:
        tpl = Template.of(payload.sequence, circular)
    except PrimerDesignError as e:
        _raise_http(e)

    engine = DesignEngine(opts, structure_folder())
    items: List[dict] = []
    for i, edit in enumerate(payload.edits):
        try:
            spec = _specification(edit, tpl, opts)
        except PrimerDesignError as e:
            items.append({"index": i, "success": False, "result": None, "error": str(e)})
            continue
        item = engine.design_batch(tpl, [spec])[0]
        out = item.to_dict()
        out["index"] = i
        items.append(out)
    ok = sum(1 for it in items if it["success"])
    return BatchDesignResponse(items=items, succeeded=ok, failed=len(items) - ok)


@router.post("/design/stream")
async def design_stream(payload: StreamDesignRequest):
    """
    Server-sent events: a `session` event, then `preview` (quick search) and
    `final` (exhaustive) updates, or a single `error` / `cancelled` update when a
    newer request on the same session supersedes this one.
    """
    opts, tpl, spec = _prepare(payload)
    sid, session = sessions.get_or_create(payload.sessionId, folder=structure_folder())

    async def gen():
        try:
            yield _sse(json.dumps({"phase": "session", "sessionId": sid}))
            async for update in session.stream(tpl, spec, opts):
                yield _sse(json.dumps(update.to_dict()))
        finally:
            if payload.sessionId is None:
                sessions.drop(sid)

    return StreamingResponse(gen(), media_type="text/event-stream")


# --- analysis ------------------------------------------------------------------------------------

@router.post("/analyze")
def analyze(payload: AnalyzeRequest):
    """Tm, GC, 3' stability, structures and off-targets of one primer, or of a pair."""
    conditions = resolve_options(payload.parameters).conditions
    template = clean_sequence(payload.template) if payload.template else None
    try:
        if payload.reverse is None:
            return primer_report(payload.forward, template, payload.circular, payload.mode, conditions)
        return pair_report(payload.forward, payload.reverse, template, payload.circular, payload.mode, conditions)
    except PrimerDesignError as e:
        _raise_http(e)
    except ValueError as e:  # unknown scoring mode
        raise HTTPException(status_code=400, detail={"message": str(e), "hints": []}) from e


@router.post("/binding")
def binding(payload: BindingRequest):
    """Locate a primer on a template through the aligner cascade."""
    try:
        hit = find_primer_binding(
            clean_sequence(payload.template),
            clean_sequence(payload.primer),
            reverse=payload.reverse,
            position_hint=tuple(payload.positionHint) if payload.positionHint else None,
            mutation_position=payload.mutationPosition,
            is_mutagenesis=payload.isMutagenesis,
        )
        if hit is None:
            raise BindingNotFound(
                "Primer could not be located on the template.",
                ["Check the strand (reverse flag) and that the template contains the primer's 3' end."],
            )
    except PrimerDesignError as e:
        _raise_http(e)
    return hit.to_dict()


# --- runs ----------------------------------------------------------------------------------------

@router.get("/runs", response_model=List[PrimerRunRecord])
def list_runs(db: Session = Depends(db_session)):
    """List recent design runs (lightweight view)."""
    runs = db.query(DesignRun).order_by(DesignRun.created_at.desc()).limit(100).all()
    return [_record(r, full=False) for r in runs]


@router.get("/runs/{run_id}", response_model=PrimerRunRecord)
def get_run(run_id: str, db: Session = Depends(db_session)):
    """Return a full run, including the result payload if present."""
    run = db.get(DesignRun, run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found.")
    return _record(run, full=True)
