# File: backend/app/core/primer/analysis.py
# Version: v0.2.0
"""
Per-primer and per-pair analysis.

Builds `PrimerFeatures` (Tm, GC, 3' ΔG, hairpin / self-dimer folds, off-target
count, annealing region) for the scorer, and the JSON-ready reports used by the
`/analyze` endpoint and the CLI.

Folding and off-target counting are best-effort: failures degrade the feature to
unknown (None) and are logged. A failure analysing one primer of a pair never
blocks the other one.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from backend.app.core.primer.alignments import detect_golden_gate_sites, find_annealing_region
from backend.app.core.primer.constraints import check_dimer_risk
from backend.app.core.primer.errors import InputTooShort, PrimerDesignError
from backend.app.core.primer.folding import DEFAULT_FOLDER, StructureFolder, safe_fold
from backend.app.core.primer.offtarget import count_offtargets
from backend.app.core.primer.scoring import CompositeScorer, PrimerFeatures, get_preset
from backend.app.core.primer.thermodynamics import (
    DEFAULT_CONDITIONS,
    TmConditions,
    calculate_gc,
    calculate_tm,
    classify_terminal_dg,
    terminal_3prime_dg,
    validate_sequence,
)

log = logging.getLogger(__name__)

MIN_PRIMER_LENGTH = 10


@lru_cache(maxsize=65536)
def cached_tm(seq: str, conditions: TmConditions = DEFAULT_CONDITIONS) -> float:
    return calculate_tm(seq, conditions)


def primer_features(
    seq: str,
    conditions: TmConditions = DEFAULT_CONDITIONS,
    structures: bool = True,
    offtarget_template: Optional[str] = None,
    circular: bool = False,
    max_mismatches: int = 2,
    annealing_template: Optional[str] = None,
    folder: StructureFolder = DEFAULT_FOLDER,
) -> PrimerFeatures:
    """
    Compute scorer inputs for one primer.

    `annealing_template` switches Tm/GC/length scoring to the 3' annealing region
    (tailed assembly / Golden Gate primers).
    """
    s = validate_sequence(seq)
    hairpin = safe_fold(s, folder=folder) if structures else None
    self_dimer = safe_fold(s, s, folder=folder) if structures else None

    offtargets = None
    if offtarget_template:
        offtargets = count_offtargets(s, offtarget_template, circular, max_mismatches)

    scored_seq = scored_tm = scored_gc = None
    if annealing_template:
        split = find_annealing_region(s, annealing_template)
        if split is None:
            log.warning("No annealing region found for %s; scoring the full primer", s)
        else:
            scored_seq = split.annealing
            scored_tm = cached_tm(split.annealing, conditions)
            scored_gc = calculate_gc(split.annealing)

    return PrimerFeatures(
        sequence=s,
        tm=cached_tm(s, conditions),
        gc=calculate_gc(s),
        terminal_dg=terminal_3prime_dg(s),
        hairpin=hairpin,
        self_dimer=self_dimer,
        offtargets=offtargets,
        scored_sequence=scored_seq,
        scored_tm=scored_tm,
        scored_gc=scored_gc,
    )


# --- Reports (API / CLI) -------------------------------------------------------------------------

def _analysed(
    seq: str,
    template: Optional[str],
    circular: bool,
    mode: str,
    conditions: TmConditions,
) -> PrimerFeatures:
    s = validate_sequence(seq)
    if len(s) < MIN_PRIMER_LENGTH:
        raise InputTooShort(f"Primer too short ({len(s)} < {MIN_PRIMER_LENGTH} nt).")
    preset = get_preset(mode)
    return primer_features(
        s,
        conditions,
        offtarget_template=template,
        circular=circular,
        annealing_template=template if (template and preset.use_annealing_region) else None,
    )


def _report(f: PrimerFeatures) -> Dict[str, Any]:
    s = f.sequence
    report: Dict[str, Any] = {
        "sequence": s,
        "length": len(s),
        "tm": f.tm,
        "gc": f.gc,
        "terminal3DG": f.terminal_dg,
        "terminal3Class": classify_terminal_dg(f.terminal_dg),
        "hairpin": f.hairpin.to_dict() if f.hairpin else None,
        "selfDimer": f.self_dimer.to_dict() if f.self_dimer else None,
        "offTargets": f.offtargets,
        "goldenGateSites": [
            {"enzyme": site.enzyme, "position": site.position, "strand": site.strand}
            for site in detect_golden_gate_sites(s)
        ],
    }
    if f.scored_sequence:
        report["annealing"] = {
            "sequence": f.scored_sequence,
            "tail": s[: len(s) - len(f.scored_sequence)],
            "tm": f.scored_tm,
            "gc": f.scored_gc,
        }
    return report


def primer_report(
    seq: str,
    template: Optional[str] = None,
    circular: bool = False,
    mode: str = "amplification",
    conditions: TmConditions = DEFAULT_CONDITIONS,
) -> Dict[str, Any]:
    return _report(_analysed(seq, template, circular, mode, conditions))


def pair_report(
    forward: str,
    reverse: str,
    template: Optional[str] = None,
    circular: bool = False,
    mode: str = "amplification",
    conditions: TmConditions = DEFAULT_CONDITIONS,
) -> Dict[str, Any]:
    """Analyse both primers independently, then score the pair when both succeeded."""
    out: Dict[str, Any] = {"forward": None, "reverse": None, "errors": {}, "score": None}
    features: Dict[str, PrimerFeatures] = {}
    for key, seq in (("forward", forward), ("reverse", reverse)):
        try:
            features[key] = _analysed(seq, template, circular, mode, conditions)
            out[key] = _report(features[key])
        except PrimerDesignError as e:
            log.info("Analysis of %s primer failed: %s", key, e.summary)
            out["errors"][key] = str(e)

    if len(features) == 2:
        fwd, rev = features["forward"], features["reverse"]
        hetero = safe_fold(fwd.sequence, rev.sequence)
        scored = CompositeScorer(get_preset(mode)).score_pair(fwd, rev, hetero)
        out["heterodimer"] = hetero.to_dict() if hetero else None
        consecutive, total = check_dimer_risk(fwd.sequence, rev.sequence)
        out["complementarity"] = {"maxConsecutive": consecutive, "total": total}
        out["tmDiff"] = scored.tm_diff
        out["score"] = scored.to_dict()
    return out
