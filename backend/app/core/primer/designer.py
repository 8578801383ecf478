# File: backend/app/core/primer/designer.py
# Version: v2.1.0
"""
Primer search & pairing for amplification and site-directed mutagenesis.

What this file does
-------------------
- Applies the edit (`DesignSpecification`) to the template, giving the product P.
- Enumerates candidate windows for the chosen layout (`generator.py`):
  back-to-back, overlapping or plain amplification.
- Enforces hard bounds (rejections are recorded with a reason):
  - length in [primerLengthMin, primerLengthMax]
  - Tm in [primerTmMin, primerTmMax]   (nearest-neighbor, see thermodynamics.py)
  - GC% in [primerGCMin, primerGCMax]
- Pre-scores pairs cheaply (no folding / off-targets), then fully scores the
  finalists with `CompositeScorer` (folds, heterodimer, off-targets).
- Produces rich diagnostics on failure (`NoFeasibleDesign` with hints).

Search modes
------------
- quick: every other anchor (flank offset / window shift), the 3 candidates per
  anchor closest to the target Tm, `quickFinalists` pairs fully scored.
- exhaustive: every compatible pair (capped by `maxCandidates`, the quick subset
  always included); the best `exhaustiveFinalists` plus all quick finalists are
  fully scored, so the exhaustive best is never below the quick best.

Ranking: composite score (desc), then |ΔTm|, total primer length, forward start,
reverse start.

Coordinates
-----------
0-based, end-exclusive, on `DesignResult.product_sequence`:
  forward.sequence == P[start:end], reverse.sequence == revcomp(P[start:end])
(end may exceed len(P) on circular products; the slice wraps the origin).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from backend.app.core.primer.alignments import BindingResult, find_primer_binding
from backend.app.core.primer.analysis import cached_tm, primer_features
from backend.app.core.primer.errors import NoFeasibleDesign, PrimerDesignError
from backend.app.core.primer.folding import DEFAULT_FOLDER, FoldResult, StructureFolder, safe_fold
from backend.app.core.primer.generator import Layout, Window, amplify, back_to_back, iter_pairs, overlapping
from backend.app.core.primer.mutations import DesignSpecification, Template, apply_edit, edit_summary, rotate
from backend.app.core.primer.parameters import DesignOptions
from backend.app.core.primer.scoring import CompositeScorer, PairScore, PrimerFeatures, get_preset
from backend.app.core.primer.thermodynamics import gc_percent, terminal_3prime_dg

log = logging.getLogger(__name__)

QUICK_PER_ANCHOR = 3


# --- Diagnostics / DTOs --------------------------------------------------------------------------

@dataclass
class CandidateRow:
    side: str                # 'F' or 'R'
    pos: int                 # start on the product
    length: int
    seq: str
    tm: float
    gc: float
    rejected: bool
    reason: str


@dataclass
class DesignDiagnostics:
    forward_candidates: List[CandidateRow] = field(default_factory=list)
    reverse_candidates: List[CandidateRow] = field(default_factory=list)
    pairs_evaluated: int = 0
    message: str = ""


@dataclass(frozen=True)
class Primer:
    sequence: str
    direction: str
    start: int
    end: int
    tm: float
    gc: float                           # fraction
    hairpin_dg: Optional[float] = None
    self_dimer_dg: Optional[float] = None
    binding: Optional[BindingResult] = None   # location on the original template

    @property
    def length(self) -> int:
        return len(self.sequence)

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "direction": self.direction,
            "start": self.start,
            "end": self.end,
            "length": self.length,
            "tm": self.tm,
            "gc": self.gc,
            "hairpinDG": self.hairpin_dg,
            "selfDimerDG": self.self_dimer_dg,
            "templateBinding": self.binding.to_dict() if self.binding else None,
        }


@dataclass(frozen=True)
class DesignResult:
    forward: Primer
    reverse: Primer
    composite_score: float
    effective_score: float
    quality_tier: str
    critical_warnings: int
    warnings: Tuple[str, ...] = ()
    breakdown: Mapping[str, float] = field(default_factory=dict)
    severities: Mapping[str, Optional[str]] = field(default_factory=dict)
    heterodimer_dg: Optional[float] = None
    product_sequence: str = ""
    strategy: str = "back-to-back"
    mode: str = "amplification"
    search: str = "quick"
    candidates_evaluated: int = 0
    edit: Mapping[str, object] = field(default_factory=dict)
    rotation: int = 0
    alternatives: Tuple["DesignResult", ...] = ()
    tm_diff: float = 0.0                # |ΔTm| the pair was scored on (annealing regions in tailed modes)

    def to_dict(self, include_alternatives: bool = True) -> dict:
        out = {
            "forward": self.forward.to_dict(),
            "reverse": self.reverse.to_dict(),
            "compositeScore": self.composite_score,
            "effectiveScore": self.effective_score,
            "qualityTier": self.quality_tier,
            "criticalWarnings": self.critical_warnings,
            "warnings": list(self.warnings),
            "breakdown": dict(self.breakdown),
            "severities": dict(self.severities),
            "heterodimerDG": self.heterodimer_dg,
            "tmDiff": self.tm_diff,
            "productSequence": self.product_sequence,
            "strategy": self.strategy,
            "mode": self.mode,
            "search": self.search,
            "candidatesEvaluated": self.candidates_evaluated,
            "edit": dict(self.edit),
            "rotation": self.rotation,
        }
        if include_alternatives:
            out["alternatives"] = [a.to_dict(include_alternatives=False) for a in self.alternatives]
        return out


@dataclass(frozen=True)
class BatchItem:
    index: int
    success: bool
    result: Optional[DesignResult] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "success": self.success,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class _Candidate:
    window: Window
    tm: float
    gc: float


def _window_of(c: _Candidate) -> Window:
    return c.window


@dataclass(frozen=True)
class _Scored:
    fwd: _Candidate
    rev: _Candidate
    score: float
    pair: Optional[PairScore] = None
    fwd_features: Optional[PrimerFeatures] = None
    rev_features: Optional[PrimerFeatures] = None
    heterodimer: Optional[FoldResult] = None

    @property
    def key(self) -> Tuple[int, int, int, int]:
        return (self.fwd.window.start, self.fwd.window.end, self.rev.window.start, self.rev.window.end)

    @property
    def tm_diff(self) -> float:
        # full-primer Tm until the pair is fully scored
        return self.pair.tm_diff if self.pair is not None else abs(self.fwd.tm - self.rev.tm)

    @property
    def rank(self) -> Tuple[float, float, int, int, int]:
        return (
            -self.score,
            self.tm_diff,
            self.fwd.window.length + self.rev.window.length,
            self.fwd.window.start,
            self.rev.window.start,
        )


# --- Engine --------------------------------------------------------------------------------------

class DesignEngine:
    """Candidate search bound to one set of options."""

    def __init__(self, options: Optional[DesignOptions] = None, folder: StructureFolder = DEFAULT_FOLDER) -> None:
        self.options = options or DesignOptions()
        self.folder = folder
        self.conditions = self.options.conditions

    # ---- public ----

    def design(
        self,
        template: Union[str, Template],
        spec: DesignSpecification,
        exhaustive: Optional[bool] = None,
    ) -> DesignResult:
        tpl = template if isinstance(template, Template) else Template.of(template, self.options.circular)
        exhaustive = self.options.exhaustiveSearch if exhaustive is None else exhaustive
        mode = self.options.mode or ("amplification" if spec.kind == "amplify" else "mutagenesis")
        scorer = CompositeScorer(get_preset(mode))
        if self.options.weights:
            scorer = scorer.with_weights(**self.options.weights)

        product, spec_n, rotation = apply_edit(tpl, spec)
        layout = self._layout(product, spec_n, tpl.circular)

        diag = DesignDiagnostics()
        fwd_ok = self._filter(layout.forward, diag.forward_candidates, "F")
        rev_ok = self._filter(layout.reverse, diag.reverse_candidates, "R")

        quick_pairs = list(iter_pairs(self._prune(fwd_ok), self._prune(rev_ok), layout.paired, _window_of))
        if not quick_pairs:
            quick_pairs = self._capped(iter_pairs(fwd_ok, rev_ok, layout.paired, _window_of))
        if not quick_pairs:
            self._raise_infeasible(diag, spec_n, layout)

        pre: Dict[Tuple[int, int, int, int], _Scored] = {}
        prefeat: Dict[str, PrimerFeatures] = {}
        for f, r in quick_pairs:
            s = self._prescore(f, r, scorer, prefeat)
            pre[s.key] = s
        quick_keys = [s.key for s in sorted(pre.values(), key=lambda x: x.rank)[: self.options.quickFinalists]]

        if exhaustive:
            for f, r in self._capped(iter_pairs(fwd_ok, rev_ok, layout.paired, _window_of)):
                key = (f.window.start, f.window.end, r.window.start, r.window.end)
                if key not in pre:
                    pre[key] = self._prescore(f, r, scorer, prefeat)
            ranked = sorted(pre.values(), key=lambda x: x.rank)
            finalist_keys = [s.key for s in ranked[: self.options.exhaustiveFinalists]]
            for key in quick_keys:
                if key not in finalist_keys:
                    finalist_keys.append(key)
        else:
            finalist_keys = quick_keys

        diag.pairs_evaluated = len(pre)
        edit = edit_summary(spec_n, Template(rotate(tpl.sequence, rotation), tpl.circular))
        context = dict(product=product, template=tpl, rotation=rotation, spec=spec_n, edit=edit)
        finals = sorted(
            (self._full_score(pre[k], scorer, layout, product, tpl) for k in finalist_keys),
            key=lambda x: x.rank,
        )
        log.info(
            "Design %s/%s (%s): %d pairs evaluated, %d finalists, best %.1f",
            spec_n.kind, self.options.strategy, "exhaustive" if exhaustive else "quick",
            len(pre), len(finals), finals[0].score,
        )

        results = [
            self._result(s, mode, exhaustive, len(pre), **context)
            for s in finals[: 1 + self.options.maxAlternatives]
        ]
        return replace(results[0], alternatives=tuple(results[1:]))

    def design_batch(self, template: Union[str, Template], specs: Sequence[DesignSpecification]) -> List["BatchItem"]:
        """Independent designs against one template; failures are captured per item."""
        items: List[BatchItem] = []
        try:
            tpl = template if isinstance(template, Template) else Template.of(template, self.options.circular)
        except PrimerDesignError as e:
            return [BatchItem(i, False, None, str(e)) for i in range(len(specs))]
        for i, spec in enumerate(specs):
            try:
                items.append(BatchItem(i, True, self.design(tpl, spec), None))
            except PrimerDesignError as e:
                log.info("Batch item %d failed: %s", i, e.summary)
                items.append(BatchItem(i, False, None, str(e)))
            except Exception as e:  # isolate unexpected failures to their own item
                log.exception("Batch item %d crashed", i)
                items.append(BatchItem(i, False, None, f"{type(e).__name__}: {e}"))
        return items

    # ---- candidates ----

    def _layout(self, product: str, spec: DesignSpecification, circular: bool) -> Layout:
        o = self.options
        if spec.kind == "amplify":
            return amplify(product, spec, o.primerLengthMin, o.primerLengthMax, o.amplificationWindow, circular)
        if o.strategy == "overlapping":
            return overlapping(product, spec, o.primerLengthMin, o.primerLengthMax, o.flankMin, o.flankMax, circular)
        return back_to_back(product, spec, o.primerLengthMin, o.primerLengthMax, o.annealingLengthMin, circular)

    def _filter(self, windows: Iterable[Window], rows: List[CandidateRow], side: str) -> List[_Candidate]:
        o = self.options
        ok: List[_Candidate] = []
        for w in windows:
            tm = cached_tm(w.sequence, self.conditions)
            gc = gc_percent(w.sequence)
            reason = ""
            if not (o.primerLengthMin <= w.length <= o.primerLengthMax):
                reason = f"length({w.length}) not in [{o.primerLengthMin},{o.primerLengthMax}]"
            elif not (o.primerTmMin <= tm <= o.primerTmMax):
                reason = f"Tm {tm:.1f} not in [{o.primerTmMin:.1f},{o.primerTmMax:.1f}]"
            elif not (o.primerGCMin <= gc <= o.primerGCMax):
                reason = f"GC {gc:.1f}% not in [{o.primerGCMin:.1f},{o.primerGCMax:.1f}]"
            rows.append(CandidateRow(side, w.start, w.length, w.sequence, tm, gc, bool(reason), reason))
            if not reason:
                ok.append(_Candidate(w, tm, gc / 100.0))
        return ok

    def _prune(self, cands: List[_Candidate]) -> List[_Candidate]:
        """Quick subset: every other anchor, best few per anchor by distance to target Tm."""
        by_anchor: Dict[int, List[_Candidate]] = {}
        for c in cands:
            by_anchor.setdefault(c.window.anchor, []).append(c)
        if not by_anchor:
            return []
        first = min(by_anchor)
        target = self.options.primerTmTarget
        out: List[_Candidate] = []
        for anchor in sorted(by_anchor):
            if (anchor - first) % 2:
                continue
            group = sorted(by_anchor[anchor], key=lambda c: (abs(c.tm - target), c.window.length, c.window.start))
            out.extend(group[:QUICK_PER_ANCHOR])
        return out

    def _capped(self, pairs: Iterable[Tuple[_Candidate, _Candidate]]) -> List[Tuple[_Candidate, _Candidate]]:
        out: List[Tuple[_Candidate, _Candidate]] = []
        for pair in pairs:
            if len(out) >= self.options.maxCandidates:
                log.debug("Candidate cap %d reached", self.options.maxCandidates)
                break
            out.append(pair)
        return out

    # ---- scoring ----

    def _cheap_features(self, c: _Candidate, cache: Dict[str, PrimerFeatures]) -> PrimerFeatures:
        seq = c.window.sequence
        if seq not in cache:
            cache[seq] = PrimerFeatures(seq, c.tm, c.gc, terminal_3prime_dg(seq))
        return cache[seq]

    def _prescore(self, f: _Candidate, r: _Candidate, scorer: CompositeScorer, cache: Dict[str, PrimerFeatures]) -> _Scored:
        feats = scorer.features(self._cheap_features(f, cache), self._cheap_features(r, cache))
        return _Scored(f, r, scorer.composite(feats))

    def _full_score(self, s: _Scored, scorer: CompositeScorer, layout: Layout, product: str, tpl: Template) -> _Scored:
        o = self.options
        offtarget_template = product if o.checkOffTargets else None
        annealing_template = tpl.sequence if scorer.preset.use_annealing_region else None
        ff = primer_features(
            s.fwd.window.sequence, self.conditions,
            offtarget_template=offtarget_template, circular=tpl.circular,
            max_mismatches=o.offTargetMaxMismatches, annealing_template=annealing_template, folder=self.folder,
        )
        rf = primer_features(
            s.rev.window.sequence, self.conditions,
            offtarget_template=offtarget_template, circular=tpl.circular,
            max_mismatches=o.offTargetMaxMismatches, annealing_template=annealing_template, folder=self.folder,
        )
        # overlapping primers are complementary by construction
        hetero = None if layout.paired == "mirror" else safe_fold(ff.sequence, rf.sequence, self.folder)
        pair = scorer.score_pair(ff, rf, hetero)
        return _Scored(s.fwd, s.rev, pair.composite_score, pair, ff, rf, hetero)

    # ---- results ----

    def _primer(self, c: _Candidate, feats: PrimerFeatures, binding: Optional[BindingResult]) -> Primer:
        return Primer(
            sequence=c.window.sequence,
            direction=c.window.direction,
            start=c.window.start,
            end=c.window.end,
            tm=c.tm,
            gc=c.gc,
            hairpin_dg=feats.hairpin.dg if feats.hairpin else None,
            self_dimer_dg=feats.self_dimer.dg if feats.self_dimer else None,
            binding=binding,
        )

    def _template_binding(self, seq: str, reverse: bool, tpl: Template, rotation: int, spec: DesignSpecification) -> Optional[BindingResult]:
        """Best-effort location of the primer on the unedited template."""
        try:
            return find_primer_binding(
                rotate(tpl.sequence, rotation) if rotation else tpl.sequence,
                seq,
                reverse=reverse,
                mutation_position=spec.start if spec.is_mutagenesis else None,
                is_mutagenesis=spec.is_mutagenesis,
            )
        except PrimerDesignError as e:
            log.warning("Template binding skipped: %s", e.summary)
            return None

    def _result(
        self,
        s: _Scored,
        mode: str,
        exhaustive: bool,
        evaluated: int,
        product: str,
        template: Template,
        rotation: int,
        spec: DesignSpecification,
        edit: Mapping[str, object],
    ) -> DesignResult:
        fwd = self._primer(s.fwd, s.fwd_features, self._template_binding(s.fwd.window.sequence, False, template, rotation, spec))
        rev = self._primer(s.rev, s.rev_features, self._template_binding(s.rev.window.sequence, True, template, rotation, spec))
        p = s.pair
        return DesignResult(
            forward=fwd,
            reverse=rev,
            composite_score=p.composite_score,
            effective_score=p.effective_score,
            quality_tier=p.quality_tier,
            critical_warnings=p.critical_warnings,
            warnings=p.warnings,
            breakdown=p.breakdown,
            severities=p.severities,
            heterodimer_dg=s.heterodimer.dg if s.heterodimer else None,
            product_sequence=product,
            strategy="amplify" if spec.kind == "amplify" else self.options.strategy,
            mode=mode,
            search="exhaustive" if exhaustive else "quick",
            candidates_evaluated=evaluated,
            edit=edit,
            rotation=rotation,
            tm_diff=p.tm_diff,
        )

    # ---- failure ----

    def _raise_infeasible(self, diag: DesignDiagnostics, spec: DesignSpecification, layout: Layout) -> None:
        o = self.options

        def top_reasons(rows: List[CandidateRow]) -> List[Tuple[str, int]]:
            counts: Dict[str, int] = {}
            for r in rows:
                if r.rejected and r.reason:
                    # bucket by the failing constraint, not the exact value
                    key = r.reason.split(" ")[0].split("(")[0]
                    counts[key] = counts.get(key, 0) + 1
            return sorted(counts.items(), key=lambda x: x[1], reverse=True)[:5]

        f_reasons = top_reasons(diag.forward_candidates)
        r_reasons = top_reasons(diag.reverse_candidates)
        diag.message = "No valid primer pair"
        hints = [
            f"- Layout: {spec.kind if spec.kind == 'amplify' else o.strategy} at [{spec.start}, {spec.end})",
            f"- Forward: tested {len(diag.forward_candidates)}, ok={sum(1 for r in diag.forward_candidates if not r.rejected)}",
            f"- Reverse: tested {len(diag.reverse_candidates)}, ok={sum(1 for r in diag.reverse_candidates if not r.rejected)}",
            "- Top forward rejection reasons: " + (", ".join(f"{k} x{v}" for k, v in f_reasons) or "n/a"),
            "- Top reverse rejection reasons: " + (", ".join(f"{k} x{v}" for k, v in r_reasons) or "n/a"),
            "Try widening primerTmMin/primerTmMax, primerGCMin/primerGCMax, ",
            "or increasing primerLengthMin..primerLengthMax.",
        ]
        if not layout.forward or not layout.reverse:
            hints.insert(0, "- Not enough sequence around the region to place primers of the requested lengths.")
        err = NoFeasibleDesign("No primer pair satisfies the length/Tm/GC bounds.", hints)
        err.diagnostics = diag
        raise err


# --- Public API ----------------------------------------------------------------------------------

def design(
    template: Union[str, Template],
    spec: DesignSpecification,
    options: Optional[DesignOptions] = None,
    exhaustive: Optional[bool] = None,
) -> DesignResult:
    return DesignEngine(options).design(template, spec, exhaustive)


def design_batch(
    template: Union[str, Template],
    specs: Sequence[DesignSpecification],
    options: Optional[DesignOptions] = None,
) -> List[BatchItem]:
    return DesignEngine(options).design_batch(template, specs)
