# File: backend/app/core/primer/scoring.py
# Version: v0.3.0
"""
Composite scoring for primer pairs.

Higher is better. Every feature maps into [0, 1]; the composite is
100 * Σ w_i s_i / Σ w_i with mode-specific weights.

Feature bands
-------------
- Tm / GC% / length: piecewise logistic (1.0 in the optimal band, linear 1.0 -> 0.7
  across the acceptable band, logistic decay beyond it)
- 3' terminal ΔG (last 5 bases): optimal -11..-6 kcal/mol
- |ΔTm|: <=2 °C free, <=5 mild (0.9..0.8), <=8 moderate (0.7..0.5), then exponential
- Hairpin / self-dimer / heterodimer ΔG: exponential below a per-mode threshold
- Off-targets: 0 -> 1.0, 1 -> 0.7, 2 -> 0.1, >=3 -> 0
- GC clamp, 3' composition, homopolymer runs, G-quadruplex motifs

Missing structure / off-target data score 0.8 (unknown).

Presets, weights and tier cut points are immutable and injected into
`CompositeScorer`; nothing here is mutated at runtime.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from backend.app.core.primer.constraints import (
    AT_RUN_4,
    gc_clamp_count,
    g_run_count,
    has_g4_motif,
    longest_homopolymer,
)
from backend.app.core.primer.folding import (
    DIMER_THRESHOLDS,
    FoldResult,
    SeverityThresholds,
    classify_structure_severity,
)

UNKNOWN_SCORE = 0.8
CRITICAL_PENALTY = 20.0
CRITICAL_TM_DIFF = 8.0
CRITICAL_LENGTH_EXCESS = 15
CRITICAL_HOMOPOLYMER = 6

# --- Bands / presets -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Band:
    optimal_low: float
    optimal_high: float
    acceptable_low: float
    acceptable_high: float
    steepness: float = 0.5


DEFAULT_WEIGHTS: Mapping[str, float] = MappingProxyType({
    "offTarget": 0.25,
    "terminal3DG": 0.20,
    "gQuadruplexRev": 0.15,
    "gQuadruplexFwd": 0.05,
    "tmRev": 0.05,
    "hairpinRev": 0.05,
    "heterodimer": 0.06,
    "gcRev": 0.04,
    "selfDimerFwd": 0.04,
    "selfDimerRev": 0.04,
    "threePrimeCompFwd": 0.04,
    "threePrimeCompRev": 0.04,
    "gcFwd": 0.02,
    "gcClampFwd": 0.03,
    "gcClampRev": 0.03,
    "tmDiff": 0.03,
    "tmFwd": 0.02,
    "hairpinFwd": 0.02,
    "homopolymerFwd": 0.02,
    "homopolymerRev": 0.02,
    "lengthFwd": 0.01,
    "lengthRev": 0.01,
})


def _weights(**overrides: float) -> Mapping[str, float]:
    w = dict(DEFAULT_WEIGHTS)
    w.update(overrides)
    return MappingProxyType(w)


@dataclass(frozen=True)
class ScoringPreset:
    mode: str
    tm: Band
    gc: Band
    length: Band
    hairpin_threshold: float = -3.0
    dimer_threshold: float = -6.0
    weights: Mapping[str, float] = field(default_factory=lambda: DEFAULT_WEIGHTS)
    use_annealing_region: bool = False
    tm_diff_zones: Tuple[float, float, float] = (2.0, 5.0, 8.0)
    severity: Mapping[str, SeverityThresholds] = field(default_factory=lambda: DIMER_THRESHOLDS)


_GC = Band(40.0, 60.0, 30.0, 70.0, 0.15)

PRESETS: Mapping[str, ScoringPreset] = MappingProxyType({
    "amplification": ScoringPreset(
        "amplification", Band(55.0, 60.0, 50.0, 65.0, 0.5), _GC, Band(18, 24, 15, 30, 0.3)),
    "mutagenesis": ScoringPreset(
        "mutagenesis", Band(50.0, 72.0, 45.0, 78.0, 0.5), _GC, Band(25, 45, 18, 60, 0.3),
        weights=_weights(terminal3DG=0.25, heterodimer=0.15)),
    "sequencing": ScoringPreset(
        "sequencing", Band(55.0, 60.0, 50.0, 65.0, 0.5), _GC, Band(18, 24, 15, 30, 0.3),
        hairpin_threshold=-2.5, dimer_threshold=-5.0, weights=_weights(offTarget=0.30)),
    "assembly": ScoringPreset(
        "assembly", Band(48.0, 65.0, 45.0, 70.0, 0.5), _GC, Band(18, 30, 15, 40, 0.3),
        weights=_weights(heterodimer=0.15), use_annealing_region=True),
    "goldengate": ScoringPreset(
        "goldengate", Band(50.0, 60.0, 45.0, 65.0, 0.5), _GC, Band(18, 25, 15, 30, 0.3),
        weights=_weights(heterodimer=0.15), use_annealing_region=True),
})

MODE_ALIASES: Mapping[str, str] = MappingProxyType({"golden-gate": "goldengate", "golden_gate": "goldengate"})


def get_preset(mode: str) -> ScoringPreset:
    key = MODE_ALIASES.get(mode, mode)
    if key not in PRESETS:
        raise ValueError(f"Unknown design mode '{mode}'. Expected one of: {', '.join(PRESETS)}")
    return PRESETS[key]


@dataclass(frozen=True)
class QualityTiers:
    excellent: float = 90.0
    good: float = 75.0
    acceptable: float = 60.0
    marginal: float = 40.0

    def __post_init__(self) -> None:
        if not (self.excellent >= self.good >= self.acceptable >= self.marginal):
            raise ValueError("Quality tier cut points must be monotonic (excellent >= good >= acceptable >= marginal)")


DEFAULT_TIERS = QualityTiers()


def classify_quality(score: float, tiers: QualityTiers = DEFAULT_TIERS) -> str:
    if score >= tiers.excellent:
        return "excellent"
    if score >= tiers.good:
        return "good"
    if score >= tiers.acceptable:
        return "acceptable"
    if score >= tiers.marginal:
        return "marginal"
    return "poor"


# --- Feature functions ([0, 1]) ------------------------------------------------------------------

def piecewise_logistic(value: float, band: Band, floor: float = 0.0) -> float:
    if band.optimal_low <= value <= band.optimal_high:
        return 1.0
    if value < band.optimal_low:
        if value >= band.acceptable_low:
            ratio = (value - band.acceptable_low) / (band.optimal_low - band.acceptable_low)
            return 0.7 + 0.3 * ratio
        excess = band.acceptable_low - value
    else:
        if value <= band.acceptable_high:
            ratio = (band.acceptable_high - value) / (band.acceptable_high - band.optimal_high)
            return 0.7 + 0.3 * ratio
        excess = value - band.acceptable_high
    return max(floor, 0.7 / (1.0 + math.exp(band.steepness * excess)))


def score_tm(tm: float, band: Band = PRESETS["amplification"].tm) -> float:
    if tm is None or math.isnan(tm):
        return 0.5
    return piecewise_logistic(tm, band)


def score_gc(gc_fraction: float, band: Band = _GC) -> float:
    return piecewise_logistic(100.0 * gc_fraction, band)


def score_length(length: int, band: Band = PRESETS["amplification"].length) -> float:
    return piecewise_logistic(float(length), band)


def score_terminal_3prime_dg(dg: float, optimal_low: float = -11.0, optimal_high: float = -6.0) -> float:
    if optimal_low <= dg <= optimal_high:
        return 1.0
    if dg > optimal_high:
        return math.exp(-0.3 * (dg - optimal_high))
    return math.exp(-0.15 * (optimal_low - dg))


def score_tm_diff(tm_fwd: float, tm_rev: float, zones: Tuple[float, float, float] = (2.0, 5.0, 8.0)) -> float:
    free, mild, moderate = zones
    d = abs(tm_fwd - tm_rev)
    if d <= free:
        return 1.0
    if d <= mild:
        return 0.9 - 0.1 * (d - free) / (mild - free)
    if d <= moderate:
        return 0.7 - 0.2 * (d - mild) / (moderate - mild)
    return 0.5 * math.exp(-0.2 * (d - moderate))


def _structure_score(dg: Optional[float], threshold: float, steepness: float) -> float:
    if dg is None:
        return UNKNOWN_SCORE
    if dg >= threshold:
        return 1.0
    return math.exp(-steepness * (threshold - dg))


def score_hairpin(dg: Optional[float], threshold: float = -3.0) -> float:
    return _structure_score(dg, threshold, 0.8)


def score_self_dimer(dg: Optional[float], threshold: float = -6.0) -> float:
    return _structure_score(dg, threshold, 0.5)


def score_heterodimer(dg: Optional[float], threshold: float = -6.0) -> float:
    return _structure_score(dg, threshold, 0.5)


def score_offtarget(count: Optional[int]) -> float:
    if count is None:
        return UNKNOWN_SCORE
    if count <= 0:
        return 1.0
    if count >= 3:
        return 0.0
    return 1.0 - 0.3 * 3 ** (count - 1)


def score_gc_clamp(seq: str) -> float:
    n = gc_clamp_count(seq)
    if n == 1:
        return 1.0
    if n == 2:
        return 0.85
    return 0.5


def score_3prime_composition(seq: str, terminal_dg: Optional[float] = None) -> float:
    s = seq.upper()
    last5 = s[-5:]
    gc5 = sum(1 for c in last5 if c in "GC")

    clamp = score_gc_clamp(s)

    dg_score = 1.0
    if terminal_dg is not None:
        if terminal_dg > -6.0:
            dg_score = max(0.2, 1.0 - 0.12 * (terminal_dg + 6.0))
        elif terminal_dg < -11.0:
            dg_score = max(0.5, 1.0 - 0.05 * (-11.0 - terminal_dg))

    pattern = 1.0
    if AT_RUN_4.search(last5):
        pattern -= 0.40
    if not s.endswith(("G", "C")):
        pattern -= 0.15
    if gc5 <= 1:
        pattern -= 0.15
    if "AAA" in last5 or "TTT" in last5:
        pattern -= 0.10
    pattern = max(0.0, pattern)

    return max(0.0, min(1.0, 0.40 * clamp + 0.35 * dg_score + 0.25 * pattern))


def score_homopolymer(seq: str, max_run: int = 3) -> float:
    run = longest_homopolymer(seq.upper())
    if run <= max_run:
        return 1.0
    return max(0.3, 1.0 - 0.15 * (run - max_run))


def score_g_quadruplex(seq: str) -> float:
    s = seq.upper()
    if has_g4_motif(s):
        return 0.0
    if "GGGG" in s:
        return 0.2
    if g_run_count(s) >= 2:
        return 0.6
    return 1.0


# --- Composite -----------------------------------------------------------------------------------

@dataclass(frozen=True)
class PrimerFeatures:
    """Everything the scorer needs about one primer (computed by analysis.py)."""
    sequence: str
    tm: float
    gc: float                         # fraction
    terminal_dg: float
    hairpin: Optional[FoldResult] = None
    self_dimer: Optional[FoldResult] = None
    offtargets: Optional[int] = None
    # region scored for Tm/GC/length (annealing region in tailed modes)
    scored_sequence: Optional[str] = None
    scored_tm: Optional[float] = None
    scored_gc: Optional[float] = None

    @property
    def region(self) -> str:
        return self.scored_sequence or self.sequence

    @property
    def region_tm(self) -> float:
        return self.tm if self.scored_tm is None else self.scored_tm

    @property
    def region_gc(self) -> float:
        return self.gc if self.scored_gc is None else self.scored_gc


@dataclass(frozen=True)
class PairScore:
    composite_score: float
    effective_score: float
    quality_tier: str
    critical_warnings: int
    breakdown: Mapping[str, float]
    severities: Mapping[str, Optional[str]]
    warnings: Tuple[str, ...] = ()
    tm_diff: float = 0.0               # |ΔTm| of the scored regions

    def to_dict(self) -> dict:
        return {
            "compositeScore": self.composite_score,
            "effectiveScore": self.effective_score,
            "qualityTier": self.quality_tier,
            "criticalWarnings": self.critical_warnings,
            "breakdown": dict(self.breakdown),
            "severities": dict(self.severities),
            "warnings": list(self.warnings),
            "tmDiff": self.tm_diff,
        }


class CompositeScorer:
    """Weighted multi-feature scorer bound to one preset."""

    def __init__(
        self,
        preset: ScoringPreset = PRESETS["amplification"],
        tiers: QualityTiers = DEFAULT_TIERS,
        critical_penalty: float = CRITICAL_PENALTY,
    ) -> None:
        self.preset = preset
        self.tiers = tiers
        self.critical_penalty = critical_penalty

    def with_weights(self, **overrides: float) -> "CompositeScorer":
        w = dict(self.preset.weights)
        w.update(overrides)
        return CompositeScorer(replace(self.preset, weights=MappingProxyType(w)), self.tiers, self.critical_penalty)

    # --- per-primer ---

    def _primer_scores(self, f: PrimerFeatures) -> Dict[str, float]:
        p = self.preset
        return {
            "tm": score_tm(f.region_tm, p.tm),
            "gc": score_gc(f.region_gc, p.gc),
            "length": score_length(len(f.region), p.length),
            "hairpin": score_hairpin(f.hairpin.dg if f.hairpin else None, p.hairpin_threshold),
            "selfDimer": score_self_dimer(f.self_dimer.dg if f.self_dimer else None, p.dimer_threshold),
            "threePrimeComp": score_3prime_composition(f.sequence, f.terminal_dg),
            "gcClamp": score_gc_clamp(f.sequence),
            "homopolymer": score_homopolymer(f.sequence),
            "gQuadruplex": score_g_quadruplex(f.sequence),
        }

    def _severity(self, fold: Optional[FoldResult], length: int, kind: str) -> Optional[str]:
        if fold is None:
            return None
        return classify_structure_severity(fold, length, kind, self.preset.severity)

    def features(
        self,
        fwd: PrimerFeatures,
        rev: PrimerFeatures,
        heterodimer: Optional[FoldResult] = None,
    ) -> Dict[str, float]:
        """Per-feature scores in [0, 1] keyed like DEFAULT_WEIGHTS."""
        fs = self._primer_scores(fwd)
        rs = self._primer_scores(rev)
        out: Dict[str, float] = {}
        for key, value in fs.items():
            out[key + "Fwd"] = value
        for key, value in rs.items():
            out[key + "Rev"] = value
        out["tmDiff"] = score_tm_diff(fwd.region_tm, rev.region_tm, self.preset.tm_diff_zones)
        out["heterodimer"] = score_heterodimer(heterodimer.dg if heterodimer else None, self.preset.dimer_threshold)
        out["terminal3DG"] = min(score_terminal_3prime_dg(fwd.terminal_dg), score_terminal_3prime_dg(rev.terminal_dg))
        out["offTarget"] = min(score_offtarget(fwd.offtargets), score_offtarget(rev.offtargets))
        return out

    def composite(self, features: Mapping[str, float]) -> float:
        total_w = 0.0
        acc = 0.0
        for key, w in self.preset.weights.items():
            if key in features:
                acc += w * features[key]
                total_w += w
        return 100.0 * acc / total_w if total_w > 0 else 0.0

    def score_pair(
        self,
        fwd: PrimerFeatures,
        rev: PrimerFeatures,
        heterodimer: Optional[FoldResult] = None,
    ) -> PairScore:
        feats = self.features(fwd, rev, heterodimer)
        composite = self.composite(feats)

        severities: Dict[str, Optional[str]] = {
            "hairpinFwd": self._severity(fwd.hairpin, len(fwd.sequence), "hairpin"),
            "hairpinRev": self._severity(rev.hairpin, len(rev.sequence), "hairpin"),
            "selfDimerFwd": self._severity(fwd.self_dimer, len(fwd.sequence), "self_dimer"),
            "selfDimerRev": self._severity(rev.self_dimer, len(rev.sequence), "self_dimer"),
            "heterodimer": self._severity(heterodimer, len(fwd.sequence), "heterodimer"),
        }

        warnings: List[str] = []
        critical = 0
        for key, level in severities.items():
            if level == "critical":
                critical += 1
                warnings.append(f"{key}: critical (3' end paired)")
            elif level == "warning":
                warnings.append(f"{key}: warning")

        d_tm = abs(fwd.region_tm - rev.region_tm)
        if d_tm > CRITICAL_TM_DIFF:
            critical += 1
            warnings.append(f"tmDiff: {d_tm:.1f} °C exceeds {CRITICAL_TM_DIFF:.0f} °C")
        for tag, f in (("Fwd", fwd), ("Rev", rev)):
            if len(f.region) > self.preset.length.optimal_high + CRITICAL_LENGTH_EXCESS:
                critical += 1
                warnings.append(f"length{tag}: {len(f.region)} nt is far above optimal")
            run = longest_homopolymer(f.sequence)
            if run >= CRITICAL_HOMOPOLYMER:
                critical += 1
                warnings.append(f"homopolymer{tag}: run of {run}")
            if has_g4_motif(f.sequence):
                critical += 1
                warnings.append(f"gQuadruplex{tag}: canonical G4 motif")
            if f.offtargets:
                warnings.append(f"offTarget{tag}: {f.offtargets} additional site(s)")

        effective = max(0.0, composite - self.critical_penalty * critical)
        return PairScore(
            composite_score=composite,
            effective_score=effective,
            quality_tier=classify_quality(composite, self.tiers),
            critical_warnings=critical,
            breakdown=MappingProxyType({k: 100.0 * v for k, v in feats.items()}),
            severities=MappingProxyType(severities),
            warnings=tuple(warnings),
            tm_diff=d_tm,
        )
