# File: backend/tests/test_scoring.py
# Version: v0.1.0
"""
Feature bands, composite scoring, quality tiers and sequence-pattern checks.
"""
import math

import pytest

from backend.app.core.primer.constraints import (
    check_dimer_risk,
    gc_clamp_count,
    has_g4_motif,
    longest_homopolymer,
)
from backend.app.core.primer.folding import FoldResult
from backend.app.core.primer.scoring import (
    PRESETS,
    Band,
    CompositeScorer,
    PrimerFeatures,
    QualityTiers,
    classify_quality,
    get_preset,
    piecewise_logistic,
    score_g_quadruplex,
    score_gc_clamp,
    score_hairpin,
    score_homopolymer,
    score_offtarget,
    score_terminal_3prime_dg,
    score_tm_diff,
)

FWD = "ACGTGATCCTAGTGCAAGCC"
REV = "TCAGAGTCACTGGTCAGACG"


def _features(seq, tm, **kw):
    return PrimerFeatures(sequence=seq, tm=tm, gc=0.5, terminal_dg=-8.0, **kw)


# --- constraints ---------------------------------------------------------------------------------

def test_longest_homopolymer():
    assert longest_homopolymer("ACGT") == 1
    assert longest_homopolymer("acgggggt") == 5
    assert longest_homopolymer("") == 0


def test_g4_motif():
    assert has_g4_motif("GGGAGGGAGGGAGGG")
    assert not has_g4_motif("GGGAGGGAGGG")


def test_gc_clamp_count():
    assert gc_clamp_count("AAAGC") == 2
    assert gc_clamp_count("AAAAG") == 1
    assert gc_clamp_count("AAAAT") == 0


def test_complementarity_of_reverse_complements():
    consec, total = check_dimer_risk("ACGTACGTAA", "TTACGTACGT")
    assert consec == 10 and total == 10


# --- feature functions ---------------------------------------------------------------------------

def test_piecewise_logistic_bands():
    band = Band(55.0, 60.0, 50.0, 65.0)
    assert piecewise_logistic(57.0, band) == 1.0
    assert math.isclose(piecewise_logistic(50.0, band), 0.7)
    assert math.isclose(piecewise_logistic(65.0, band), 0.7)
    assert piecewise_logistic(70.0, band) < 0.7
    assert piecewise_logistic(80.0, band) < piecewise_logistic(70.0, band)


@pytest.mark.parametrize(
    "count, expected",
    [(0, 1.0), (1, 0.7), (2, 0.1), (3, 0.0), (7, 0.0), (None, 0.8)],
)
def test_score_offtarget(count, expected):
    assert math.isclose(score_offtarget(count), expected, abs_tol=1e-9)


@pytest.mark.parametrize(
    "a, b, expected",
    [(60.0, 61.5, 1.0), (60.0, 62.0, 1.0), (60.0, 65.0, 0.8), (60.0, 68.0, 0.5)],
)
def test_score_tm_diff_zones(a, b, expected):
    assert math.isclose(score_tm_diff(a, b), expected)


def test_score_tm_diff_decays_beyond_moderate():
    assert score_tm_diff(60.0, 70.0) < 0.5


def test_structure_scores():
    assert score_hairpin(None) == 0.8
    assert score_hairpin(-1.0) == 1.0
    assert score_hairpin(-3.0) == 1.0
    assert score_hairpin(-6.0) < score_hairpin(-4.0) < 1.0


def test_terminal_dg_score():
    assert score_terminal_3prime_dg(-8.0) == 1.0
    assert score_terminal_3prime_dg(-3.0) < 1.0
    assert score_terminal_3prime_dg(-14.0) < 1.0


def test_pattern_scores():
    assert score_gc_clamp("AAAAG") == 1.0
    assert score_gc_clamp("AAAGC") == 0.85
    assert score_gc_clamp("AAAAA") == 0.5
    assert score_homopolymer("ACGTACGT") == 1.0
    assert score_homopolymer("AAAAAAAC") < 1.0
    assert score_g_quadruplex("GGGAGGGAGGGAGGG") == 0.0
    assert score_g_quadruplex("ACGTACGT") == 1.0


# --- tiers / presets -----------------------------------------------------------------------------

@pytest.mark.parametrize(
    "score, tier",
    [(95.0, "excellent"), (90.0, "excellent"), (89.9, "good"), (75.0, "good"),
     (60.0, "acceptable"), (40.0, "marginal"), (39.9, "poor")],
)
def test_classify_quality(score, tier):
    assert classify_quality(score) == tier


def test_tiers_must_be_monotonic():
    with pytest.raises(ValueError):
        QualityTiers(excellent=70.0, good=80.0)


def test_preset_lookup():
    assert get_preset("golden-gate") is PRESETS["goldengate"]
    assert get_preset("mutagenesis").length.optimal_high == 45
    with pytest.raises(ValueError):
        get_preset("bogus")


# --- composite -----------------------------------------------------------------------------------

def test_composite_is_in_range_and_tiered():
    result = CompositeScorer().score_pair(_features(FWD, 58.0, offtargets=0), _features(REV, 58.5, offtargets=0))
    assert 0.0 <= result.composite_score <= 100.0
    assert result.critical_warnings == 0
    assert result.effective_score == result.composite_score
    assert result.quality_tier == classify_quality(result.composite_score)
    assert set(result.breakdown) == set(PRESETS["amplification"].weights)


def test_large_tm_gap_is_critical():
    scorer = CompositeScorer()
    result = scorer.score_pair(_features(FWD, 52.0), _features(REV, 64.0))
    assert result.critical_warnings == 1
    assert math.isclose(result.effective_score, max(0.0, result.composite_score - 20.0))
    assert any(w.startswith("tmDiff") for w in result.warnings)


def test_pair_tm_diff_uses_annealing_region():
    fwd = _features(FWD, 70.0, scored_sequence=FWD[5:], scored_tm=58.0)
    rev = _features(REV, 59.0, scored_sequence=REV[3:], scored_tm=59.5)
    result = CompositeScorer(get_preset("assembly")).score_pair(fwd, rev)
    assert math.isclose(result.tm_diff, 1.5)
    assert math.isclose(result.to_dict()["tmDiff"], 1.5)
    assert not any(w.startswith("tmDiff") for w in result.warnings)


def test_three_prime_hairpin_is_critical():
    hairpin = FoldResult(dg=-5.0, pairs=((0, 18),), strand_lengths=(20,))
    result = CompositeScorer().score_pair(_features(FWD, 58.0, hairpin=hairpin), _features(REV, 58.0))
    assert result.severities["hairpinFwd"] == "critical"
    assert result.severities["hairpinRev"] is None
    assert result.critical_warnings == 1


def test_with_weights_does_not_mutate_preset():
    scorer = CompositeScorer()
    heavy = scorer.with_weights(offTarget=10.0)
    assert heavy.preset.weights["offTarget"] == 10.0
    assert PRESETS["amplification"].weights["offTarget"] == 0.25
    low = _features(FWD, 58.0, offtargets=5)
    assert heavy.score_pair(low, low).composite_score < scorer.score_pair(low, low).composite_score
