# File: backend/tests/test_designer.py
# Version: v0.2.0
"""
End-to-end primer design: layouts, ranking, search modes, batch isolation, failures.
"""
import json
import math

import pytest

from backend.app.core.primer.analysis import primer_features
from backend.app.core.primer.designer import DesignEngine, design, design_batch
from backend.app.core.primer.errors import InputTooShort, NoFeasibleDesign
from backend.app.core.primer.mutations import DesignSpecification, Template, circular_slice, rotate
from backend.app.core.primer.parameters import DesignOptions
from backend.app.core.primer.scoring import classify_quality
from backend.app.core.primer.thermodynamics import revcomp


def _check_coordinates(result):
    product = result.product_sequence
    f, r = result.forward, result.reverse
    assert f.sequence == circular_slice(product, f.start, f.end)
    assert r.sequence == revcomp(circular_slice(product, r.start, r.end))


def test_deletion_back_to_back(template60, deletion_spec, relaxed_options):
    result = DesignEngine(relaxed_options).design(template60, deletion_spec)

    assert result.product_sequence == template60[:20] + template60[40:]
    assert result.strategy == "back-to-back"
    assert result.mode == "mutagenesis"
    assert result.search == "quick"
    assert result.edit["kind"] == "deletion"
    # the two 5' ends abut at the junction
    assert result.reverse.end == result.forward.start
    assert result.forward.start in (18, 19, 20)
    assert 18 <= result.forward.length <= 30
    _check_coordinates(result)
    assert 0.0 <= result.composite_score <= 100.0
    assert result.heterodimer_dg is not None


def test_alternatives_are_ranked(template60, deletion_spec, relaxed_options):
    result = DesignEngine(relaxed_options).design(template60, deletion_spec)
    assert len(result.alternatives) <= relaxed_options.maxAlternatives
    scores = [result.composite_score] + [a.composite_score for a in result.alternatives]
    assert scores == sorted(scores, reverse=True)
    keys = {(a.forward.start, a.forward.end, a.reverse.start, a.reverse.end) for a in result.alternatives}
    assert (result.forward.start, result.forward.end, result.reverse.start, result.reverse.end) not in keys


def test_exhaustive_never_worse_than_quick(template60, deletion_spec, relaxed_options):
    engine = DesignEngine(relaxed_options)
    quick = engine.design(template60, deletion_spec, exhaustive=False)
    full = engine.design(template60, deletion_spec, exhaustive=True)
    assert full.search == "exhaustive"
    assert full.composite_score >= quick.composite_score
    assert full.candidates_evaluated >= quick.candidates_evaluated


def test_design_is_deterministic(template60, deletion_spec, relaxed_options):
    a = design(template60, deletion_spec, relaxed_options)
    b = design(template60, deletion_spec, relaxed_options)
    assert a.to_dict() == b.to_dict()
    json.dumps(a.to_dict())


def test_insertion_carries_replacement(template60, relaxed_options):
    result = DesignEngine(relaxed_options).design(template60, DesignSpecification(24, 24, "GAATTC"))
    assert result.edit["kind"] == "insertion"
    assert "GAATTC" in result.forward.sequence
    assert result.reverse.end == result.forward.start
    _check_coordinates(result)


def test_amplification(template60, relaxed_options):
    result = DesignEngine(relaxed_options).design(template60, DesignSpecification(10, 50, None))
    assert result.strategy == "amplify"
    assert result.mode == "amplification"
    assert result.product_sequence == template60
    assert 0 <= result.forward.start <= 10
    assert 50 <= result.reverse.end <= 60
    _check_coordinates(result)
    # primers are template substrings, so binding is exact
    assert result.forward.binding.method == "exact"
    assert result.reverse.binding.method == "exact"


def test_overlapping_layout(template60):
    options = DesignOptions(
        strategy="overlapping", flankMin=10, flankMax=15, primerLengthMax=31, primerTmMin=40.0, primerTmMax=80.0,
    )
    result = DesignEngine(options).design(template60, DesignSpecification(28, 29, "G"))
    f, r = result.forward, result.reverse
    assert result.strategy == "overlapping"
    assert (f.start, f.end) == (r.start, r.end)
    assert revcomp(r.sequence) == f.sequence
    assert f.start <= 28 < f.end
    assert result.product_sequence[28] == "G"
    assert result.heterodimer_dg is None


def test_circular_amplification_across_origin(template60):
    options = DesignOptions(primerTmMin=40.0, primerTmMax=80.0, circular=True)
    result = DesignEngine(options).design(template60, DesignSpecification(50, 10, None))
    assert result.rotation == 50
    assert result.product_sequence == rotate(template60, 50)
    _check_coordinates(result)


def test_explicit_mode_overrides_inference(template60, deletion_spec):
    options = DesignOptions(primerTmMin=40.0, primerTmMax=80.0, mode="sequencing")
    assert DesignEngine(options).design(template60, deletion_spec).mode == "sequencing"


def test_template_too_short(deletion_spec):
    with pytest.raises(InputTooShort):
        DesignEngine().design("ACGT" * 10, deletion_spec)


def test_infeasible_bounds_raise_with_diagnostics(template60, deletion_spec):
    options = DesignOptions(primerTmMin=79.0, primerTmMax=80.0)
    with pytest.raises(NoFeasibleDesign) as ei:
        DesignEngine(options).design(template60, deletion_spec)
    err = ei.value
    assert err.hints
    assert any("Tm" in h for h in err.hints)
    diag = err.diagnostics
    assert diag.forward_candidates and all(r.rejected for r in diag.forward_candidates)


def test_batch_isolates_failures(template60, deletion_spec, relaxed_options):
    specs = [deletion_spec, DesignSpecification(100, 120, ""), DesignSpecification(24, 24, "GAATTC")]
    items = design_batch(template60, specs, relaxed_options)
    assert [i.success for i in items] == [True, False, True]
    assert "outside" in items[1].error
    assert items[1].to_dict()["result"] is None
    assert [i.index for i in items] == [0, 1, 2]


def test_batch_with_bad_template_fails_every_item(deletion_spec):
    items = DesignEngine().design_batch("ACGT" * 5, [deletion_spec, deletion_spec])
    assert len(items) == 2
    assert not any(i.success for i in items)


def test_template_object_is_accepted(template60, deletion_spec, relaxed_options):
    result = DesignEngine(relaxed_options).design(Template.of(template60), deletion_spec)
    assert result.forward.sequence


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_deletion_with_default_options(seed, block_template):
    template = block_template(seed)
    result = design(template, DesignSpecification(20, 40, ""), DesignOptions(strategy="back-to-back"))

    for primer in (result.forward, result.reverse):
        assert 18 <= primer.length <= 30
        assert 55.0 <= primer.tm <= 72.0
    assert 0.0 <= result.composite_score <= 100.0
    assert result.quality_tier == classify_quality(result.composite_score)
    _check_coordinates(result)


def test_tm_diff_reports_scored_regions(template60, deletion_spec):
    options = DesignOptions(primerTmMin=40.0, primerTmMax=80.0, mode="assembly")
    result = DesignEngine(options).design(template60, deletion_spec)
    conditions = options.conditions
    fwd = primer_features(result.forward.sequence, conditions, annealing_template=template60)
    rev = primer_features(result.reverse.sequence, conditions, annealing_template=template60)
    assert math.isclose(result.tm_diff, abs(fwd.region_tm - rev.region_tm))
    assert result.to_dict()["tmDiff"] == result.tm_diff


def test_batch_fails_only_the_bad_item(template60, relaxed_options):
    specs = [
        DesignSpecification(20, 40, ""),
        DesignSpecification(28, 29, "G"),
        DesignSpecification(55, 70, ""),
        DesignSpecification(24, 24, "GAATTC"),
    ]
    items = design_batch(template60, specs, relaxed_options)
    assert [i.success for i in items] == [True, True, False, True]
    assert items[2].error
