# File: backend/tests/test_alignments.py
# Version: v0.2.0
"""
Primer binding cascade, annealing-region split, Type IIS sites and off-targets.
"""
import random

import pytest

from backend.app.core.primer.alignments import (
    BindingQuery,
    detect_golden_gate_sites,
    find_annealing_region,
    find_primer_binding,
    mutation_anchor,
    weighted_alignment,
)
from backend.app.core.primer.errors import InputTooShort
from backend.app.core.primer.offtarget import count_binding_sites, count_offtargets
from backend.app.core.primer.thermodynamics import revcomp


def test_exact_forward_binding(lacz80):
    hit = find_primer_binding(lacz80, lacz80[10:30])
    assert (hit.start, hit.end) == (10, 30)
    assert hit.method == "exact"
    assert hit.score == 1.0


@pytest.mark.parametrize("seed", range(8))
def test_exact_binding_of_random_primer(seed):
    rng = random.Random(seed)
    length = rng.randint(10, 20)
    # first base is never A so the primer cannot also start inside the poly-A pad
    primer = rng.choice("CGT") + "".join(rng.choice("ACGT") for _ in range(length - 1))
    hit = find_primer_binding("AAAA" + primer + "TTTT", primer)
    assert (hit.start, hit.end) == (4, 4 + length)
    assert hit.method == "exact"
    assert hit.score == 1.0


def test_exact_reverse_binding(lacz80):
    hit = find_primer_binding(lacz80, revcomp(lacz80[40:60]), reverse=True)
    assert (hit.start, hit.end) == (40, 60)
    assert hit.method == "exact"


def test_explicit_hint_wins(lacz80):
    hit = find_primer_binding(lacz80, lacz80[10:30], position_hint=(5, 25))
    assert hit.method == "explicit_position"
    assert (hit.start, hit.end) == (5, 25)


def test_out_of_range_hint_is_ignored(lacz80):
    hit = find_primer_binding(lacz80, lacz80[10:30], position_hint=(70, 200))
    assert hit.method == "exact"


def test_short_primer_rejected(lacz80):
    with pytest.raises(InputTooShort):
        find_primer_binding(lacz80, "ACGTACG")


def test_one_mismatch_found_by_weighted_scan(lacz80):
    primer = lacz80[30:50]
    primer = primer[:2] + ("A" if primer[2] != "A" else "C") + primer[3:]
    hit = weighted_alignment(BindingQuery(lacz80, primer))
    assert hit is not None
    assert hit.start == 30
    assert 0 < hit.score < 1


def test_one_mismatch_found_by_cascade(lacz80):
    primer = lacz80[30:50]
    primer = primer[:2] + ("A" if primer[2] != "A" else "C") + primer[3:]
    hit = find_primer_binding(lacz80, primer)
    assert hit is not None
    assert hit.start == 30
    assert hit.method in ("dual_anchor", "anchor_3prime", "weighted_alignment")


def test_mutation_anchor_offsets():
    tpl = "ACGT" * 25
    fwd = mutation_anchor(BindingQuery(tpl, "G" * 20, mutation_position=40, is_mutagenesis=True))
    assert (fwd.start, fwd.end) == (32, 52)
    assert fwd.score == 0.85
    rev = mutation_anchor(BindingQuery(tpl, "G" * 20, reverse=True, mutation_position=40, is_mutagenesis=True))
    assert (rev.start, rev.end) == (10, 30)


def test_mutation_anchor_requires_mutagenesis():
    assert mutation_anchor(BindingQuery("ACGT" * 25, "G" * 20, mutation_position=40)) is None


def test_unrelated_primer_not_found():
    assert find_primer_binding("AT" * 40, "GCGCGCGCGCGCGCGCGCGC") is None


def test_annealing_region_split(lacz80):
    primer = "GGTCTCA" + lacz80[20:40]
    split = find_annealing_region(primer, lacz80)
    assert split is not None
    assert split.annealing == lacz80[20:40]
    assert split.tail == "GGTCTCA"
    assert split.binding.start == 20


def test_golden_gate_sites_both_strands():
    sites = detect_golden_gate_sites("AAGGTCTCAA")
    assert [(s.enzyme, s.position, s.strand) for s in sites] == [("BsaI", 2, "+")]
    sites = detect_golden_gate_sites("GAGACCTT")
    assert [(s.enzyme, s.position, s.strand) for s in sites] == [("BsaI", 0, "-")]


def test_offtargets_unique_site(lacz80):
    assert count_binding_sites(lacz80[10:30], lacz80) == 1
    assert count_offtargets(lacz80[10:30], lacz80) == 0


def test_offtargets_repeated_site(lacz80):
    primer = lacz80[10:30]
    tpl = lacz80 + "TTTTT" + revcomp(primer)
    assert count_offtargets(primer, tpl) == 1


def test_offtargets_across_origin(lacz80):
    primer = lacz80[-10:] + lacz80[:10]
    assert count_binding_sites(primer, lacz80, circular=False) == 0
    assert count_binding_sites(primer, lacz80, circular=True) == 1
