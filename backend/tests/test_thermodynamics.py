# File: backend/tests/test_thermodynamics.py
# Version: v0.2.0
"""
Nearest-neighbor Tm, GC content and 3' end stability.
"""
import math
import random

import pytest

from backend.app.core.primer.errors import InvalidSequence
from backend.app.core.primer.thermodynamics import (
    TmConditions,
    calculate_gc,
    calculate_tm,
    classify_terminal_dg,
    clean_sequence,
    revcomp,
    terminal_3prime_dg,
    validate_sequence,
)

M13_REV = "AGCGGATAACAATTTCACACAGGA"


def test_clean_sequence_strips_whitespace_and_digits():
    assert clean_sequence("acg t\n12ga") == "ACGTGA"


@pytest.mark.parametrize("bad", ["", "   ", "ACGU", "ACGN"])
def test_validate_sequence_rejects(bad):
    with pytest.raises(InvalidSequence):
        validate_sequence(bad)


def test_tm_is_deterministic_and_plausible():
    a = calculate_tm(M13_REV)
    b = calculate_tm(M13_REV)
    assert a == b
    assert 50.0 < a < 75.0


def test_tm_accepts_lowercase_and_whitespace():
    assert math.isclose(calculate_tm(M13_REV.lower()), calculate_tm(M13_REV))
    assert math.isclose(calculate_tm(M13_REV[:12] + "\n" + M13_REV[12:]), calculate_tm(M13_REV))


def test_tm_increases_with_gc():
    at_only = "ATTATAATTATTAATATTAT"
    mixed = "ATGCATTACGATTGCAGTCA"
    gc_only = "GCGCCGGCGCGGCCGCGCCG"
    assert calculate_tm(at_only) < calculate_tm(mixed) < calculate_tm(gc_only)


@pytest.mark.parametrize("seed", range(6))
def test_tm_increases_with_gc_on_random_sequences(seed):
    rng = random.Random(seed)
    length = rng.randint(15, 30)
    half = length // 2
    at_only = "".join(rng.choice("AT") for _ in range(length))
    mixed = [rng.choice("GC") for _ in range(half)] + [rng.choice("AT") for _ in range(length - half)]
    rng.shuffle(mixed)
    gc_only = "".join(rng.choice("GC") for _ in range(length))

    tms = [calculate_tm(s) for s in (at_only, "".join(mixed), gc_only)]
    assert tms[0] < tms[1] < tms[2]
    assert calculate_tm(gc_only) == tms[2]  # deterministic


@pytest.mark.parametrize("bad", ["A", "", "ACGTX"])
def test_tm_rejects_invalid_input(bad):
    with pytest.raises(InvalidSequence):
        calculate_tm(bad)


def test_tm_depends_on_salt():
    low = calculate_tm(M13_REV, TmConditions(na_mm=10.0, mg_mm=0.0))
    high = calculate_tm(M13_REV, TmConditions(na_mm=200.0, mg_mm=0.0))
    assert low < high


def test_primer3_backend_is_close_to_biopython():
    bio = calculate_tm(M13_REV)
    p3 = calculate_tm(M13_REV, TmConditions(method="primer3"))
    assert abs(bio - p3) < 8.0


def test_gc_fraction():
    assert calculate_gc("GGCC") == 1.0
    assert calculate_gc("ATGC") == 0.5
    assert calculate_gc("ATAT") == 0.0
    with pytest.raises(InvalidSequence):
        calculate_gc("")


def test_revcomp():
    assert revcomp("ATGC") == "GCAT"
    assert revcomp(revcomp(M13_REV)) == M13_REV


def test_terminal_dg_is_more_negative_for_gc_ends():
    assert terminal_3prime_dg("AAAAAGCGCG") < terminal_3prime_dg("GGGGGATATA") < 0


@pytest.mark.parametrize(
    "dg, label",
    [(-5.0, "loose"), (-6.0, "ideal"), (-8.9, "ideal"), (-9.0, "strong"), (-11.0, "sticky"), (-12.5, "sticky")],
)
def test_classify_terminal_dg(dg, label):
    assert classify_terminal_dg(dg) == label
