# File: backend/app/core/primer/constraints.py
# Version: v0.2.0
"""
Sequence-pattern checks for primer candidates.

Includes:
- Homopolymer runs and canonical G-quadruplex motifs
- GC clamp (G/C among the last two 3' bases)
- Ungapped complementarity between two primers (max consecutive / total matches)
"""

from __future__ import annotations

import re
from typing import Tuple

from .thermodynamics import revcomp

G4_MOTIF = re.compile(r"G{3,}[ATGC]{1,7}G{3,}[ATGC]{1,7}G{3,}[ATGC]{1,7}G{3,}")
G_RUN = re.compile(r"GGG+")
AT_RUN_4 = re.compile(r"[AT]{4,}")


def longest_homopolymer(seq: str) -> int:
    best = 0
    run = 0
    prev = ""
    for c in seq.upper():
        if c == prev:
            run += 1
        else:
            run = 1
            prev = c
        if run > best:
            best = run
    return best


def has_g4_motif(seq: str) -> bool:
    return bool(G4_MOTIF.search(seq.upper()))


def g_run_count(seq: str) -> int:
    return len(G_RUN.findall(seq.upper()))


def gc_clamp_count(seq: str) -> int:
    """Number of G/C among the last two bases."""
    return sum(1 for c in seq[-2:].upper() if c in "GC")


def consecutive_complement_runs(a: str, b_rc: str) -> Tuple[int, int]:
    """
    Compute:
     - max consecutive complementary matches when a is aligned to RC of b without gaps
     - total complementary matches in the best ungapped alignment (max over shifts)

    Returns:
        (max_consecutive, max_total)
    """
    a = a.upper()
    b_rc = b_rc.upper()
    max_consec = 0
    max_total = 0

    for shift in range(-len(b_rc) + 1, len(a)):
        consec = 0
        total = 0
        for i in range(len(a)):
            j = i - shift
            if 0 <= j < len(b_rc):
                if a[i] == b_rc[j]:
                    total += 1
                    consec += 1
                    max_consec = max(max_consec, consec)
                else:
                    consec = 0
        max_total = max(max_total, total)

    return max_consec, max_total


def check_dimer_risk(a: str, b: str) -> Tuple[int, int]:
    """(max_consecutive, max_total) complementary matches between a and b (both 5'->3')."""
    return consecutive_complement_runs(a, revcomp(b))
