# File: backend/app/core/primer/offtarget.py
# Version: v0.2.0
"""
Off-target attachment counters.

Approach:
- Ungapped sliding comparison of primer vs. template and template RC
  (Hamming distance via rapidfuzz).
- A site counts when the full primer matches with at most `max_mismatches`
  mismatches AND the 3' terminal base matches.
- Circular templates are scanned across the origin.
- The intended binding site is subtracted from the total.
"""

from __future__ import annotations

from rapidfuzz.distance import Hamming

from backend.app.core.primer.thermodynamics import clean_sequence, revcomp


def _count_ungapped_matches(primer: str, subject: str, max_mismatches: int) -> int:
    n = len(primer)
    if n == 0 or len(subject) < n:
        return 0
    count = 0
    for start in range(0, len(subject) - n + 1):
        window = subject[start:start + n]
        if window[-1] != primer[-1]:
            continue
        if Hamming.distance(primer, window, score_cutoff=max_mismatches) <= max_mismatches:
            count += 1
    return count


def count_binding_sites(primer: str, template: str, circular: bool = False, max_mismatches: int = 2) -> int:
    """Number of sites on both strands where `primer` can attach."""
    p = clean_sequence(primer)
    t = clean_sequence(template)
    if circular and len(t) >= len(p) > 1:
        t = t + t[:len(p) - 1]
    trc = revcomp(t)
    return _count_ungapped_matches(p, t, max_mismatches) + _count_ungapped_matches(p, trc, max_mismatches)


def count_offtargets(primer: str, template: str, circular: bool = False, max_mismatches: int = 2) -> int:
    """Binding sites other than the intended one (never negative)."""
    return max(0, count_binding_sites(primer, template, circular, max_mismatches) - 1)
