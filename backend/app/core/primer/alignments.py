# File: backend/app/core/primer/alignments.py
# Version: v0.2.0
"""
Primer-to-template binding search.

A strict-priority cascade of pure strategy functions; the first strategy that
returns a match wins and results are never blended across levels:

1. explicit_position   caller-supplied (start, end)                  score 1.0
2. exact               substring search (RC for reverse primers)     score 1.0
3. mutation_anchor     mutagenesis primers with a known edit offset  score 0.85
4. dual_anchor         5' and 3' sub-anchors at the expected gap     score 2*a/len
5. anchor_3prime       shortest-unique 3' anchor                     score a/len
6. weighted_alignment  ungapped scan, 3'-10 bases weighted 2x        score w/(len+10)

The mutation anchor is a best-effort estimate from fixed flank assumptions
(reverse primers end 10 nt before the edit, forward primers start 40% of their
length before it); it is not a verified match.

Coordinates are 0-based, end-exclusive, on the template's + strand. For reverse
primers the search string is the reverse complement of the primer, so the
primer's 3' end is the *start* of the search string.

Also: annealing-region split for tailed (assembly / Golden Gate) primers and Type IIS
site detection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from rapidfuzz.distance import Hamming

from backend.app.core.primer.errors import InputTooShort
from backend.app.core.primer.thermodynamics import clean_sequence, revcomp

log = logging.getLogger(__name__)

MIN_PRIMER_LENGTH = 10
MUTATION_ANCHOR_SCORE = 0.85
REVERSE_FLANK_BEFORE_MUTATION = 10
FORWARD_FLANK_FRACTION = 0.4
DUAL_ANCHOR_TOLERANCE = 2
MIN_ANCHOR = 8
THREE_PRIME_WINDOW = 10
THREE_PRIME_MIN_MATCHES = 7


@dataclass(frozen=True)
class BindingResult:
    start: int
    end: int
    match_length: int
    score: float
    method: str

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "matchLength": self.match_length,
            "score": self.score,
            "method": self.method,
        }


@dataclass(frozen=True)
class BindingQuery:
    template: str
    primer: str
    reverse: bool = False
    position_hint: Optional[Tuple[int, int]] = None
    mutation_position: Optional[int] = None
    is_mutagenesis: bool = False

    @property
    def search(self) -> str:
        """Primer as it reads on the template + strand."""
        return revcomp(self.primer) if self.reverse else self.primer

    def three_prime_mask(self) -> List[bool]:
        """Per search-string position: True if it belongs to the primer's 3'-10 bases."""
        n = len(self.primer)
        w = min(THREE_PRIME_WINDOW, n)
        if self.reverse:
            return [i < w for i in range(n)]
        return [i >= n - w for i in range(n)]


Strategy = Callable[[BindingQuery], Optional[BindingResult]]


def _occurrences(text: str, pattern: str) -> List[int]:
    out: List[int] = []
    i = text.find(pattern)
    while i != -1:
        out.append(i)
        i = text.find(pattern, i + 1)
    return out


# --- Strategies ----------------------------------------------------------------------------------

def explicit_position(q: BindingQuery) -> Optional[BindingResult]:
    if q.position_hint is None:
        return None
    start, end = q.position_hint
    if not (0 <= start < end <= len(q.template)):
        log.debug("Ignoring out-of-range position hint %s", q.position_hint)
        return None
    return BindingResult(start, end, end - start, 1.0, "explicit_position")


def exact(q: BindingQuery) -> Optional[BindingResult]:
    idx = q.template.find(q.search)
    if idx < 0:
        return None
    n = len(q.primer)
    return BindingResult(idx, idx + n, n, 1.0, "exact")


def mutation_anchor(q: BindingQuery) -> Optional[BindingResult]:
    if not q.is_mutagenesis or q.mutation_position is None:
        return None
    n = len(q.primer)
    t_len = len(q.template)
    if q.reverse:
        end = q.mutation_position - REVERSE_FLANK_BEFORE_MUTATION
        start = end - n
    else:
        start = q.mutation_position - int(FORWARD_FLANK_FRACTION * n)
    start = max(0, min(start, max(0, t_len - n)))
    end = min(t_len, start + n)
    return BindingResult(start, end, end - start, MUTATION_ANCHOR_SCORE, "mutation_anchor")


def dual_anchor(q: BindingQuery) -> Optional[BindingResult]:
    s = q.search
    n = len(s)
    lo = max(MIN_ANCHOR, int(0.4 * n))
    for a in range(n // 2, lo - 1, -1):
        if a <= 0:
            break
        five = _occurrences(q.template, s[:a])
        if not five:
            continue
        three = _occurrences(q.template, s[n - a:])
        expected = n - a
        for p5 in five:
            for p3 in three:
                if abs(p3 - p5 - expected) <= DUAL_ANCHOR_TOLERANCE:
                    end = p3 + a
                    return BindingResult(p5, end, end - p5, min(1.0, 2.0 * a / n), "dual_anchor")
    return None


def anchor_3prime(q: BindingQuery) -> Optional[BindingResult]:
    s = q.search
    n = len(s)
    t_len = len(q.template)
    lo = max(MIN_ANCHOR, int(0.4 * n))
    for a in range(n - 1, lo - 1, -1):
        anchor = s[:a] if q.reverse else s[n - a:]
        hits = _occurrences(q.template, anchor)
        if len(hits) > 1:
            # shorter anchors only get less specific
            return None
        if len(hits) == 1:
            idx = hits[0]
            start = idx if q.reverse else max(0, idx - (n - a))
            end = min(t_len, start + n)
            return BindingResult(start, end, a, a / n, "anchor_3prime")
    return None


def weighted_alignment(q: BindingQuery) -> Optional[BindingResult]:
    s = q.search
    n = len(s)
    t = q.template
    mask = q.three_prime_mask()
    w3 = sum(mask)
    need = min(THREE_PRIME_MIN_MATCHES, w3)
    best: Optional[Tuple[float, int]] = None
    for off in range(0, len(t) - n + 1):
        window = t[off:off + n]
        weighted = 0
        three = 0
        for i in range(n):
            if window[i] == s[i]:
                if mask[i]:
                    weighted += 2
                    three += 1
                else:
                    weighted += 1
        if three < need:
            continue
        if best is None or weighted > best[0]:
            best = (weighted, off)
    if best is None:
        return None
    weighted, off = best
    return BindingResult(off, off + n, n, weighted / (n + 10), "weighted_alignment")


DEFAULT_CASCADE: Tuple[Strategy, ...] = (
    explicit_position,
    exact,
    mutation_anchor,
    dual_anchor,
    anchor_3prime,
    weighted_alignment,
)


def find_primer_binding(
    template: str,
    primer: str,
    reverse: bool = False,
    position_hint: Optional[Tuple[int, int]] = None,
    mutation_position: Optional[int] = None,
    is_mutagenesis: bool = False,
    cascade: Sequence[Strategy] = DEFAULT_CASCADE,
) -> Optional[BindingResult]:
    """
    Locate `primer` on `template`. Returns None when every strategy fails.

    Raises:
        InputTooShort: primer shorter than 10 nt.
    """
    p = clean_sequence(primer)
    if len(p) < MIN_PRIMER_LENGTH:
        raise InputTooShort(f"Primer too short for binding search ({len(p)} < {MIN_PRIMER_LENGTH} nt).")
    q = BindingQuery(clean_sequence(template), p, reverse, position_hint, mutation_position, is_mutagenesis)
    for strategy in cascade:
        hit = strategy(q)
        if hit is not None:
            return hit
    log.debug("No binding site for %s (reverse=%s)", p, reverse)
    return None


# --- Annealing region ----------------------------------------------------------------------------

@dataclass(frozen=True)
class AnnealingSplit:
    annealing: str
    tail: str
    binding: BindingResult
    reverse: bool
    mismatches: int = 0


def find_annealing_region(
    primer: str,
    template: str,
    min_length: int = 15,
    max_length: int = 35,
    fuzzy_min_length: int = 18,
    max_mismatches: int = 2,
) -> Optional[AnnealingSplit]:
    """
    Split a tailed primer into its 3' template-binding region and 5' tail.

    Exact matches of the longest 3' suffix win (either strand); otherwise the longest
    suffix of at least `fuzzy_min_length` with <= `max_mismatches` is accepted.
    """
    p = clean_sequence(primer)
    t = clean_sequence(template)
    top = min(max_length, len(p))
    for length in range(top, min_length - 1, -1):
        suffix = p[-length:]
        for reverse in (False, True):
            hit = exact(BindingQuery(t, suffix, reverse))
            if hit is not None:
                return AnnealingSplit(suffix, p[:-length], hit, reverse)

    for length in range(top, fuzzy_min_length - 1, -1):
        suffix = p[-length:]
        best: Optional[Tuple[int, int, bool]] = None
        for reverse in (False, True):
            probe = revcomp(suffix) if reverse else suffix
            for off in range(0, len(t) - length + 1):
                d = Hamming.distance(probe, t[off:off + length])
                if d <= max_mismatches and (best is None or d < best[0]):
                    best = (d, off, reverse)
        if best is not None:
            d, off, reverse = best
            score = (length - d) / length
            hit = BindingResult(off, off + length, length - d, score, "fuzzy_annealing")
            return AnnealingSplit(suffix, p[:-length], hit, reverse, d)
    return None


# --- Type IIS sites ------------------------------------------------------------------------------

GOLDEN_GATE_ENZYMES: Mapping[str, str] = MappingProxyType({
    "BsaI": "GGTCTC",
    "BsmBI": "CGTCTC",
    "BbsI": "GAAGAC",
    "SapI": "GCTCTTC",
})

ENZYME_ALIASES: Mapping[str, str] = MappingProxyType({"Esp3I": "BsmBI", "BspQI": "SapI"})


@dataclass(frozen=True)
class EnzymeSite:
    enzyme: str
    position: int
    strand: str   # '+' | '-'


def detect_golden_gate_sites(seq: str, enzymes: Optional[Sequence[str]] = None) -> List[EnzymeSite]:
    s = clean_sequence(seq)
    names = [ENZYME_ALIASES.get(e, e) for e in (enzymes or GOLDEN_GATE_ENZYMES.keys())]
    out: List[EnzymeSite] = []
    for name in names:
        site = GOLDEN_GATE_ENZYMES[name]
        for pos in _occurrences(s, site):
            out.append(EnzymeSite(name, pos, "+"))
        rc_site = revcomp(site)
        if rc_site != site:
            for pos in _occurrences(s, rc_site):
                out.append(EnzymeSite(name, pos, "-"))
    return sorted(out, key=lambda x: (x.position, x.enzyme))
