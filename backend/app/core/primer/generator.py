# File: backend/app/core/primer/generator.py
# Version: v0.3.0
"""
Candidate primer generator.

All windows are taken on the *product* sequence P (template with the edit applied);
a forward primer reads P[start:end], a reverse primer is revcomp(P[start:end]).
On circular products `start` is normalized into [0, len(P)) and `end` may exceed
len(P) when the primer crosses the origin.

Layouts
-------
- back-to-back (Q5 SDM style): for each 5' flank f the forward primer starts at
  s - f, carries the replacement and anneals >= `annealingLengthMin` bases
  downstream of it; the reverse primer ends at s - f (its 5' end abuts the forward
  5' end) and extends upstream. Flank ranges: deletion 0-10, insertion 0-5,
  substitution 3-10.
- overlapping (QuikChange style): forward = P[s - left : s + m + right] with
  left, right in [flankMin, flankMax]; reverse = its reverse complement.
- amplify: forward starts in [s - window, s], reverse ends in [e, e + window].

Candidates are grouped by `anchor` (the fixed boundary they share), which the
quick search uses for pruning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar

from backend.app.core.primer.mutations import DesignSpecification, circular_slice
from backend.app.core.primer.thermodynamics import revcomp

T = TypeVar("T")

FLANK_RANGES: Dict[str, Tuple[int, int]] = {
    "deletion": (0, 10),
    "insertion": (0, 5),
    "substitution": (3, 10),
}


@dataclass(frozen=True)
class Window:
    """A primer placement on the product sequence (before any filtering)."""
    direction: str      # 'forward' | 'reverse'
    start: int
    end: int
    sequence: str
    anchor: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Layout:
    """Candidate windows for one design; pairs are compatible windows."""
    forward: Tuple[Window, ...]
    reverse: Tuple[Window, ...]
    paired: str           # 'by_anchor' | 'cross' | 'mirror'


def take(product: str, start: int, length: int, circular: bool) -> Optional[Tuple[int, str]]:
    """Return (normalized_start, sequence) of P[start:start+length] or None if off the end."""
    n = len(product)
    if length <= 0 or length > n:
        return None
    if circular:
        s = start % n
        return s, circular_slice(product, s, s + length)
    if start < 0 or start + length > n:
        return None
    return start, product[start:start + length]


def _forward(product: str, start: int, length: int, circular: bool, anchor: int) -> Optional[Window]:
    hit = take(product, start, length, circular)
    if hit is None:
        return None
    s, seq = hit
    return Window("forward", s, s + length, seq, anchor)


def _reverse(product: str, start: int, length: int, circular: bool, anchor: int) -> Optional[Window]:
    hit = take(product, start, length, circular)
    if hit is None:
        return None
    s, seq = hit
    return Window("reverse", s, s + length, revcomp(seq), anchor)


def flank_range(kind: str) -> Tuple[int, int]:
    return FLANK_RANGES.get(kind, (0, 10))


def back_to_back(
    product: str,
    spec: DesignSpecification,
    min_len: int,
    max_len: int,
    anneal_min: int,
    circular: bool,
) -> Layout:
    s = spec.start
    m = len(spec.replacement or "")
    lo, hi = flank_range(spec.kind)
    fwd: List[Window] = []
    rev: List[Window] = []
    for f in range(lo, hi + 1):
        f5 = s - f
        for L in range(min_len, max_len + 1):
            anneal = f5 + L - (s + m)
            if anneal >= anneal_min:
                w = _forward(product, f5, L, circular, f)
                if w is not None:
                    fwd.append(w)
            w = _reverse(product, f5 - L, L, circular, f)
            if w is not None:
                rev.append(w)
    return Layout(tuple(fwd), tuple(rev), "by_anchor")


def overlapping(
    product: str,
    spec: DesignSpecification,
    min_len: int,
    max_len: int,
    flank_min: int,
    flank_max: int,
    circular: bool,
) -> Layout:
    s = spec.start
    m = len(spec.replacement or "")
    fwd: List[Window] = []
    rev: List[Window] = []
    for left in range(flank_min, flank_max + 1):
        for right in range(flank_min, flank_max + 1):
            L = left + m + right
            if not (min_len <= L <= max_len):
                continue
            f = _forward(product, s - left, L, circular, left)
            r = _reverse(product, s - left, L, circular, left)
            if f is not None and r is not None:
                fwd.append(f)
                rev.append(r)
    return Layout(tuple(fwd), tuple(rev), "mirror")


def amplify(
    product: str,
    spec: DesignSpecification,
    min_len: int,
    max_len: int,
    window: int,
    circular: bool,
) -> Layout:
    fwd: List[Window] = []
    rev: List[Window] = []
    for shift in range(0, window + 1):
        start = spec.start - shift
        end = spec.end + shift
        for L in range(min_len, max_len + 1):
            w = _forward(product, start, L, circular, shift)
            if w is not None:
                fwd.append(w)
            w = _reverse(product, end - L, L, circular, shift)
            if w is not None:
                rev.append(w)
    return Layout(tuple(fwd), tuple(rev), "cross")


def _identity(item):
    return item


def iter_pairs(
    forward: Sequence[T],
    reverse: Sequence[T],
    paired: str,
    window_of: Callable[[T], Window] = _identity,
) -> Iterator[Tuple[T, T]]:
    """Compatible (forward, reverse) combinations in deterministic order.

    Items may be bare `Window`s or anything carrying one; `window_of` extracts it.
    """
    if paired == "mirror":
        rev_by_coords: Dict[Tuple[int, int], T] = {}
        for r in reverse:
            w = window_of(r)
            rev_by_coords[(w.start, w.end)] = r
        for f in forward:
            w = window_of(f)
            r = rev_by_coords.get((w.start, w.end))
            if r is not None:
                yield f, r
        return
    if paired == "by_anchor":
        rev_by_anchor: Dict[int, List[T]] = {}
        for r in reverse:
            rev_by_anchor.setdefault(window_of(r).anchor, []).append(r)
        for f in forward:
            for r in rev_by_anchor.get(window_of(f).anchor, []):
                yield f, r
        return
    for f in forward:
        for r in reverse:
            yield f, r
