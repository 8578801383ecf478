# File: backend/app/core/primer/folding.py
# Version: v0.1.0
"""
Minimum-free-energy secondary structure for primers (hairpins and dimers).

Algorithm
---------
Zuker-style dynamic programming over three tables, filled by increasing span:

- V(i, j)  : best energy of [i..j] given that i pairs with j
- WM(i, j) : best energy of [i..j] as part of a multiloop (at least one branch)
- W(i, j)  : best exterior energy of [i..j] (0 when unfolded)

V closes a hairpin, a stack/bulge/internal loop (at most `max_loop` unpaired
bases) or a multiloop. O(n^3) time, O(n^2) space.

Two-strand mode folds `a + b` with a strand break at `len(a)`. A pair that
straddles the break either stacks on an inner straddling pair or closes the
exterior loop between the strands, paying the duplex initiation once.

Ties are resolved deterministically: candidates are visited by earliest start
index, then by shortest enclosed loop, and only strict improvements replace the
incumbent.

Energies come from an immutable `FoldParameters` (see `energies.py`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from backend.app.core.primer.energies import DNA_ENERGIES, FoldParameters
from backend.app.core.primer.errors import InvalidSequence
from backend.app.core.primer.thermodynamics import validate_sequence

log = logging.getLogger(__name__)

INF = float("inf")
EPS = 1e-9
MIN_FOLD_LENGTH = 6
THREE_PRIME_WINDOW = 5

_WC = {"A": "T", "T": "A", "G": "C", "C": "G"}


@dataclass(frozen=True)
class FoldResult:
    dg: float
    pairs: Tuple[Tuple[int, int], ...] = ()
    dot_bracket: str = ""
    description: str = "unfolded"
    strand_lengths: Tuple[int, ...] = ()

    @property
    def dg_rounded(self) -> float:
        return round(self.dg, 2)

    def to_dict(self) -> Dict[str, object]:
        return {
            "dg": self.dg,
            "pairs": [list(p) for p in self.pairs],
            "dotBracket": self.dot_bracket,
            "description": self.description,
        }


# --- Dot-bracket helpers -------------------------------------------------------------------------

def to_dot_bracket(length: int, pairs: Tuple[Tuple[int, int], ...], cut: Optional[int] = None) -> str:
    chars = ["."] * length
    for i, j in pairs:
        chars[i] = "("
        chars[j] = ")"
    if cut is not None:
        chars.insert(cut, "&")
    return "".join(chars)


def paired_flags(length: int, pairs: Tuple[Tuple[int, int], ...]) -> List[bool]:
    flags = [False] * length
    for i, j in pairs:
        flags[i] = True
        flags[j] = True
    return flags


# --- Zuker tables --------------------------------------------------------------------------------

class _Zuker:
    """One folding run over a (possibly two-strand) sequence."""

    def __init__(self, params: FoldParameters, temperature_k: float, seq: str, cut: Optional[int]) -> None:
        self.p = params
        self.t = temperature_k
        self.s = seq
        self.n = len(seq)
        self.cut = cut
        n = self.n
        self.V = [[INF] * n for _ in range(n)]
        self.WM = [[INF] * n for _ in range(n)]
        self.W = [[0.0] * n for _ in range(n)]
        self.Vc: List[List[Optional[tuple]]] = [[None] * n for _ in range(n)]
        self.WMc: List[List[Optional[tuple]]] = [[None] * n for _ in range(n)]
        self.Wc: List[List[Optional[tuple]]] = [[None] * n for _ in range(n)]
        self.allowed = self._allowed_pairs()

    # ---- pairing rules ----

    def straddles(self, i: int, j: int) -> bool:
        return self.cut is not None and i < self.cut <= j

    def _can_pair(self, i: int, j: int) -> bool:
        if i < 0 or j >= self.n or i >= j:
            return False
        if _WC.get(self.s[i]) != self.s[j]:
            return False
        if self.straddles(i, j):
            return True
        return j - i - 1 >= self.p.min_hairpin_loop

    def _allowed_pairs(self) -> List[List[bool]]:
        n = self.n
        can = [[self._can_pair(i, j) for j in range(n)] for i in range(n)]
        allowed = [[False] * n for _ in range(n)]
        for i in range(n):
            for j in range(i + 1, n):
                if not can[i][j]:
                    continue
                inner = i + 1 < j - 1 and can[i + 1][j - 1]
                outer = i > 0 and j < n - 1 and can[i - 1][j + 1]
                # no lonely pairs
                allowed[i][j] = inner or outer
        return allowed

    # ---- loop energies ----

    def hairpin(self, i: int, j: int) -> float:
        size = j - i - 1
        e = self.p.loop_dg(self.p.hairpin, size, self.t)
        if size == 3 and self.s[i] in "AT":
            e += self.p.triloop_at_penalty
        return e

    def interior(self, i: int, j: int, k: int, l: int) -> float:
        left = k - i - 1
        right = j - l - 1
        s = self.s
        if left == 0 and right == 0:
            return self.p.stack_dg(s[i] + s[i + 1], self.t)
        if left == 0 or right == 0:
            size = left + right
            e = self.p.loop_dg(self.p.bulge, size, self.t)
            if size == 1:
                e += self.p.stack_dg(s[i] + s[k], self.t)
            else:
                at_pairs = (s[i] in "AT") + (s[k] in "AT")
                e += self.p.bulge_at_penalty * at_pairs
            return e
        if left == 1 and right == 1:
            return self.p.internal_1x1 * self.t / 310.15
        e = self.p.loop_dg(self.p.internal, left + right, self.t)
        return e + self.p.internal_asymmetry * abs(left - right)

    def w_range(self, i: int, j: int) -> float:
        return 0.0 if i > j else self.W[i][j]

    # ---- fill ----

    def fill(self) -> None:
        n = self.n
        for span in range(1, n):
            for i in range(0, n - span):
                j = i + span
                self._fill_v(i, j)
                self._fill_wm(i, j)
                self._fill_w(i, j)

    def _fill_v(self, i: int, j: int) -> None:
        if not self.allowed[i][j]:
            return
        p = self.p
        straddle = self.straddles(i, j)
        if straddle:
            best = p.duplex_init_dg(self.t) + self.w_range(i + 1, self.cut - 1) + self.w_range(self.cut, j - 1)
            choice: tuple = ("X",)
        else:
            best = self.hairpin(i, j)
            choice = ("H",)

        for k in range(i + 1, j - 1):
            left = k - i - 1
            if left > p.max_loop:
                break
            for l in range(j - 1, k, -1):
                right = j - l - 1
                if left + right > p.max_loop:
                    break
                if not self.allowed[k][l] or self.V[k][l] == INF:
                    continue
                if straddle and not self.straddles(k, l):
                    continue
                e = self.interior(i, j, k, l) + self.V[k][l]
                if e < best - EPS:
                    best, choice = e, ("I", k, l)

        if not straddle:
            closing = p.multiloop_a + p.multiloop_b
            for k in range(i + 2, j - 1):
                e = closing + self.WM[i + 1][k] + self.WM[k + 1][j - 1]
                if e < best - EPS:
                    best, choice = e, ("M", k)

        self.V[i][j] = best
        self.Vc[i][j] = choice

    def _fill_wm(self, i: int, j: int) -> None:
        if self.straddles(i, j):
            return
        p = self.p
        best, choice = INF, None
        if self.V[i][j] < INF:
            best, choice = self.V[i][j] + p.multiloop_b, ("P",)
        e = self.WM[i + 1][j] + p.multiloop_c
        if e < best - EPS:
            best, choice = e, ("L",)
        e = self.WM[i][j - 1] + p.multiloop_c
        if e < best - EPS:
            best, choice = e, ("R",)
        for k in range(i + 1, j - 1):
            e = self.WM[i][k] + self.WM[k + 1][j]
            if e < best - EPS:
                best, choice = e, ("B", k)
        self.WM[i][j] = best
        self.WMc[i][j] = choice

    def _fill_w(self, i: int, j: int) -> None:
        if self.straddles(i, j):
            self.W[i][j] = INF
            return
        best, choice = 0.0, ("0",)
        e = self.W[i + 1][j]
        if e < best - EPS:
            best, choice = e, ("L",)
        if self.V[i][j] < best - EPS:
            best, choice = self.V[i][j], ("P",)
        for k in range(i + 1, j):
            e = self.W[i][k] + self.W[k + 1][j]
            if e < best - EPS:
                best, choice = e, ("B", k)
        self.W[i][j] = best
        self.Wc[i][j] = choice

    # ---- traceback ----

    def traceback(self, start: List[Tuple[str, int, int]]) -> Tuple[Tuple[Tuple[int, int], ...], str]:
        pairs: List[Tuple[int, int]] = []
        kinds = set()
        todo = list(start)
        while todo:
            table, i, j = todo.pop()
            if i >= j:
                continue
            if table == "W":
                ch = self.Wc[i][j]
                if ch is None or ch[0] == "0":
                    continue
                if ch[0] == "L":
                    todo.append(("W", i + 1, j))
                elif ch[0] == "P":
                    todo.append(("V", i, j))
                else:
                    todo.append(("W", i, ch[1]))
                    todo.append(("W", ch[1] + 1, j))
            elif table == "WM":
                ch = self.WMc[i][j]
                if ch[0] == "P":
                    todo.append(("V", i, j))
                elif ch[0] == "L":
                    todo.append(("WM", i + 1, j))
                elif ch[0] == "R":
                    todo.append(("WM", i, j - 1))
                else:
                    todo.append(("WM", i, ch[1]))
                    todo.append(("WM", ch[1] + 1, j))
            else:
                pairs.append((i, j))
                ch = self.Vc[i][j]
                kinds.add(ch[0])
                if ch[0] == "I":
                    todo.append(("V", ch[1], ch[2]))
                elif ch[0] == "M":
                    todo.append(("WM", i + 1, ch[1]))
                    todo.append(("WM", ch[1] + 1, j - 1))
                elif ch[0] == "X":
                    todo.append(("W", i + 1, self.cut - 1))
                    todo.append(("W", self.cut, j - 1))
        if "X" in kinds:
            desc = "duplex"
        elif "M" in kinds:
            desc = "multiloop"
        elif "H" in kinds:
            desc = "hairpin"
        else:
            desc = "unfolded"
        return tuple(sorted(pairs)), desc

    # ---- entry points ----

    def single(self) -> FoldResult:
        self.fill()
        n = self.n
        dg = self.W[0][n - 1]
        if dg >= 0:
            return _unfolded(n)
        pairs, desc = self.traceback([("W", 0, n - 1)])
        return FoldResult(dg, pairs, to_dot_bracket(n, pairs), desc, (n,))

    def dimer(self) -> FoldResult:
        self.fill()
        n, cut = self.n, self.cut
        best, anchor = INF, None
        for i in range(cut):
            for j in range(cut, n):
                if self.V[i][j] == INF:
                    continue
                e = self.w_range(0, i - 1) + self.V[i][j] + self.w_range(j + 1, n - 1)
                if e < best - EPS:
                    best, anchor = e, (i, j)
        if anchor is None or best >= 0:
            return _unfolded(cut, n - cut)
        i, j = anchor
        pairs, _ = self.traceback([("W", 0, i - 1), ("V", i, j), ("W", j + 1, n - 1)])
        return FoldResult(best, pairs, to_dot_bracket(n, pairs, cut), "duplex", (cut, n - cut))


def _unfolded(*lengths: int) -> FoldResult:
    total = sum(lengths)
    cut = lengths[0] if len(lengths) > 1 else None
    return FoldResult(0.0, (), to_dot_bracket(total, (), cut), "unfolded", tuple(lengths))


@lru_cache(maxsize=8192)
def _fold_cached(params: FoldParameters, temperature_k: float, seq: str, cut: Optional[int]) -> FoldResult:
    z = _Zuker(params, temperature_k, seq, cut)
    return z.single() if cut is None else z.dimer()


# --- Public API ----------------------------------------------------------------------------------

class StructureFolder:
    """MFE folder bound to one parameter set and temperature."""

    def __init__(self, params: FoldParameters = DNA_ENERGIES, temperature_c: float = 37.0, max_length: int = 120) -> None:
        self.params = params
        self.temperature_k = temperature_c + 273.15
        self.max_length = max_length

    def _check(self, seq: str) -> str:
        s = validate_sequence(seq)
        if len(s) > self.max_length:
            raise InvalidSequence(
                f"Sequence too long to fold ({len(s)} > {self.max_length} nt).",
                ["Folding expects primer-length input; window long templates before folding."],
            )
        return s

    def fold(self, seq: str) -> FoldResult:
        s = self._check(seq)
        if len(s) < MIN_FOLD_LENGTH:
            return _unfolded(len(s))
        return _fold_cached(self.params, self.temperature_k, s, None)

    def fold_dimer(self, a: str, b: str) -> FoldResult:
        sa, sb = self._check(a), self._check(b)
        if len(sa) < MIN_FOLD_LENGTH or len(sb) < MIN_FOLD_LENGTH:
            return _unfolded(len(sa), len(sb))
        return _fold_cached(self.params, self.temperature_k, sa + sb, len(sa))

    def hairpin_dg(self, seq: str) -> float:
        return self.fold(seq).dg

    def self_dimer_dg(self, seq: str) -> float:
        return self.fold_dimer(seq, seq).dg


DEFAULT_FOLDER = StructureFolder()


def fold_sequence(seq: str) -> FoldResult:
    return DEFAULT_FOLDER.fold(seq)


def fold_dimer(a: str, b: str) -> FoldResult:
    return DEFAULT_FOLDER.fold_dimer(a, b)


def safe_fold(seq: str, partner: Optional[str] = None, folder: Optional[StructureFolder] = None) -> Optional[FoldResult]:
    """Best-effort fold: returns None (unknown) instead of raising."""
    f = folder or DEFAULT_FOLDER
    try:
        return f.fold(seq) if partner is None else f.fold_dimer(seq, partner)
    except InvalidSequence as e:
        log.warning("Fold skipped for %s: %s", seq[:30], e.summary)
        return None


# --- Severity ------------------------------------------------------------------------------------

SEVERITY_LEVELS = ("none", "info", "low", "moderate", "warning", "critical")


@dataclass(frozen=True)
class SeverityCutoffs:
    ideal: float
    warning: float
    critical: float


@dataclass(frozen=True)
class SeverityThresholds:
    """ΔG cut points (kcal/mol) for structures with / without 3' involvement."""
    three_prime: SeverityCutoffs
    internal: SeverityCutoffs


# IDT / Premier Biosoft conventions
DIMER_THRESHOLDS: Mapping[str, SeverityThresholds] = MappingProxyType({
    "hairpin": SeverityThresholds(SeverityCutoffs(-2.0, -3.0, -4.0), SeverityCutoffs(-3.0, -5.0, -6.0)),
    "self_dimer": SeverityThresholds(SeverityCutoffs(-5.0, -6.0, -8.0), SeverityCutoffs(-6.0, -8.0, -9.0)),
    "heterodimer": SeverityThresholds(SeverityCutoffs(-5.0, -6.0, -8.0), SeverityCutoffs(-6.0, -8.0, -9.0)),
})


def three_prime_involved(fold: FoldResult, seq_length: int, window: int = THREE_PRIME_WINDOW) -> bool:
    """True if any paired index lies in the last `window` bases of a strand."""
    lengths = fold.strand_lengths if len(fold.strand_lengths) > 1 else (seq_length,)
    windows = []
    offset = 0
    for length in lengths:
        windows.append((offset + max(0, length - window), offset + length))
        offset += length
    for i, j in fold.pairs:
        for lo, hi in windows:
            if lo <= i < hi or lo <= j < hi:
                return True
    return False


def classify_structure_severity(
    fold: FoldResult,
    seq_length: int,
    kind: str = "hairpin",
    thresholds: Mapping[str, SeverityThresholds] = DIMER_THRESHOLDS,
) -> str:
    """
    Severity of a folded structure.

    critical iff a 3'-window base is paired AND dg <= critical cutoff (inclusive).
    warning / moderate use the 3' row when the window is paired, the internal row otherwise.
    """
    if not fold.pairs or fold.dg >= 0:
        return "none"
    t = thresholds[kind]
    involved = three_prime_involved(fold, seq_length)
    row = t.three_prime if involved else t.internal
    if involved and fold.dg <= t.three_prime.critical:
        return "critical"
    if fold.dg <= row.warning:
        return "warning"
    if fold.dg <= row.ideal:
        return "moderate"
    if involved:
        return "low"
    return "info"


# --- Stem regions (analysis endpoint) ------------------------------------------------------------

@dataclass
class StemRegion:
    start: int
    end: int          # inclusive
    length: int
    partner_start: int
    partner_end: int


def stem_regions(fold: FoldResult, min_stem: int = 2) -> List[StemRegion]:
    """Contiguous helices (i, j), (i+1, j-1), ... of at least `min_stem` pairs."""
    out: List[StemRegion] = []
    pairs = list(fold.pairs)
    if not pairs:
        return out
    pair_set = set(pairs)
    for i, j in pairs:
        if (i - 1, j + 1) in pair_set:
            continue
        k = 0
        while (i + k + 1, j - k - 1) in pair_set:
            k += 1
        if k + 1 >= min_stem:
            out.append(StemRegion(i, i + k, k + 1, j - k, j))
    return out
