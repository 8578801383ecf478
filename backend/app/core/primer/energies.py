# File: backend/app/core/primer/energies.py
# Version: v0.2.0
"""
DNA free-energy parameter set used by the structure folder.

Sources
-------
- Watson-Crick stacks: SantaLucia & Hicks (2004), unified NN ΔH/ΔS
  (`thermodynamics.NN_PARAMS`, same table as the Tm calculation).
- Hairpin / bulge / internal loop initiation ΔG37: SantaLucia & Hicks (2004), Table 4.
  Missing sizes are linearly interpolated; sizes above 30 are extrapolated with the
  Jacobson-Stockmayer term  ΔG(n) = ΔG(30) + 2.44·R·310.15·ln(n/30).
- Duplex initiation (two-strand mode): ΔH = 0.2, ΔS = -5.7.
- Multiloop: linear model a + b·branches + c·unpaired.

Not modelled: tetraloop bonus table, dangling ends, terminal mismatches.

The parameter set is an immutable dataclass; pass an alternative instance to
`StructureFolder` to fold with a different model.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

from backend.app.core.primer.thermodynamics import NN_PARAMS, T37_K

R_KCAL = 1.9872e-3  # kcal/(mol·K)


def _frozen(d: dict) -> Mapping:
    return MappingProxyType(dict(d))


HAIRPIN_DG37 = _frozen({
    3: 3.5, 4: 3.5, 5: 3.3, 6: 4.0, 7: 4.2, 8: 4.3, 9: 4.5, 10: 4.6,
    12: 5.0, 14: 5.1, 16: 5.3, 18: 5.5, 20: 5.7, 25: 6.1, 30: 6.3,
})

BULGE_DG37 = _frozen({
    1: 4.0, 2: 2.9, 3: 3.1, 4: 3.2, 5: 3.3, 6: 3.5, 7: 3.7, 8: 3.9, 9: 4.1, 10: 4.3,
    12: 4.5, 14: 4.8, 16: 5.0, 18: 5.2, 20: 5.3, 25: 5.6, 30: 5.9,
})

INTERNAL_DG37 = _frozen({
    3: 3.2, 4: 3.6, 5: 4.0, 6: 4.4, 7: 4.6, 8: 4.8, 9: 4.9, 10: 4.9,
    12: 5.2, 14: 5.4, 16: 5.6, 18: 5.8, 20: 5.9, 25: 6.3, 30: 6.6,
})


@dataclass(frozen=True, eq=False)
class FoldParameters:
    """Immutable energy model for the Zuker folder (kcal/mol). Hashed by identity."""
    stacks: Mapping[str, Tuple[float, float]] = field(default_factory=lambda: NN_PARAMS)
    hairpin: Mapping[int, float] = field(default_factory=lambda: HAIRPIN_DG37)
    bulge: Mapping[int, float] = field(default_factory=lambda: BULGE_DG37)
    internal: Mapping[int, float] = field(default_factory=lambda: INTERNAL_DG37)

    min_hairpin_loop: int = 3
    max_loop: int = 30

    triloop_at_penalty: float = 0.5
    bulge_at_penalty: float = 0.5
    internal_asymmetry: float = 0.3
    internal_1x1: float = 0.5

    multiloop_a: float = 2.6
    multiloop_b: float = 0.2
    multiloop_c: float = 0.2

    init_dh: float = 0.2
    init_ds: float = -5.7

    # --- evaluation helpers (pure) ---

    def stack_dg(self, dinucleotide: str, temperature_k: float) -> float:
        dh, ds = self.stacks[dinucleotide]
        return dh - temperature_k * ds / 1000.0

    def duplex_init_dg(self, temperature_k: float) -> float:
        return self.init_dh - temperature_k * self.init_ds / 1000.0

    def loop_dg(self, table: Mapping[int, float], size: int, temperature_k: float) -> float:
        """Loop initiation ΔG at temperature (entropic scaling of ΔG37)."""
        return _lookup(table, size) * temperature_k / T37_K


def _lookup(table: Mapping[int, float], size: int) -> float:
    if size in table:
        return table[size]
    keys = sorted(table)
    if size > keys[-1]:
        top = keys[-1]
        return table[top] + 2.44 * R_KCAL * T37_K * math.log(size / top)
    if size < keys[0]:
        return table[keys[0]]
    lo = max(k for k in keys if k < size)
    hi = min(k for k in keys if k > size)
    frac = (size - lo) / (hi - lo)
    return table[lo] + frac * (table[hi] - table[lo])


DNA_ENERGIES = FoldParameters()
