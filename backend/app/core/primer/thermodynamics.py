# File: backend/app/core/primer/thermodynamics.py
# Version: v0.2.0
"""
Thermodynamics utilities for primer properties.

Implements:
- Nearest-neighbor Tm (BioPython `Tm_NN`, SantaLucia & Hicks 2004 table `DNA_NN4`,
  Owczarzy 2008 Mg2+/monovalent salt correction `saltcorr=7`)
- Optional primer3 Tm (`primer3.calc_tm`, SantaLucia 1998 + Owczarzy salt correction)
- GC fraction, reverse complement, sequence cleaning
- 3' terminal stability (sum of NN ΔG37 over the last five bases)

Reaction conditions
-------------------
Defaults: Na+ 50 mM, Mg2+ 2 mM, dNTPs 0 mM, primer 500 nM in excess over template.
BioPython takes mM / nM directly; no unit conversion is applied.

Values are never rounded here. Rounding is a display concern.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

import primer3
from Bio.SeqUtils import MeltingTemp as mt

from backend.app.core.primer.errors import InvalidSequence

_VALID = re.compile(r"^[ATGC]+$")
_STRIP = re.compile(r"[\s\d]+")

T37_K = 310.15

# SantaLucia & Hicks (2004) unified nearest-neighbor parameters (the values of
# Biopython's DNA_NN4 used by calculate_tm), 5'->3' top strand.
# (ΔH kcal/mol, ΔS cal/(mol·K))
NN_PARAMS: Mapping[str, Tuple[float, float]] = MappingProxyType({
    "AA": (-7.6, -21.3), "TT": (-7.6, -21.3),
    "AT": (-7.2, -20.4),
    "TA": (-7.2, -21.3),
    "CA": (-8.5, -22.7), "TG": (-8.5, -22.7),
    "GT": (-8.4, -22.4), "AC": (-8.4, -22.4),
    "CT": (-7.8, -21.0), "AG": (-7.8, -21.0),
    "GA": (-8.2, -22.2), "TC": (-8.2, -22.2),
    "CG": (-10.6, -27.2),
    "GC": (-9.8, -24.4),
    "GG": (-8.0, -19.9), "CC": (-8.0, -19.9),
})

# 3' stability classes (kcal/mol, upper bounds, exclusive)
TERMINAL_DG_LOOSE = -6.0
TERMINAL_DG_IDEAL = -9.0
TERMINAL_DG_STRONG = -11.0


@dataclass(frozen=True)
class TmConditions:
    """Reaction conditions for Tm calculation."""
    na_mm: float = 50.0
    mg_mm: float = 2.0
    dntps_mm: float = 0.0
    primer_nm: float = 500.0
    method: str = "biopython"   # 'biopython' | 'primer3'


DEFAULT_CONDITIONS = TmConditions()


# --- Sequence helpers ----------------------------------------------------------------------------

def clean_sequence(seq: str) -> str:
    """Strip whitespace/digits and upper-case. Does not validate."""
    return _STRIP.sub("", seq or "").upper()


def validate_sequence(seq: str, min_length: int = 1) -> str:
    """Clean and validate an ATGC sequence; raises InvalidSequence."""
    s = clean_sequence(seq)
    if not s:
        raise InvalidSequence("Sequence is empty.")
    if len(s) < min_length:
        raise InvalidSequence(f"Sequence too short ({len(s)} < {min_length}).")
    if not _VALID.match(s):
        bad = sorted(set(ch for ch in s if ch not in "ATGC"))
        raise InvalidSequence(
            f"Sequence contains non-ATGC characters: {''.join(bad)}",
            ["Only A, T, G and C are accepted (case-insensitive)."],
        )
    return s


def revcomp(seq: str) -> str:
    table = str.maketrans("ACGTacgt", "TGCAtgca")
    return seq.translate(table)[::-1]


# --- Tm / GC -------------------------------------------------------------------------------------

def calculate_gc(seq: str) -> float:
    """GC fraction in [0, 1]. Raises InvalidSequence on empty input."""
    s = clean_sequence(seq)
    if not s:
        raise InvalidSequence("GC content is undefined for an empty sequence.")
    return (s.count("G") + s.count("C")) / len(s)


def gc_percent(seq: str) -> float:
    return 100.0 * calculate_gc(seq)


def calculate_tm(seq: str, conditions: TmConditions = DEFAULT_CONDITIONS) -> float:
    """
    Melting temperature (°C) by the nearest-neighbor method.

    Raises:
        InvalidSequence: cleaned length < 2 or non-ATGC characters.
    """
    s = validate_sequence(seq, min_length=2)
    if conditions.method == "primer3":
        return float(primer3.calc_tm(
            s,
            mv_conc=conditions.na_mm,
            dv_conc=conditions.mg_mm,
            dntp_conc=conditions.dntps_mm,
            dna_conc=conditions.primer_nm,
            tm_method="santalucia",
            salt_corrections_method="owczarzy",
        ))
    return float(mt.Tm_NN(
        s,
        nn_table=mt.DNA_NN4,
        Na=conditions.na_mm,
        Mg=conditions.mg_mm,
        dNTPs=conditions.dntps_mm,
        dnac1=conditions.primer_nm,
        dnac2=0,
        saltcorr=7,
    ))


# --- 3' end stability ----------------------------------------------------------------------------

def nn_dg(dinucleotide: str, temperature_k: float = T37_K) -> float:
    dh, ds = NN_PARAMS[dinucleotide]
    return dh - temperature_k * ds / 1000.0


def terminal_3prime_dg(seq: str, window: int = 5) -> float:
    """ΔG37 (kcal/mol) of the last `window` bases (sum of NN stacks)."""
    s = clean_sequence(seq)[-window:]
    total = 0.0
    for i in range(len(s) - 1):
        pair = s[i:i + 2]
        if pair in NN_PARAMS:
            total += nn_dg(pair)
    return total


def classify_terminal_dg(dg: float) -> str:
    """'loose' | 'ideal' | 'strong' | 'sticky'."""
    if dg > TERMINAL_DG_LOOSE:
        return "loose"
    if dg > TERMINAL_DG_IDEAL:
        return "ideal"
    if dg > TERMINAL_DG_STRONG:
        return "strong"
    return "sticky"
