# File: backend/app/core/primer/mutations.py
# Version: v0.1.0
"""
Edit specifications for the design engine.

- `Template`: cleaned ATGC sequence + circular flag
- `DesignSpecification`: {start, end, replacement}
    replacement None      -> amplify [start, end)
    replacement ""        -> delete [start, end)
    start == end          -> insert replacement before `start`
    otherwise             -> substitute [start, end) with replacement
- Mutation notation (1-based input):
    A123G                 nucleotide point substitution (both letters ACGT)
    p.K45R / K45R / W45*  amino-acid change (codon of residue 45 in the ORF)
    del100-110 / Δ100     deletion (inclusive range)
    ins100_ACGT           insertion at position 100
- Codon choice: fewest nucleotide changes, ties broken by organism codon usage
  (Kazusa tables for E. coli and human).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from backend.app.core.primer.errors import InputTooShort, InvalidRegion, InvalidSequence
from backend.app.core.primer.thermodynamics import validate_sequence

MIN_TEMPLATE_LENGTH = 50


CODON_TABLE: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "F": ("TTT", "TTC"),
    "L": ("TTA", "TTG", "CTT", "CTC", "CTA", "CTG"),
    "I": ("ATT", "ATC", "ATA"),
    "M": ("ATG",),
    "V": ("GTT", "GTC", "GTA", "GTG"),
    "S": ("TCT", "TCC", "TCA", "TCG", "AGT", "AGC"),
    "P": ("CCT", "CCC", "CCA", "CCG"),
    "T": ("ACT", "ACC", "ACA", "ACG"),
    "A": ("GCT", "GCC", "GCA", "GCG"),
    "Y": ("TAT", "TAC"),
    "H": ("CAT", "CAC"),
    "Q": ("CAA", "CAG"),
    "N": ("AAT", "AAC"),
    "K": ("AAA", "AAG"),
    "D": ("GAT", "GAC"),
    "E": ("GAA", "GAG"),
    "C": ("TGT", "TGC"),
    "W": ("TGG",),
    "R": ("CGT", "CGC", "CGA", "CGG", "AGA", "AGG"),
    "G": ("GGT", "GGC", "GGA", "GGG"),
    "*": ("TAA", "TAG", "TGA"),
})

CODON_TO_AA: Mapping[str, str] = MappingProxyType({c: aa for aa, codons in CODON_TABLE.items() for c in codons})

CODON_USAGE: Mapping[str, Mapping[str, float]] = MappingProxyType({
    "ecoli": MappingProxyType({
        "TTT": 0.58, "TTC": 0.42, "TTA": 0.14, "TTG": 0.13,
        "CTT": 0.12, "CTC": 0.10, "CTA": 0.04, "CTG": 0.47,
        "ATT": 0.49, "ATC": 0.39, "ATA": 0.11, "ATG": 1.00,
        "GTT": 0.28, "GTC": 0.20, "GTA": 0.17, "GTG": 0.35,
        "TCT": 0.17, "TCC": 0.15, "TCA": 0.14, "TCG": 0.14,
        "AGT": 0.16, "AGC": 0.25, "CCT": 0.18, "CCC": 0.13,
        "CCA": 0.20, "CCG": 0.49, "ACT": 0.19, "ACC": 0.40,
        "ACA": 0.17, "ACG": 0.25, "GCT": 0.18, "GCC": 0.26,
        "GCA": 0.23, "GCG": 0.33, "TAT": 0.59, "TAC": 0.41,
        "CAT": 0.57, "CAC": 0.43, "CAA": 0.34, "CAG": 0.66,
        "AAT": 0.49, "AAC": 0.51, "AAA": 0.74, "AAG": 0.26,
        "GAT": 0.63, "GAC": 0.37, "GAA": 0.68, "GAG": 0.32,
        "TGT": 0.46, "TGC": 0.54, "TGG": 1.00, "CGT": 0.36,
        "CGC": 0.36, "CGA": 0.07, "CGG": 0.11, "AGA": 0.07,
        "AGG": 0.04, "GGT": 0.35, "GGC": 0.37, "GGA": 0.13,
        "GGG": 0.15, "TAA": 0.61, "TAG": 0.09, "TGA": 0.30,
    }),
    "human": MappingProxyType({
        "TTT": 0.45, "TTC": 0.55, "TTA": 0.07, "TTG": 0.13,
        "CTT": 0.13, "CTC": 0.20, "CTA": 0.07, "CTG": 0.41,
        "ATT": 0.36, "ATC": 0.48, "ATA": 0.16, "ATG": 1.00,
        "GTT": 0.18, "GTC": 0.24, "GTA": 0.11, "GTG": 0.47,
        "TCT": 0.18, "TCC": 0.22, "TCA": 0.15, "TCG": 0.06,
        "AGT": 0.15, "AGC": 0.24, "CCT": 0.28, "CCC": 0.33,
        "CCA": 0.27, "CCG": 0.11, "ACT": 0.24, "ACC": 0.36,
        "ACA": 0.28, "ACG": 0.12, "GCT": 0.26, "GCC": 0.40,
        "GCA": 0.23, "GCG": 0.11, "TAT": 0.43, "TAC": 0.57,
        "CAT": 0.41, "CAC": 0.59, "CAA": 0.25, "CAG": 0.75,
        "AAT": 0.46, "AAC": 0.54, "AAA": 0.42, "AAG": 0.58,
        "GAT": 0.46, "GAC": 0.54, "GAA": 0.42, "GAG": 0.58,
        "TGT": 0.45, "TGC": 0.55, "TGG": 1.00, "CGT": 0.08,
        "CGC": 0.19, "CGA": 0.11, "CGG": 0.21, "AGA": 0.20,
        "AGG": 0.20, "GGT": 0.16, "GGC": 0.34, "GGA": 0.25,
        "GGG": 0.25, "TAA": 0.28, "TAG": 0.20, "TGA": 0.52,
    }),
})


# --- Templates / specifications ------------------------------------------------------------------

@dataclass(frozen=True)
class Template:
    sequence: str
    circular: bool = False

    @classmethod
    def of(cls, sequence: str, circular: bool = False, min_length: int = MIN_TEMPLATE_LENGTH) -> "Template":
        s = validate_sequence(sequence)
        if len(s) < min_length:
            raise InputTooShort(f"Template too short ({len(s)} bp < {min_length} bp).")
        return cls(s, circular)

    def __len__(self) -> int:
        return len(self.sequence)


@dataclass(frozen=True)
class DesignSpecification:
    start: int
    end: int
    replacement: Optional[str] = None
    label: str = ""

    @property
    def kind(self) -> str:
        if self.replacement is None:
            return "amplify"
        if self.replacement == "":
            return "deletion"
        if self.start == self.end:
            return "insertion"
        return "substitution"

    @property
    def is_mutagenesis(self) -> bool:
        return self.replacement is not None

    @classmethod
    def from_amino_acid_change(
        cls,
        template: str,
        residue: int,
        target_aa: str,
        orf_start: int = 0,
        organism: Optional[str] = "ecoli",
    ) -> "DesignSpecification":
        """Codon-range substitution for residue `residue` (1-based) of the ORF at `orf_start`."""
        s = validate_sequence(template)
        codon_start = orf_start + 3 * (residue - 1)
        if residue < 1 or codon_start < 0 or codon_start + 3 > len(s):
            raise InvalidRegion(
                f"Residue {residue} (codon at {codon_start}) lies outside the template ({len(s)} bp).",
                ["Check the ORF start offset and residue number (1-based)."],
            )
        original = s[codon_start:codon_start + 3]
        choice = select_optimal_codon(original, target_aa, organism)
        label = f"{CODON_TO_AA.get(original, '?')}{residue}{target_aa.upper()}"
        return cls(codon_start, codon_start + 3, choice.codon, label)

    def validate(self, template: Template) -> None:
        n = len(template)
        if self.start < 0 or self.end < 0 or self.start > n or self.end > n:
            raise InvalidRegion(f"Region [{self.start}, {self.end}) lies outside the template (0..{n}).")
        if self.end < self.start and not template.circular:
            raise InvalidRegion(
                f"Region end ({self.end}) is before start ({self.start}) on a linear template.",
                ["Set circular=true to select a region that wraps the origin."],
            )
        if self.kind == "amplify" and self.start == self.end:
            raise InvalidRegion("Amplification region is empty.")
        if self.replacement:
            validate_sequence(self.replacement)


# --- Codons --------------------------------------------------------------------------------------

@dataclass(frozen=True)
class CodonChoice:
    codon: str
    changes: int
    positions: Tuple[int, ...]
    usage: float


def translate(seq: str) -> str:
    return "".join(CODON_TO_AA.get(seq[i:i + 3], "X") for i in range(0, len(seq) - 2, 3))


def select_optimal_codon(original: str, target_aa: str, organism: Optional[str] = "ecoli") -> CodonChoice:
    """Fewest nucleotide changes first, then highest usage in `organism`."""
    codons = CODON_TABLE.get(target_aa.upper())
    if not codons:
        raise InvalidSequence(f"Invalid amino acid: {target_aa}")
    usage = CODON_USAGE.get(organism or "", None)
    best: Optional[CodonChoice] = None
    for codon in codons:
        positions = tuple(i + 1 for i in range(3) if codon[i] != original[i])
        u = usage.get(codon, 0.0) if usage else 0.5
        cand = CodonChoice(codon, len(positions), positions, u)
        if best is None or cand.changes < best.changes or (cand.changes == best.changes and cand.usage > best.usage):
            best = cand
    return best


# --- Notation ------------------------------------------------------------------------------------

_POINT = re.compile(r"^(P\.)?([A-Z*])(\d+)([A-Z*])$")
_DEL = re.compile(r"^(?:DEL|Δ)(\d+)(?:-(\d+))?$")
_INS = re.compile(r"^INS(\d+)_([ACGT]+)$")


@dataclass(frozen=True)
class ParsedMutation:
    kind: str                 # 'point' | 'amino_acid' | 'deletion' | 'insertion'
    position: int             # 0-based (residue number for amino_acid)
    original: str = ""
    replacement: str = ""
    length: int = 0
    notation: str = ""


def parse_mutation_notation(notation: str) -> ParsedMutation:
    text = (notation or "").strip().upper()
    m = _POINT.match(text)
    if m:
        prefix, original, pos, replacement = m.groups()
        position = int(pos)
        nucleotide = not prefix and original in "ACGT" and replacement in "ACGT"
        if nucleotide:
            return ParsedMutation("point", position - 1, original, replacement, 1, text)
        return ParsedMutation("amino_acid", position, original, replacement, 3, text)
    m = _DEL.match(text)
    if m:
        start = int(m.group(1)) - 1
        end = int(m.group(2)) - 1 if m.group(2) else start
        if end < start:
            raise InvalidRegion(f"Deletion range is reversed: {notation}")
        return ParsedMutation("deletion", start, length=end - start + 1, notation=text)
    m = _INS.match(text)
    if m:
        return ParsedMutation("insertion", int(m.group(1)) - 1, replacement=m.group(2), length=len(m.group(2)), notation=text)
    raise InvalidSequence(
        f"Unrecognized mutation notation: {notation!r}",
        ["Use A123G, p.K45R, del100-110 or ins100_ACGT (1-based positions)."],
    )


def specification_from_notation(
    notation: str,
    template: str,
    orf_start: int = 0,
    organism: Optional[str] = "ecoli",
) -> DesignSpecification:
    pm = parse_mutation_notation(notation)
    s = validate_sequence(template)
    if pm.kind == "amino_acid":
        spec = DesignSpecification.from_amino_acid_change(s, pm.position, pm.replacement, orf_start, organism)
        current = CODON_TO_AA.get(s[spec.start:spec.end], "?")
        if pm.original != current:
            raise InvalidRegion(
                f"Residue {pm.position} is {current}, not {pm.original} (ORF start {orf_start}).",
                ["Check the ORF start offset."],
            )
        return spec
    if pm.position < 0 or pm.position + (pm.length if pm.kind != "insertion" else 0) > len(s):
        raise InvalidRegion(f"{pm.notation} lies outside the template ({len(s)} bp).")
    if pm.kind == "point":
        if s[pm.position] != pm.original:
            raise InvalidRegion(
                f"Template has {s[pm.position]} at position {pm.position + 1}, not {pm.original}.",
            )
        return DesignSpecification(pm.position, pm.position + 1, pm.replacement, pm.notation)
    if pm.kind == "deletion":
        return DesignSpecification(pm.position, pm.position + pm.length, "", pm.notation)
    return DesignSpecification(pm.position, pm.position, pm.replacement, pm.notation)


# --- Editing -------------------------------------------------------------------------------------

def rotate(seq: str, offset: int) -> str:
    if not seq:
        return seq
    k = offset % len(seq)
    return seq[k:] + seq[:k]


def circular_slice(seq: str, start: int, end: int) -> str:
    """seq[start:end] where `end` may exceed len(seq) (wraps once)."""
    n = len(seq)
    if end <= n:
        return seq[start:end]
    return seq[start:] + seq[:end - n]


def apply_edit(template: Template, spec: DesignSpecification) -> Tuple[str, DesignSpecification, int]:
    """
    Apply `spec` to the template.

    Returns (product, normalized_spec, rotation). An edit that wraps the origin of a
    circular template is expressed on the template rotated by `rotation` so that
    the edit starts at 0; `normalized_spec` is then in rotated coordinates.
    """
    spec.validate(template)
    seq = template.sequence
    rotation = 0
    if spec.end < spec.start:
        rotation = spec.start
        seq = rotate(seq, rotation)
        spec = DesignSpecification(0, spec.end + len(template) - spec.start, spec.replacement, spec.label)
    if spec.replacement is None:
        return seq, spec, rotation
    return seq[:spec.start] + spec.replacement + seq[spec.end:], spec, rotation


def edit_summary(spec: DesignSpecification, template: Template) -> Dict[str, object]:
    info: Dict[str, object] = {"kind": spec.kind, "start": spec.start, "end": spec.end}
    if spec.replacement is not None:
        info["replacement"] = spec.replacement
    if spec.label:
        info["label"] = spec.label
    if spec.kind in ("substitution", "deletion") and spec.end >= spec.start:
        info["original"] = template.sequence[spec.start:spec.end]
    return info
