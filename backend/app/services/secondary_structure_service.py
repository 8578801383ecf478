# File: backend/app/services/secondary_structure_service.py
# Version: v0.2.0
"""
Secondary structure analysis service backed by the primer engine's MFE folder.

`analyze_stems`:
1) Folds the sequence with `StructureFolder` (windowed when longer than the
   folder's `max_length`; paired flags of overlapping windows are OR-ed).
2) Marks nucleotides that participate in stems.
3) Extracts linear regions of consecutive paired nucleotides.
4) Merges adjacent stem regions if the unpaired gap between them is <= `merge_max_gap`.
5) Filters regions to keep only those whose final merged length >= `min_stem_len`.

`fold_report` folds a single sequence (hairpin) or a pair (dimer) and attaches the
severity class and helices.

All indices are 0-based, [start, end) half-open intervals.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from backend.app.core.primer.folding import (
    DEFAULT_FOLDER,
    StructureFolder,
    classify_structure_severity,
    paired_flags,
    stem_regions,
)
from backend.app.core.primer.thermodynamics import validate_sequence

log = logging.getLogger(__name__)


def _windowed_flags(seq: str, folder: StructureFolder) -> List[bool]:
    """Paired flags for `seq`, folding overlapping windows when it exceeds the fold limit."""
    n = len(seq)
    size = folder.max_length
    if n <= size:
        fold = folder.fold(seq)
        return paired_flags(n, fold.pairs)
    step = max(1, size // 2)
    flags = [False] * n
    starts = list(range(0, n - size + 1, step))
    if starts[-1] != n - size:
        starts.append(n - size)
    log.debug("Folding %d nt in %d windows of %d", n, len(starts), size)
    for start in starts:
        fold = folder.fold(seq[start:start + size])
        for k, paired in enumerate(paired_flags(size, fold.pairs)):
            if paired:
                flags[start + k] = True
    return flags


def _runs_from_flags(flags: List[bool]) -> List[Tuple[int, int]]:
    """Consecutive True runs as [start, end) intervals."""
    runs: List[Tuple[int, int]] = []
    n = len(flags)
    i = 0
    while i < n:
        if flags[i]:
            j = i + 1
            while j < n and flags[j]:
                j += 1
            runs.append((i, j))
            i = j
        else:
            i += 1
    return runs


def _merge_with_gap(runs: List[Tuple[int, int]], max_gap: int) -> List[Tuple[int, int]]:
    """
    Merge adjacent intervals if the unpaired gap between them is <= max_gap.

    Example:
        runs = [(10, 16), (18, 25)], max_gap=2  -> [(10, 25)]
    """
    if not runs:
        return []
    merged: List[Tuple[int, int]] = [runs[0]]
    for start, end in runs[1:]:
        prev_start, prev_end = merged[-1]
        if start - prev_end <= max_gap:
            merged[-1] = (prev_start, max(prev_end, end))
        else:
            merged.append((start, end))
    return merged


def analyze_stems(
    sequence: str,
    min_stem_len: int,
    merge_max_gap: int,
    folder: Optional[StructureFolder] = None,
) -> List[Tuple[int, int]]:
    """
    Stem intervals (0-based, end-exclusive), sorted and non-overlapping.

    Raises:
        InvalidSequence: non-ATGC input.
    """
    seq = validate_sequence(sequence)
    flags = _windowed_flags(seq, folder or DEFAULT_FOLDER)
    merged = _merge_with_gap(_runs_from_flags(flags), merge_max_gap)
    return [(s, e) for (s, e) in merged if (e - s) >= min_stem_len]


def fold_report(
    sequence: str,
    partner: Optional[str] = None,
    folder: Optional[StructureFolder] = None,
) -> Dict[str, Any]:
    """
    Fold one sequence (hairpin) or two (dimer) and classify the structure.

    Raises:
        InvalidSequence: non-ATGC input or a sequence above the fold limit.
    """
    f = folder or DEFAULT_FOLDER
    seq = validate_sequence(sequence)
    if partner is None:
        fold = f.fold(seq)
        kind = "hairpin"
    else:
        fold = f.fold_dimer(seq, partner)
        kind = "self_dimer" if validate_sequence(partner) == seq else "heterodimer"
    report = fold.to_dict()
    report["kind"] = kind
    report["severity"] = classify_structure_severity(fold, len(seq), kind)
    report["stems"] = [
        {"start": r.start, "end": r.end, "length": r.length, "partnerStart": r.partner_start, "partnerEnd": r.partner_end}
        for r in stem_regions(fold)
    ]
    return report
