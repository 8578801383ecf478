# File: backend/app/cli/primers_cli.py
# Version: v2.0.0
"""
CLI for primer design (amplification and site-directed mutagenesis).

- The edit is given either as a region (--start/--end, optional --replacement;
  omit --replacement to amplify, pass --replacement "" to delete) or as mutation
  notation (--mutation A123G | p.K45R | del100-110 | ins100_ACGT, 1-based).
- Options come from --params-json (camelCase DesignOptions) or the built-in defaults;
  --strategy / --circular / --exhaustive override them.
- Writes primers.fasta and primers.json; with --debug, a failed search also writes
  candidates.csv + README.txt.

Usage:
    python -m backend.app.cli.primers_cli \
        --fasta backend/data/input/plasmid.fasta \
        --mutation A123G \
        --outdir backend/data/out/primers \
        [--params-json backend/app/config/primers_param.json] \
        [--strategy overlapping] [--circular] [--exhaustive] [--debug]
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from backend.app.core.primer.designer import DesignDiagnostics, DesignEngine, DesignResult
from backend.app.core.primer.errors import NoFeasibleDesign
from backend.app.core.primer.mutations import DesignSpecification, Template, specification_from_notation
from backend.app.core.primer.parameters import DesignOptions
from backend.app.core.primer.thermodynamics import clean_sequence

log = logging.getLogger("primers_cli")

# ---------- IO helpers ----------

def read_single_fasta(path: Path) -> Tuple[str, str]:
    """Return (name, sequence). Enforces exactly one FASTA record."""
    name = None
    seq_lines = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            if line.startswith(">"):
                if name is not None:
                    raise ValueError(f"Multiple FASTA records found in {path}. Provide a single-sequence FASTA.")
                name = line[1:].strip() or "sequence"
            else:
                seq_lines.append(line)
    if name is None:
        raise ValueError(f"No FASTA header found in {path}.")
    return name, clean_sequence("".join(seq_lines))


def write_fasta(out: Path, result: DesignResult) -> None:
    lines = []
    for label, p in (("Forward_Primer", result.forward), ("Reverse_Primer", result.reverse)):
        lines.append(f">{label} start={p.start} end={p.end} tm={p.tm:.1f} gc={100 * p.gc:.1f} len={p.length}")
        lines.append(p.sequence)
    out.write_text("\n".join(lines) + "\n", encoding="utf-8")


def dump_debug_csv(outdir: Path, diag: DesignDiagnostics) -> None:
    cand_file = outdir / "candidates.csv"
    with cand_file.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["side", "pos", "length", "tm", "gc", "rejected", "reason", "seq"])
        for row in diag.forward_candidates + diag.reverse_candidates:
            w.writerow([row.side, row.pos, row.length, f"{row.tm:.2f}", f"{row.gc:.2f}", row.rejected, row.reason, row.seq])
    (outdir / "README.txt").write_text(
        "Diagnostics files:\n"
        "- candidates.csv: per-candidate filters and reasons\n"
        f"- pairs_evaluated: {diag.pairs_evaluated}\n"
        f"- message: {diag.message}\n",
        encoding="utf-8",
    )


def build_specification(args: argparse.Namespace, seq: str, options: DesignOptions) -> DesignSpecification:
    if args.mutation:
        return specification_from_notation(args.mutation, seq, args.orf_start, options.organism)
    if args.start is None or args.end is None:
        raise ValueError("Provide --mutation or both --start and --end.")
    start, end = args.start, args.end
    if args.one_based:
        start -= 1  # 1-based inclusive -> 0-based; end becomes exclusive as-is
    replacement = clean_sequence(args.replacement) if args.replacement is not None else None
    return DesignSpecification(start, end, replacement, args.label or "")


def load_options(args: argparse.Namespace) -> DesignOptions:
    data = json.loads(args.params_json.read_text(encoding="utf-8")) if args.params_json else {}
    options = DesignOptions.model_validate(data)
    overrides = {}
    if args.strategy:
        overrides["strategy"] = args.strategy
    if args.circular:
        overrides["circular"] = True
    if args.exhaustive:
        overrides["exhaustiveSearch"] = True
    return options.model_copy(update=overrides) if overrides else options


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Design PCR / mutagenesis primers for a single-record FASTA template.")
    p.add_argument("--fasta", required=True, type=Path)
    p.add_argument("--outdir", required=True, type=Path)
    p.add_argument("--start", type=int, help="Region start (0-based) unless --one-based")
    p.add_argument("--end", type=int, help="Region end (exclusive) unless --one-based")
    p.add_argument("--replacement", help="Bases replacing [start, end); '' deletes; omit to amplify")
    p.add_argument("--mutation", help="Mutation notation, e.g. A123G, p.K45R, del100-110, ins100_ACGT")
    p.add_argument("--orf-start", type=int, default=0, help="ORF offset (0-based) for amino-acid notation")
    p.add_argument("--label", default="")
    p.add_argument("--one-based", action="store_true", help="Treat start/end as 1-based inclusive coordinates")
    p.add_argument("--params-json", type=Path, help="JSON with DesignOptions (camelCase)")
    p.add_argument("--strategy", choices=["back-to-back", "overlapping"])
    p.add_argument("--circular", action="store_true")
    p.add_argument("--exhaustive", action="store_true")
    p.add_argument("--debug", action="store_true", help="Write diagnostics CSV when no pair is found")
    p.add_argument("--log-level", default="WARNING")
    return p


# ---------- Main ----------

def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    try:
        name, seq = read_single_fasta(args.fasta)
        options = load_options(args)
        template = Template.of(seq, options.circular)
        spec = build_specification(args, template.sequence, options)

        args.outdir.mkdir(parents=True, exist_ok=True)
        try:
            result = DesignEngine(options).design(template, spec)
        except NoFeasibleDesign as e:
            diag = getattr(e, "diagnostics", None)
            if args.debug and diag is not None:
                dump_debug_csv(args.outdir, diag)
            raise

        out_fa = args.outdir / "primers.fasta"
        write_fasta(out_fa, result)

        meta = {
            "sequence_name": name,
            "length": len(template),
            "circular": template.circular,
            "params_source": str(args.params_json) if args.params_json else "defaults",
            "primers": [
                {"name": "forward", "sequence": result.forward.sequence, "start": result.forward.start, "end": result.forward.end},
                {"name": "reverse", "sequence": result.reverse.sequence, "start": result.reverse.start, "end": result.reverse.end},
            ],
            "result": result.to_dict(),
        }
        (args.outdir / "primers.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")

        print(
            f"[OK] Wrote {out_fa} ({result.edit.get('kind')}, {result.strategy}, "
            f"score {result.composite_score:.1f} {result.quality_tier})"
        )

    except Exception as ex:
        print(f"[ERROR] {ex}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
