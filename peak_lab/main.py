"""Find windowed local maxima in a signal file or a simulated spectrum."""
from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Sequence

from peak_lab.engine.excel_writer import write_peak_workbook
from peak_lab.engine.figures import render_peak_figure
from peak_lab.engine.io_common import SignalFormatError, read_signal
from peak_lab.engine.local_maxima import PLATEAU_POLICIES, VARIANTS, VariantMismatchError
from peak_lab.engine.pipeline import run_batch
from peak_lab.engine.recipe_model import Recipe, RecipeValidationError, load_recipe
from peak_lab.engine.signal_sim import simulate_spectrum

logger = logging.getLogger(__name__)


def _column_selector(value: str) -> str | int:
    return int(value) if value.isdigit() else value


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="peak-lab", description=__doc__)
    parser.add_argument(
        "signal",
        nargs="?",
        help="CSV/TXT file holding one intensity column, or axis and intensity columns.",
    )
    parser.add_argument(
        "--column",
        type=_column_selector,
        help="Intensity column name or 0-based position (default: last column).",
    )
    parser.add_argument(
        "--axis-column",
        type=_column_selector,
        dest="axis_column",
        help="Axis column name or 0-based position (default: first of several columns).",
    )
    parser.add_argument(
        "--simulate",
        type=int,
        metavar="N",
        help="Use a simulated N-point spectrum instead of reading a file.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for --simulate.")
    parser.add_argument("--recipe", help="YAML recipe providing features.peaks settings.")
    parser.add_argument("--half-window", type=int, dest="half_window", help="Neighbours examined on each side.")
    parser.add_argument("--method", choices=tuple(VARIANTS), help="Detector variant.")
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Run every detector variant and fail if they disagree.",
    )
    parser.add_argument(
        "--plateau-policy",
        choices=PLATEAU_POLICIES,
        dest="plateau_policy",
        help="Keep every plateau member (all) or a single representative.",
    )
    parser.add_argument(
        "--one-based",
        action="store_true",
        dest="one_based",
        help="Report positions starting at 1 instead of 0.",
    )
    parser.add_argument("--format", choices=("json", "csv"), default="json", help="Output format (default: json).")
    parser.add_argument("--xlsx", help="Also write peaks, QC and audit sheets to this workbook.")
    parser.add_argument("--figure", help="Also write a PNG plot of the signal and its peaks.")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")
    args = parser.parse_args(argv)
    if args.signal is None and args.simulate is None:
        parser.error("provide a signal file or --simulate N")
    return args


def _build_recipe(args: argparse.Namespace) -> Recipe:
    recipe = load_recipe(args.recipe) if args.recipe else Recipe()
    params = dict(recipe.params)
    features = dict(params.get("features") or {})
    peaks = dict(features.get("peaks") or {})
    overrides = {
        "half_window": args.half_window,
        "method": args.method,
        "plateau_policy": args.plateau_policy,
    }
    peaks.update({k: v for k, v in overrides.items() if v is not None})
    if args.verify:
        peaks["verify_variants"] = True
    features["peaks"] = peaks
    params["features"] = features
    return Recipe(module=recipe.module, params=params, version=recipe.version)


def _output_rows(result, one_based: bool) -> List[Dict[str, Any]]:
    offset = 1 if one_based else 0
    rows: List[Dict[str, Any]] = []
    for spec in result.processed:
        for peak in spec.meta["features"]["peaks"]:
            row = dict(peak)
            row["index"] = int(row["index"]) + offset
            rows.append(row)
    return rows


def output_json(rows: List[Dict[str, Any]], qc: Dict[str, Any]) -> None:
    json.dump({"qc": qc, "peaks": rows}, sys.stdout, indent=2)
    sys.stdout.write("\n")


def output_csv(rows: List[Dict[str, Any]]) -> None:
    fields = list(rows[0].keys()) if rows else ["index"]
    writer = csv.DictWriter(sys.stdout, fieldnames=fields, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")

    try:
        recipe = _build_recipe(args)
        if args.simulate is not None:
            spectrum = simulate_spectrum(args.simulate, seed=args.seed)
        else:
            spectrum = read_signal(Path(args.signal), column=args.column, axis_column=args.axis_column)
        result = run_batch([spectrum], recipe)
    except (SignalFormatError, RecipeValidationError, OSError) as exc:
        logger.error("%s", exc)
        return 2
    except VariantMismatchError as exc:
        logger.error("Detector variants disagree: %s", exc)
        return 2

    rows = _output_rows(result, args.one_based)
    if args.xlsx:
        path = write_peak_workbook(args.xlsx, result.processed, result.qc_table, result.audit)
        logger.info("Wrote workbook %s", path)
    if args.figure:
        figure_path = Path(args.figure)
        figure_path.parent.mkdir(parents=True, exist_ok=True)
        figure_path.write_bytes(render_peak_figure(result.processed[0]))
        logger.info("Wrote figure %s", figure_path)

    try:
        if args.format == "json":
            output_json(rows, result.qc_table[0])
        else:
            output_csv(rows)
    except BrokenPipeError:
        return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
