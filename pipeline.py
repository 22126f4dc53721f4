"""Genome Layout Pipeline

Usage:
    python pipeline.py <input_dir> <output_dir> [options]

The input directory holds plain tables (TSV, CSV or Excel, optionally gzipped),
recognised by file name:
    *seqs*      Sequence table: seq_id, length, optional bin_id (at most one file)
    *genes*     Gene tracks: seq_id, start, end, optional strand / feat_id
    *feats*     Other feature tracks, same columns as genes
    *links*     Link tracks: seq_id1, start1, end1, seq_id2, start2, end2

Without a seqs table, sequences are inferred from the first gene/feat track,
or else from the first link track.

Re-arrangements are applied in this order: --flip-nicely, --flip, --flip-seq,
--pick, --shift, --focus.

Outputs (saved to output_dir):
    seqs.tsv            Laid out sequences (bin_index, seq_index, x_offset, y, ...)
    {track}.tsv         Every track with x, xend, y (feats) or
                        x, xend, y, x2, xend2, y2, orientation (links)
    layout.xlsx         Multi-sheet Excel workbook with the same tables (if --excel)

Excel output requires openpyxl (pip install openpyxl).
"""

import argparse
import sys
import warnings
from pathlib import Path

from synlayout import io, transform
from synlayout.base import DEFAULT_FOCUS_MARGIN, DEFAULT_FOCUS_MAX_DIST, MARGINAL_POLICIES
from synlayout.errors import LayoutError, UnresolvedReferenceWarning
from synlayout.layout import layout_genomes


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Lay out sequences, features and synteny links on shared coordinates."
    )
    parser.add_argument(
        "input_dir",
        type=Path,
        help="Directory containing the input tables",
    )
    parser.add_argument(
        "output_dir",
        type=Path,
        help="Directory to write laid out tables",
    )
    parser.add_argument(
        "--spacing",
        type=float,
        default=0,
        help="Gap between sequences of a bin in bp; values between 0 and 1 are "
             "a fraction of the widest bin (default: 0).",
    )
    parser.add_argument(
        "--wrap",
        type=float,
        default=None,
        metavar="BP",
        help="Continue bins wider than BP on a new row.",
    )
    parser.add_argument(
        "--natural-order",
        action="store_true",
        default=False,
        help="Order bins naturally by name (chr2 before chr10) instead of by first appearance.",
    )
    parser.add_argument(
        "--infer-start",
        choices=["span", "zero"],
        default="span",
        help="When inferring seqs, show only the observed span (default) or start at 0.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Fail on feats/links that reference unknown sequences instead of dropping them.",
    )
    parser.add_argument(
        "--flip-nicely",
        action="store_true",
        default=False,
        help="Flip bins so that links to the previous bin are mostly colinear.",
    )
    parser.add_argument(
        "--flip",
        nargs="+",
        default=[],
        metavar="BIN",
        help="Bins to reverse-complement.",
    )
    parser.add_argument(
        "--flip-seq",
        nargs="+",
        default=[],
        metavar="SEQ",
        help="Single sequences to reverse-complement in place.",
    )
    parser.add_argument(
        "--pick",
        nargs="+",
        default=None,
        metavar="BIN",
        help="Keep only these bins, in this order.",
    )
    parser.add_argument(
        "--shift",
        nargs=2,
        action="append",
        default=[],
        metavar=("BIN", "BP"),
        help="Move a bin along x by BP (repeatable).",
    )
    parser.add_argument(
        "--focus",
        type=str,
        default=None,
        metavar="QUERY",
        help="Focus on rows matching a pandas query, e.g. \"name == 'MCP'\".",
    )
    parser.add_argument(
        "--focus-track",
        type=str,
        default=None,
        metavar="TRACK",
        help="Track the focus query runs on (default: first feat track).",
    )
    parser.add_argument(
        "--margin",
        type=float,
        nargs="+",
        default=[DEFAULT_FOCUS_MARGIN],
        metavar="BP",
        help=f"Margin around focused regions; one value or upstream downstream "
             f"(default: {DEFAULT_FOCUS_MARGIN}).",
    )
    parser.add_argument(
        "--marginal",
        choices=list(MARGINAL_POLICIES),
        default="trim",
        help="What to do with feats/links sticking out of focused regions (default: trim).",
    )
    parser.add_argument(
        "--max-dist",
        type=float,
        default=DEFAULT_FOCUS_MAX_DIST,
        help=f"Merge focused regions closer than this (default: {DEFAULT_FOCUS_MAX_DIST}).",
    )
    parser.add_argument(
        "--excel",
        action="store_true",
        default=False,
        help="Also write a multi-sheet Excel workbook (layout.xlsx). Requires openpyxl.",
    )
    return parser.parse_args(argv)


def build_layout(args, tables):
    layout = layout_genomes(
        tables["seqs"],
        genes=tables["genes"] or None,
        feats=tables["feats"] or None,
        links=tables["links"] or None,
        bin_order="natural" if args.natural_order else None,
        spacing=args.spacing,
        wrap=args.wrap,
        strict=args.strict,
        infer_start=args.infer_start,
    )
    if args.flip_nicely:
        layout = transform.flip_nicely(layout)
    if args.flip:
        layout = transform.flip(layout, *args.flip)
    if args.flip_seq:
        layout = transform.flip_seqs(layout, *args.flip_seq)
    if args.pick is not None:
        layout = transform.pick(layout, *args.pick)
    for bin_id, by in args.shift:
        layout = transform.shift(layout, bin_id, float(by))
    if args.focus is not None:
        if len(args.margin) > 2:
            raise LayoutError("--margin takes one or two values")
        margin = args.margin[0] if len(args.margin) == 1 else tuple(args.margin)
        layout = transform.focus(
            layout, args.focus, args.focus_track,
            margin=margin, marginal=args.marginal, max_dist=args.max_dist,
        )
    return layout


def main(argv=None):
    args = parse_args(argv)

    if not args.input_dir.is_dir():
        sys.exit(f"Error: input directory not found: {args.input_dir}")

    args.output_dir.mkdir(parents=True, exist_ok=True)

    # --- Discover tables ---
    print(f"Scanning for tables in: {args.input_dir}")
    try:
        files = io.find_tracks(args.input_dir)
    except (FileNotFoundError, ValueError) as exc:
        sys.exit(f"Error: {exc}")
    tables = io.load_tracks(files)

    # --- Lay out and re-arrange ---
    print("Computing layout...")
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UnresolvedReferenceWarning)
            layout = build_layout(args, tables)
    except LayoutError as exc:
        sys.exit(f"Error: {exc}")

    for diagnostic in layout.diagnostics:
        print(f"Warning: {diagnostic}")
    n_bins = layout.seqs["bin_id"].nunique()
    print(f"  {len(layout.seqs)} sequence(s) in {n_bins} bin(s)")

    # --- Write outputs ---
    sheets = io.layout_tables(layout)
    io.save_tables(sheets, args.output_dir)
    if args.excel:
        print("Writing Excel workbook...")
        io.save_excel(sheets, args.output_dir / "layout.xlsx")

    print(f"\nDone. Tables saved to: {args.output_dir}")


if __name__ == "__main__":
    main()
