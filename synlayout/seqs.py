"""Sequence layout: bins as rows, sequences end-to-end within each bin.

Every sequence shows a window ``[start, end]`` of its own coordinates
(``[0, length]`` unless focused) and occupies ``end - start`` units of x. Bins
are numbered in order (``bin_index``); sequences are numbered within their
bin (``seq_index``) and placed at ``x_offset``, the running sum of the widths
of the sequences before them plus any spacing and the bin's own shift.

With ``wrap`` set, a bin that grows wider than ``wrap`` continues on the next
row, so ``y`` counts rows rather than bins.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from natsort import natsorted

from .base import FORWARD, INFER_START_POLICIES, REVERSE, SEQ_COLS, SEQ_LAYOUT_COLS, UNSTRANDED
from .errors import ConfigurationError, ValidationError
from .tracks import as_positions, normalize_strand, require_vars


def prepare_seqs(seqs: pd.DataFrame, infer_bin_id: str = "seq_id") -> pd.DataFrame:
    """Validate a sequence table and fill in bin_id, window, strand and parent_id."""
    require_vars(seqs, SEQ_COLS, "seqs")
    df = seqs.drop(columns=[c for c in SEQ_LAYOUT_COLS if c in seqs.columns])
    df = df.reset_index(drop=True).copy()

    df["seq_id"] = df["seq_id"].astype(str)
    if "bin_id" not in df.columns:
        if infer_bin_id not in df.columns:
            raise ConfigurationError(f"Cannot infer bin_id: no column '{infer_bin_id}' in seqs")
        df["bin_id"] = df[infer_bin_id]
    df["bin_id"] = df["bin_id"].astype(str)

    df["length"] = as_positions(df["length"], "length", "seqs")
    if (df["length"] < 0).any():
        raise ConfigurationError("Sequence lengths must be non-negative")

    df["start"] = as_positions(df["start"], "start", "seqs") if "start" in df.columns else 0
    if "end" in df.columns:
        df["end"] = as_positions(df["end"], "end", "seqs")
    else:
        df["end"] = df["length"]
    if (df["start"] > df["end"]).any():
        raise ConfigurationError("Sequence windows must have start <= end")

    if "strand" in df.columns:
        strand = normalize_strand(df["strand"], "seqs")
        df["strand"] = strand.replace({UNSTRANDED: FORWARD})
    else:
        df["strand"] = FORWARD
    # fresh and re-laid tables must come out with the same dtype
    df["strand"] = df["strand"].astype(object)

    if "parent_id" not in df.columns:
        df["parent_id"] = df["seq_id"]
    df["parent_id"] = df["parent_id"].astype(str)
    if "bin_offset" not in df.columns:
        df["bin_offset"] = 0

    dups = df.duplicated(["bin_id", "seq_id"], keep=False)
    if dups.any():
        examples = df.loc[dups, ["bin_id", "seq_id"]].drop_duplicates().head(5)
        pairs = ", ".join(f"{b}/{s}" for b, s in examples.itertuples(index=False))
        raise ConfigurationError(f"Duplicate (bin_id, seq_id) pair(s) in seqs: {pairs}")
    return df


def _check_order(order, known, what: str) -> list:
    order = [str(item) for item in order]
    unknown = [item for item in order if item not in known]
    if unknown:
        raise ValidationError(f"Unknown {what}(s): {', '.join(unknown)}")
    dups = sorted({item for item in order if order.count(item) > 1})
    if dups:
        raise ValidationError(f"{what}(s) listed more than once: {', '.join(dups)}")
    return order


def _place_bin(widths: np.ndarray, gap: float, start: float, wrap) -> tuple[list, list]:
    """Offsets and sub-row numbers for the sequences of one bin."""
    offsets, rows = [], []
    x, row = start, 0
    for i, width in enumerate(widths):
        if wrap is not None and i > 0 and x + width > start + wrap:
            x, row = start, row + 1
        offsets.append(x)
        rows.append(row)
        x += width + gap
    return offsets, rows


def layout_seqs(
    seqs: pd.DataFrame,
    bin_order=None,
    seq_order=None,
    spacing: float = 0,
    wrap=None,
) -> pd.DataFrame:
    """Assign bin_index, seq_index, x_offset and y to every sequence.

    Bins and sequences keep their order of first appearance unless
    ``bin_order`` (a list of bin ids, or ``"natural"``) or ``seq_order`` (a
    list of seq ids) says otherwise. Bins or sequences missing from an
    explicit order are left out. ``spacing`` is the gap between neighbouring
    sequences; values between 0 and 1 are read as a fraction of the widest
    bin. Running the layout on its own output reproduces it.
    """
    df = prepare_seqs(seqs)

    bins = list(pd.unique(df["bin_id"]))
    if isinstance(bin_order, str) and bin_order == "natural":
        bins = natsorted(bins)
    elif bin_order is not None:
        bins = _check_order(bin_order, set(bins), "bin")
    bin_rank = {bin_id: i for i, bin_id in enumerate(bins)}
    df = df.loc[df["bin_id"].isin(bin_rank)].copy()

    if seq_order is not None:
        seq_order = _check_order(seq_order, set(df["seq_id"]), "seq")
        seq_rank = {seq_id: i for i, seq_id in enumerate(seq_order)}
        df = df.loc[df["seq_id"].isin(seq_rank)].copy()
        df["_rank"] = df["seq_id"].map(seq_rank)
    else:
        df["_rank"] = np.arange(len(df))

    df["bin_index"] = df["bin_id"].map(bin_rank)
    df = df.sort_values(["bin_index", "_rank"], kind="stable").drop(columns="_rank")
    df = df.reset_index(drop=True)
    df["seq_index"] = df.groupby("bin_index").cumcount()

    widths = (df["end"] - df["start"]).to_numpy()
    bin_widths = pd.Series(widths).groupby(df["bin_index"]).sum()
    if 0 < spacing < 1:
        gap = spacing * (bin_widths.max() if len(bin_widths) else 0)
    elif spacing < 0:
        raise ConfigurationError("spacing must be non-negative")
    else:
        gap = spacing
    if wrap is not None and wrap <= 0:
        raise ConfigurationError("wrap must be a positive width")

    offsets = np.zeros(len(df), dtype=float)
    rows = np.zeros(len(df), dtype="int64")
    row_start = 0
    groups = df.groupby("bin_index").indices
    for key in sorted(groups):
        idx = groups[key]
        bin_start = df["bin_offset"].iloc[idx[0]]
        bin_offsets, bin_rows = _place_bin(widths[idx], gap, bin_start, wrap)
        offsets[idx] = bin_offsets
        rows[idx] = np.asarray(bin_rows) + row_start
        row_start += max(bin_rows) + 1

    if np.all(offsets % 1 == 0):
        offsets = offsets.astype("int64")
    df["x_offset"] = offsets
    df["x"] = df["x_offset"]
    df["xend"] = df["x_offset"] + widths
    df["y"] = rows
    return df


def toggle_strand(strand: pd.Series) -> pd.Series:
    return strand.map({FORWARD: REVERSE, REVERSE: FORWARD, UNSTRANDED: UNSTRANDED})


def infer_seqs(
    table: pd.DataFrame,
    kind: str = "feats",
    infer_bin_id: str = "seq_id",
    infer_start: str = "span",
) -> pd.DataFrame:
    """Derive one pseudo-sequence per (bin_id, seq_id) from feats or links.

    ``length`` is the largest coordinate seen. The visible window covers the
    observed span (``infer_start="span"``) or starts at 0 (``"zero"``).
    """
    if infer_start not in INFER_START_POLICIES:
        raise ConfigurationError(
            f"infer_start must be one of {', '.join(INFER_START_POLICIES)}, got '{infer_start}'"
        )

    if kind == "links":
        sides = []
        for i in ("1", "2"):
            side = pd.DataFrame({
                "seq_id": table[f"seq_id{i}"].astype(str),
                "start": table[f"start{i}"],
                "end": table[f"end{i}"],
            })
            if f"bin_id{i}" in table.columns:
                side["bin_id"] = table[f"bin_id{i}"].astype(str)
            elif infer_bin_id != "seq_id":
                # per-side column (file_id1) or one shared by both sides (file_id)
                for col in (f"{infer_bin_id}{i}", infer_bin_id):
                    if col in table.columns:
                        side[infer_bin_id] = table[col]
                        break
            sides.append(side)
        coords = pd.concat(sides, ignore_index=True)
    elif kind == "feats":
        coords = table
    else:
        raise ConfigurationError(f"Cannot infer seqs from '{kind}'")

    if "bin_id" in coords.columns:
        bin_id = coords["bin_id"]
    elif infer_bin_id in coords.columns:
        bin_id = coords[infer_bin_id]
    else:
        raise ConfigurationError(f"Cannot infer bin_id: no column '{infer_bin_id}' in {kind}")

    span = pd.DataFrame({
        "bin_id": bin_id.astype(str).to_numpy(),
        "seq_id": coords["seq_id"].astype(str).to_numpy(),
        "lo": np.minimum(coords["start"], coords["end"]).to_numpy(),
        "hi": np.maximum(coords["start"], coords["end"]).to_numpy(),
    })
    seqs = (
        span.groupby(["bin_id", "seq_id"], sort=False)
        .agg(length=("hi", "max"), start=("lo", "min"), end=("hi", "max"))
        .reset_index()
    )
    if infer_start == "zero":
        seqs["start"] = 0
    return seqs[["seq_id", "bin_id", "length", "start", "end"]]
