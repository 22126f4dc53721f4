"""Re-arrange a layout: flip, pick, shift and focus.

Every function takes a :class:`~synlayout.layout.Layout` and returns a new
one with the sequences re-laid and all tracks re-projected. Arguments are
checked before anything is built, so a failing call leaves its input as it
was.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from .base import (
    DEFAULT_FOCUS_MARGIN,
    DEFAULT_FOCUS_MAX_DIST,
    INVERTED,
    MARGINAL_POLICIES,
    REVERSE,
)
from .errors import ConfigurationError, ValidationError
from .layout import Layout
from .seqs import toggle_strand
from .tracks import as_positions, require_vars, resolve_track_id


def _as_list(items) -> list[str]:
    """Flatten ids given as varargs, lists or single values into strings."""
    if items is None:
        return []
    if isinstance(items, (str, int, np.integer)):
        return [str(items)]
    return [str(i) for item in items for i in _as_list(item)]


def _check_bins(layout: Layout, bins) -> list[str]:
    bins = _as_list(bins)
    known = set(layout.seqs["bin_id"])
    unknown = [b for b in bins if b not in known]
    if unknown:
        raise ValidationError(f"Unknown bin(s): {', '.join(unknown)}")
    return bins


# ── flip ──────────────────────────────────────────────────────────────────────

def flip(layout: Layout, *bins) -> Layout:
    """Reverse-complement whole bins: reverse their sequence order and toggle every strand."""
    bins = _check_bins(layout, bins)
    if not bins:
        raise ValidationError("flip needs at least one bin")

    seqs = layout.seqs.copy()
    target = seqs["bin_id"].isin(bins)
    seqs.loc[target, "strand"] = toggle_strand(seqs.loc[target, "strand"])
    # reverse seq order inside flipped bins, keep everything else in place
    seqs["_order"] = np.where(target, -seqs["seq_index"], seqs["seq_index"])
    seqs = seqs.sort_values(["bin_index", "_order"], kind="mergesort").drop(columns="_order")
    return layout.with_seqs(seqs)


def flip_seqs(layout: Layout, *seq_ids, bins=None) -> Layout:
    """Toggle the strand of single sequences, leaving their position in the bin alone.

    Ids match ``seq_id`` or, after a focus split, the original ``parent_id``.
    ``bins`` restricts the match to sequences of those bins.
    """
    seq_ids = _as_list(seq_ids)
    if not seq_ids:
        raise ValidationError("flip_seqs needs at least one seq_id")
    seqs = layout.seqs.copy()
    scope = seqs["bin_id"].isin(_check_bins(layout, bins)) if bins is not None else True
    unknown = []
    target = np.zeros(len(seqs), dtype=bool)
    for seq_id in seq_ids:
        hit = ((seqs["seq_id"] == seq_id) | (seqs["parent_id"] == seq_id)) & scope
        if not hit.any():
            unknown.append(seq_id)
        target |= hit.to_numpy()
    if unknown:
        raise ValidationError(f"Unknown seq(s): {', '.join(unknown)}")

    seqs.loc[target, "strand"] = toggle_strand(seqs.loc[target, "strand"])
    return layout.with_seqs(seqs)


def flip_nicely(layout: Layout, links=0) -> Layout:
    """Flip bins so that most of their links to the previous bin run colinear.

    Bins are visited in order; a bin is flipped when the summed width of its
    inverted links to the bin before it exceeds that of its colinear ones.
    """
    if not layout.link_track_ids():
        raise ConfigurationError("flip_nicely needs a link track")
    track_id = resolve_track_id(layout.tracks, links, "links").track_id

    bins = list(pd.unique(layout.seqs["bin_id"]))
    for prev, current in zip(bins, bins[1:]):
        table = layout.get_links(track_id)
        between = (
            ((table["bin_id"] == prev) & (table["bin_id2"] == current))
            | ((table["bin_id"] == current) & (table["bin_id2"] == prev))
        )
        table = table.loc[between]
        if table.empty:
            continue
        width = (table["xend"] - table["x"]) + (table["xend2"] - table["x2"])
        score = np.where(table["orientation"] == INVERTED, -width, width).sum()
        if score < 0:
            print(f"Flipping bin {current}")
            layout = flip(layout, current)
    return layout


# ── pick / shift ──────────────────────────────────────────────────────────────

def pick(layout: Layout, *bins) -> Layout:
    """Keep only the given bins, in the given order."""
    bins = _check_bins(layout, bins)
    if not bins:
        raise ValidationError("pick needs at least one bin")
    dups = sorted({b for b in bins if bins.count(b) > 1})
    if dups:
        raise ValidationError(f"Bin(s) picked more than once: {', '.join(dups)}")

    rank = {b: i for i, b in enumerate(bins)}
    seqs = layout.seqs.loc[layout.seqs["bin_id"].isin(rank)].copy()
    seqs["_rank"] = seqs["bin_id"].map(rank)
    seqs = seqs.sort_values(["_rank", "seq_index"], kind="mergesort").drop(columns="_rank")
    return layout.with_seqs(seqs)


def pick_seqs(layout: Layout, *seq_ids) -> Layout:
    """Keep only the given sequences, in the given order.

    Bins follow the order in which their first sequence is listed.
    """
    seq_ids = _as_list(seq_ids)
    if not seq_ids:
        raise ValidationError("pick_seqs needs at least one seq_id")
    seqs = layout.seqs
    unknown = [s for s in seq_ids if s not in set(seqs["seq_id"])]
    if unknown:
        raise ValidationError(f"Unknown seq(s): {', '.join(unknown)}")
    dups = sorted({s for s in seq_ids if seq_ids.count(s) > 1})
    if dups:
        raise ValidationError(f"Seq(s) picked more than once: {', '.join(dups)}")

    rank = {s: i for i, s in enumerate(seq_ids)}
    picked = seqs.loc[seqs["seq_id"].isin(rank)].copy()
    picked["_rank"] = picked["seq_id"].map(rank)
    bin_rank = picked.groupby("bin_id")["_rank"].min()
    picked["_bin_rank"] = picked["bin_id"].map(bin_rank)
    picked = picked.sort_values(["_bin_rank", "_rank"], kind="mergesort")
    return layout.with_seqs(picked.drop(columns=["_rank", "_bin_rank"]))


def shift(layout: Layout, bins, by: float) -> Layout:
    """Move whole bins ``by`` units along x."""
    bins = _check_bins(layout, bins)
    seqs = layout.seqs.copy()
    target = seqs["bin_id"].isin(bins)
    seqs.loc[target, "bin_offset"] = seqs.loc[target, "bin_offset"] + by
    return layout.with_seqs(seqs)


# ── focus ─────────────────────────────────────────────────────────────────────

def _margins(margin) -> tuple[float, float]:
    if np.isscalar(margin):
        upstream = downstream = margin
    else:
        try:
            upstream, downstream = margin
        except (TypeError, ValueError):
            raise ValidationError("margin must be a number or an (upstream, downstream) pair") from None
    if upstream < 0 or downstream < 0:
        raise ValidationError("margin must not be negative")
    return upstream, downstream


def _targets(layout: Layout, predicate, track) -> pd.DataFrame:
    """Intervals selected by ``predicate`` on a feat or link track."""
    if track is None:
        if layout.feat_track_ids():
            track = layout.feat_track_ids()[0]
        elif layout.link_track_ids():
            track = layout.link_track_ids()[0]
        else:
            raise ConfigurationError("focus needs a feat or link track to select from")
    track_type = "links" if track in layout.link_track_ids() else "feats"
    track_id = resolve_track_id(layout.tracks, track, track_type).track_id
    table = layout.projected[track_id]

    if predicate is None:
        selected = table
    elif callable(predicate):
        selected = table.loc[np.asarray(predicate(table), dtype=bool)]
    else:
        selected = table.query(predicate)

    if track_type == "feats":
        return pd.DataFrame({
            "bin_id": selected["bin_id"],
            "parent_id": selected["seq_id"],
            "lo": selected["start"],
            "hi": selected["end"],
        })
    sides = []
    for i, bin_col in (("1", "bin_id"), ("2", "bin_id2")):
        sides.append(pd.DataFrame({
            "bin_id": selected[bin_col],
            "parent_id": selected[f"seq_id{i}"],
            "lo": np.minimum(selected[f"start{i}"], selected[f"end{i}"]),
            "hi": np.maximum(selected[f"start{i}"], selected[f"end{i}"]),
        }))
    return pd.concat(sides, ignore_index=True)


def _subseq_targets(layout: Layout, subseqs: pd.DataFrame) -> pd.DataFrame:
    require_vars(subseqs, ["seq_id", "start", "end"], "subseqs")
    targets = pd.DataFrame({
        "parent_id": subseqs["seq_id"].astype(str).to_numpy(),
        "lo": as_positions(subseqs["start"], "start", "subseqs").to_numpy(),
        "hi": as_positions(subseqs["end"], "end", "subseqs").to_numpy(),
    })
    parents = layout.seqs.drop_duplicates("parent_id").set_index("parent_id")["bin_id"]
    if "bin_id" in subseqs.columns:
        targets["bin_id"] = subseqs["bin_id"].astype(str).to_numpy()
        known = set(zip(layout.seqs["bin_id"], layout.seqs["parent_id"]))
        unknown = [f"{b}/{s}" for b, s in zip(targets["bin_id"], targets["parent_id"]) if (b, s) not in known]
    else:
        targets["bin_id"] = targets["parent_id"].map(parents)
        unknown = list(targets.loc[targets["bin_id"].isna(), "parent_id"])
    if unknown:
        raise ValidationError(f"Unknown seq(s) in subseqs: {', '.join(unknown)}")
    return targets


def _merge_windows(targets: pd.DataFrame, max_dist: float) -> pd.DataFrame:
    """Union overlapping or nearby intervals per (bin_id, parent_id)."""
    windows = []
    ordered = targets.sort_values(["bin_id", "parent_id", "lo"], kind="mergesort")
    for (bin_id, parent_id), group in ordered.groupby(["bin_id", "parent_id"], sort=False):
        lo, hi = None, None
        for row_lo, row_hi in zip(group["lo"], group["hi"]):
            if lo is not None and row_lo - hi <= max_dist:
                hi = max(hi, row_hi)
                continue
            if lo is not None:
                windows.append((bin_id, parent_id, lo, hi))
            lo, hi = row_lo, row_hi
        windows.append((bin_id, parent_id, lo, hi))
    return pd.DataFrame(windows, columns=["bin_id", "parent_id", "lo", "hi"])


def focus(
    layout: Layout,
    predicate=None,
    track=None,
    *,
    margin=DEFAULT_FOCUS_MARGIN,
    marginal: str = "trim",
    max_dist: float = DEFAULT_FOCUS_MAX_DIST,
    subseqs: pd.DataFrame | None = None,
) -> Layout:
    """Show only the regions around selected feats or links.

    ``predicate`` selects rows of ``track`` (default: the first feat track,
    else the first link track) and is either a function returning a boolean
    mask or a :meth:`pandas.DataFrame.query` string; ``None`` selects every
    row. Selected intervals are widened by ``margin`` (a number, or an
    ``(upstream, downstream)`` pair), clipped to their sequence and merged
    when less than ``max_dist`` apart. Each merged region becomes a sequence
    window; a sequence with several regions is split into rows
    ``<seq_id>_1``, ``<seq_id>_2``, ... Sequences and bins without regions
    disappear.

    ``marginal`` decides what happens to feats and links that stick out of
    their window: "trim" clips them, "drop" removes them and "keep" leaves
    them as they are. ``subseqs`` (``seq_id, start, end`` and optionally
    ``bin_id``) gives the regions directly instead.
    """
    if marginal not in MARGINAL_POLICIES:
        raise ValidationError(
            f"marginal must be one of {', '.join(MARGINAL_POLICIES)}, got '{marginal}'"
        )

    if subseqs is not None:
        targets = _subseq_targets(layout, subseqs)
        upstream = downstream = 0
    else:
        upstream, downstream = _margins(margin)
        targets = _targets(layout, predicate, track)
        if targets.empty:
            raise ValidationError("focus selection matched no rows; nothing to focus on")

    seqs = layout.seqs
    parents = seqs.drop_duplicates(["bin_id", "parent_id"]).set_index(["bin_id", "parent_id"])
    lengths = parents["length"].reindex(pd.MultiIndex.from_frame(targets[["bin_id", "parent_id"]]))
    hi = np.minimum(targets["hi"].to_numpy() + downstream, lengths.to_numpy())
    lo = np.minimum(np.maximum(targets["lo"].to_numpy() - upstream, 0), hi)
    targets = targets.assign(lo=lo, hi=hi)
    windows = _merge_windows(targets, max_dist)

    rows = []
    for (bin_id, parent_id), parent in parents.iterrows():
        own = windows.loc[(windows["bin_id"] == bin_id) & (windows["parent_id"] == parent_id)]
        if own.empty:
            continue
        own = own.sort_values("lo", ascending=parent["strand"] != REVERSE, kind="mergesort")
        pieces = seqs.loc[(seqs["bin_id"] == bin_id) & (seqs["parent_id"] == parent_id)]
        split = len(own) > 1
        for k, (lo, hi) in enumerate(zip(own["lo"], own["hi"]), start=1):
            # a window takes strand and offset from the current piece it overlaps most
            overlap = np.minimum(pieces["end"], hi) - np.maximum(pieces["start"], lo)
            row = pieces.loc[overlap.idxmax()].to_dict()
            row.update({
                "bin_id": bin_id,
                "parent_id": parent_id,
                "seq_id": f"{parent_id}_{k}" if split else parent_id,
                "start": lo,
                "end": hi,
            })
            rows.append(row)

    focused = pd.DataFrame(rows, columns=["seq_id", "bin_id", "parent_id", *[
        c for c in seqs.columns if c not in ("seq_id", "bin_id", "parent_id")
    ]])
    print(f"Focusing on {len(focused)} region(s) in {focused['bin_id'].nunique()} bin(s)")
    return layout.with_seqs(focused[list(seqs.columns)], marginal=marginal)
